"""GitHub API configuration values."""

from __future__ import annotations

import os
from dataclasses import dataclass

from .env import first_env_var
from .http_resilience import (
    CacheConfig,
    RateLimit,
    ResilienceConfig,
    RetryPolicy,
    ShouldCacheHook,
)

DEFAULT_GITHUB_API_URL = "https://api.github.com"
GITHUB_API_VERSION = "2022-11-28"
GITHUB_TIMEOUT_SECONDS = 20.0
GITHUB_TOKEN_VARIABLES = ("GITHUB_TOKEN", "GH_TOKEN")
ACCOUNT_CACHE_TTL_SECONDS = 24 * 60 * 60


@dataclass(frozen=True, slots=True)
class GitHubConfig:
    """Holds GitHub API configuration values.

    ``resilience`` drives the entity fetches, which must observe live state and
    are retried per fetch scope by the reconciliation engine, so its transport
    neither caches nor retries. ``lookup_resilience`` drives account lookups
    made when a workspace is initialised; those answers rarely change and are
    cached on disk.
    """

    token: str
    api_url: str
    resilience: ResilienceConfig
    lookup_resilience: ResilienceConfig

    @property
    def graphql_url(self) -> str:
        return f"{self.api_url.rstrip('/')}/graphql"


def get_github_config(
    *,
    resilience: ResilienceConfig | None = None,
    lookup_resilience: ResilienceConfig | None = None,
    account_cache_predicate: ShouldCacheHook | None = None,
) -> GitHubConfig:
    token = first_env_var(GITHUB_TOKEN_VARIABLES)
    api_url = (os.getenv("GITHUB_API_URL") or DEFAULT_GITHUB_API_URL).rstrip("/")
    headers = {
        "Authorization": f"Bearer {token}",
        "Accept": "application/vnd.github+json",
        "X-GitHub-Api-Version": GITHUB_API_VERSION,
    }
    return GitHubConfig(
        token=token,
        api_url=api_url,
        resilience=resilience
        or ResilienceConfig(
            name="github",
            base_url=api_url,
            timeout_seconds=GITHUB_TIMEOUT_SECONDS,
            retry=RetryPolicy(total=0),
            ratelimit=RateLimit(max_calls=10, per_seconds=1.0),
            cache=CacheConfig(enabled=False),
            default_headers=headers,
        ),
        lookup_resilience=lookup_resilience
        or ResilienceConfig(
            name="github-lookup",
            base_url=api_url,
            timeout_seconds=GITHUB_TIMEOUT_SECONDS,
            retry=RetryPolicy(total=3),
            ratelimit=RateLimit(max_calls=10, per_seconds=1.0),
            cache=CacheConfig(
                enabled=True,
                backend="sqlite",
                default_ttl_seconds=ACCOUNT_CACHE_TTL_SECONDS,
                should_cache=account_cache_predicate,
            ),
            default_headers=headers,
        ),
    )
