"""Public interface for the GitHub adapter."""

from __future__ import annotations

from .client import GitHubAPIError, GitHubFetcher, GitHubWorkspaceResolver
from .translator import parse_field, parse_milestone, parse_project, parse_repository

__all__ = [
    "GitHubAPIError",
    "GitHubFetcher",
    "GitHubWorkspaceResolver",
    "parse_field",
    "parse_milestone",
    "parse_project",
    "parse_repository",
]
