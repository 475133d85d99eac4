"""HTTP client for the GitHub REST and GraphQL APIs."""

from __future__ import annotations

from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING, Final

import httpx
from pydantic import TypeAdapter, ValidationError

from hubsync.adapters.http_resilience import ResilientClient
from hubsync.config.github import GitHubConfig, get_github_config
from hubsync.domain.errors import FetchError
from hubsync.domain.model import EntityType, RepositoryEntity, Workspace

from .schema import (
    AccountPayload,
    ErrorResponse,
    MembershipPayload,
    MilestonePayload,
    ProjectsResponse,
    RepositoryPayload,
)
from .translator import (
    parse_milestone,
    parse_project,
    parse_repository,
    parse_repository_permission,
    parse_workspace,
    project_permission,
    workspace_permission,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from hubsync.config.http_resilience import ResilienceConfig
    from hubsync.domain.model import (
        Entity,
        MilestoneEntity,
        PermissionEntity,
        ProjectEntity,
    )
    from hubsync.domain.ports import EntityFetcher, WorkspaceResolver

log = getLogger(__name__)

PAGE_SIZE: Final[int] = 100
PROJECT_PAGE_SIZE: Final[int] = 20
TRANSIENT_STATUS_CODES: Final[frozenset[int]] = frozenset({429, 500, 502, 503, 504})

PROJECTS_QUERY: Final[str] = """
query($login: String!, $first: Int!, $after: String) {
  %(owner)s(login: $login) {
    projectsV2(first: $first, after: $after) {
      nodes {
        id
        number
        title
        url
        closed
        fields(first: 100) {
          nodes {
            ... on ProjectV2FieldCommon { id name dataType }
            ... on ProjectV2SingleSelectField { options { id name } }
            ... on ProjectV2IterationField {
              configuration {
                iterations { id title }
                completedIterations { id title }
              }
            }
          }
        }
      }
      pageInfo { hasNextPage endCursor }
    }
  }
}
"""

_repositories = TypeAdapter(list[RepositoryPayload])
_milestones = TypeAdapter(list[MilestonePayload])


def _should_cache_account(payload: object) -> bool:
    # error bodies such as 404s carry only a message
    return isinstance(payload, dict) and "node_id" in payload and "login" in payload


def _default_config() -> GitHubConfig:
    return get_github_config(account_cache_predicate=_should_cache_account)


def _default_client_factory(config: ResilienceConfig) -> ResilientClient:
    return ResilientClient(config)


class GitHubAPIError(FetchError):
    """Raised when GitHub answers with an error status or an error payload."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        transient: bool = False,
        entity_type: EntityType | None = None,
        scope: str | None = None,
    ) -> None:
        super().__init__(message, transient=transient, entity_type=entity_type, scope=scope)
        self.status_code = status_code


def _is_transient(response: httpx.Response) -> bool:
    if response.status_code in TRANSIENT_STATUS_CODES:
        return True
    # secondary rate limits answer 403 with a reset header
    return response.status_code == 403 and response.headers.get("x-ratelimit-remaining") == "0"


def _error_message(response: httpx.Response) -> str:
    try:
        return ErrorResponse.model_validate(response.json()).message
    except ValueError:
        return response.reason_phrase or "unknown error"


@dataclass(slots=True)
class GitHubFetcher:
    """Fetch live workspace entities from GitHub.

    Projects (with their fields, options and iterations) come from GraphQL;
    repositories, milestones and permissions from REST.
    """

    config: GitHubConfig = field(default_factory=_default_config)
    client_factory: Callable[[ResilienceConfig], ResilientClient] = field(
        default=_default_client_factory
    )

    async def __call__(
        self,
        workspace: Workspace,
        entity_type: EntityType,
        *,
        parent: Entity | None = None,
    ) -> Sequence[Entity]:
        scope = parent.id if parent is not None else None
        try:
            async with self.client_factory(self.config.resilience) as client:
                match entity_type:
                    case EntityType.PROJECT:
                        return await self._fetch_projects(client, workspace)
                    case EntityType.REPOSITORY:
                        payloads = await self._fetch_repository_payloads(client, workspace)
                        return [parse_repository(payload) for payload in payloads]
                    case EntityType.MILESTONE:
                        if not isinstance(parent, RepositoryEntity):
                            raise FetchError(
                                "Milestones must be fetched for a repository",
                                entity_type=entity_type,
                            )
                        return await self._fetch_milestones(client, parent)
                    case EntityType.PERMISSION:
                        return await self._fetch_permissions(client, workspace)
                    case _:
                        raise FetchError(
                            f"{entity_type} is not fetched on its own",
                            entity_type=entity_type,
                        )
        except GitHubAPIError as exc:
            exc.entity_type = entity_type
            exc.scope = scope
            raise
        except httpx.HTTPStatusError as exc:
            response = exc.response
            raise GitHubAPIError(
                f"GitHub returned {response.status_code} for {response.request.url.path}: "
                f"{_error_message(response)}",
                status_code=response.status_code,
                transient=_is_transient(response),
                entity_type=entity_type,
                scope=scope,
            ) from exc
        except httpx.TransportError as exc:
            raise FetchError(
                f"Transport error while fetching {entity_type}: {exc}",
                transient=True,
                entity_type=entity_type,
                scope=scope,
            ) from exc
        except ValueError as exc:
            # invalid JSON or a payload failing validation
            log.debug("Unexpected %s payload: %s", entity_type, exc)
            raise FetchError(
                f"Unexpected GitHub payload for {entity_type}",
                entity_type=entity_type,
                scope=scope,
            ) from exc

    async def _fetch_projects(
        self,
        client: ResilientClient,
        workspace: Workspace,
    ) -> list[ProjectEntity]:
        query = PROJECTS_QUERY % {"owner": "organization" if workspace.is_organization else "user"}
        projects: list[ProjectEntity] = []
        cursor: str | None = None
        while True:
            response = await client.post(
                self.config.graphql_url,
                json={
                    "query": query,
                    "variables": {
                        "login": workspace.login,
                        "first": PROJECT_PAGE_SIZE,
                        "after": cursor,
                    },
                },
            )
            response.raise_for_status()
            payload = ProjectsResponse.model_validate(response.json())
            if payload.errors:
                messages = "; ".join(error.message for error in payload.errors)
                raise GitHubAPIError(f"GitHub GraphQL error: {messages}")
            owner = payload.data.owner if payload.data is not None else None
            if owner is None:
                raise GitHubAPIError(f"No project owner named {workspace.login}")

            projects.extend(parse_project(node) for node in owner.projects_v2.nodes)
            page_info = owner.projects_v2.page_info
            if not page_info.has_next_page or page_info.end_cursor is None:
                return projects
            cursor = page_info.end_cursor

    async def _fetch_repository_payloads(
        self,
        client: ResilientClient,
        workspace: Workspace,
    ) -> list[RepositoryPayload]:
        path = (
            f"/orgs/{workspace.login}/repos"
            if workspace.is_organization
            else f"/users/{workspace.login}/repos"
        )
        return [
            payload
            for page in await _get_pages(client, path, params={"type": "all"})
            for payload in _repositories.validate_python(page)
        ]

    async def _fetch_milestones(
        self,
        client: ResilientClient,
        repository: RepositoryEntity,
    ) -> list[MilestoneEntity]:
        full_name = repository.full_name or repository.name
        pages = await _get_pages(
            client,
            f"/repos/{full_name}/milestones",
            params={"state": "all"},
        )
        return [
            parse_milestone(payload, repository_id=repository.id)
            for page in pages
            for payload in _milestones.validate_python(page)
        ]

    async def _fetch_permissions(
        self,
        client: ResilientClient,
        workspace: Workspace,
    ) -> list[PermissionEntity]:
        viewer = await _get_account(client, "/user")
        permissions: list[PermissionEntity] = []

        if workspace.is_organization:
            response = await client.get(f"/user/memberships/orgs/{workspace.login}")
            if response.status_code != httpx.codes.NOT_FOUND:
                response.raise_for_status()
                membership = MembershipPayload.model_validate(response.json())
                permissions.append(
                    workspace_permission(workspace, subject=viewer.login, role=membership.role)
                )
        elif viewer.login.lower() == workspace.login.lower():
            permissions.append(workspace_permission(workspace, subject=viewer.login, role="owner"))

        projects = await self._fetch_projects(client, workspace)
        permissions.extend(
            project_permission(project, subject=viewer.login) for project in projects
        )

        for payload in await self._fetch_repository_payloads(client, workspace):
            permission = parse_repository_permission(payload, subject=viewer.login)
            if permission is not None:
                permissions.append(permission)
        return permissions


@dataclass(slots=True)
class GitHubWorkspaceResolver:
    """Resolve a user or organisation login into a workspace."""

    config: GitHubConfig = field(default_factory=_default_config)
    client_factory: Callable[[ResilienceConfig], ResilientClient] = field(
        default=_default_client_factory
    )

    async def __call__(self, login: str) -> Workspace:
        async with self.client_factory(self.config.lookup_resilience) as client:
            try:
                account = await _get_account(client, f"/users/{login}")
            except httpx.HTTPStatusError as exc:
                raise GitHubAPIError(
                    f"Cannot resolve GitHub account {login!r}: {_error_message(exc.response)}",
                    status_code=exc.response.status_code,
                    transient=_is_transient(exc.response),
                ) from exc
        workspace = parse_workspace(account)
        log.info("Resolved %s to %s workspace %s", login, workspace.kind, workspace.id)
        return workspace


async def _get_account(client: ResilientClient, path: str) -> AccountPayload:
    response = await client.get(path)
    response.raise_for_status()
    return AccountPayload.model_validate(response.json())


async def _get_pages(
    client: ResilientClient,
    path: str,
    *,
    params: dict[str, str] | None = None,
) -> list[object]:
    """Follow ``Link: rel="next"`` pagination and return every page's JSON body."""

    pages: list[object] = []
    url: str | None = path
    query: dict[str, str | int] | None = {"per_page": PAGE_SIZE, **(params or {})}
    while url is not None:
        response = await client.get(url, params=query)
        response.raise_for_status()
        pages.append(response.json())
        url = response.links.get("next", {}).get("url")
        # the next link already carries the query string
        query = None
    return pages


if TYPE_CHECKING:
    _fetcher_check: EntityFetcher = GitHubFetcher()
    _resolver_check: WorkspaceResolver = GitHubWorkspaceResolver()
