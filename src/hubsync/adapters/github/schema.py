"""Pydantic models describing the GitHub REST and GraphQL payloads."""

from __future__ import annotations

from datetime import datetime  # noqa: TC003
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class GitHubBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


def _drop_null_nodes(value: object) -> object:
    # GraphQL connections may hold null nodes for items the token cannot see
    if isinstance(value, list):
        return [item for item in value if item]
    return value


# --- GraphQL ---------------------------------------------------------------


class GraphQLError(GitHubBaseModel):
    message: str
    type: str | None = None


class PageInfo(GitHubBaseModel):
    has_next_page: bool = Field(alias="hasNextPage")
    end_cursor: str | None = Field(default=None, alias="endCursor")


class OptionPayload(GitHubBaseModel):
    id: str
    name: str


class IterationPayload(GitHubBaseModel):
    id: str
    title: str


class IterationConfiguration(GitHubBaseModel):
    iterations: list[IterationPayload] = Field(default_factory=list[IterationPayload])
    completed_iterations: list[IterationPayload] = Field(
        default_factory=list[IterationPayload], alias="completedIterations"
    )


class FieldPayload(GitHubBaseModel):
    id: str
    name: str
    data_type: str = Field(alias="dataType")
    options: list[OptionPayload] | None = None
    configuration: IterationConfiguration | None = None


class FieldConnection(GitHubBaseModel):
    nodes: list[FieldPayload] = Field(default_factory=list[FieldPayload])

    _drop_nulls = field_validator("nodes", mode="before")(_drop_null_nodes)


class ProjectPayload(GitHubBaseModel):
    id: str
    number: int
    title: str
    url: str | None = None
    closed: bool = False
    fields: FieldConnection = Field(default_factory=FieldConnection)


class ProjectConnection(GitHubBaseModel):
    nodes: list[ProjectPayload] = Field(default_factory=list[ProjectPayload])
    page_info: PageInfo = Field(alias="pageInfo")

    _drop_nulls = field_validator("nodes", mode="before")(_drop_null_nodes)


class ProjectOwner(GitHubBaseModel):
    projects_v2: ProjectConnection = Field(alias="projectsV2")


class ProjectsData(GitHubBaseModel):
    organization: ProjectOwner | None = None
    user: ProjectOwner | None = None

    @property
    def owner(self) -> ProjectOwner | None:
        return self.organization or self.user


class ProjectsResponse(GitHubBaseModel):
    data: ProjectsData | None = None
    errors: list[GraphQLError] = Field(default_factory=list[GraphQLError])


# --- REST ------------------------------------------------------------------


class RepositoryPermissions(GitHubBaseModel):
    admin: bool = False
    maintain: bool = False
    push: bool = False
    triage: bool = False
    pull: bool = False

    def role(self) -> str | None:
        """Highest role granted, using GitHub's role names."""

        for flag, role in (
            (self.admin, "admin"),
            (self.maintain, "maintain"),
            (self.push, "write"),
            (self.triage, "triage"),
            (self.pull, "read"),
        ):
            if flag:
                return role
        return None


class RepositoryPayload(GitHubBaseModel):
    node_id: str
    name: str
    full_name: str
    default_branch: str | None = None
    visibility: str | None = None
    private: bool = False
    permissions: RepositoryPermissions | None = None

    @property
    def resolved_visibility(self) -> str:
        if self.visibility:
            return self.visibility
        return "private" if self.private else "public"


class MilestonePayload(GitHubBaseModel):
    node_id: str
    number: int
    title: str
    state: Literal["open", "closed"]
    due_on: datetime | None = None


class AccountPayload(GitHubBaseModel):
    node_id: str
    login: str
    type: str


class MembershipPayload(GitHubBaseModel):
    role: str
    state: str | None = None


class ErrorResponse(GitHubBaseModel):
    message: str
    documentation_url: str | None = None
