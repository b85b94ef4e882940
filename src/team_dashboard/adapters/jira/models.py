from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class _JiraModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class NamedRef(_JiraModel):
    name: str | None = None


class UserRef(_JiraModel):
    display_name: str | None = Field(default=None, alias="displayName")
    email_address: str | None = Field(default=None, alias="emailAddress")


class IssueFields(_JiraModel):
    summary: str | None = None
    status: NamedRef | None = None
    priority: NamedRef | None = None
    assignee: UserRef | None = None
    issuetype: NamedRef | None = None
    # Kept as raw strings: Jira uses "+0000" offsets and only the date part is used.
    updated: str
    created: str | None = None


class Issue(_JiraModel):
    id: str | None = None
    key: str
    fields: IssueFields


class SearchResponse(_JiraModel):
    start_at: int = Field(default=0, alias="startAt")
    max_results: int | None = Field(default=None, alias="maxResults")
    total: int | None = None
    issues: list[Issue] = Field(default_factory=list)
