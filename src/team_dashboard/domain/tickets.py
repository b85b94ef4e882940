"""Ticket feed domain model and the upstream-to-dashboard transform."""
from __future__ import annotations

import json
from collections.abc import Iterable
from datetime import date, datetime
from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from team_dashboard.adapters.jira.models import Issue
from team_dashboard.domain.time_utils import date_part, now_utc

DEFAULT_PRIORITY = "Medium"
DEFAULT_STATUS = "Unknown"
UNASSIGNED = "Unassigned"
OFFLINE_KEY = "INFRA-OFFLINE"

CollectionSource = Literal["live", "snapshot", "fallback"]


class _FrozenModel(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


class Ticket(_FrozenModel):
    key: str
    title: str
    status: str
    priority: str = DEFAULT_PRIORITY
    assignee: str = UNASSIGNED
    updated: date
    created: date | None = None
    # Older snapshot files name this field "type".
    issue_type: str | None = Field(
        default=None, validation_alias=AliasChoices("issue_type", "type")
    )
    url: str


class TicketCollection(_FrozenModel):
    tickets: tuple[Ticket, ...] = ()
    fetched_at: datetime
    source: CollectionSource = "live"

    @property
    def keys(self) -> list[str]:
        return [ticket.key for ticket in self.tickets]


def browse_url(base_url: str, key: str) -> str:
    return f"{base_url.rstrip('/')}/browse/{key}"


def transform_issue(issue: Issue, *, base_url: str) -> Ticket:
    fields = issue.fields
    return Ticket(
        key=issue.key,
        title=fields.summary or "",
        status=(fields.status.name if fields.status else None) or DEFAULT_STATUS,
        priority=(fields.priority.name if fields.priority else None) or DEFAULT_PRIORITY,
        assignee=(fields.assignee.display_name if fields.assignee else None) or UNASSIGNED,
        updated=date_part(fields.updated),
        created=date_part(fields.created) if fields.created else None,
        issue_type=fields.issuetype.name if fields.issuetype else None,
        url=browse_url(base_url, issue.key),
    )


def transform_issues(
    issues: Iterable[Issue],
    *,
    base_url: str,
    fetched_at: datetime,
) -> TicketCollection:
    """Map upstream issues onto dashboard tickets, keeping upstream order."""
    tickets = tuple(transform_issue(issue, base_url=base_url) for issue in issues)
    return TicketCollection(tickets=tickets, fetched_at=fetched_at, source="live")


def offline_collection(*, now: datetime | None = None) -> TicketCollection:
    """Single-entry collection shown when no ticket data has ever been available."""
    when = now or now_utc()
    notice = Ticket(
        key=OFFLINE_KEY,
        title="Jira integration temporarily unavailable",
        status="Info",
        priority="Low",
        assignee="System",
        updated=when.date(),
        issue_type="System",
        url="#",
    )
    return TicketCollection(tickets=(notice,), fetched_at=when, source="fallback")


class _SnapshotFile(BaseModel):
    model_config = ConfigDict(extra="ignore")

    tickets: list[Ticket] = Field(default_factory=list)


def load_ticket_snapshot(path: Path, *, loaded_at: datetime | None = None) -> TicketCollection:
    """
    Read a bootstrap ticket snapshot (``{"tickets": [...]}``) from disk.

    Raises ValueError when the file is unreadable or does not match the ticket shape.
    """
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ValueError(f"Unable to read ticket snapshot {path}: {exc}") from exc

    try:
        parsed = _SnapshotFile.model_validate(raw)
    except ValidationError as exc:
        raise ValueError(f"Ticket snapshot {path} has an unexpected shape: {exc}") from exc

    return TicketCollection(
        tickets=tuple(parsed.tickets),
        fetched_at=loaded_at or now_utc(),
        source="snapshot",
    )
