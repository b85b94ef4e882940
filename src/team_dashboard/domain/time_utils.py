from __future__ import annotations

from datetime import UTC, date, datetime


def now_utc() -> datetime:
    return datetime.now(UTC)


def date_part(value: str) -> date:
    """Date portion of an upstream timestamp such as ``2025-07-15T09:30:00.000+0000``."""
    return date.fromisoformat(value.split("T", 1)[0])
