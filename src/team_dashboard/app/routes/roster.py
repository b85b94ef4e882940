from __future__ import annotations

from dataclasses import asdict
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo

import structlog
from fastapi import APIRouter, HTTPException, Request

from team_dashboard.config.settings import Settings
from team_dashboard.domain.roster import (
    Roster,
    ShiftDay,
    current_shift,
    load_roster,
    load_schedule,
    on_shift,
)
from team_dashboard.domain.time_utils import now_utc

router = APIRouter(prefix="/api")
log = structlog.get_logger(__name__)


def _settings_or_503(request: Request) -> Settings:
    settings: Settings | None = getattr(request.app.state, "settings", None)
    if settings is None:
        raise HTTPException(status_code=503, detail="settings_not_configured")
    return settings


def _read_roster(path: Path | None) -> Roster | None:
    if path is None:
        return None
    try:
        return load_roster(path)
    except ValueError as exc:
        log.warning("roster.unavailable", reason=str(exc))
        raise HTTPException(status_code=503, detail="roster_unavailable") from exc


def _read_schedule(path: Path | None) -> list[ShiftDay]:
    if path is None:
        return []
    try:
        return load_schedule(path)
    except ValueError as exc:
        log.warning("shifts.unavailable", reason=str(exc))
        raise HTTPException(status_code=503, detail="shifts_unavailable") from exc


@router.get("/roster")
def get_roster(request: Request) -> dict[str, Any]:
    settings = _settings_or_503(request)
    roster = _read_roster(settings.data.roster_path)
    if roster is None:
        raise HTTPException(status_code=404, detail="roster_not_configured")
    return roster.model_dump(mode="json")


@router.get("/shifts")
def get_shifts(request: Request) -> dict[str, Any]:
    settings = _settings_or_503(request)
    if settings.data.shifts_path is None:
        raise HTTPException(status_code=404, detail="shifts_not_configured")
    days = _read_schedule(settings.data.shifts_path)
    return {
        "count": len(days),
        "items": [
            {"date": day.day.isoformat(), "day": day.weekday, "shifts": day.shifts}
            for day in days
        ],
    }


@router.get("/roster/on-shift")
def get_on_shift(request: Request) -> dict[str, Any]:
    settings = _settings_or_503(request)
    roster = _read_roster(settings.data.roster_path)
    schedule = _read_schedule(settings.data.shifts_path)

    now = now_utc()
    engineers = on_shift(roster, schedule, now, timezone=settings.data.timezone)
    return {
        "shift": current_shift(now.astimezone(ZoneInfo(settings.data.timezone))),
        "engineers": [asdict(engineer) for engineer in engineers],
    }