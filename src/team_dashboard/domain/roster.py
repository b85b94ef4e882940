"""Staff roster and shift schedule readers.

The roster is a JSON document with two member lists; the schedule is a CSV
with one row per day and one column per support shift. Both files are
maintained by hand, so parsing is lenient about whitespace and blank rows.
"""
from __future__ import annotations

import csv
import io
import json
from dataclasses import dataclass
from datetime import date, datetime, time
from pathlib import Path
from zoneinfo import ZoneInfo

from pydantic import BaseModel, ConfigDict, Field, ValidationError

SHIFT_COLUMNS = ("Shift 1", "Shift 2", "Shift 3")

SHIFT_LABELS = {
    "Shift 1": "7PM - 3AM",
    "Shift 2": "3AM - 11AM",
    "Shift 3": "11AM - 7PM",
}

BUSINESS_HOURS = (time(8, 0), time(17, 0))
_WORKING_HOURS_ZONES = (
    ("EST", "America/New_York", "8AM - 5PM EST"),
    ("UK", "Europe/London", "8AM - 5PM UK"),
)


class TeamMember(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    name: str
    title: str = ""
    email: str | None = None
    teams: str | None = None
    working_hours: str | None = None


class Roster(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    support_team: tuple[TeamMember, ...] = Field(default=(), alias="SupportTeam")
    infrastructure_team: tuple[TeamMember, ...] = Field(default=(), alias="InfrastructureTeam")


@dataclass(frozen=True)
class ShiftDay:
    day: date
    weekday: str
    shifts: dict[str, str]

    def engineer_for(self, shift: str) -> str | None:
        return self.shifts.get(shift) or None


@dataclass(frozen=True)
class OnShiftEngineer:
    name: str
    team: str
    shift: str
    hours: str


def load_roster(path: Path) -> Roster:
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ValueError(f"Unable to read roster {path}: {exc}") from exc
    try:
        return Roster.model_validate(raw)
    except ValidationError as exc:
        raise ValueError(f"Roster {path} has an unexpected shape: {exc}") from exc


def shift_engineer(cell: str | None) -> str:
    """Engineer name from a schedule cell such as ``"7PM - 3AM - Jane Doe"``."""
    if not cell:
        return ""
    parts = [part.strip() for part in cell.split(" - ")]
    return " - ".join(parts[2:]).strip()


def parse_schedule(text: str) -> list[ShiftDay]:
    reader = csv.DictReader(io.StringIO(text.strip()))
    days: list[ShiftDay] = []
    for row in reader:
        raw_date = (row.get("Date") or "").strip()
        if not raw_date:
            continue
        try:
            day = date.fromisoformat(raw_date)
        except ValueError as exc:
            raise ValueError(f"Invalid schedule date {raw_date!r}") from exc
        days.append(
            ShiftDay(
                day=day,
                weekday=(row.get("Day") or day.strftime("%A")).strip(),
                shifts={column: shift_engineer(row.get(column)) for column in SHIFT_COLUMNS},
            )
        )
    return days


def load_schedule(path: Path) -> list[ShiftDay]:
    try:
        text = path.read_text(encoding="utf-8-sig")
    except OSError as exc:
        raise ValueError(f"Unable to read shift schedule {path}: {exc}") from exc
    return parse_schedule(text)


def current_shift(moment: datetime) -> str:
    hour = moment.hour
    if hour >= 19 or hour < 3:
        return "Shift 1"
    if hour < 11:
        return "Shift 2"
    return "Shift 3"


def _in_business_hours(moment: datetime) -> bool:
    start, end = BUSINESS_HOURS
    return moment.weekday() < 5 and start <= moment.time() < end


def on_shift(
    roster: Roster | None,
    schedule: list[ShiftDay],
    now: datetime,
    *,
    timezone: str = "America/New_York",
) -> list[OnShiftEngineer]:
    """Engineers working at `now`: the current support shift plus infrastructure staff
    inside their local business hours."""
    local_now = now.astimezone(ZoneInfo(timezone))
    engineers: list[OnShiftEngineer] = []

    shift = current_shift(local_now)
    today = next((entry for entry in schedule if entry.day == local_now.date()), None)
    if today is not None and (name := today.engineer_for(shift)):
        engineers.append(
            OnShiftEngineer(name=name, team="Support", shift=shift, hours=SHIFT_LABELS[shift])
        )

    if roster is None:
        return engineers

    for member in roster.infrastructure_team:
        if not member.working_hours:
            continue
        for marker, zone, label in _WORKING_HOURS_ZONES:
            if marker in member.working_hours:
                if _in_business_hours(now.astimezone(ZoneInfo(zone))):
                    engineers.append(
                        OnShiftEngineer(
                            name=member.name,
                            team="Infrastructure",
                            shift="Business Hours",
                            hours=label,
                        )
                    )
                break
    return engineers
