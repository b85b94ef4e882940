from __future__ import annotations

import json
from pathlib import Path

from fastapi.testclient import TestClient

from team_dashboard.app.server import create_app
from test.support.fakes import StaticSecretSource
from test.support.settings_factory import make_settings

ROSTER = {
    "SupportTeam": [{"name": "Casey Day", "title": "Support Engineer", "email": "casey@example.com"}],
    "InfrastructureTeam": [{"name": "Gray Ops", "title": "SRE", "working_hours": "8AM - 5PM EST"}],
}

SCHEDULE_CSV = """Date,Day,Shift 1,Shift 2,Shift 3
2025-07-14,Monday,7PM - 3AM - Alex Night,3AM - 11AM - Blair Early,11AM - 7PM - Casey Day
"""


def _client(tmp_path: Path, *, roster: bool = True, shifts: bool = True) -> TestClient:
    data: dict[str, str] = {}
    if roster:
        roster_path = tmp_path / "roster.json"
        roster_path.write_text(json.dumps(ROSTER), encoding="utf-8")
        data["roster_path"] = str(roster_path)
    if shifts:
        shifts_path = tmp_path / "shifts.csv"
        shifts_path.write_text(SCHEDULE_CSV, encoding="utf-8")
        data["shifts_path"] = str(shifts_path)
    settings = make_settings(overrides={"jira": {"enabled": False}, "data": data})
    return TestClient(create_app(settings, secret_source=StaticSecretSource()))


def test_roster_returns_both_teams(tmp_path: Path) -> None:
    response = _client(tmp_path).get("/api/roster")

    assert response.status_code == 200
    body = response.json()
    assert [member["name"] for member in body["support_team"]] == ["Casey Day"]
    assert body["infrastructure_team"][0]["working_hours"] == "8AM - 5PM EST"


def test_shifts_lists_schedule_days(tmp_path: Path) -> None:
    response = _client(tmp_path).get("/api/shifts")

    assert response.status_code == 200
    body = response.json()
    assert body["count"] == 1
    assert body["items"][0]["date"] == "2025-07-14"
    assert body["items"][0]["shifts"]["Shift 1"] == "Alex Night"


def test_on_shift_payload_shape(tmp_path: Path) -> None:
    response = _client(tmp_path).get("/api/roster/on-shift")

    assert response.status_code == 200
    body = response.json()
    assert body["shift"] in {"Shift 1", "Shift 2", "Shift 3"}
    for engineer in body["engineers"]:
        assert set(engineer) == {"name", "team", "shift", "hours"}


def test_roster_not_configured_is_404(tmp_path: Path) -> None:
    client = _client(tmp_path, roster=False, shifts=False)
    assert client.get("/api/roster").status_code == 404
    assert client.get("/api/shifts").status_code == 404
    on_shift = client.get("/api/roster/on-shift")
    assert on_shift.status_code == 200
    assert on_shift.json()["engineers"] == []


def test_unreadable_roster_is_503(tmp_path: Path) -> None:
    client = _client(tmp_path)
    (tmp_path / "roster.json").write_text("{broken", encoding="utf-8")
    response = client.get("/api/roster")
    assert response.status_code == 503
    assert response.json()["detail"] == "roster_unavailable"
