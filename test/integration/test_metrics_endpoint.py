from __future__ import annotations

import httpx
import respx
from fastapi.testclient import TestClient

from team_dashboard.app.server import create_app
from test.support.fakes import StaticSecretSource, search_response
from test.support.settings_factory import make_settings

SEARCH_URL = "https://example.atlassian.net/rest/api/3/search"


def test_metrics_endpoint_returns_prometheus_text() -> None:
    settings = make_settings(overrides={"observability": {"metrics_enabled": True}})
    with respx.mock:
        respx.get(SEARCH_URL).mock(
            return_value=httpx.Response(200, json=search_response("SD-1").body)
        )
        with TestClient(create_app(settings, secret_source=StaticSecretSource())) as client:
            response = client.get("/metrics")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    text = response.text
    assert 'ticket_fetch_total{outcome="ok"}' in text
    assert "upstream_requests_total" in text
    assert "credential_lookups_total" in text
    assert "cached_tickets" in text


def test_metrics_endpoint_absent_when_disabled() -> None:
    settings = make_settings(overrides={"jira": {"enabled": False}})
    client = TestClient(create_app(settings, secret_source=StaticSecretSource()))
    assert client.get("/metrics").status_code == 404


def test_metrics_bearer_token_is_enforced() -> None:
    settings = make_settings(
        overrides={
            "jira": {"enabled": False},
            "observability": {"metrics_enabled": True, "metrics_bearer_token": "scrape-me"},
        }
    )
    client = TestClient(create_app(settings, secret_source=StaticSecretSource()))

    assert client.get("/metrics").status_code == 401
    assert client.get("/metrics", headers={"Authorization": "Bearer wrong"}).status_code == 401
    ok = client.get("/metrics", headers={"Authorization": "Bearer scrape-me"})
    assert ok.status_code == 200
