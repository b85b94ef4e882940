from __future__ import annotations

import asyncio
import json
from pathlib import Path

import httpx
import respx

from team_dashboard.adapters.jira.gateway import ProxyGateway, ProxyResponse
from team_dashboard.app.jobs.ticket_cache import TicketCache, TicketFeedConfig
from team_dashboard.domain.errors import (
    ConfigurationError,
    ProxyTransportError,
    UpstreamTimeoutError,
)
from team_dashboard.domain.tickets import OFFLINE_KEY
from test.support.fakes import (
    EMAIL_KEY,
    TOKEN_KEY,
    FakeGateway,
    FakeWallClock,
    StaticSecretSource,
    search_response,
)

NO_TIMER = TicketFeedConfig(enabled=True, jql="project = SD", max_results=15, refresh_interval_seconds=0)


def _cache(gateway: FakeGateway, clock: FakeWallClock, **kwargs) -> TicketCache:
    return TicketCache(gateway, clock=clock, **kwargs)


def test_initialize_fetches_once_and_serves_from_memory_while_fresh() -> None:
    async def run() -> None:
        gateway = FakeGateway()
        clock = FakeWallClock()
        cache = _cache(gateway, clock)
        await cache.initialize(NO_TIMER)
        assert gateway.calls == 1

        clock.advance(60)
        first = await cache.get_tickets()
        clock.advance(200)
        second = await cache.get_tickets()

        assert gateway.calls == 1
        assert first is second
        assert first.keys == ["SD-1"]

    asyncio.run(run())


def test_get_tickets_refetches_once_collection_is_stale() -> None:
    async def run() -> None:
        gateway = FakeGateway()
        gateway.outcomes = [search_response("SD-1"), search_response("SD-2")]
        clock = FakeWallClock()
        cache = _cache(gateway, clock)
        await cache.initialize(NO_TIMER)

        clock.advance(301)
        collection = await cache.get_tickets()

        assert gateway.calls == 2
        assert collection.keys == ["SD-2"]

    asyncio.run(run())


def test_freshness_threshold_is_independent_of_refresh_interval() -> None:
    async def run() -> None:
        gateway = FakeGateway()
        clock = FakeWallClock()
        cache = _cache(gateway, clock, freshness_seconds=300)
        await cache.initialize(
            TicketFeedConfig(enabled=True, refresh_interval_seconds=3600)
        )
        try:
            clock.advance(299)
            await cache.get_tickets()
            assert gateway.calls == 1
        finally:
            await cache.shutdown()

    asyncio.run(run())


def test_refresh_always_performs_exactly_one_upstream_call() -> None:
    async def run() -> None:
        gateway = FakeGateway()
        clock = FakeWallClock()
        cache = _cache(gateway, clock)
        await cache.initialize(NO_TIMER)

        await cache.refresh()
        assert gateway.calls == 2
        await cache.refresh()
        assert gateway.calls == 3

    asyncio.run(run())


def test_forward_receives_configured_query_and_limit() -> None:
    async def run() -> None:
        gateway = FakeGateway()
        cache = _cache(gateway, FakeWallClock())
        await cache.initialize(
            TicketFeedConfig(enabled=True, jql="project = OPS", max_results=5, refresh_interval_seconds=0)
        )
        assert gateway.queries == [("project = OPS", 5)]

    asyncio.run(run())


def test_failed_fetch_keeps_previous_collection_and_records_error() -> None:
    async def run() -> None:
        gateway = FakeGateway()
        gateway.outcomes = [search_response("SD-1", "SD-2"), UpstreamTimeoutError("Jira request timeout")]
        clock = FakeWallClock()
        cache = _cache(gateway, clock)
        await cache.initialize(NO_TIMER)
        last_fetch = cache.get_status().last_fetch

        clock.advance(400)
        collection = await cache.refresh()

        assert collection.keys == ["SD-1", "SD-2"]
        status = cache.get_status()
        assert status.connected is True
        assert status.last_fetch == last_fetch
        assert status.last_error is not None
        assert "UpstreamTimeoutError" in status.last_error
        assert status.last_error_at == clock.value

    asyncio.run(run())


def test_successful_fetch_clears_recorded_error() -> None:
    async def run() -> None:
        gateway = FakeGateway()
        gateway.outcomes = [ProxyTransportError("connection refused"), search_response("SD-5")]
        cache = _cache(gateway, FakeWallClock())
        await cache.initialize(NO_TIMER)
        assert cache.get_status().last_error is not None

        collection = await cache.refresh()

        assert collection.keys == ["SD-5"]
        assert cache.get_status().last_error is None

    asyncio.run(run())


def test_first_fetch_failure_serves_offline_notice() -> None:
    async def run() -> None:
        gateway = FakeGateway()
        gateway.outcomes = [ProxyTransportError("connection refused")]
        cache = _cache(gateway, FakeWallClock())
        await cache.initialize(NO_TIMER)

        status = cache.get_status()
        assert status.connected is False
        assert status.last_fetch is None

        gateway.outcomes = [ProxyTransportError("still down")]
        collection = await cache.get_tickets()
        assert collection.source == "fallback"
        assert collection.keys == [OFFLINE_KEY]

    asyncio.run(run())


def test_first_fetch_failure_prefers_bootstrap_snapshot(tmp_path: Path) -> None:
    snapshot = tmp_path / "tickets.json"
    snapshot.write_text(
        json.dumps(
            {
                "tickets": [
                    {
                        "key": "SD-42",
                        "title": "Cached ticket",
                        "status": "Open",
                        "updated": "2025-07-01",
                        "url": "https://example.atlassian.net/browse/SD-42",
                    }
                ]
            }
        ),
        encoding="utf-8",
    )

    async def run() -> None:
        gateway = FakeGateway()
        gateway.outcomes = [UpstreamTimeoutError("Jira request timeout")]
        cache = _cache(gateway, FakeWallClock(), snapshot_path=snapshot)
        await cache.initialize(NO_TIMER)

        gateway.outcomes = [UpstreamTimeoutError("Jira request timeout")]
        collection = await cache.get_tickets()
        assert collection.source == "snapshot"
        assert collection.keys == ["SD-42"]

    asyncio.run(run())


def test_non_2xx_upstream_status_is_a_failed_fetch() -> None:
    async def run() -> None:
        gateway = FakeGateway()
        gateway.outcomes = [ProxyResponse(status_code=401, body={"errorMessages": ["nope"]})]
        cache = _cache(gateway, FakeWallClock())
        await cache.initialize(NO_TIMER)

        status = cache.get_status()
        assert status.connected is False
        assert status.last_error is not None
        assert "401" in status.last_error

    asyncio.run(run())


def test_malformed_search_body_is_a_failed_fetch() -> None:
    async def run() -> None:
        gateway = FakeGateway()
        gateway.outcomes = [ProxyResponse(status_code=200, body={"issues": [{"key": "SD-1"}]})]
        cache = _cache(gateway, FakeWallClock())
        await cache.initialize(NO_TIMER)

        status = cache.get_status()
        assert status.connected is False
        assert status.last_error is not None
        assert "MalformedResponseError" in status.last_error

    asyncio.run(run())


def test_disabled_feed_never_fetches_or_arms_timer() -> None:
    async def run() -> None:
        gateway = FakeGateway()
        cache = _cache(gateway, FakeWallClock())
        await cache.initialize(TicketFeedConfig(enabled=False, refresh_interval_seconds=60))

        collection = await cache.get_tickets()

        assert gateway.calls == 0
        assert collection.source == "fallback"
        status = cache.get_status()
        assert status.enabled is False
        assert status.next_refresh is None

    asyncio.run(run())


def test_placeholder_credentials_leave_cache_disabled() -> None:
    async def run() -> None:
        gateway = FakeGateway(api_token="YOUR_API_TOKEN")
        cache = _cache(gateway, FakeWallClock())
        await cache.initialize(TicketFeedConfig(enabled=True, refresh_interval_seconds=60))

        assert cache.enabled is False
        assert gateway.calls == 0
        status = cache.get_status()
        assert status.next_refresh is None
        assert status.last_error is not None
        assert "api_token" in status.last_error

    asyncio.run(run())


def test_unresolvable_credentials_leave_cache_disabled() -> None:
    async def run() -> None:
        gateway = FakeGateway()
        gateway.credential_error = ConfigurationError("no credentials")
        cache = _cache(gateway, FakeWallClock())
        await cache.initialize(NO_TIMER)

        assert cache.enabled is False
        assert gateway.calls == 0
        assert (await cache.get_tickets()).source == "fallback"

    asyncio.run(run())


def test_manual_fetch_is_permitted_while_disabled() -> None:
    async def run() -> None:
        gateway = FakeGateway()
        cache = _cache(gateway, FakeWallClock())
        await cache.initialize(TicketFeedConfig(enabled=False))

        collection = await cache.refresh()

        assert gateway.calls == 1
        assert collection.source == "live"

    asyncio.run(run())


def test_concurrent_readers_share_one_fetch() -> None:
    async def run() -> None:
        gateway = FakeGateway()
        clock = FakeWallClock()
        cache = _cache(gateway, clock)
        await cache.initialize(NO_TIMER)
        assert gateway.calls == 1

        clock.advance(301)
        gateway.gate = asyncio.Event()
        readers = [asyncio.create_task(cache.get_tickets()) for _ in range(5)]
        await asyncio.sleep(0)
        gateway.gate.set()
        results = await asyncio.gather(*readers)

        assert gateway.calls == 2
        assert all(result is results[0] for result in results)

    asyncio.run(run())


def test_invalidate_forces_next_read_upstream() -> None:
    async def run() -> None:
        gateway = FakeGateway()
        cache = _cache(gateway, FakeWallClock())
        await cache.initialize(NO_TIMER)

        cache.invalidate()
        assert cache.get_status().connected is False
        await cache.get_tickets()

        assert gateway.calls == 2

    asyncio.run(run())


def test_refresh_task_runs_on_interval_and_stops_on_shutdown() -> None:
    async def run() -> None:
        gateway = FakeGateway()
        clock = FakeWallClock()
        cache = _cache(gateway, clock, shutdown_timeout_seconds=1)
        await cache.initialize(TicketFeedConfig(enabled=True, refresh_interval_seconds=0.01))

        status = cache.get_status()
        assert status.next_refresh is not None

        for _ in range(100):
            if gateway.calls >= 3:
                break
            await asyncio.sleep(0.01)
        assert gateway.calls >= 3

        await cache.shutdown()
        calls_after_shutdown = gateway.calls
        await asyncio.sleep(0.05)

        assert gateway.calls == calls_after_shutdown
        assert cache.get_status().next_refresh is None
        # Idempotent.
        await cache.shutdown()

    asyncio.run(run())


def test_refresh_task_survives_failed_fetches() -> None:
    async def run() -> None:
        gateway = FakeGateway()
        gateway.outcomes = [
            search_response("SD-1"),
            ProxyTransportError("down"),
            ProxyTransportError("down"),
            search_response("SD-9"),
        ]
        cache = _cache(gateway, FakeWallClock(), shutdown_timeout_seconds=1)
        await cache.initialize(TicketFeedConfig(enabled=True, refresh_interval_seconds=0.01))
        try:
            for _ in range(200):
                if gateway.calls >= 4:
                    break
                await asyncio.sleep(0.01)
        finally:
            await cache.shutdown()

        assert gateway.calls >= 4
        assert (await cache.get_tickets()).keys[0] in {"SD-1", "SD-9"}
        assert cache.get_status().connected is True

    asyncio.run(run())


def test_status_reports_cache_state() -> None:
    async def run() -> None:
        gateway = FakeGateway()
        gateway.outcomes = [search_response("SD-1", "SD-2", "SD-3")]
        clock = FakeWallClock()
        cache = _cache(gateway, clock)
        await cache.initialize(NO_TIMER)

        status = cache.get_status().as_dict()

        assert status["enabled"] is True
        assert status["connected"] is True
        assert status["ticket_count"] == 3
        assert status["source"] == "live"
        assert status["last_fetch"] == clock.value.isoformat()
        assert status["next_refresh"] is None
        assert status["last_error"] is None

    asyncio.run(run())


def test_successful_fetches_replace_collection_and_advance_last_fetch() -> None:
    async def run() -> None:
        gateway = FakeGateway()
        gateway.outcomes = [search_response("SD-1", "SD-2"), search_response("SD-3")]
        clock = FakeWallClock()
        cache = _cache(gateway, clock)
        await cache.initialize(NO_TIMER)
        first_fetch = cache.get_status().last_fetch

        clock.advance(30)
        collection = await cache.refresh()

        assert collection.keys == ["SD-3"]
        status = cache.get_status()
        assert status.ticket_count == 1
        assert first_fetch is not None
        assert status.last_fetch is not None
        assert status.last_fetch > first_fetch

    asyncio.run(run())


def test_undecodable_upstream_body_falls_back_instead_of_raising() -> None:
    search_url = "https://example.atlassian.net/rest/api/3/search"

    async def run() -> None:
        gateway = ProxyGateway(
            base_url="https://example.atlassian.net",
            secret_source=StaticSecretSource(),
            email_key=EMAIL_KEY,
            token_key=TOKEN_KEY,
            jql="project = SD",
            max_results=15,
            fields="key,summary,status",
        )
        async with gateway:
            cache = TicketCache(gateway, clock=FakeWallClock())
            await cache.initialize(NO_TIMER)
            assert cache.get_status().last_error is not None

            collection = await cache.refresh()

        assert collection.source == "fallback"
        assert collection.keys == [OFFLINE_KEY]
        assert "ProxyTransportError" in (cache.get_status().last_error or "")

    with respx.mock:
        respx.get(search_url).mock(
            return_value=httpx.Response(
                200,
                headers={"Content-Encoding": "gzip"},
                stream=httpx.ByteStream(b"not-gzip-at-all"),
            )
        )
        asyncio.run(run())
