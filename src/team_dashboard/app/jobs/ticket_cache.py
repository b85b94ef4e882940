"""Ticket feed cache with a background refresh task.

One TicketCache instance owns the last good ticket collection. Reads are
served from memory while the collection is younger than the freshness
threshold; otherwise they trigger a fetch through the gateway. Fetches are
serialized by a lock, and a failed fetch never replaces data we already have:
callers get the previous collection, the bootstrap snapshot, or a single
"unavailable" notice, in that order.
"""
from __future__ import annotations

import asyncio
import contextlib
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Protocol

import structlog

from team_dashboard.adapters.jira.credentials import Credentials, missing_or_placeholder_fields
from team_dashboard.adapters.jira.gateway import ProxyResponse
from team_dashboard.adapters.jira.models import SearchResponse
from team_dashboard.config.settings import Settings
from team_dashboard.domain.errors import (
    ConfigurationError,
    MalformedResponseError,
    UpstreamError,
    UpstreamStatusError,
)
from team_dashboard.domain.tickets import (
    TicketCollection,
    load_ticket_snapshot,
    offline_collection,
    transform_issues,
)
from team_dashboard.domain.time_utils import now_utc
from team_dashboard.observability.metrics import (
    cached_tickets,
    ticket_fetch_seconds,
    ticket_fetch_total,
)

log = structlog.get_logger(__name__)

DEFAULT_FRESHNESS_SECONDS = 300.0


class TicketGateway(Protocol):
    @property
    def base_url(self) -> str: ...

    async def resolve_credentials(self) -> Credentials: ...

    async def forward(
        self, query: str | None = None, result_limit: int | None = None
    ) -> ProxyResponse: ...


@dataclass(frozen=True)
class TicketFeedConfig:
    enabled: bool = True
    jql: str | None = None
    max_results: int | None = None
    refresh_interval_seconds: float = 300.0

    @classmethod
    def from_settings(cls, settings: Settings) -> TicketFeedConfig:
        jira = settings.jira
        return cls(
            enabled=jira.enabled,
            jql=jira.effective_jql,
            max_results=jira.max_results,
            refresh_interval_seconds=jira.refresh_interval_seconds,
        )


@dataclass(frozen=True)
class CacheStatus:
    enabled: bool
    connected: bool
    last_fetch: datetime | None
    next_refresh: datetime | None
    last_error: str | None
    last_error_at: datetime | None
    ticket_count: int
    source: str | None

    def as_dict(self) -> dict[str, Any]:
        def _iso(value: datetime | None) -> str | None:
            return value.isoformat() if value is not None else None

        return {
            "enabled": self.enabled,
            "connected": self.connected,
            "last_fetch": _iso(self.last_fetch),
            "next_refresh": _iso(self.next_refresh),
            "last_error": self.last_error,
            "last_error_at": _iso(self.last_error_at),
            "ticket_count": self.ticket_count,
            "source": self.source,
        }


class TicketCache:
    def __init__(
        self,
        gateway: TicketGateway,
        *,
        freshness_seconds: float = DEFAULT_FRESHNESS_SECONDS,
        snapshot_path: Path | None = None,
        shutdown_timeout_seconds: float = 3.0,
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        self._gateway = gateway
        self._freshness = timedelta(seconds=freshness_seconds)
        self._snapshot_path = snapshot_path
        self._shutdown_timeout = shutdown_timeout_seconds
        self._clock = clock

        self._config = TicketFeedConfig(enabled=False)
        self._enabled = False
        self._collection: TicketCollection | None = None
        self._last_fetch: datetime | None = None
        self._last_error: str | None = None
        self._last_error_at: datetime | None = None
        self._snapshot: TicketCollection | None = None

        self._lock = asyncio.Lock()
        self._refresh_task: asyncio.Task[None] | None = None
        self._stop: asyncio.Event | None = None
        self._next_refresh: datetime | None = None

    @classmethod
    def from_settings(cls, settings: Settings, gateway: TicketGateway) -> TicketCache:
        return cls(
            gateway,
            freshness_seconds=settings.cache.freshness_seconds,
            snapshot_path=settings.data.tickets_snapshot_path,
            shutdown_timeout_seconds=settings.cache.shutdown_timeout_seconds,
        )

    @property
    def enabled(self) -> bool:
        return self._enabled

    async def initialize(self, config: TicketFeedConfig) -> None:
        """Validate credentials, load the first collection and arm the refresh task."""
        if self._refresh_task is not None:
            log.warning("ticket_cache.already_initialized")
            return

        self._config = config
        if not config.enabled:
            log.info("ticket_cache.disabled")
            return

        try:
            credentials = await self._gateway.resolve_credentials()
        except ConfigurationError as exc:
            self._record_error(exc)
            log.error("ticket_cache.invalid_config", reason=str(exc))
            return

        missing = missing_or_placeholder_fields(credentials)
        if missing:
            self._record_error(
                ConfigurationError(f"Jira config missing or invalid: {', '.join(missing)}")
            )
            log.error("ticket_cache.invalid_config", fields=missing)
            return

        self._enabled = True
        await self.fetch()

        if config.refresh_interval_seconds > 0:
            self._stop = asyncio.Event()
            self._next_refresh = self._clock() + timedelta(seconds=config.refresh_interval_seconds)
            self._refresh_task = asyncio.create_task(
                self._refresh_loop(config.refresh_interval_seconds, self._stop),
                name="ticket-cache-refresh",
            )
        log.info(
            "ticket_cache.initialized",
            refresh_interval_seconds=config.refresh_interval_seconds,
        )

    def _is_fresh(self) -> bool:
        if self._collection is None or self._last_fetch is None:
            return False
        return self._clock() - self._last_fetch < self._freshness

    async def get_tickets(self) -> TicketCollection:
        if self._is_fresh():
            return self._collection  # type: ignore[return-value]
        if not self._enabled:
            return self._collection or self._bootstrap()

        async with self._lock:
            # Another caller may have completed a fetch while we waited.
            if self._is_fresh():
                return self._collection  # type: ignore[return-value]
            return await self._fetch_locked()

    async def refresh(self) -> TicketCollection:
        """Fetch now regardless of freshness. A failed refresh keeps the previous collection."""
        log.info("ticket_cache.manual_refresh")
        return await self.fetch()

    async def fetch(self) -> TicketCollection:
        async with self._lock:
            return await self._fetch_locked()

    def invalidate(self) -> None:
        """Drop the cached collection so the next read goes upstream."""
        self._collection = None
        self._last_fetch = None
        cached_tickets.set(0)

    async def _fetch_locked(self) -> TicketCollection:
        started = time.perf_counter()
        try:
            collection = await self._load_live()
        except (UpstreamError, ConfigurationError) as exc:
            self._record_error(exc)
            ticket_fetch_total.labels(outcome="failed").inc()
            log.warning(
                "ticket_cache.fetch_failed",
                error=str(exc),
                error_type=exc.__class__.__name__,
                has_cached=self._collection is not None,
            )
            if self._collection is not None:
                return self._collection
            return self._bootstrap()
        finally:
            ticket_fetch_seconds.observe(time.perf_counter() - started)

        self._collection = collection
        self._last_fetch = collection.fetched_at
        self._last_error = None
        self._last_error_at = None
        cached_tickets.set(len(collection.tickets))
        ticket_fetch_total.labels(outcome="ok").inc()
        log.info("ticket_cache.fetched", count=len(collection.tickets))
        return collection

    async def _load_live(self) -> TicketCollection:
        response = await self._gateway.forward(self._config.jql, self._config.max_results)
        if not response.ok:
            raise UpstreamStatusError(response.status_code)

        try:
            parsed = SearchResponse.model_validate(response.body)
            return transform_issues(
                parsed.issues,
                base_url=self._gateway.base_url,
                fetched_at=self._clock(),
            )
        except ValueError as exc:
            raise MalformedResponseError(f"Unexpected issue search response: {exc}") from exc

    def _bootstrap(self) -> TicketCollection:
        if self._snapshot is None and self._snapshot_path is not None:
            try:
                self._snapshot = load_ticket_snapshot(self._snapshot_path, loaded_at=self._clock())
            except ValueError as exc:
                log.warning("ticket_cache.snapshot_unavailable", reason=str(exc))
        if self._snapshot is not None:
            return self._snapshot
        log.info("ticket_cache.using_fallback")
        return offline_collection(now=self._clock())

    def _record_error(self, exc: Exception) -> None:
        self._last_error = f"{exc.__class__.__name__}: {exc}"
        self._last_error_at = self._clock()

    async def _refresh_loop(self, interval: float, stop: asyncio.Event) -> None:
        while not stop.is_set():
            self._next_refresh = self._clock() + timedelta(seconds=interval)
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval)
                break
            except TimeoutError:
                pass

            try:
                await self.fetch()
            except asyncio.CancelledError:  # pragma: no cover
                raise
            except Exception:
                log.exception("ticket_cache.refresh_loop_error")
        self._next_refresh = None

    def get_status(self) -> CacheStatus:
        collection = self._collection
        return CacheStatus(
            enabled=self._enabled,
            connected=collection is not None,
            last_fetch=self._last_fetch,
            next_refresh=self._next_refresh if self._refresh_task is not None else None,
            last_error=self._last_error,
            last_error_at=self._last_error_at,
            ticket_count=len(collection.tickets) if collection is not None else 0,
            source=collection.source if collection is not None else None,
        )

    async def shutdown(self) -> None:
        task, stop = self._refresh_task, self._stop
        self._refresh_task = None
        self._stop = None
        self._next_refresh = None
        if task is None or stop is None:
            return

        stop.set()
        try:
            await asyncio.wait_for(task, timeout=self._shutdown_timeout)
        except TimeoutError:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        log.info("ticket_cache.shutdown")
