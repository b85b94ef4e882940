from __future__ import annotations

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from starlette.middleware.cors import CORSMiddleware

from team_dashboard._version import __version__
from team_dashboard.adapters.jira.gateway import ProxyGateway
from team_dashboard.adapters.secrets import SecretSource, build_secret_source
from team_dashboard.app.jobs.ticket_cache import TicketCache, TicketFeedConfig
from team_dashboard.app.middleware.request_id import REQUEST_ID_HEADER, RequestIdMiddleware
from team_dashboard.app.responses import api_error
from team_dashboard.app.routes.health import router as health_router
from team_dashboard.app.routes.proxy import router as proxy_router
from team_dashboard.app.routes.roster import router as roster_router
from team_dashboard.app.routes.tickets import router as tickets_router
from team_dashboard.config.settings import Settings

log = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings | None = getattr(app.state, "settings", None)
    cache: TicketCache | None = getattr(app.state, "ticket_cache", None)
    gateway: ProxyGateway | None = getattr(app.state, "gateway", None)

    if settings is not None and cache is not None:
        await cache.initialize(TicketFeedConfig.from_settings(settings))
    log.info("server.started", environment=settings.server.environment if settings else None)
    yield
    if cache is not None:
        await cache.shutdown()
    if gateway is not None:
        await gateway.aclose()
    log.info("server.stopped")


async def _global_exception_handler(request, exc):
    request_id = getattr(request.state, "request_id", None)
    log.exception("server.unhandled_error", path=request.url.path)
    headers = {REQUEST_ID_HEADER: request_id} if request_id else None
    return api_error(
        500,
        "An internal server error occurred.",
        code="internal_error",
        request_id=request_id,
        headers=headers,
    )


def _wire_app(
    app: FastAPI,
    *,
    settings: Settings | None,
    gateway: ProxyGateway | None,
    ticket_cache: TicketCache | None,
) -> None:
    app.state.settings = settings
    app.state.gateway = gateway
    app.state.ticket_cache = ticket_cache

    app.add_middleware(RequestIdMiddleware)
    if settings is not None and settings.server.allowed_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=list(settings.server.allowed_origins),
            allow_methods=["GET", "POST"],
            allow_headers=["*"],
            expose_headers=[REQUEST_ID_HEADER],
        )
    app.add_exception_handler(Exception, _global_exception_handler)

    app.include_router(health_router)
    app.include_router(proxy_router)
    app.include_router(tickets_router)
    app.include_router(roster_router)
    if settings is not None and settings.observability.metrics_enabled:
        from team_dashboard.app.routes.metrics import router as metrics_router

        app.include_router(metrics_router)


def create_app(
    settings: Settings | None = None,
    *,
    gateway: ProxyGateway | None = None,
    ticket_cache: TicketCache | None = None,
    secret_source: SecretSource | None = None,
) -> FastAPI:
    """Build the dashboard API.

    Without settings the app only answers ``/health``; the Jira-backed routes
    respond 503. A gateway and cache are built from settings unless given.
    """
    if settings is not None and gateway is None:
        gateway = ProxyGateway.from_settings(
            settings, secret_source=secret_source or build_secret_source(settings)
        )
    if settings is not None and ticket_cache is None and gateway is not None:
        ticket_cache = TicketCache.from_settings(settings, gateway)

    app = FastAPI(title="team-dashboard", version=__version__, lifespan=lifespan)
    _wire_app(app, settings=settings, gateway=gateway, ticket_cache=ticket_cache)
    return app
