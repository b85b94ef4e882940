from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Request

from team_dashboard.app.jobs.ticket_cache import TicketCache
from team_dashboard.domain.tickets import TicketCollection

router = APIRouter(prefix="/api/tickets")


def _cache_or_503(request: Request) -> TicketCache:
    cache: TicketCache | None = getattr(request.app.state, "ticket_cache", None)
    if cache is None:
        raise HTTPException(status_code=503, detail="ticket_cache_not_configured")
    return cache


def _payload(collection: TicketCollection) -> dict[str, Any]:
    return collection.model_dump(mode="json")


@router.get("")
async def list_tickets(request: Request) -> dict[str, Any]:
    cache = _cache_or_503(request)
    return _payload(await cache.get_tickets())


@router.post("/refresh")
async def refresh_tickets(request: Request) -> dict[str, Any]:
    cache = _cache_or_503(request)
    return _payload(await cache.refresh())


@router.get("/status")
def ticket_status(request: Request) -> dict[str, Any]:
    return _cache_or_503(request).get_status().as_dict()
