from __future__ import annotations

from fastapi import APIRouter, Request

from team_dashboard.domain.time_utils import now_utc

router = APIRouter()


@router.get("/health")
def health(request: Request) -> dict[str, str]:
    settings = getattr(request.app.state, "settings", None)
    environment = settings.server.environment if settings is not None else "development"
    return {
        "status": "healthy",
        "timestamp": now_utc().isoformat(),
        "environment": environment,
    }
