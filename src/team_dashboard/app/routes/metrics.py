from __future__ import annotations

import hmac

from fastapi import APIRouter, Request
from starlette.responses import Response

from team_dashboard.observability.metrics import render_latest

router = APIRouter()

_BEARER_PREFIX = "Bearer "


def _authorized(request: Request) -> bool:
    settings = getattr(request.app.state, "settings", None)
    token = settings.observability.metrics_bearer_token if settings is not None else None
    if token is None:
        return True

    expected = token.get_secret_value().encode("utf-8")
    auth = request.headers.get("Authorization", "")
    if not expected or not auth.startswith(_BEARER_PREFIX):
        return False
    provided = auth[len(_BEARER_PREFIX):].strip().encode("utf-8")
    return hmac.compare_digest(expected, provided)


@router.get("/metrics")
def metrics(request: Request) -> Response:
    if not _authorized(request):
        return Response(content="Unauthorized\n", status_code=401, media_type="text/plain")
    payload, content_type = render_latest()
    return Response(content=payload, headers={"Content-Type": content_type})
