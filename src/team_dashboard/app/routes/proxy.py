from __future__ import annotations

import structlog
from fastapi import APIRouter, HTTPException, Request
from starlette.responses import JSONResponse, Response

from team_dashboard.adapters.jira.gateway import ProxyGateway
from team_dashboard.app.responses import api_error
from team_dashboard.domain.errors import (
    ConfigurationError,
    InvalidUpstreamPathError,
    ProxyTransportError,
    UpstreamError,
)

router = APIRouter()
log = structlog.get_logger(__name__)


def _gateway_or_503(request: Request) -> ProxyGateway:
    gateway: ProxyGateway | None = getattr(request.app.state, "gateway", None)
    if gateway is None:
        raise HTTPException(status_code=503, detail="gateway_not_configured")
    return gateway


@router.get("/jira-proxy/{upstream_path:path}")
async def jira_proxy(upstream_path: str, request: Request) -> Response:
    gateway = _gateway_or_503(request)
    request_id = getattr(request.state, "request_id", None)

    try:
        result = await gateway.forward_path(
            upstream_path, list(request.query_params.multi_items())
        )
    except InvalidUpstreamPathError as exc:
        return api_error(400, str(exc), code="invalid_path", request_id=request_id)
    except ConfigurationError as exc:
        log.error("proxy.configuration_error", reason=str(exc))
        return api_error(
            500,
            f"Configuration error: {exc}",
            code="configuration_error",
            request_id=request_id,
        )
    except ProxyTransportError as exc:
        return api_error(
            exc.status_code,
            f"Jira proxy error: {exc}",
            code=exc.code,
            request_id=request_id,
        )
    except UpstreamError as exc:
        return api_error(exc.status_code, str(exc), code=exc.code, request_id=request_id)

    return JSONResponse(status_code=result.status_code, content=result.body)
