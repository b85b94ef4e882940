"""Centralized API response helpers for consistent JSON error and success shapes."""

from __future__ import annotations

from collections.abc import Mapping

from starlette.responses import JSONResponse

from team_dashboard.domain.time_utils import now_utc


def api_error(
    status_code: int,
    detail: str,
    *,
    code: str | None = None,
    request_id: str | None = None,
    headers: Mapping[str, str] | None = None,
) -> JSONResponse:
    """Return a JSON error response with optional code and the request id, timestamped."""
    content: dict[str, str] = {"detail": detail, "timestamp": now_utc().isoformat()}
    if code is not None:
        content["code"] = code
    if request_id is not None:
        content["request_id"] = request_id
    return JSONResponse(status_code=status_code, content=content, headers=headers)
