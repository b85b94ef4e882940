from __future__ import annotations

import logging
import os
import sys
from typing import Any

import structlog
from structlog.stdlib import ProcessorFormatter

from team_dashboard.config.redact import redact_settings_dict

_LOG_FORMATS = ("json", "human")

# httpx logs every request URL at INFO, duplicating the gateway.forward events.
_QUIET_LOGGERS = ("httpx", "httpcore")
_UVICORN_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")


def _redact_event(_: Any, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    return redact_settings_dict(event_dict)


def _pick_format(*candidates: str | None) -> str | None:
    for candidate in candidates:
        normalized = (candidate or "").strip().lower()
        if normalized in _LOG_FORMATS:
            return normalized
    return None


def configure_logging(
    *,
    log_level: str = "INFO",
    json_logs: bool = False,
    log_format: str | None = None,
) -> None:
    """
    Route structlog and stdlib logging through one stdout handler.

    Format precedence: explicit `log_format`, then LOG_FORMAT, then `json_logs`.
    LOG_LEVEL in the environment overrides `log_level`.
    """
    level = ((os.environ.get("LOG_LEVEL") or "").strip() or log_level).upper()
    fmt = _pick_format(log_format, os.environ.get("LOG_FORMAT")) or (
        "json" if json_logs else "human"
    )

    pre_chain: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        _redact_event,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    renderer: Any = (
        structlog.processors.JSONRenderer() if fmt == "json" else structlog.dev.ConsoleRenderer()
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ProcessorFormatter(processor=renderer, foreign_pre_chain=pre_chain))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)

    for name in _UVICORN_LOGGERS:
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.handlers = []
        uvicorn_logger.propagate = True
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.configure(
        processors=[*pre_chain, ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
