from __future__ import annotations

import io
import json
import logging

import pytest
import structlog

from team_dashboard.observability.logger import configure_logging


def _capture_root_stream() -> io.StringIO:
    stream = io.StringIO()
    for handler in logging.getLogger().handlers:
        if isinstance(handler, logging.StreamHandler):
            handler.stream = stream
    return stream


def test_configure_logging_quiets_http_client_loggers() -> None:
    configure_logging(log_level="DEBUG", json_logs=False)
    assert logging.getLogger("httpx").getEffectiveLevel() >= logging.WARNING
    assert logging.getLogger("httpcore").getEffectiveLevel() >= logging.WARNING


def test_json_logging_binds_context_and_redacts(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("LOG_FORMAT", raising=False)
    configure_logging(log_level="INFO", json_logs=True)
    stream = _capture_root_stream()

    structlog.contextvars.bind_contextvars(request_id="req-1")
    try:
        structlog.get_logger("test.logger").info("gateway.forward", api_token="s3cr3t", path="rest/api/3/search")
    finally:
        structlog.contextvars.unbind_contextvars("request_id")

    payload = json.loads(stream.getvalue().strip().splitlines()[-1])
    assert payload["event"] == "gateway.forward"
    assert payload["request_id"] == "req-1"
    assert payload["api_token"] == "[redacted]"
    assert payload["path"] == "rest/api/3/search"


def test_json_logging_redacts_secrets_in_exception_traceback() -> None:
    configure_logging(log_level="INFO", json_logs=True, log_format="json")
    stream = _capture_root_stream()

    logger = structlog.get_logger("test.logger")
    try:
        raise RuntimeError("Authorization: Basic dXNlcjpzZWNyZXQ= token=abc123")
    except RuntimeError:
        logger.exception("expected_exception")

    payload = json.loads(stream.getvalue().strip().splitlines()[-1])
    assert "dXNlcjpzZWNyZXQ=" not in payload["exception"]
    assert "abc123" not in payload["exception"]


def test_log_format_env_overrides_json_flag(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LOG_FORMAT", "json")
    configure_logging(log_level="INFO", json_logs=False)
    stream = _capture_root_stream()

    structlog.get_logger("test.logger").info("hello")
    payload = json.loads(stream.getvalue().strip().splitlines()[-1])
    assert payload["event"] == "hello"


def test_log_level_env_overrides_argument(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LOG_LEVEL", "warning")
    configure_logging(log_level="DEBUG")
    assert logging.getLogger().level == logging.WARNING
