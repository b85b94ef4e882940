"""Cross-field configuration checks that pydantic field validation cannot express."""
from __future__ import annotations

import ipaddress
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from urllib.parse import urlsplit
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import ValidationError

from team_dashboard.config.settings import Settings

_LOG_LEVELS = frozenset({"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"})


@dataclass(frozen=True)
class ConfigValidationIssue:
    path: str
    message: str


class ConfigValidationError(ValueError):
    def __init__(self, issues: Iterable[ConfigValidationIssue]):
        self.issues = list(issues)
        super().__init__(
            "\n".join(
                ["Configuration is invalid:"]
                + [f"- {issue.path}: {issue.message}" for issue in self.issues]
            )
        )


def issues_from_pydantic_error(error: ValidationError) -> list[ConfigValidationIssue]:
    return [
        ConfigValidationIssue(
            path=".".join(str(part) for part in item.get("loc", ())) or "<root>",
            message=item.get("msg", "Invalid value"),
        )
        for item in error.errors(include_url=False)
    ]


def _is_local_host(host: str) -> bool:
    normalized = host.strip().lower().rstrip(".")
    if normalized in {"localhost", "localhost.localdomain"}:
        return True
    try:
        ip = ipaddress.ip_address(normalized)
    except ValueError:
        return False
    return ip.is_loopback or ip.is_link_local or ip.is_unspecified


def _check_log_level(settings: Settings) -> Iterator[ConfigValidationIssue]:
    level = settings.observability.log_level
    if level.upper() not in _LOG_LEVELS:
        yield ConfigValidationIssue(
            "observability.log_level",
            f"Unsupported log level {level!r} (allowed: {sorted(_LOG_LEVELS)})",
        )


def _check_upstream_transport(settings: Settings) -> Iterator[ConfigValidationIssue]:
    transport = settings.hardening.transport
    base_url = str(settings.jira.base_url)

    if urlsplit(base_url).scheme == "http" and not transport.allow_insecure_http:
        yield ConfigValidationIssue(
            "jira.base_url",
            "Plain HTTP to Jira is not allowed by default. "
            "Use https:// or set hardening.transport.allow_insecure_http=true.",
        )

    if not settings.jira.verify_tls and not transport.allow_insecure_tls:
        yield ConfigValidationIssue(
            "jira.verify_tls",
            "Disabling TLS verification is not allowed by default. "
            "Set hardening.transport.allow_insecure_tls=true to override (not recommended).",
        )

    host = urlsplit(base_url).hostname
    if host and _is_local_host(host) and not transport.allow_local_upstreams:
        yield ConfigValidationIssue(
            "jira.base_url",
            "Loopback/link-local Jira hosts are blocked by default. "
            "Set hardening.transport.allow_local_upstreams=true to override.",
        )


def _check_timezone(settings: Settings) -> Iterator[ConfigValidationIssue]:
    try:
        ZoneInfo(settings.data.timezone)
    except (ZoneInfoNotFoundError, ValueError):
        yield ConfigValidationIssue("data.timezone", f"Unknown timezone {settings.data.timezone!r}")


def _check_secrets_file(settings: Settings) -> Iterator[ConfigValidationIssue]:
    secrets = settings.secrets
    if secrets.backend.strip().lower() != "file" or secrets.file_path is None:
        return
    if not secrets.file_path.is_file():
        yield ConfigValidationIssue("secrets.file_path", f"Secrets file not found: {secrets.file_path}")


_CHECKS: tuple[Callable[[Settings], Iterator[ConfigValidationIssue]], ...] = (
    _check_log_level,
    _check_upstream_transport,
    _check_timezone,
    _check_secrets_file,
)


def validate_settings(settings: Settings) -> None:
    issues = [issue for check in _CHECKS for issue in check(settings)]
    if issues:
        raise ConfigValidationError(issues)
