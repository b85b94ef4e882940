"""Redaction of Jira credentials and other secrets in config dumps and log events."""
from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from pydantic import SecretStr

REDACTED_VALUE = "[redacted]"

_SENSITIVE_FRAGMENTS = ("password", "token", "secret", "authorization", "api_key", "apikey")

# Keys that name a secret in the secret source rather than hold its value.
_SAFE_KEYS = frozenset({"email_key", "token_key"})

# (pattern, replacement) pairs applied in order to free-form text.
_TEXT_RULES: tuple[tuple[re.Pattern[str], str], ...] = (
    # Authorization: Basic <b64> / Bearer <token>
    (
        re.compile(r"(?i)\b(authorization)\s*[:=]\s*(basic|bearer|token)\s+[^\s,;]+"),
        rf"\1: \2 {REDACTED_VALUE}",
    ),
    # A bare Basic credential, e.g. from a logged header mapping.
    (re.compile(r"(?i)\bBasic\s+[A-Za-z0-9+/=]{8,}"), f"Basic {REDACTED_VALUE}"),
    (
        re.compile(
            r"(?i)\b(jira[_-]?token|api[_-]?token|access[_-]?token|token|secret|password|passwd)"
            r"\s*[:=]\s*[^\s,;]+"
        ),
        rf"\1={REDACTED_VALUE}",
    ),
    (
        re.compile(r"(?i)([?&](?:api[_-]?token|access[_-]?token|token|secret)=)[^&\s]+"),
        rf"\1{REDACTED_VALUE}",
    ),
)


def scrub_secrets_in_text(text: str) -> str:
    """Best-effort masking of credentials embedded in exception messages and log text."""
    if not text:
        return text
    for pattern, replacement in _TEXT_RULES:
        text = pattern.sub(replacement, text)
    return text


def _is_sensitive_key(key: str) -> bool:
    normalized = key.strip().lower()
    if normalized in _SAFE_KEYS:
        return False
    return any(fragment in normalized for fragment in _SENSITIVE_FRAGMENTS)


def _redact(value: Any) -> Any:
    if isinstance(value, SecretStr):
        return REDACTED_VALUE
    if isinstance(value, str):
        return scrub_secrets_in_text(value)
    if isinstance(value, Mapping):
        return redact_settings_dict(value)
    if isinstance(value, (list, tuple)):
        return type(value)(_redact(item) for item in value)
    return value


def redact_settings_dict(data: Mapping[str, Any]) -> dict[str, Any]:
    """
    Deep copy of `data` with secrets masked; the input is not mutated.

    Values under sensitive keys and any SecretStr are replaced with REDACTED_VALUE;
    other strings are scrubbed for embedded credentials.
    """
    return {
        str(key): REDACTED_VALUE if _is_sensitive_key(str(key)) else _redact(value)
        for key, value in data.items()
    }
