from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Literal

from pydantic import SecretStr

CredentialSource = Literal["secret_source", "environment"]

_PLACEHOLDER_MARKERS = ("YOUR_", "your-")


@dataclass(frozen=True)
class Credentials:
    base_url: str
    email: str
    api_token: SecretStr
    jql: str
    max_results: int
    source: CredentialSource = "secret_source"


def is_placeholder(value: str | None) -> bool:
    if value is None or not value.strip():
        return True
    return any(marker in value for marker in _PLACEHOLDER_MARKERS)


def missing_or_placeholder_fields(credentials: Credentials) -> list[str]:
    """Names of credential fields that are empty or still hold template placeholders."""
    candidates = {
        "base_url": credentials.base_url,
        "email": credentials.email,
        "api_token": credentials.api_token.get_secret_value(),
    }
    return [name for name, value in candidates.items() if is_placeholder(value)]


class CredentialCache:
    """Holds one Credentials value for `ttl_seconds` (monotonic clock)."""

    def __init__(
        self,
        *,
        ttl_seconds: float = 300.0,
        now: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds < 0:
            raise ValueError("ttl_seconds must be >= 0")
        self._ttl_seconds = float(ttl_seconds)
        self._now = now
        self._value: Credentials | None = None
        self._stored_at = 0.0

    def get(self) -> Credentials | None:
        if self._value is None:
            return None
        if self._now() - self._stored_at >= self._ttl_seconds:
            self._value = None
            return None
        return self._value

    def put(self, value: Credentials) -> None:
        self._value = value
        self._stored_at = self._now()
