from __future__ import annotations

from team_dashboard.adapters.secrets.errors import (
    SecretAccessDeniedError,
    SecretNotFoundError,
    SecretSourceError,
)
from team_dashboard.adapters.secrets.sources import (
    EnvSecretSource,
    FileSecretSource,
    SecretSource,
    build_secret_source,
)

__all__ = [
    "EnvSecretSource",
    "FileSecretSource",
    "SecretAccessDeniedError",
    "SecretNotFoundError",
    "SecretSource",
    "SecretSourceError",
    "build_secret_source",
]
