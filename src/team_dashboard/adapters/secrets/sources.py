from __future__ import annotations

import os
import re
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Protocol

import yaml

from team_dashboard.adapters.secrets.errors import SecretAccessDeniedError, SecretNotFoundError
from team_dashboard.config.settings import Settings

_ENV_NAME_RE = re.compile(r"[^A-Za-z0-9]+")


class SecretSource(Protocol):
    """Resolves named secrets (e.g. ``/dashboard/jira/token``) to their plaintext values."""

    async def get_secrets(self, names: Sequence[str]) -> dict[str, str]:
        """Return every requested name, or raise SecretNotFoundError / SecretAccessDeniedError."""
        ...


def env_var_for(name: str) -> str:
    """``/dashboard/jira/token`` -> ``DASHBOARD_JIRA_TOKEN``."""
    return _ENV_NAME_RE.sub("_", name).strip("_").upper()


def _pick(values: Mapping[str, str], names: Sequence[str]) -> dict[str, str]:
    out: dict[str, str] = {}
    for name in names:
        value = values.get(name)
        if value is None or not str(value).strip():
            raise SecretNotFoundError(name)
        out[name] = str(value)
    return out


class EnvSecretSource:
    def __init__(self, environ: Mapping[str, str] | None = None) -> None:
        self._environ = environ if environ is not None else os.environ

    async def get_secrets(self, names: Sequence[str]) -> dict[str, str]:
        values = {name: self._environ.get(env_var_for(name)) for name in names}
        return _pick({k: v for k, v in values.items() if v is not None}, names)


class FileSecretSource:
    """
    Secrets from a mounted YAML (or JSON) mapping, re-read on every lookup so that
    rotated values are picked up once the credential cache expires.
    """

    def __init__(self, path: Path) -> None:
        self._path = path

    def _read(self) -> Mapping[str, str]:
        try:
            raw = yaml.safe_load(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            raise SecretAccessDeniedError(f"Secrets file not found: {self._path}") from exc
        except OSError as exc:
            raise SecretAccessDeniedError(f"Unable to read secrets file {self._path}: {exc}") from exc
        except yaml.YAMLError as exc:
            raise SecretAccessDeniedError(f"Secrets file {self._path} is not valid YAML") from exc

        if raw is None:
            return {}
        if not isinstance(raw, dict):
            raise SecretAccessDeniedError(f"Secrets file {self._path} must contain a mapping")
        return {str(key): value for key, value in raw.items() if value is not None}

    async def get_secrets(self, names: Sequence[str]) -> dict[str, str]:
        return _pick(self._read(), names)


def build_secret_source(settings: Settings) -> SecretSource:
    backend = (settings.secrets.backend or "env").strip().lower()
    if backend == "file" and settings.secrets.file_path is not None:
        return FileSecretSource(settings.secrets.file_path)
    return EnvSecretSource()
