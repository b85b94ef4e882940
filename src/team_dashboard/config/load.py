"""Settings loading: ``.env`` → YAML config file → environment, then cross-field checks."""
from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from team_dashboard.config.env_aliases import env_name_for
from team_dashboard.config.settings import Settings
from team_dashboard.config.validate import (
    ConfigValidationError,
    ConfigValidationIssue,
    issues_from_pydantic_error,
    validate_settings,
)

DEFAULT_CONFIG_PATH = Path("config/config.yaml")

# Sections whose absence pydantic reports as the section itself, mapped to the leaf users must set.
_REQUIRED_LEAVES = {"jira": "jira.base_url"}


def _config_file(config_path: str | Path | None) -> Path | None:
    """Explicit path (argument or CONFIG_PATH) must exist; the default path is optional."""
    explicit = config_path or os.environ.get("CONFIG_PATH")
    if explicit:
        path = Path(explicit)
        if not path.exists():
            raise ConfigValidationError(
                [ConfigValidationIssue("CONFIG_PATH", f"Config file not found: {path}")]
            )
        return path
    return DEFAULT_CONFIG_PATH if DEFAULT_CONFIG_PATH.exists() else None


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigValidationError(
            [ConfigValidationIssue(str(path), f"Unable to read config file: {exc}")]
        ) from exc
    except yaml.YAMLError as exc:
        raise ConfigValidationError(
            [ConfigValidationIssue(str(path), f"Invalid YAML: {exc}")]
        ) from exc

    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigValidationError(
            [ConfigValidationIssue(str(path), "YAML root must be a mapping/object")]
        )
    return raw


def _with_hint(issue: ConfigValidationIssue) -> ConfigValidationIssue:
    path = issue.path
    if "Field required" in issue.message:
        path = _REQUIRED_LEAVES.get(path, path)
    env_name = env_name_for(path)
    message = issue.message
    if env_name and env_name not in message:
        message = f"{message} Set `{env_name}` (or YAML `{path}`)."
    return ConfigValidationIssue(path, message)


def load_settings(*, config_path: str | Path | None = None) -> Settings:
    dotenv_path = Path(".env")
    if dotenv_path.is_file():
        load_dotenv(dotenv_path=dotenv_path, override=False)

    path = _config_file(config_path)
    file_values = _read_yaml(path) if path is not None else {}

    try:
        settings = Settings(**file_values)
    except ValidationError as exc:
        raise ConfigValidationError(
            [_with_hint(issue) for issue in issues_from_pydantic_error(exc)]
        ) from exc

    validate_settings(settings)
    return settings
