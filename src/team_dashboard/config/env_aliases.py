"""Flat environment variable names for the nested settings tree.

Deployments set ``JIRA_BASE_URL`` rather than ``JIRA__BASE_URL``; this module
folds those names into the nested shape pydantic-settings expects, and keeps
the legacy names from the first dashboard deployments working with a
DeprecationWarning.
"""
from __future__ import annotations

import os
import warnings
from collections.abc import Mapping
from typing import Any

SettingsPath = tuple[str, ...]

_CANONICAL_MAPPINGS: dict[str, SettingsPath] = {
    "SERVER_HOST": ("server", "host"),
    "SERVER_PORT": ("server", "port"),
    "APP_ENVIRONMENT": ("server", "environment"),
    "JIRA_BASE_URL": ("jira", "base_url"),
    "JIRA_PROJECT_KEY": ("jira", "project_key"),
    "JIRA_JQL": ("jira", "jql_query"),
    "JIRA_MAX_RESULTS": ("jira", "max_results"),
    "JIRA_FIELDS": ("jira", "fields"),
    "JIRA_REFRESH_INTERVAL_SECONDS": ("jira", "refresh_interval_seconds"),
    "JIRA_ENABLED": ("jira", "enabled"),
    "JIRA_TIMEOUT_SECONDS": ("jira", "timeout_seconds"),
    "JIRA_VERIFY_TLS": ("jira", "verify_tls"),
    "JIRA_EMAIL": ("jira", "email"),
    "JIRA_TOKEN": ("jira", "api_token"),
    "SECRETS_BACKEND": ("secrets", "backend"),
    "SECRETS_FILE": ("secrets", "file_path"),
    "SECRETS_EMAIL_KEY": ("secrets", "email_key"),
    "SECRETS_TOKEN_KEY": ("secrets", "token_key"),
    "SECRETS_CACHE_TTL_SECONDS": ("secrets", "cache_ttl_seconds"),
    "TICKET_FRESHNESS_SECONDS": ("cache", "freshness_seconds"),
    "ROSTER_PATH": ("data", "roster_path"),
    "SHIFTS_PATH": ("data", "shifts_path"),
    "TICKETS_SNAPSHOT_PATH": ("data", "tickets_snapshot_path"),
    "DASHBOARD_TIMEZONE": ("data", "timezone"),
    "LOG_LEVEL": ("observability", "log_level"),
    "LOG_FORMAT": ("observability", "log_format"),
    "LOG_JSON": ("observability", "json_logs"),
    "METRICS_ENABLED": ("observability", "metrics_enabled"),
    "METRICS_BEARER_TOKEN": ("observability", "metrics_bearer_token"),
    "HARDENING_TRANSPORT_TRUST_ENV": ("hardening", "transport", "trust_env"),
    "HARDENING_TRANSPORT_ALLOW_INSECURE_HTTP": ("hardening", "transport", "allow_insecure_http"),
    "HARDENING_TRANSPORT_ALLOW_INSECURE_TLS": ("hardening", "transport", "allow_insecure_tls"),
    "HARDENING_TRANSPORT_ALLOW_LOCAL_UPSTREAMS": (
        "hardening",
        "transport",
        "allow_local_upstreams",
    ),
}

# Legacy name -> canonical name. The canonical name wins when both are set.
_DEPRECATED_ALIASES: dict[str, str] = {
    "PORT": "SERVER_PORT",
    "NODE_ENV": "APP_ENVIRONMENT",
    "JIRA_API_TOKEN": "JIRA_TOKEN",
    "JIRA_URL": "JIRA_BASE_URL",
}


def env_name_for(path: str) -> str | None:
    """Canonical flat env var for a dotted settings path such as ``jira.base_url``."""
    wanted = tuple(path.split("."))
    for env_name, settings_path in _CANONICAL_MAPPINGS.items():
        if settings_path == wanted:
            return env_name
    return None


def _assign(tree: dict[str, Any], path: SettingsPath, value: str) -> None:
    *parents, leaf = path
    node = tree
    for part in parents:
        child = node.get(part)
        if not isinstance(child, dict):
            child = node[part] = {}
        node = child
    node[leaf] = value


def flat_env_to_tree(env: Mapping[str, str]) -> dict[str, Any]:
    tree: dict[str, Any] = {}
    for env_name, path in _CANONICAL_MAPPINGS.items():
        if value := env.get(env_name):
            _assign(tree, path, value)

    for legacy_name, canonical_name in _DEPRECATED_ALIASES.items():
        value = env.get(legacy_name)
        if not value or env.get(canonical_name):
            continue
        warnings.warn(
            f"Environment variable '{legacy_name}' is deprecated. Use '{canonical_name}' instead. "
            f"Support for '{legacy_name}' will be removed in a future version.",
            DeprecationWarning,
            stacklevel=2,
        )
        _assign(tree, _CANONICAL_MAPPINGS[canonical_name], value)
    return tree


def get_flat_env_settings_source() -> dict[str, Any]:
    return flat_env_to_tree(os.environ)
