"""CLI commands for team-dashboard.

This module provides command-line utilities for:
- Validating configuration
- Dumping configuration (with secrets redacted)
- Showing deprecated environment variables
- Fetching the current ticket feed once
"""
from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from collections.abc import Sequence

import structlog

from team_dashboard.adapters.jira.credentials import missing_or_placeholder_fields
from team_dashboard.adapters.jira.gateway import ProxyGateway
from team_dashboard.adapters.secrets import build_secret_source
from team_dashboard.app.jobs.ticket_cache import TicketCache
from team_dashboard.config.env_aliases import _DEPRECATED_ALIASES
from team_dashboard.config.load import load_settings
from team_dashboard.config.redact import redact_settings_dict, scrub_secrets_in_text
from team_dashboard.config.settings import Settings
from team_dashboard.config.validate import ConfigValidationError
from team_dashboard.domain.errors import ConfigurationError
from team_dashboard.domain.tickets import TicketCollection

log = structlog.get_logger(__name__)


def cmd_validate_config(args: argparse.Namespace) -> int:
    """Validate configuration and exit with appropriate code.

    Exit codes:
        0: Configuration is valid
        1: Configuration is invalid
        2: Configuration file not found (when CONFIG_PATH is set)
    """
    try:
        settings = load_settings()
    except ConfigValidationError as e:
        if any(issue.path == "CONFIG_PATH" for issue in e.issues):
            print(f"✗ Configuration file not found: {e}", file=sys.stderr)
            return 2
        print(f"✗ Configuration is invalid: {scrub_secrets_in_text(str(e))}", file=sys.stderr)
        return 1
    except Exception as e:
        print(f"✗ Configuration is invalid: {scrub_secrets_in_text(str(e))}", file=sys.stderr)
        return 1

    print("✓ Configuration is valid")
    print(f"  - Jira URL: {settings.jira.base_url}")
    print(f"  - Ticket feed enabled: {settings.jira.enabled}")
    print(f"  - Secrets backend: {settings.secrets.backend}")
    print(f"  - Metrics enabled: {settings.observability.metrics_enabled}")
    return 0


def cmd_dump_config(args: argparse.Namespace) -> int:
    """Dump current configuration as JSON (with secrets redacted)."""
    try:
        settings = load_settings()
    except Exception as e:
        print(f"✗ Failed to load configuration: {scrub_secrets_in_text(str(e))}", file=sys.stderr)
        return 1
    redacted = redact_settings_dict(settings.model_dump(mode="json"))
    print(json.dumps(redacted, indent=2, default=str))
    return 0


def cmd_show_deprecated(args: argparse.Namespace) -> int:
    """Show deprecated environment variables that are in use."""
    found = [
        (old_name, new_name, os.environ.get(new_name) is None)
        for old_name, new_name in _DEPRECATED_ALIASES.items()
        if old_name in os.environ
    ]

    if not found:
        print("No deprecated environment variables in use.")
        return 0

    print("Deprecated environment variables detected:")
    print()
    for old_name, new_name, needs_migration in found:
        status = "NEEDS MIGRATION" if needs_migration else "has canonical override"
        print(f"  {old_name} → {new_name} ({status})")

    print()
    print("These variables will be removed in a future version.")
    print("Please migrate to the canonical names.")
    return 0


async def _fetch_once(settings: Settings) -> TicketCollection:
    async with ProxyGateway.from_settings(
        settings, secret_source=build_secret_source(settings)
    ) as gateway:
        missing = missing_or_placeholder_fields(await gateway.resolve_credentials())
        if missing:
            raise ConfigurationError(f"Jira config missing or invalid: {', '.join(missing)}")
        cache = TicketCache.from_settings(settings, gateway)
        return await cache.fetch()


def cmd_fetch_tickets(args: argparse.Namespace) -> int:
    """Fetch the ticket feed once and print it as JSON.

    Exits 1 when the Jira credentials are missing or still placeholders, or when
    the live feed could not be reached and fallback data was printed.
    """
    try:
        settings = load_settings()
    except Exception as e:
        print(f"✗ Failed to load configuration: {scrub_secrets_in_text(str(e))}", file=sys.stderr)
        return 1

    try:
        collection = asyncio.run(_fetch_once(settings))
    except ConfigurationError as e:
        print(f"✗ {scrub_secrets_in_text(str(e))}", file=sys.stderr)
        return 1

    print(json.dumps(collection.model_dump(mode="json"), indent=2))
    if collection.source != "live":
        print(f"✗ Live ticket feed unavailable (source={collection.source})", file=sys.stderr)
        return 1
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="team-dashboard",
        description="Team dashboard CLI utilities",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    validate_parser = subparsers.add_parser(
        "validate-config",
        help="Validate configuration and exit",
    )
    validate_parser.set_defaults(func=cmd_validate_config)

    dump_parser = subparsers.add_parser(
        "dump-config",
        help="Dump configuration as JSON (secrets redacted)",
    )
    dump_parser.set_defaults(func=cmd_dump_config)

    deprecated_parser = subparsers.add_parser(
        "show-deprecated",
        help="Show deprecated environment variables in use",
    )
    deprecated_parser.set_defaults(func=cmd_show_deprecated)

    fetch_parser = subparsers.add_parser(
        "fetch-tickets",
        help="Fetch the Jira ticket feed once and print it",
    )
    fetch_parser.set_defaults(func=cmd_fetch_tickets)

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
