from __future__ import annotations


class SecretSourceError(Exception):
    """Base class for secret source failures."""


class SecretNotFoundError(SecretSourceError):
    """A requested secret name does not exist in the source."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Secret not found: {name}")


class SecretAccessDeniedError(SecretSourceError):
    """The source exists but cannot be read (permissions, unreadable file)."""
