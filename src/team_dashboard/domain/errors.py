from __future__ import annotations


class DashboardError(Exception):
    """Base class for errors raised by the dashboard backend."""


class ConfigurationError(DashboardError):
    """Credentials are missing, placeholders, or could not be resolved."""


class UpstreamError(DashboardError):
    """A request to the issue tracker did not produce a usable response."""

    status_code = 500
    code = "proxy_error"


class ProxyTransportError(UpstreamError):
    """Network, DNS or connection failure while talking to the issue tracker."""


class UpstreamTimeoutError(UpstreamError):
    """The issue tracker did not answer within the configured timeout."""

    status_code = 504
    code = "upstream_timeout"


class UpstreamStatusError(UpstreamError):
    """The issue tracker answered with a non-2xx status."""

    code = "upstream_status"

    def __init__(self, status_code: int, message: str | None = None) -> None:
        self.status_code = status_code
        super().__init__(message or f"Upstream returned HTTP {status_code}")


class MalformedResponseError(UpstreamError):
    """The issue tracker answered with a body we cannot parse."""

    status_code = 502
    code = "malformed_upstream_response"


class InvalidUpstreamPathError(DashboardError):
    """An inbound proxy path tried to escape the upstream base URL."""
