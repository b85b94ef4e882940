"""Authenticated proxy to the Jira REST API.

The gateway owns credential resolution (secret source first, environment
fallback second) and a single httpx client. Callers never see the resolved
token; they get back the upstream status and parsed JSON body, or one of the
UpstreamError subclasses. There are no retries: the next refresh tick is the
retry.
"""
from __future__ import annotations

import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

import httpx
import structlog
from pydantic import SecretStr

from team_dashboard.adapters.http_util import basic_auth_header, timeouts_for
from team_dashboard.adapters.jira.credentials import CredentialCache, Credentials, CredentialSource
from team_dashboard.adapters.secrets import SecretSource, SecretSourceError
from team_dashboard.config.settings import Settings
from team_dashboard.domain.errors import (
    ConfigurationError,
    InvalidUpstreamPathError,
    MalformedResponseError,
    ProxyTransportError,
    UpstreamTimeoutError,
)
from team_dashboard.observability.metrics import (
    credential_lookups_total,
    upstream_request_seconds,
    upstream_requests_total,
)

log = structlog.get_logger(__name__)

SEARCH_PATH = "rest/api/3/search"

QueryParams = Mapping[str, str] | Sequence[tuple[str, str]]


@dataclass(frozen=True)
class ProxyResponse:
    status_code: int
    body: Any

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


def normalize_upstream_path(path: str) -> str:
    """Strip leading slashes and refuse dot segments so the path stays under the base URL."""
    cleaned = path.lstrip("/")
    segments = cleaned.split("/")
    if any(segment in {".", ".."} for segment in segments) or "\\" in cleaned:
        raise InvalidUpstreamPathError(f"Refusing upstream path {path!r}")
    if "://" in cleaned:
        raise InvalidUpstreamPathError(f"Refusing absolute upstream URL {path!r}")
    return cleaned


class ProxyGateway:
    def __init__(
        self,
        *,
        base_url: str,
        secret_source: SecretSource,
        email_key: str,
        token_key: str,
        jql: str,
        max_results: int,
        fields: str,
        fallback_email: str | None = None,
        fallback_token: str | None = None,
        timeout_seconds: float = 10.0,
        credential_ttl_seconds: float = 300.0,
        verify_tls: bool = True,
        trust_env: bool = False,
        user_agent: str = "Team-Dashboard/1.0",
        now: Callable[[], float] = time.monotonic,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        url = httpx.URL(base_url)
        if not url.scheme or not url.host:
            raise ValueError("base_url must include scheme and host, e.g. https://example.atlassian.net")

        # Ensure a trailing slash to make httpx base_url joining unambiguous.
        self._base_url = url.copy_with(path=url.path.rstrip("/") + "/")
        self._public_base_url = str(self._base_url).rstrip("/")

        self._secret_source = secret_source
        self._email_key = email_key
        self._token_key = token_key
        self._jql = jql
        self._max_results = max_results
        self._fields = fields
        self._fallback_email = fallback_email
        self._fallback_token = fallback_token
        self._credentials = CredentialCache(ttl_seconds=credential_ttl_seconds, now=now)
        self._clock = now

        self._owns_http_client = http_client is None
        self._http = http_client or httpx.AsyncClient(
            base_url=self._base_url,
            headers={
                "Accept": "application/json",
                "User-Agent": user_agent,
            },
            timeout=timeouts_for(timeout_seconds),
            verify=verify_tls,
            trust_env=trust_env,
            follow_redirects=False,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        secret_source: SecretSource,
        http_client: httpx.AsyncClient | None = None,
    ) -> ProxyGateway:
        jira = settings.jira
        return cls(
            base_url=str(jira.base_url),
            secret_source=secret_source,
            email_key=settings.secrets.email_key,
            token_key=settings.secrets.token_key,
            jql=jira.effective_jql,
            max_results=jira.max_results,
            fields=jira.fields,
            fallback_email=jira.email,
            fallback_token=jira.api_token.get_secret_value() if jira.api_token else None,
            timeout_seconds=jira.timeout_seconds,
            credential_ttl_seconds=settings.secrets.cache_ttl_seconds,
            verify_tls=jira.verify_tls,
            trust_env=settings.hardening.transport.trust_env,
            user_agent=jira.user_agent,
            http_client=http_client,
        )

    @property
    def base_url(self) -> str:
        return self._public_base_url

    async def aclose(self) -> None:
        if self._owns_http_client:
            await self._http.aclose()

    async def __aenter__(self) -> ProxyGateway:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    def _credentials_from(self, email: str, token: str, source: CredentialSource) -> Credentials:
        return Credentials(
            base_url=self._public_base_url,
            email=email,
            api_token=SecretStr(token),
            jql=self._jql,
            max_results=self._max_results,
            source=source,
        )

    async def resolve_credentials(self) -> Credentials:
        cached = self._credentials.get()
        if cached is not None:
            credential_lookups_total.labels(source="cache").inc()
            return cached

        try:
            values = await self._secret_source.get_secrets([self._email_key, self._token_key])
        except SecretSourceError as exc:
            if self._fallback_email and self._fallback_token:
                log.warning(
                    "gateway.credentials.env_fallback",
                    reason=str(exc),
                    error_type=exc.__class__.__name__,
                )
                credential_lookups_total.labels(source="environment").inc()
                return self._credentials_from(
                    self._fallback_email, self._fallback_token, "environment"
                )
            credential_lookups_total.labels(source="unavailable").inc()
            log.error("gateway.credentials.unavailable", reason=str(exc))
            raise ConfigurationError(
                "Unable to load Jira credentials from the secret source or environment"
            ) from exc

        credentials = self._credentials_from(
            values[self._email_key], values[self._token_key], "secret_source"
        )
        self._credentials.put(credentials)
        credential_lookups_total.labels(source="secret_source").inc()
        log.info("gateway.credentials.loaded", source="secret_source")
        return credentials

    def search_params(self, query: str | None = None, result_limit: int | None = None) -> list[tuple[str, str]]:
        return [
            ("jql", query or self._jql),
            ("maxResults", str(result_limit or self._max_results)),
            ("fields", self._fields),
        ]

    async def forward(self, query: str | None = None, result_limit: int | None = None) -> ProxyResponse:
        """Run an issue search with the configured (or given) JQL and result limit."""
        return await self.forward_path(SEARCH_PATH, self.search_params(query, result_limit))

    async def forward_path(self, upstream_path: str, params: QueryParams | None = None) -> ProxyResponse:
        path = normalize_upstream_path(upstream_path)
        credentials = await self.resolve_credentials()
        headers = {
            "Authorization": basic_auth_header(
                credentials.email, credentials.api_token.get_secret_value()
            ),
        }

        log.info("gateway.forward", path=path)
        started = self._clock()
        try:
            response = await self._http.get(
                self._base_url.join(path), params=params, headers=headers
            )
        except httpx.TimeoutException as exc:
            upstream_requests_total.labels(outcome="timeout").inc()
            log.warning("gateway.forward.timeout", path=path)
            raise UpstreamTimeoutError("Jira request timeout") from exc
        except httpx.TransportError as exc:
            upstream_requests_total.labels(outcome="transport_error").inc()
            log.warning("gateway.forward.transport_error", path=path, error=str(exc))
            raise ProxyTransportError(str(exc) or exc.__class__.__name__) from exc
        except httpx.HTTPError as exc:
            # Body decoding failures (corrupt gzip/deflate) are RequestErrors, not TransportErrors.
            upstream_requests_total.labels(outcome="transport_error").inc()
            log.warning(
                "gateway.forward.http_error",
                path=path,
                error=str(exc),
                error_type=exc.__class__.__name__,
            )
            raise ProxyTransportError(str(exc) or exc.__class__.__name__) from exc
        finally:
            upstream_request_seconds.observe(max(0.0, self._clock() - started))

        try:
            body = response.json()
        except ValueError as exc:
            upstream_requests_total.labels(outcome="malformed").inc()
            raise MalformedResponseError(
                f"Invalid JSON from Jira (status={response.status_code}) at {path}"
            ) from exc

        upstream_requests_total.labels(outcome=str(response.status_code)).inc()
        log.info("gateway.forward.done", path=path, status=response.status_code)
        return ProxyResponse(status_code=response.status_code, body=body)
