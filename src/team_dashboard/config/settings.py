from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator
from pydantic.networks import AnyHttpUrl
from pydantic_settings import BaseSettings, SettingsConfigDict

from team_dashboard.config.env_aliases import get_flat_env_settings_source

DEFAULT_JQL = "project = SD AND status NOT IN (Done, Resolved, Closed) ORDER BY created DESC"
DEFAULT_FIELDS = "key,summary,status,priority,assignee,updated,created,issuetype"


class _BaseSection(BaseModel):
    model_config = {"extra": "forbid"}


class ServerSettings(_BaseSection):
    host: str = "0.0.0.0"
    port: int = Field(default=3001, ge=1, le=65535)
    environment: str = "development"
    # Empty list disables CORS; ["*"] allows any origin.
    allowed_origins: list[str] = Field(default_factory=list)


class JiraSettings(_BaseSection):
    base_url: AnyHttpUrl
    project_key: str = "SD"
    jql_query: str | None = DEFAULT_JQL
    max_results: int = Field(default=15, ge=1, le=100)
    fields: str = DEFAULT_FIELDS
    # 0 disables the background refresh task; manual fetches still work.
    refresh_interval_seconds: float = Field(default=300.0, ge=0)
    enabled: bool = True
    timeout_seconds: float = Field(default=10.0, gt=0)
    verify_tls: bool = True
    user_agent: str = "Team-Dashboard/1.0"
    # Environment fallback used when the secret source is unavailable.
    email: str | None = None
    api_token: SecretStr | None = None

    @property
    def effective_jql(self) -> str:
        if self.jql_query and self.jql_query.strip():
            return self.jql_query
        return f"project = {self.project_key} ORDER BY priority DESC, updated DESC"


class SecretsSettings(_BaseSection):
    backend: str = "env"  # env|file
    file_path: Path | None = None
    email_key: str = "/dashboard/jira/email"
    token_key: str = "/dashboard/jira/token"
    cache_ttl_seconds: float = Field(default=300.0, ge=0)

    @model_validator(mode="after")
    def _file_path_required_for_file_backend(self) -> SecretsSettings:
        backend = (self.backend or "").strip().lower()
        if backend not in {"env", "file"}:
            raise ValueError("secrets.backend must be 'env' or 'file'")
        if backend == "file" and self.file_path is None:
            raise ValueError("secrets.backend is 'file' but secrets.file_path is not set")
        return self


class CacheSettings(_BaseSection):
    freshness_seconds: float = Field(default=300.0, gt=0)
    shutdown_timeout_seconds: float = Field(default=3.0, gt=0)


class DataSettings(_BaseSection):
    roster_path: Path | None = None
    shifts_path: Path | None = None
    tickets_snapshot_path: Path | None = None
    timezone: str = "America/New_York"

    @field_validator("roster_path", "shifts_path", "tickets_snapshot_path")
    @classmethod
    def _expand_path(cls, value: Path | None) -> Path | None:
        return value.expanduser() if value is not None else None


class ObservabilitySettings(_BaseSection):
    log_level: str = "INFO"
    log_format: str | None = None  # json|human (overrides LOG_FORMAT/env when set)
    json_logs: bool = False
    metrics_enabled: bool = False
    # When set, GET /metrics requires Authorization: Bearer <this token> (constant-time compare).
    metrics_bearer_token: SecretStr | None = None

    @field_validator("log_format")
    @classmethod
    def _validate_log_format(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip().lower()
        if normalized in {"json", "human"}:
            return normalized
        raise ValueError("observability.log_format must be 'json' or 'human'")


class TransportHardeningSettings(_BaseSection):
    # If true, allow httpx to read HTTP_PROXY/HTTPS_PROXY/NO_PROXY and other env settings.
    trust_env: bool = False
    # Allow plaintext HTTP for the upstream tracker. Strongly discouraged.
    allow_insecure_http: bool = False
    # Allow disabling TLS verification for upstream requests. Strongly discouraged.
    allow_insecure_tls: bool = False
    # Allow an upstream that targets loopback / link-local addresses.
    allow_local_upstreams: bool = False


class HardeningSettings(_BaseSection):
    transport: TransportHardeningSettings = Field(default_factory=TransportHardeningSettings)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="forbid",
    )

    server: ServerSettings = Field(default_factory=ServerSettings)
    jira: JiraSettings
    secrets: SecretsSettings = Field(default_factory=SecretsSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    data: DataSettings = Field(default_factory=DataSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)
    hardening: HardeningSettings = Field(default_factory=HardeningSettings)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> Settings:
        """
        Construct Settings from a mapping without reading environment variables.

        Useful in tests where we want to pass nested dicts and keep mypy happy.
        """
        class _InitOnlySettings(Settings):
            @classmethod
            def settings_customise_sources(
                cls,
                settings_cls,
                init_settings,
                env_settings,
                dotenv_settings,
                file_secret_settings,
            ):
                return (init_settings,)

        return _InitOnlySettings(**dict(data))

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            env_settings,
            get_flat_env_settings_source,
            init_settings,
            dotenv_settings,
            file_secret_settings,
        )
