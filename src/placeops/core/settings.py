"""Settings for the placeops console.

One settings object drives the HTTP transport, the local mirror database
and the command channel.  Values come from ``PLACEOPS_*`` environment
variables, then a ``.env`` file, then the defaults below.

Manifesto:
    Configuration should be explicit, validated, and environment-driven.
    The shell command line, the end-of-command directive and the timeouts
    are all deployment concerns, so none of them are hard-coded in the
    channel.

    - **Pydantic validation:** Type-checked at startup, not runtime
    - **Environment-driven:** Reads from env vars and .env files
    - **Sensible defaults:** PowerShell 7 on the PATH, SQLite mirror

Examples:
    >>> from placeops.core.settings import PlaceOpsSettings
    >>> settings = PlaceOpsSettings(command_timeout_seconds=10)
    >>> settings.shell_command[0]
    'pwsh'

Tags:
    settings, configuration, pydantic, environment, placeops

Doc-Types:
    - API Reference
    - Configuration Guide
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SHELL_COMMAND = ["pwsh", "-NoLogo", "-NoProfile", "-NonInteractive", "-Command", "-"]


class PlaceOpsSettings(BaseSettings):
    """Settings for the console, its channel and its mirror.

    Fields
    ──────
    host, port               : Bind address for the HTTP API
    debug, log_level         : Observability knobs
    database_url             : SQLAlchemy URL of the local mirror
    api_prefix, api_title    : OpenAPI / routing
    shell_command            : argv of the long-lived interactive shell
    sentinel_directive       : Template that prints ``{sentinel}`` on stdout
    *_timeout_seconds        : Per-command deadlines
    restart_backoff_seconds  : Delay before respawning a dead shell
    """

    model_config = SettingsConfigDict(
        env_prefix="PLACEOPS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Network ──────────────────────────────────────────────────
    host: str = Field(default="0.0.0.0", description="Bind address")
    port: int = Field(default=5000, description="Bind port")

    # ── Observability ────────────────────────────────────────────
    debug: bool = False
    log_level: str = "INFO"
    log_json: bool | None = Field(default=None, description="Force JSON logs (None = auto)")

    # ── API ──────────────────────────────────────────────────────
    api_prefix: str = Field(default="/api/v1", description="URL prefix for all endpoints")
    api_title: str = Field(default="placeops API", description="OpenAPI title")
    api_version: str = Field(default="0.1.0", description="OpenAPI version string")
    cors_origins: list[str] = Field(default=["*"], description="Allowed CORS origins")

    # ── Mirror ───────────────────────────────────────────────────
    database_url: str = Field(
        default="sqlite:///placeops.db",
        description="SQLAlchemy URL of the local mirror",
    )

    # ── Command channel ──────────────────────────────────────────
    shell_command: list[str] = Field(
        default_factory=lambda: list(DEFAULT_SHELL_COMMAND),
        description="argv of the persistent interactive shell",
    )
    sentinel_directive: str = Field(
        default="Write-Output '{sentinel}'",
        description="Shell statement that prints the end-of-command marker",
    )
    command_timeout_seconds: float = Field(default=30.0, gt=0)
    connect_timeout_seconds: float = Field(default=120.0, gt=0)
    install_timeout_seconds: float = Field(default=120.0, gt=0)
    restart_backoff_seconds: float = Field(default=2.0, ge=0)
    required_modules: list[str] = Field(
        default_factory=lambda: ["ExchangeOnlineManagement", "MicrosoftPlaces"],
        description="Shell modules reported by the module check",
    )
    require_connection_for_refresh: bool = Field(
        default=True,
        description="Refuse a refresh until Connect-ExchangeOnline has succeeded",
    )

    @field_validator("sentinel_directive")
    @classmethod
    def _directive_has_placeholder(cls, value: str) -> str:
        if "{sentinel}" not in value:
            raise ValueError("sentinel_directive must contain '{sentinel}'")
        return value

    @field_validator("shell_command")
    @classmethod
    def _shell_command_not_empty(cls, value: list[str]) -> list[str]:
        if not value:
            raise ValueError("shell_command must name an executable")
        return value


@lru_cache(maxsize=1)
def get_settings() -> PlaceOpsSettings:
    """Cached settings, loaded once per process."""
    return PlaceOpsSettings()
