"""
Centralized settings for the Sorane telemetry client.

Manifesto:
    One validated settings object is built at process start and handed to
    every component. Nothing in the delivery pipeline reads the environment
    on its own, so tests can construct a ``SoraneSettings`` inline and wire
    a complete client from it.

Every field can be set through ``SORANE_*`` environment variables or a
``.env`` file. Per-feature blocks use the ``__`` nested delimiter, e.g.
``SORANE_EVENTS__BATCH_MAX_SIZE=500`` or ``SORANE_BATCH__CACHE_BACKEND=redis``.

Tags:
    sorane, configuration, settings, pydantic, validation

Doc-Types:
    api-reference
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from sorane.core.enums import TelemetryType
from sorane.core.errors import MissingConfigError

# Hard limit enforced by the ingestion API per request
API_MAX_BATCH_SIZE = 1000

DEFAULT_IGNORED_JS_ERRORS: list[str] = [
    "ResizeObserver loop limit exceeded",
    "ResizeObserver loop completed with undelivered notifications",
    "Non-Error promise rejection captured",
    "Script error.",
    "Script error",
    "Network request failed",
    "NetworkError",
    "Failed to fetch",
    "Load failed",
    "Loading chunk",
    "ChunkLoadError",
    "Loading CSS chunk",
    "cancelled",
    "AbortError",
    "The operation was aborted",
    "Illegal invocation",
    "top.GLOBALS",
    "originalCreateNotification",
    "canvas.contentDocument",
    "MyApp_RemoveAllHighlights",
    "atomicFindClose",
    "fb_xd_fragment",
    "bmi_SafeAddOnload",
    "EBCallBackMessageReceived",
    "conduitPage",
]

DEFAULT_EXCLUDED_PATHS: list[str] = [
    "horizon",
    "nova",
    "telescope",
    "admin",
    "filament",
    "api",
    "debugbar",
    "storage",
    "livewire",
    "_debugbar",
]


class FeatureConfig(BaseModel):
    """Delivery settings for one telemetry type."""

    enabled: bool = Field(default=False)
    queue: bool = Field(default=True, description="Buffer and dispatch on schedule; False sends on append")
    queue_name: str = Field(default="default")
    timeout_seconds: int = Field(default=10, ge=1)
    batch_max_size: int = Field(default=API_MAX_BATCH_SIZE, ge=1)
    buffer_ttl: int = Field(default=3600, ge=1)
    buffer_max_size: int = Field(default=5000, ge=1)

    @field_validator("batch_max_size")
    @classmethod
    def _cap_batch_size(cls, value: int) -> int:
        return min(value, API_MAX_BATCH_SIZE)


class LoggingConfig(FeatureConfig):
    excluded_channels: list[str] = Field(default_factory=list)


class JavaScriptErrorsConfig(FeatureConfig):
    sample_rate: float = Field(default=1.0, ge=0.0, le=1.0)
    ignored_errors: list[str] = Field(default_factory=lambda: list(DEFAULT_IGNORED_JS_ERRORS))
    max_breadcrumbs: int = Field(default=20, ge=0)


class WebsiteAnalyticsConfig(FeatureConfig):
    excluded_paths: list[str] = Field(default_factory=lambda: list(DEFAULT_EXCLUDED_PATHS))
    user_agent_min_length: int = Field(default=10, ge=0)
    user_agent_max_length: int = Field(default=1000, ge=1)
    throttle_seconds: int = Field(default=30, ge=0)
    preserve_user_agent: bool = Field(default=False)


class BatchConfig(BaseModel):
    """Shared buffer, lock and dispatch settings."""

    cache_backend: Literal["memory", "redis"] = Field(default="memory")
    redis_url: str = Field(default="redis://localhost:6379/0")
    key_prefix: str = Field(default="sorane")
    lock_timeout_seconds: int = Field(default=10, ge=1)
    dispatch_interval_seconds: int = Field(default=60, ge=1)
    retry_backoff: list[int] = Field(default_factory=lambda: [60, 300, 900])
    max_attempts: int = Field(default=3, ge=1)
    exhausted_pause_seconds: int = Field(default=900, ge=1)

    @field_validator("retry_backoff")
    @classmethod
    def _non_empty_backoff(cls, value: list[int]) -> list[int]:
        if not value or any(v < 0 for v in value):
            raise ValueError("retry_backoff must be a non-empty list of non-negative seconds")
        return value


class InternalLoggingConfig(BaseModel):
    enabled: bool = Field(default=True)
    level: str = Field(default="INFO")
    json_format: bool | None = Field(default=None)
    channel: str = Field(default="sorane.internal")


class SoraneSettings(BaseSettings):
    """Sorane client configuration.

    All fields can be set via ``SORANE_*`` environment variables (e.g.
    ``SORANE_KEY=...``) or through a ``.env`` file.
    """

    model_config = SettingsConfigDict(
        env_prefix="SORANE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_nested_delimiter="__",
    )

    # ── Client ───────────────────────────────────────────────────
    enabled: bool = Field(default=False)
    key: str | None = Field(default=None, description="Bearer token for the ingestion API")
    api_url: str = Field(default="https://api.sorane.io/v1")
    environment: str = Field(default="production")
    client_version: str = Field(default="1.0")

    # ── Features ─────────────────────────────────────────────────
    errors: FeatureConfig = Field(default_factory=lambda: FeatureConfig(enabled=True))
    events: FeatureConfig = Field(default_factory=lambda: FeatureConfig(enabled=True))
    logs: LoggingConfig = Field(default_factory=LoggingConfig)
    page_visits: WebsiteAnalyticsConfig = Field(default_factory=WebsiteAnalyticsConfig)
    javascript_errors: JavaScriptErrorsConfig = Field(default_factory=JavaScriptErrorsConfig)

    # ── Delivery ─────────────────────────────────────────────────
    batch: BatchConfig = Field(default_factory=BatchConfig)

    # ── Internal logging ─────────────────────────────────────────
    internal_logging: InternalLoggingConfig = Field(default_factory=InternalLoggingConfig)

    @field_validator("api_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    # ── Derived properties ───────────────────────────────────────

    @property
    def api_key_configured(self) -> bool:
        return bool(self.key)

    def require_key(self) -> str:
        """Return the API key or raise :class:`MissingConfigError`."""
        if not self.key:
            raise MissingConfigError("SORANE_KEY", "Sorane API key is not set")
        return self.key

    def feature(self, telemetry_type: TelemetryType | str) -> FeatureConfig:
        """Return the config block for one telemetry type."""
        return getattr(self, TelemetryType.parse(telemetry_type).value)

    def feature_enabled(self, telemetry_type: TelemetryType | str) -> bool:
        """True when the client and the given feature are both enabled."""
        return self.enabled and self.feature(telemetry_type).enabled


# ── Settings factory with caching ────────────────────────────────────────

_settings_cache: dict[str, SoraneSettings] = {}


def get_settings(*, env_file: str | None = None, _force_reload: bool = False) -> SoraneSettings:
    """Load, validate, and cache a :class:`SoraneSettings` instance."""
    cache_key = env_file or ""
    if not _force_reload and cache_key in _settings_cache:
        return _settings_cache[cache_key]

    if env_file:
        settings = SoraneSettings(_env_file=env_file)  # type: ignore[call-arg]
    else:
        settings = SoraneSettings()

    _settings_cache[cache_key] = settings
    return settings


def clear_settings_cache() -> None:
    """Clear the settings cache (primarily for testing)."""
    _settings_cache.clear()


__all__ = [
    "API_MAX_BATCH_SIZE",
    "FeatureConfig",
    "LoggingConfig",
    "JavaScriptErrorsConfig",
    "WebsiteAnalyticsConfig",
    "BatchConfig",
    "InternalLoggingConfig",
    "SoraneSettings",
    "get_settings",
    "clear_settings_cache",
]
