"""Tests for telemetry enums and ``SoraneSettings``."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from sorane.core.enums import PauseReason, TelemetryType
from sorane.core.errors import MissingConfigError, UnknownTelemetryTypeError
from sorane.core.settings import (
    API_MAX_BATCH_SIZE,
    BatchConfig,
    FeatureConfig,
    SoraneSettings,
    clear_settings_cache,
    get_settings,
)


class TestTelemetryType:
    def test_parse_is_case_insensitive(self):
        assert TelemetryType.parse("Events") is TelemetryType.EVENTS
        assert TelemetryType.parse(" page_visits ") is TelemetryType.PAGE_VISITS

    def test_parse_passes_members_through(self):
        assert TelemetryType.parse(TelemetryType.LOGS) is TelemetryType.LOGS

    def test_parse_unknown_raises(self):
        with pytest.raises(UnknownTelemetryTypeError) as exc_info:
            TelemetryType.parse("metrics")
        assert "javascript_errors" in str(exc_info.value)

    @pytest.mark.parametrize(
        ("ttype", "endpoint", "payload_field"),
        [
            (TelemetryType.ERRORS, "errors", "errors"),
            (TelemetryType.EVENTS, "events", "events"),
            (TelemetryType.LOGS, "logs", "logs"),
            (TelemetryType.PAGE_VISITS, "page-visits", "visits"),
            (TelemetryType.JAVASCRIPT_ERRORS, "javascript-errors", "errors"),
        ],
    )
    def test_wire_names(self, ttype, endpoint, payload_field):
        assert ttype.endpoint == endpoint
        assert ttype.payload_field == payload_field


class TestPauseReason:
    def test_parse_status_code(self):
        assert PauseReason.parse(429) is PauseReason.RATE_LIMITED
        assert PauseReason.parse("401") is PauseReason.UNAUTHORIZED

    def test_parse_unknown_falls_back_to_other(self):
        assert PauseReason.parse("999") is PauseReason.OTHER

    def test_every_reason_has_a_hint(self):
        for reason in PauseReason:
            assert reason.hint


class TestSoraneSettings:
    def test_defaults(self):
        settings = SoraneSettings(_env_file=None)
        assert settings.enabled is False
        assert settings.key is None
        assert settings.api_key_configured is False
        assert settings.api_url == "https://api.sorane.io/v1"
        assert settings.batch.retry_backoff == [60, 300, 900]
        assert settings.batch.max_attempts == 3
        assert settings.errors.enabled is True
        assert settings.logs.enabled is False

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("SORANE_ENABLED", "true")
        monkeypatch.setenv("SORANE_KEY", "sk_live_123")
        monkeypatch.setenv("SORANE_BATCH__CACHE_BACKEND", "redis")
        settings = SoraneSettings(_env_file=None)
        assert settings.enabled is True
        assert settings.key == "sk_live_123"
        assert settings.batch.cache_backend == "redis"

    def test_trailing_slash_stripped(self):
        settings = SoraneSettings(_env_file=None, api_url="https://api.example.test/v1/")
        assert settings.api_url == "https://api.example.test/v1"

    def test_batch_size_capped_at_api_limit(self):
        config = FeatureConfig(batch_max_size=5000)
        assert config.batch_max_size == API_MAX_BATCH_SIZE

    def test_negative_backoff_rejected(self):
        with pytest.raises(ValidationError):
            BatchConfig(retry_backoff=[60, -1])

    def test_empty_backoff_rejected(self):
        with pytest.raises(ValidationError):
            BatchConfig(retry_backoff=[])

    def test_feature_enabled_needs_client_enabled(self):
        settings = SoraneSettings(_env_file=None, enabled=False)
        assert settings.errors.enabled is True
        assert settings.feature_enabled("errors") is False

        settings = SoraneSettings(_env_file=None, enabled=True)
        assert settings.feature_enabled(TelemetryType.ERRORS) is True
        assert settings.feature_enabled("logs") is False

    def test_feature_lookup(self, settings):
        assert settings.feature("page_visits") is settings.page_visits

    def test_require_key(self, settings, settings_factory):
        assert settings.require_key() == "test-key"
        with pytest.raises(MissingConfigError) as exc_info:
            settings_factory(key=None).require_key()
        assert exc_info.value.key == "SORANE_KEY"
        assert exc_info.value.retryable is False


class TestGetSettings:
    def test_cached(self):
        assert get_settings() is get_settings()

    def test_force_reload(self):
        first = get_settings()
        assert get_settings(_force_reload=True) is not first

    def test_clear_cache(self):
        first = get_settings()
        clear_settings_cache()
        assert get_settings() is not first

    def test_env_file(self, tmp_path):
        env_file = tmp_path / "sorane.env"
        env_file.write_text("SORANE_ENABLED=true\nSORANE_ENVIRONMENT=staging\n")
        settings = get_settings(env_file=str(env_file))
        assert settings.enabled is True
        assert settings.environment == "staging"
