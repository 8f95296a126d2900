"""Tests for the production readiness checks."""

from __future__ import annotations

import pytest

from sorane.diagnostics.guard import (
    CheckResult,
    check_interval_within_ttl,
    check_queued_delivery,
    check_redis_tls,
    clear_custom_checks,
    list_guard_checks,
    register_guard_check,
    run_guard_checks,
)


@pytest.fixture(autouse=True)
def no_custom_checks():
    clear_custom_checks()
    yield
    clear_custom_checks()


def _by_id(results: list[CheckResult]) -> dict[str, CheckResult]:
    return {r.id: r for r in results}


class TestBuiltInChecks:
    def test_default_test_setup_passes(self, sorane):
        results = run_guard_checks(sorane)
        assert len(results) == len(list_guard_checks())
        assert [r.id for r in results if not r.passed] == []

    def test_missing_key_is_critical(self, sorane_factory, settings_factory):
        sorane = sorane_factory(settings_factory(key=None))
        result = _by_id(run_guard_checks(sorane))["sorane.key_configured"]
        assert result.passed is False
        assert result.severity == "critical"
        assert result.help_url == "https://sorane.io/docs"

    def test_plain_http_api_url(self, sorane_factory, settings_factory):
        sorane = sorane_factory(settings_factory(api_url="http://api.sorane.test/v1"))
        assert _by_id(run_guard_checks(sorane))["sorane.api_url_https"].passed is False

    def test_production_rules(self, sorane_factory, settings_factory):
        sorane = sorane_factory(settings_factory(
            environment="production",
            enabled=False,
            internal_logging={"level": "debug"},
            events={"enabled": True, "queue": False},
        ))
        results = _by_id(run_guard_checks(sorane))

        assert results["sorane.enabled_in_production"].passed is False
        assert results["logging.level_production"].passed is False
        assert results["cache.backend_production"].passed is False
        queued = results["delivery.queued_in_production"]
        assert queued.passed is False
        assert queued.current["sync_features"] == ["events"]

    def test_production_rules_ignored_elsewhere(self, sorane_factory, settings_factory):
        sorane = sorane_factory(settings_factory(events={"enabled": True, "queue": False}))
        assert check_queued_delivery(sorane).passed is True

    def test_redis_tls(self, sorane_factory, settings_factory):
        insecure = sorane_factory(settings_factory(
            environment="production",
            batch={"cache_backend": "redis", "redis_url": "redis://cache.internal:6379/0"},
        ))
        assert check_redis_tls(insecure).passed is False

        secure = sorane_factory(settings_factory(
            environment="production",
            batch={"cache_backend": "redis", "redis_url": "rediss://cache.internal:6380/0"},
        ))
        assert check_redis_tls(secure).passed is True

        local = sorane_factory(settings_factory(
            environment="production",
            batch={"cache_backend": "redis", "redis_url": "redis://localhost:6379/0"},
        ))
        assert check_redis_tls(local).passed is True

    def test_preserved_user_agent(self, sorane_factory, settings_factory):
        sorane = sorane_factory(settings_factory(page_visits={"enabled": True, "preserve_user_agent": True}))
        assert _by_id(run_guard_checks(sorane))["page_visits.user_agent_hashed"].passed is False

    def test_buffer_ttl_shorter_than_interval(self, sorane_factory, settings_factory):
        sorane = sorane_factory(settings_factory(events={"enabled": True, "buffer_ttl": 30}))
        result = check_interval_within_ttl(sorane)
        assert result.passed is False
        assert result.current == {"dispatch_interval_seconds": 60, "features": ["events"]}

    def test_batch_larger_than_buffer(self, sorane_factory, settings_factory):
        sorane = sorane_factory(settings_factory(logs={"enabled": True, "buffer_max_size": 100}))
        result = _by_id(run_guard_checks(sorane))["batch.size_within_buffer"]
        assert result.passed is False
        assert result.current == {"features": ["logs"]}

    def test_global_pause(self, sorane):
        sorane.pause.set_global_pause(900, 401)
        result = _by_id(run_guard_checks(sorane))["delivery.not_globally_paused"]
        assert result.passed is False
        assert result.current == "401"

    def test_expired_global_pause_passes(self, sorane, clock):
        sorane.pause.set_global_pause(60, 401)
        clock.advance(61)
        assert _by_id(run_guard_checks(sorane))["delivery.not_globally_paused"].passed is True


class TestCustomChecks:
    def test_registered_check_runs_last(self, sorane):
        register_guard_check(
            "always_fails",
            lambda s: CheckResult(id="custom.always_fails", description="custom", passed=False),
        )
        assert list_guard_checks()[-1] == "always_fails"
        assert run_guard_checks(sorane)[-1].id == "custom.always_fails"

    def test_raising_check_reported_as_failure(self, sorane):
        def broken(s):
            raise RuntimeError("settings unreadable")

        register_guard_check("broken", broken)
        result = run_guard_checks(sorane)[-1]
        assert result.id == "guard.broken"
        assert result.passed is False
        assert result.current == "settings unreadable"
