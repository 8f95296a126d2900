"""
Shared pytest fixtures for the Sorane client tests.

This module provides:
- A controllable clock (no sleeping in time-dependent tests)
- Settings with every feature enabled and an API key configured
- Cache, buffer, pause and metrics fixtures on one shared in-memory cache
- An ``httpx.MockTransport`` recorder for the ingestion API

Usage:
    def test_something(buffer, pause, clock):
        buffer.append("events", {"event_name": "sale"})
        clock.advance(60)
"""

from __future__ import annotations

import json
import sys
from collections.abc import Callable, Generator
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import httpx
import pytest

# Ensure sorane package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from sorane.core.cache import InMemoryCache
from sorane.core.logging import set_internal_logging
from sorane.core.settings import FeatureConfig, SoraneSettings, clear_settings_cache
from sorane.core.timestamps import epoch_clock
from sorane.delivery.buffer import BufferStore
from sorane.delivery.pause import PauseState
from sorane.observability.metrics import MetricsRegistry, PipelineMetrics


# =============================================================================
# Clock
# =============================================================================


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2025, 1, 15, 12, 0, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# =============================================================================
# Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Keep host SORANE_* variables and cached settings out of every test."""
    import os

    for name in list(os.environ):
        if name.startswith("SORANE_"):
            monkeypatch.delenv(name, raising=False)
    clear_settings_cache()
    set_internal_logging(True)
    yield
    clear_settings_cache()


# =============================================================================
# Settings / components
# =============================================================================


def make_settings(**overrides: Any) -> SoraneSettings:
    """Settings with delivery enabled and every feature on."""
    values: dict[str, Any] = {
        "enabled": True,
        "key": "test-key",
        "api_url": "https://api.sorane.test/v1",
        "environment": "testing",
        "errors": FeatureConfig(enabled=True),
        "events": FeatureConfig(enabled=True),
        "logs": {"enabled": True},
        "page_visits": {"enabled": True},
        "javascript_errors": {"enabled": True},
    }
    values.update(overrides)
    return SoraneSettings(_env_file=None, **values)


@pytest.fixture
def settings() -> SoraneSettings:
    return make_settings()


@pytest.fixture
def cache(clock: FakeClock) -> InMemoryCache:
    return InMemoryCache(clock=epoch_clock(clock))


@pytest.fixture
def metrics() -> PipelineMetrics:
    return PipelineMetrics(MetricsRegistry())


@pytest.fixture
def buffer(cache: InMemoryCache, settings: SoraneSettings, metrics: PipelineMetrics, clock: FakeClock) -> BufferStore:
    return BufferStore(cache, settings, metrics=metrics, clock=clock)


@pytest.fixture
def pause(cache: InMemoryCache, clock: FakeClock) -> PauseState:
    return PauseState(cache, clock=clock)


# =============================================================================
# HTTP
# =============================================================================


class ApiRecorder:
    """Scripted ingestion API: returns queued responses and records requests."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._responses: list[httpx.Response | Exception] = []
        self.default_body: dict[str, Any] = {"success": True, "data": {}}

    def respond(self, status: int = 200, json_body: Any = None, headers: dict[str, str] | None = None) -> None:
        self._responses.append(httpx.Response(status, json=json_body if json_body is not None else {}, headers=headers))

    def fail(self, exc: Exception) -> None:
        self._responses.append(exc)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self._responses:
            return httpx.Response(200, json=self.default_body)
        nxt = self._responses.pop(0)
        if isinstance(nxt, Exception):
            raise nxt
        return nxt

    def payload(self, index: int = -1) -> dict[str, Any]:
        return json.loads(self.requests[index].content)

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def api() -> ApiRecorder:
    return ApiRecorder()


@pytest.fixture
def sorane_factory(cache: InMemoryCache, clock: FakeClock, api: ApiRecorder) -> Callable[..., Any]:
    """Build a fully wired client sharing the test cache, clock and mock API."""
    from sorane.client import Sorane

    def _make(settings: SoraneSettings | None = None, **kwargs: Any) -> Sorane:
        return Sorane(
            settings or make_settings(),
            cache=cache,
            http_client=api.client(),
            metrics=PipelineMetrics(MetricsRegistry()),
            clock=clock,
            **kwargs,
        )

    return _make


@pytest.fixture
def sorane(sorane_factory: Callable[..., Any]) -> Any:
    return sorane_factory()


@pytest.fixture
def settings_factory() -> Callable[..., SoraneSettings]:
    return make_settings
