"""Guard checks: is this Sorane setup ready for production?

Each check inspects the client's settings (and, for a few, its live pause
state) and returns one :class:`CheckResult`. Checks are grouped the way an
operator reads them: configuration, security, operations.

Architecture::

    run_guard_checks(sorane)
    │
    ├── config      key set, client enabled, HTTPS API URL,
    │               internal log level, queued delivery
    ├── security    page-visit user agents, Redis TLS
    ├── ops         shared cache backend, batch vs buffer size,
    │               dispatch interval vs buffer TTL, global pause
    └── (custom checks via register_guard_check)
    │
    ▼
    list[CheckResult]

Example::

    from sorane.diagnostics.guard import run_guard_checks

    failed = [r for r in run_guard_checks(sorane) if not r.passed]
    for result in failed:
        print(result.id, result.recommendation)
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Literal
from urllib.parse import urlparse

from pydantic import BaseModel

from sorane.core.enums import TelemetryType
from sorane.core.logging import get_internal_logger

if TYPE_CHECKING:
    from sorane.client import Sorane

logger = get_internal_logger(__name__)

Severity = Literal["critical", "high", "medium", "low"]

LOCAL_HOSTS = frozenset({"localhost", "127.0.0.1", "::1"})
DOCS_URL = "https://sorane.io/docs"


class CheckResult(BaseModel):
    """Outcome of one guard check."""

    id: str
    description: str
    passed: bool
    current: Any = None
    expected: Any = None
    severity: Severity = "medium"
    recommendation: str | None = None
    help_url: str | None = None


GuardCheck = Callable[["Sorane"], CheckResult]

_CUSTOM_CHECKS: list[tuple[str, GuardCheck]] = []


def register_guard_check(name: str, check: GuardCheck) -> None:
    """Add a check that runs after the built-in ones."""
    _CUSTOM_CHECKS.append((name, check))


def clear_custom_checks() -> None:
    _CUSTOM_CHECKS.clear()


def _production(sorane: Sorane) -> bool:
    return sorane.settings.environment.lower() == "production"


def _enabled_types(sorane: Sorane) -> list[TelemetryType]:
    return [t for t in TelemetryType if sorane.settings.feature(t).enabled]


# ── Configuration ────────────────────────────────────────────────────────


def check_key_configured(sorane: Sorane) -> CheckResult:
    configured = sorane.settings.api_key_configured
    return CheckResult(
        id="sorane.key_configured",
        description="An API key is required to deliver anything",
        passed=configured,
        current="set" if configured else "missing",
        expected="set",
        severity="critical",
        recommendation="Add SORANE_KEY=your-api-key to the environment or .env file.",
        help_url=DOCS_URL,
    )


def check_client_enabled(sorane: Sorane) -> CheckResult:
    enabled = sorane.settings.enabled
    return CheckResult(
        id="sorane.enabled_in_production",
        description="Sorane should be enabled in production",
        passed=enabled or not _production(sorane),
        current={"environment": sorane.settings.environment, "enabled": enabled},
        expected={"environment": "production", "enabled": True},
        severity="high",
        recommendation="Set SORANE_ENABLED=true.",
    )


def check_api_url_https(sorane: Sorane) -> CheckResult:
    url = sorane.settings.api_url
    return CheckResult(
        id="sorane.api_url_https",
        description="The ingestion API must be reached over HTTPS",
        passed=url.lower().startswith("https://"),
        current=url,
        expected="https://…",
        severity="high",
        recommendation="Point SORANE_API_URL at an https:// endpoint; the API key travels in every request.",
    )


def check_internal_log_level(sorane: Sorane) -> CheckResult:
    level = sorane.settings.internal_logging.level
    return CheckResult(
        id="logging.level_production",
        description="Internal logging should not be DEBUG in production",
        passed=not (_production(sorane) and level.upper() == "DEBUG"),
        current={"environment": sorane.settings.environment, "level": level},
        expected={"environment": "production", "level": "INFO or higher"},
        severity="medium",
        recommendation="Set SORANE_INTERNAL_LOGGING__LEVEL=INFO (or WARNING) in production.",
    )


def check_queued_delivery(sorane: Sorane) -> CheckResult:
    sync = [t.value for t in _enabled_types(sorane) if not sorane.settings.feature(t).queue]
    return CheckResult(
        id="delivery.queued_in_production",
        description="Features should not send synchronously on append in production",
        passed=not (_production(sorane) and sync),
        current={"environment": sorane.settings.environment, "sync_features": sync},
        expected={"environment": "production", "sync_features": []},
        severity="medium",
        recommendation="Leave queue=true so a slow API never blocks a request (e.g. SORANE_EVENTS__QUEUE=true).",
    )


# ── Security ─────────────────────────────────────────────────────────────


def check_user_agent_not_preserved(sorane: Sorane) -> CheckResult:
    config = sorane.settings.page_visits
    preserved = config.enabled and config.preserve_user_agent
    return CheckResult(
        id="page_visits.user_agent_hashed",
        description="Page visits should send a user-agent hash, not the raw header",
        passed=not preserved,
        current={"preserve_user_agent": config.preserve_user_agent},
        expected={"preserve_user_agent": False},
        severity="low",
        recommendation="Set SORANE_PAGE_VISITS__PRESERVE_USER_AGENT=false unless raw agents are required.",
    )


def check_redis_tls(sorane: Sorane) -> CheckResult:
    batch = sorane.settings.batch
    parsed = urlparse(batch.redis_url)
    remote = (parsed.hostname or "") not in LOCAL_HOSTS
    insecure = batch.cache_backend == "redis" and remote and parsed.scheme != "rediss"
    return CheckResult(
        id="batch.redis_tls",
        description="A remote Redis buffer should be reached over TLS",
        passed=not (_production(sorane) and insecure),
        current={"backend": batch.cache_backend, "scheme": parsed.scheme, "host": parsed.hostname},
        expected={"scheme": "rediss"},
        severity="medium",
        recommendation="Use a rediss:// URL for SORANE_BATCH__REDIS_URL; buffered items hold user data.",
    )


# ── Operations ───────────────────────────────────────────────────────────


def check_shared_cache_backend(sorane: Sorane) -> CheckResult:
    backend = sorane.settings.batch.cache_backend
    return CheckResult(
        id="cache.backend_production",
        description="The buffer should live in Redis in production",
        passed=not (_production(sorane) and backend == "memory"),
        current={"environment": sorane.settings.environment, "backend": backend},
        expected={"environment": "production", "backend": "redis"},
        severity="medium",
        recommendation=(
            "Set SORANE_BATCH__CACHE_BACKEND=redis; an in-memory buffer is lost on restart "
            "and is not shared with `sorane work`."
        ),
    )


def check_batch_fits_buffer(sorane: Sorane) -> CheckResult:
    oversized = [
        t.value
        for t in _enabled_types(sorane)
        if sorane.settings.feature(t).batch_max_size > sorane.settings.feature(t).buffer_max_size
    ]
    return CheckResult(
        id="batch.size_within_buffer",
        description="batch_max_size should not exceed buffer_max_size",
        passed=not oversized,
        current={"features": oversized},
        expected={"features": []},
        severity="low",
        recommendation="Lower batch_max_size or raise buffer_max_size for the listed features.",
    )


def check_interval_within_ttl(sorane: Sorane) -> CheckResult:
    interval = sorane.settings.batch.dispatch_interval_seconds
    expiring = [
        t.value for t in _enabled_types(sorane) if sorane.settings.feature(t).buffer_ttl <= interval
    ]
    return CheckResult(
        id="batch.interval_within_ttl",
        description="Buffered items must outlive the dispatch interval",
        passed=not expiring,
        current={"dispatch_interval_seconds": interval, "features": expiring},
        expected={"features": []},
        severity="high",
        recommendation="Raise buffer_ttl above SORANE_BATCH__DISPATCH_INTERVAL_SECONDS for the listed features.",
    )


def check_not_globally_paused(sorane: Sorane) -> CheckResult:
    paused = sorane.pause.is_globally_paused()
    record = sorane.pause.get_global_pause() if paused else None
    return CheckResult(
        id="delivery.not_globally_paused",
        description="Delivery should not be globally paused",
        passed=not paused,
        current=record.reason.value if record else None,
        expected=None,
        severity="high",
        recommendation="Fix the API key, then run: sorane pause clear --global",
    )


_BUILT_IN_CHECKS: list[tuple[str, GuardCheck]] = [
    ("key_configured", check_key_configured),
    ("client_enabled", check_client_enabled),
    ("api_url_https", check_api_url_https),
    ("internal_log_level", check_internal_log_level),
    ("queued_delivery", check_queued_delivery),
    ("user_agent_not_preserved", check_user_agent_not_preserved),
    ("redis_tls", check_redis_tls),
    ("shared_cache_backend", check_shared_cache_backend),
    ("batch_fits_buffer", check_batch_fits_buffer),
    ("interval_within_ttl", check_interval_within_ttl),
    ("not_globally_paused", check_not_globally_paused),
]


def list_guard_checks() -> list[str]:
    return [name for name, _ in _BUILT_IN_CHECKS] + [name for name, _ in _CUSTOM_CHECKS]


def run_guard_checks(sorane: Sorane) -> list[CheckResult]:
    """Run every built-in and registered check, in order.

    A check that raises is reported as a failed ``guard.<name>`` result
    instead of aborting the run.
    """
    results: list[CheckResult] = []
    for name, check in _BUILT_IN_CHECKS + _CUSTOM_CHECKS:
        try:
            results.append(check(sorane))
        except Exception as e:  # noqa: BLE001
            logger.warning("guard.check_failed", check=name, error=str(e))
            results.append(CheckResult(
                id=f"guard.{name}",
                description=f"Check {name!r} could not run",
                passed=False,
                current=str(e),
                severity="low",
                recommendation="Inspect the sorane.internal log channel for details.",
            ))
    return results


__all__ = [
    "CheckResult",
    "GuardCheck",
    "register_guard_check",
    "clear_custom_checks",
    "list_guard_checks",
    "run_guard_checks",
]
