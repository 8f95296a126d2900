"""Setup diagnostics: production readiness checks and per-feature smoke tests."""

from sorane.diagnostics.guard import CheckResult, list_guard_checks, register_guard_check, run_guard_checks
from sorane.diagnostics.smoke import SmokeResult, run_smoke_test

__all__ = [
    "CheckResult",
    "list_guard_checks",
    "register_guard_check",
    "run_guard_checks",
    "SmokeResult",
    "run_smoke_test",
]
