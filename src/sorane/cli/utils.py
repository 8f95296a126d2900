"""
CLI utility helpers: consoles, client construction and formatting.
"""

from __future__ import annotations

import typer
from rich.console import Console

from sorane.client import Sorane
from sorane.core.enums import TelemetryType
from sorane.core.errors import UnknownTelemetryTypeError
from sorane.core.settings import get_settings

console = Console()
err_console = Console(stderr=True)

VALID_TYPES = ", ".join(t.value for t in TelemetryType)


# ── Client helper ────────────────────────────────────────────────────────


def make_sorane(env_file: str | None = None) -> Sorane:
    """Build a client from environment settings (``SORANE_*``, ``.env``)."""
    return Sorane(get_settings(env_file=env_file), configure_logs=True)


def parse_type(name: str) -> TelemetryType:
    """Resolve a ``--type``/``--feature`` value or exit with the valid names."""
    try:
        return TelemetryType.parse(name)
    except UnknownTelemetryTypeError:
        err_console.print(f"[bold red]Invalid feature:[/bold red] {name}")
        err_console.print(f"Valid features: {VALID_TYPES}")
        raise typer.Exit(code=1) from None


# ── Formatting ───────────────────────────────────────────────────────────


def format_duration(seconds: int) -> str:
    if seconds <= 0:
        return "expired"
    hours, rest = divmod(int(seconds), 3600)
    minutes, secs = divmod(rest, 60)
    parts = []
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    if secs or not parts:
        parts.append(f"{secs}s")
    return " ".join(parts)


def progress_bar(percentage: float, width: int = 20) -> str:
    filled = max(0, min(width, round(percentage / 100 * width)))
    return "█" * filled + "░" * (width - filled)
