"""
CLI: ``sorane status``: pipeline health at a glance.
"""

from __future__ import annotations

import json
from typing import Any

import typer

from sorane.cli.utils import console, format_duration, progress_bar
from sorane.core.enums import PauseReason

RULE = "─" * 61


def recommendations(status: dict[str, Any]) -> list[str]:
    """Operator hints for an unhealthy status snapshot."""
    tips: list[str] = []
    config = status["config"]
    if not config["enabled"]:
        tips.append("Enable Sorane (SORANE_ENABLED=true)")
    if not config["api_key_configured"]:
        tips.append("Configure SORANE_KEY")

    global_pause = status["pauses"]["global"]
    if global_pause and global_pause["paused"]:
        tips.append("Check API credentials (401 indicates invalid/revoked key)")
        tips.append("Run: sorane pause clear --global")

    for feature, pause in status["pauses"]["features"].items():
        if pause and pause["paused"]:
            reason = PauseReason.parse(pause["reason"])
            tips.append(f"Feature '{feature}' paused (reason: {reason.value})")
            tips.append(f"  → {reason.hint}")

    buffers = status["buffers"]["features"]
    if any(b["percentage"] >= 80 for b in buffers.values()):
        tips.append("Buffers approaching capacity - data may be dropped")
        tips.append("Check that `sorane work` runs on schedule")
    if status.get("exhausted_jobs", 0):
        tips.append("Dispatch jobs ran out of retries - check the sorane.internal log channel")
    return tips


def _section(title: str) -> None:
    console.print()
    console.print(f"[cyan]{title}[/cyan]")
    console.print(RULE)


def _render(status: dict[str, Any]) -> None:
    console.print()
    console.print("[bold]SORANE HEALTH STATUS[/bold]")
    console.print()
    if status["healthy"]:
        console.print("[green]✓ Overall Status: HEALTHY[/green]")
    else:
        console.print("[red]✗ Overall Status: ISSUES DETECTED[/red]")

    config = status["config"]
    _section("CONFIGURATION")
    console.print("Enabled: " + ("[green]Yes[/green]" if config["enabled"] else "[red]No[/red]"))
    console.print(
        "API Key: "
        + ("[green]Configured[/green]" if config["api_key_configured"] else "[red]Not Configured[/red]")
    )
    console.print(f"Cache Backend: {config['cache_backend']}")
    console.print(f"API URL: {config['api_url']}")

    _section("GLOBAL PAUSE STATUS")
    pause = status["pauses"]["global"]
    if pause is None:
        console.print("[green]✓ Not paused[/green]")
    elif pause["paused"]:
        console.print("[red]✗ PAUSED[/red]")
        console.print(f"  Reason: {pause['reason']}")
        console.print(f"  Until: {pause['paused_until']}")
        console.print(f"  Remaining: {format_duration(pause['time_remaining_seconds'])}")
    else:
        console.print("[yellow]○ Pause expired[/yellow]")

    _section("FEATURE PAUSE STATUS")
    for feature, fpause in status["pauses"]["features"].items():
        if fpause is None:
            console.print(f"  [green]✓[/green] {feature:<20} Active")
        elif fpause["paused"]:
            console.print(
                f"  [red]✗[/red] {feature:<20} [red]PAUSED[/red] "
                f"(reason: {fpause['reason']}, remaining: {format_duration(fpause['time_remaining_seconds'])})"
            )
        else:
            console.print(f"  [yellow]○[/yellow] {feature:<20} [yellow]Pause expired[/yellow]")

    _section("BUFFER STATUS")
    console.print(f"Total Items: {status['buffers']['total']}")
    console.print()
    for feature, buf in status["buffers"]["features"].items():
        pct = buf["percentage"]
        if pct >= 80:
            color, icon = "red", "✗"
        elif pct >= 50:
            color, icon = "yellow", "!"
        else:
            color, icon = "green", "✓"
        console.print(
            f"  [{color}]{icon}[/{color}] {feature:<20} {buf['count']:>6} items "
            f"[{progress_bar(pct)}] {pct:>3.0f}% of {buf['max_size']}",
            markup=True,
            highlight=False,
        )

    if not status["healthy"] or status.get("exhausted_jobs"):
        tips = recommendations(status)
        if tips:
            _section("RECOMMENDATIONS")
            for tip in tips:
                console.print(tip if tip.startswith("  ") else f"• {tip}")

    console.print()
    console.print(f"Last checked: {status['timestamp']}")


def status(
    json_out: bool = typer.Option(False, "--json", help="Output as JSON"),
    env_file: str | None = typer.Option(None, "--env-file", help="Settings file (default: .env)"),
) -> None:
    """Display pauses, buffer depths and overall health."""
    from sorane.cli.utils import make_sorane

    sorane = make_sorane(env_file)
    try:
        snapshot = sorane.status()
    finally:
        sorane.shutdown()

    if json_out:
        console.print_json(json.dumps(snapshot, default=str))
        return
    _render(snapshot)
