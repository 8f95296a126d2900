"""
CLI: ``sorane work``: send pending batches.
"""

from __future__ import annotations

from typing import Any

import typer

from sorane.cli.utils import console, err_console
from sorane.core.enums import TelemetryType


def work(
    type_: str | None = typer.Option(None, "--type", "-t", help="Only this telemetry type"),
    loop: bool = typer.Option(False, "--loop", help="Keep running on the dispatch interval"),
    env_file: str | None = typer.Option(None, "--env-file", help="Settings file (default: .env)"),
) -> None:
    """Run one dispatch cycle per telemetry type with pending items.

    Feature-paused types are skipped; nothing is sent while a global pause
    is active.

    Example::

        sorane work
        sorane work --type events
        sorane work --loop
    """
    from sorane.cli.utils import make_sorane, parse_type

    types = [parse_type(type_)] if type_ else None
    sorane = make_sorane(env_file)

    if loop:
        interval = sorane.settings.batch.dispatch_interval_seconds
        console.print(f"[bold green]Starting sorane dispatcher[/bold green] (interval={interval}s)")
        try:
            sorane.scheduler.run_forever()
        except KeyboardInterrupt:
            console.print("\n[yellow]Dispatcher stopped by user[/yellow]")
        finally:
            sorane.shutdown()
        return

    try:
        _work_once(sorane, types)
    finally:
        sorane.shutdown()


def _work_once(sorane: Any, types: list[TelemetryType] | None) -> None:
    if sorane.pause.is_globally_paused():
        record = sorane.pause.get_global_pause()
        reason = record.reason.value if record else "other"
        console.print(f"[yellow]Global pause active (reason: {reason}); nothing sent.[/yellow]")
        console.print("Run: sorane status")
        return

    selected = types or sorane.buffer.available_types()
    ran = 0
    for ttype in selected:
        count = sorane.buffer.count(ttype)
        if count == 0:
            continue
        if sorane.pause.is_feature_paused(ttype):
            console.print(f"[yellow]Skipped {ttype.value}: feature paused ({count} items buffered)[/yellow]")
            continue
        ran += 1
        try:
            outcome = sorane.job.run(ttype)
        except Exception as e:  # noqa: BLE001
            err_console.print(f"[red]Batch job for {ttype.value} failed:[/red] {e}")
            continue
        console.print(f"Processed batch job for {ttype.value}: {count} items → {outcome.status}")

    if ran == 0:
        console.print("No batches to send.")
    else:
        console.print(f"Ran {ran} batch job(s).")
