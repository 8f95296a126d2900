"""
CLI: ``sorane pause``: inspect and clear delivery pauses.
"""

from __future__ import annotations

import typer

from sorane.cli.utils import console, err_console, format_duration
from sorane.core.enums import PauseReason, TelemetryType
from sorane.delivery.pause import PauseRecord, PauseState

app = typer.Typer(no_args_is_help=True)


def _describe(pause: PauseState, record: PauseRecord) -> None:
    console.print(f"  Reason: {record.reason.value}")
    console.print(f"  Paused until: {record.paused_until.isoformat()}")
    console.print(f"  Time remaining: {format_duration(record.remaining_seconds(pause.now()))}")


def _tips(reason: PauseReason) -> None:
    console.print()
    console.print("Troubleshooting tips:")
    console.print(f"  • {reason.hint}")
    console.print("  • Run: sorane status")


def _clear_all(pause: PauseState) -> int:
    console.print("Clearing all pauses...")
    console.print()
    cleared = 0
    if pause.get_global_pause() is not None:
        pause.clear_global_pause()
        console.print("  Global pause: [green]Cleared[/green]")
        cleared += 1
    else:
        console.print("  Global pause: [dim]Not set[/dim]")

    for ttype in TelemetryType:
        if pause.get_feature_pause(ttype) is not None:
            pause.clear_feature_pause(ttype)
            console.print(f"  Feature '{ttype.value}': [green]Cleared[/green]")
            cleared += 1
        else:
            console.print(f"  Feature '{ttype.value}': [dim]Not paused[/dim]")

    console.print()
    if cleared == 0:
        console.print("No pauses were active.")
    else:
        console.print(f"Successfully cleared {cleared} pause(s).")
    return cleared


@app.command("clear")
def clear(
    global_: bool = typer.Option(False, "--global", help="Clear the global pause"),
    feature: str | None = typer.Option(None, "--feature", "-f", help="Clear the pause for one feature"),
    all_: bool = typer.Option(False, "--all", help="Clear the global pause and every feature pause"),
    force: bool = typer.Option(False, "--force", help="Do not ask for confirmation"),
    env_file: str | None = typer.Option(None, "--env-file", help="Settings file (default: .env)"),
) -> None:
    """Clear pause states so delivery resumes on the next ``sorane work``.

    Example::

        sorane pause clear --global
        sorane pause clear --feature errors
        sorane pause clear --all --force
    """
    from sorane.cli.utils import make_sorane, parse_type

    if not (global_ or feature or all_):
        err_console.print("[bold red]You must specify at least one option: --global, --feature, or --all[/bold red]")
        err_console.print()
        err_console.print("Examples:")
        err_console.print("  sorane pause clear --global")
        err_console.print("  sorane pause clear --feature errors")
        err_console.print("  sorane pause clear --all")
        raise typer.Exit(code=1)

    ttype = parse_type(feature) if feature else None
    sorane = make_sorane(env_file)
    pause = sorane.pause

    if all_:
        if not force and not typer.confirm("Clear all pauses and resume all processing?", default=True):
            console.print("Cancelled.")
            return
        _clear_all(pause)
        return

    if global_:
        record = pause.get_global_pause()
        if record is None:
            console.print("Global pause is not set.")
        else:
            console.print("Current global pause:")
            _describe(pause, record)
            console.print()
            if not force and not typer.confirm("Clear global pause and resume all processing?", default=True):
                console.print("Cancelled.")
                return
            pause.clear_global_pause()
            console.print("[green]✓ Global pause cleared successfully.[/green]")
            console.print("  All features will resume processing on next `sorane work`.")
            _tips(record.reason)

    if ttype is not None:
        record = pause.get_feature_pause(ttype)
        if record is None:
            console.print(f"Feature '{ttype.value}' is not paused.")
            return
        console.print(f"Current pause for '{ttype.value}':")
        _describe(pause, record)
        console.print()
        if not force and not typer.confirm(f"Clear pause for '{ttype.value}' and resume processing?", default=True):
            console.print("Cancelled.")
            return
        pause.clear_feature_pause(ttype)
        console.print(f"[green]✓ Pause cleared for '{ttype.value}'.[/green]")
        console.print("  This feature will resume processing on next `sorane work`.")
        console.print()
        console.print("[yellow]Note: If the underlying issue is not resolved, the pause may be set again.[/yellow]")
        _tips(record.reason)


@app.command("show")
def show(
    env_file: str | None = typer.Option(None, "--env-file", help="Settings file (default: .env)"),
) -> None:
    """List active pauses."""
    from sorane.cli.utils import make_sorane

    pause = make_sorane(env_file).pause
    found = False
    record = pause.get_global_pause()
    if record is not None and record.is_active(pause.now()):
        found = True
        console.print("[bold red]global[/bold red]")
        _describe(pause, record)
    for ttype in TelemetryType:
        record = pause.get_feature_pause(ttype)
        if record is not None and record.is_active(pause.now()):
            found = True
            console.print(f"[bold yellow]{ttype.value}[/bold yellow]")
            _describe(pause, record)
    if not found:
        console.print("[green]No active pauses.[/green]")
