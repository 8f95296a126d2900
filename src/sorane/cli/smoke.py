"""
CLI: ``sorane test``: verify the configuration and send sample telemetry.
"""

from __future__ import annotations

from typing import Any

import typer
from rich.table import Table

from sorane.cli.utils import console, err_console
from sorane.core.enums import TelemetryType
from sorane.core.errors import MissingConfigError


def _show_config(sorane: Any) -> None:
    key = sorane.settings.require_key()
    console.print(f"API Key configured: {key[:4]}******", highlight=False)
    console.print(f"API URL: {sorane.settings.api_url}", highlight=False)
    if not sorane.settings.enabled:
        console.print("[yellow]Sorane is disabled (SORANE_ENABLED=false); nothing will be sent.[/yellow]")

    table = Table(title="Features")
    table.add_column("Feature", style="cyan")
    table.add_column("Status")
    table.add_column("Processing")
    table.add_column("Queue")
    for ttype in TelemetryType:
        config = sorane.settings.feature(ttype)
        table.add_row(
            ttype.value,
            "[green]Enabled[/green]" if config.enabled else "[dim]Disabled[/dim]",
            "Queued" if config.queue else "Sync",
            config.queue_name if config.queue else "-",
        )
    console.print(table)
    console.print("Run [bold]sorane test --feature all[/bold] to send sample data.")


def _selected(feature: str | None, all_: bool) -> list[TelemetryType]:
    from sorane.cli.utils import parse_type

    if all_ or (feature or "").strip().lower() == "all":
        return list(TelemetryType)
    names = [name.strip() for name in (feature or "").split(",") if name.strip()]
    return [parse_type(name) for name in names]


def smoke_test(
    feature: str | None = typer.Option(
        None, "--feature", "-f", help="Comma-separated features to test, or 'all'"
    ),
    all_: bool = typer.Option(False, "--all", help="Test every feature"),
    env_file: str | None = typer.Option(None, "--env-file", help="Settings file (default: .env)"),
) -> None:
    """Check the API key and, per feature, send one sample item to the API.

    Without ``--feature`` or ``--all`` only the configuration is shown.
    Samples go straight to the API; the shared buffer is never touched.

    Example::

        sorane test
        sorane test --feature events,logs
        sorane test --all
    """
    from sorane.cli.utils import make_sorane

    types = _selected(feature, all_)
    sorane = make_sorane(env_file)
    try:
        try:
            sorane.settings.require_key()
        except MissingConfigError as e:
            err_console.print(f"[bold red]{e.message}[/bold red]")
            err_console.print("Add SORANE_KEY=your-api-key to the environment or .env file.")
            raise typer.Exit(code=1) from None

        if not types:
            _show_config(sorane)
            return
        results = _run(sorane, types)
    finally:
        sorane.shutdown()

    table = Table(title="Test Summary")
    table.add_column("Feature", style="cyan")
    table.add_column("Result")
    for result in results:
        table.add_row(
            result.telemetry_type.value,
            "[green]✓ Passed[/green]" if result.passed else "[red]✗ Failed[/red]",
        )
    console.print(table)

    if any(not r.passed for r in results):
        raise typer.Exit(code=1)


def _run(sorane: Any, types: list[TelemetryType]) -> list[Any]:
    from sorane.diagnostics.smoke import run_smoke_test

    results = []
    for ttype in types:
        console.print(f"Testing {ttype.value}...")
        result = run_smoke_test(sorane, ttype)
        if result.passed:
            console.print(f"  [green]✓[/green] {result.message}", highlight=False, soft_wrap=True)
        else:
            console.print(f"  [red]✗[/red] {result.message}", highlight=False, soft_wrap=True)
        results.append(result)
    return results
