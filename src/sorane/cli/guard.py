"""
CLI: ``sorane guard``: production readiness checks.
"""

from __future__ import annotations

import json
from typing import Any

import typer
from rich.table import Table

from sorane.cli.utils import console

SEVERITY_STYLES = {"critical": "bold red", "high": "red", "medium": "yellow", "low": "dim"}


def _cell(value: Any) -> str:
    if value is None:
        return "-"
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return str(value)


def guard(
    json_out: bool = typer.Option(False, "--json", help="Output results as JSON"),
    env_file: str | None = typer.Option(None, "--env-file", help="Settings file (default: .env)"),
) -> None:
    """Check that the Sorane setup is ready for production.

    Exits with code 1 when any check fails. ``--json`` always exits 0 so the
    output can be piped into other tooling.
    """
    from sorane.cli.utils import make_sorane
    from sorane.diagnostics.guard import run_guard_checks

    sorane = make_sorane(env_file)
    try:
        results = run_guard_checks(sorane)
    finally:
        sorane.shutdown()

    if json_out:
        console.print_json(json.dumps([r.model_dump() for r in results], default=str))
        return

    table = Table(title="Sorane Guard")
    table.add_column("ID", style="cyan")
    table.add_column("Description")
    table.add_column("Result")
    table.add_column("Current")
    table.add_column("Expected")
    table.add_column("Severity")
    for r in results:
        table.add_row(
            r.id,
            r.description,
            "[green]✓ pass[/green]" if r.passed else "[red]✗ fail[/red]",
            _cell(r.current),
            _cell(r.expected),
            f"[{SEVERITY_STYLES[r.severity]}]{r.severity}[/{SEVERITY_STYLES[r.severity]}]",
        )
    console.print(table)

    failed = [r for r in results if not r.passed]
    if failed:
        console.print()
        console.print("[bold]Recommendations[/bold]")
        for r in failed:
            line = f" - {r.id}: {r.recommendation or r.description}"
            if r.help_url:
                line += f" ({r.help_url})"
            console.print(line, highlight=False, soft_wrap=True)

    console.print()
    console.print(f"{len(results) - len(failed)}/{len(results)} checks passed.")
    if failed:
        raise typer.Exit(code=1)
