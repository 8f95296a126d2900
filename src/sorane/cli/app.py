"""
Root Typer application for the ``sorane`` operator CLI.

    sorane work [--type NAME] [--loop]
    sorane status [--json]
    sorane pause clear --global | --feature NAME | --all [--force]
    sorane pause show
    sorane guard [--json]
    sorane test [--feature NAME[,NAME]|all] [--all]
"""

from __future__ import annotations

import typer
from typer import Typer

app = Typer(
    name="sorane",
    help="sorane: telemetry buffer, delivery, pause management and setup checks.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from sorane import __version__

        typer.echo(f"sorane {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """sorane CLI: send buffered telemetry and manage delivery pauses."""


# ── Sub-command registration ─────────────────────────────────────────────

from sorane.cli.guard import guard  # noqa: E402
from sorane.cli.pause import app as pause_app  # noqa: E402
from sorane.cli.smoke import smoke_test  # noqa: E402
from sorane.cli.status import status  # noqa: E402
from sorane.cli.work import work  # noqa: E402

app.command("work")(work)
app.command("status")(status)
app.command("guard")(guard)
app.command("test")(smoke_test)
app.add_typer(pause_app, name="pause", help="Pause inspection and clearing.")


if __name__ == "__main__":
    app()
