from __future__ import annotations

import typer

from fnrelease import __version__
from fnrelease.cli.commands.deploy_cmd import deploy, latest, plan, setup, version


app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# Commands
app.command()(version)
app.command()(setup)
app.command()(plan)
app.command()(deploy)
app.command()(latest)


@app.callback(invoke_without_command=True)
def _main(  # pyright: ignore[reportUnusedFunction]
    ctx: typer.Context,
    show_version: bool = typer.Option(False, "--version", help="Show tool version and exit."),
) -> None:
    if show_version:
        typer.echo(__version__)
        raise typer.Exit(code=0)
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit(code=0)


def main() -> None:
    app()
