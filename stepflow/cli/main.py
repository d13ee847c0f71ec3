"""STEPFLOW CLI — Typer application."""

import typer
from rich.console import Console

from stepflow.version import __version__

app = typer.Typer(
    name="stepflow",
    help="STEPFLOW — trigger-matched workflow execution with bounded retries and an attempt ledger.",
    no_args_is_help=True,
    invoke_without_command=True,
)
console = Console()


@app.callback()
def main(
    ctx: typer.Context,
    version: bool = typer.Option(False, "--version", "-v", is_eager=True, help="Show version"),
):
    """STEPFLOW CLI."""
    if version:
        console.print(f"STEPFLOW v{__version__}")
        raise typer.Exit()
    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


# ── Definitions & local execution ──────────────────────────────────────────────
from stepflow.cli.commands import validate, run  # noqa: E402

app.command(name="validate", help="Validate a workflows.yaml file")(validate.validate_file)
app.command(name="run", help="Execute one workflow from a YAML file in memory")(run.run_workflow)

# ── Run ledger ─────────────────────────────────────────────────────────────────
from stepflow.cli.commands import runs, attempts, reconcile  # noqa: E402

app.command(name="runs", help="List run history from the database")(runs.list_runs)
app.command(name="attempts", help="Show the attempt ledger of one run")(attempts.show_attempts)
app.command(name="reconcile", help="Dead-letter or re-drive runs stuck in running")(reconcile.reconcile_runs)

# ── Server & config ────────────────────────────────────────────────────────────
from stepflow.cli.commands import serve, config  # noqa: E402

app.command(name="serve", help="Start the STEPFLOW API server")(serve.serve)
app.command(name="config", help="Show resolved configuration")(config.config_show)


if __name__ == "__main__":
    app()
