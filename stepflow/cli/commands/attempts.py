"""stepflow attempts — Show the attempt ledger of one run."""

import asyncio

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich import box

console = Console()

_STATUS_COLOR = {
    "running": "yellow",
    "succeeded": "green",
    "dead_lettered": "red",
    "failed": "red",
}


def status_markup(value) -> str:
    value = value.value if hasattr(value, "value") else str(value)
    color = _STATUS_COLOR.get(value, "white")
    return f"[{color}]{value}[/{color}]"


def print_run(run) -> None:
    """Render a run summary panel."""
    summary = (
        f"[bold]Workflow:[/bold] {run.workflow_logical_name}  [dim]tenant {run.tenant_id}[/dim]\n"
        f"[bold]Run:[/bold] [dim]{run.id}[/dim]\n"
        f"[bold]Trigger:[/bold] {run.trigger_type.value}\n"
        f"[bold]Status:[/bold] {status_markup(run.status)}  [dim]{run.attempts} attempt(s)[/dim]"
    )
    if run.dead_letter_reason:
        summary += f"\n[bold]Dead-letter reason:[/bold] [red]{run.dead_letter_reason}[/red]"
    console.print(Panel(summary, title="[bold blue]STEPFLOW Run[/bold blue]", border_style="blue"))


def print_attempts(attempts, traces: bool = False) -> None:
    """Render attempts as a table, optionally followed by each attempt's step traces."""
    table = Table(box=box.ROUNDED, header_style="bold dim", show_lines=False)
    table.add_column("#", width=4, justify="right", style="dim")
    table.add_column("Status", width=10)
    table.add_column("Executed at", style="dim")
    table.add_column("Steps", justify="right")
    table.add_column("Error")
    for a in attempts:
        table.add_row(
            str(a.attempt_number),
            status_markup(a.status),
            a.executed_at.isoformat(timespec="seconds"),
            str(len(a.step_traces)),
            a.error_message or "",
        )
    console.print(table)

    if not traces:
        return
    for a in attempts:
        steps = Table(box=box.SIMPLE, header_style="bold dim", title=f"Attempt {a.attempt_number}")
        steps.add_column("Path", style="cyan")
        steps.add_column("Type")
        steps.add_column("Status")
        steps.add_column("ms", justify="right", style="dim")
        steps.add_column("Output / error")
        for t in a.step_traces:
            detail = t.error_message if t.error_message else (t.output or "")
            steps.add_row(t.step_path, t.step_type, status_markup(t.status), str(t.duration_ms), str(detail))
        console.print(steps)


async def _attempts(run_id: str, tenant_id: str, traces: bool) -> None:
    from stepflow.config import config
    from stepflow.core.ledger import SqlRunLedger
    from stepflow.db.database import init_db, async_session
    from stepflow.exceptions import RunNotFound

    await init_db()
    ledger = SqlRunLedger(async_session, write_timeout=config.ledger_write_timeout_seconds)
    try:
        run = await ledger.get_run(tenant_id, run_id)
        attempts = await ledger.list_attempts(tenant_id, run_id)
    except RunNotFound:
        console.print(f"[red]Run not found:[/red] {run_id}")
        raise typer.Exit(1)

    print_run(run)
    if not attempts:
        console.print("[yellow]No attempts recorded yet.[/yellow]")
        return
    print_attempts(attempts, traces=traces)


def show_attempts(
    run_id: str = typer.Argument(..., help="Run id"),
    tenant: str = typer.Option("default", "--tenant", "-t", help="Tenant that owns the run"),
    traces: bool = typer.Option(False, "--traces", help="Also show per-step traces"),
):
    """Show the ordered attempt ledger for one run.

    Example:
        stepflow attempts 0b7c... --tenant acme --traces
    """
    asyncio.run(_attempts(run_id, tenant, traces))
