"""stepflow reconcile — Settle runs left in running after a crash."""

import asyncio
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table
from rich import box

from stepflow.cli.commands.attempts import status_markup

console = Console()


async def _reconcile(tenant_id: Optional[str], stale_after: float, redrive: bool):
    from stepflow.config import config
    from stepflow.db.database import init_db, async_session
    from stepflow.runtime import Stepflow
    from stepflow.types import ExecutionMode

    await init_db()
    flow = Stepflow.from_database(async_session, config, mode=ExecutionMode.INLINE)
    try:
        return await flow.reconciler.reconcile(stale_after, redrive=redrive, tenant_id=tenant_id)
    finally:
        await flow.close()


def reconcile_runs(
    tenant: Optional[str] = typer.Option(None, "--tenant", "-t", help="Only this tenant (default: all)"),
    stale_after: Optional[float] = typer.Option(
        None, "--stale-after", help="Seconds without progress (default: STEPFLOW_STALE_RUN_THRESHOLD_SECONDS)"
    ),
    redrive: bool = typer.Option(False, "--redrive", help="Resume stale runs instead of dead-lettering them"),
):
    """Dead-letter (or, with --redrive, resume) every stale running run.

    Example:
        stepflow reconcile --stale-after 600 --redrive
    """
    from stepflow.config import config

    threshold = stale_after if stale_after is not None else config.stale_run_threshold_seconds
    settled = asyncio.run(_reconcile(tenant, threshold, redrive))
    if not settled:
        console.print("[green]No stale runs.[/green]")
        return

    table = Table(box=box.ROUNDED, header_style="bold dim", show_lines=False)
    table.add_column("Run", style="dim")
    table.add_column("Tenant")
    table.add_column("Workflow", style="cyan")
    table.add_column("Action")
    table.add_column("Status")
    for run, action in settled:
        table.add_row(run.id, run.tenant_id, run.workflow_logical_name, action, status_markup(run.status))
    console.print(table)
