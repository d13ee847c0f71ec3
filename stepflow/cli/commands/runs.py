"""stepflow runs — List run history from the database."""

import asyncio
import json
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table
from rich import box

from stepflow.cli.commands.attempts import status_markup

console = Console()


async def _runs(tenant_id: str, workflow: Optional[str], status: Optional[str], limit: int, offset: int, fmt: str) -> None:
    from stepflow.config import config
    from stepflow.core.ledger import SqlRunLedger
    from stepflow.db.database import init_db, async_session
    from stepflow.types import RunStatus

    await init_db()
    ledger = SqlRunLedger(async_session, write_timeout=config.ledger_write_timeout_seconds)
    runs = await ledger.list_runs(
        tenant_id,
        workflow_logical_name=workflow,
        status=RunStatus(status) if status else None,
        limit=limit,
        offset=offset,
    )

    if fmt == "json":
        console.print_json(json.dumps([r.model_dump(mode="json", exclude={"definition_snapshot"}) for r in runs]))
        return

    if not runs:
        console.print(f"[yellow]No runs found for tenant:[/yellow] {tenant_id}")
        return

    table = Table(box=box.ROUNDED, header_style="bold dim", show_lines=False)
    table.add_column("Run", style="dim")
    table.add_column("Workflow", style="cyan")
    table.add_column("Trigger")
    table.add_column("Status")
    table.add_column("Attempts", justify="right")
    table.add_column("Started at", style="dim")
    table.add_column("Dead-letter reason")
    for r in runs:
        table.add_row(
            r.id,
            r.workflow_logical_name,
            r.trigger_type.value,
            status_markup(r.status),
            str(r.attempts),
            r.started_at.isoformat(timespec="seconds"),
            r.dead_letter_reason or "",
        )
    console.print(table)


def list_runs(
    tenant: str = typer.Option("default", "--tenant", "-t", help="Tenant whose runs to list"),
    workflow: Optional[str] = typer.Option(None, "--workflow", "-w", help="Filter by workflow logical_name"),
    status: Optional[str] = typer.Option(None, "--status", "-s", help="running | succeeded | dead_lettered"),
    limit: int = typer.Option(50, "--limit", "-n", min=1, max=500),
    offset: int = typer.Option(0, "--offset", min=0),
    fmt: str = typer.Option("table", "--format", "-f", help="table | json"),
):
    """List runs, newest first.

    Example:
        stepflow runs --tenant acme --status dead_lettered
    """
    if status and status not in ("running", "succeeded", "dead_lettered"):
        console.print(f"[red]Unknown status:[/red] {status}")
        raise typer.Exit(2)
    asyncio.run(_runs(tenant, workflow, status, limit, offset, fmt))
