"""stepflow run — Execute one workflow from a YAML file, entirely in memory."""

import asyncio
import json
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from stepflow.cli.commands.attempts import print_attempts, print_run

console = Console()


async def _execute(path: Path, name: str, payload: dict, tenant_id: str, fail_entities: list[str], traces: bool):
    from stepflow.config import config, load_workflows_yaml
    from stepflow.records.memory import InMemoryRecordStore
    from stepflow.runtime import Stepflow
    from stepflow.types import ExecutionMode

    definitions = load_workflows_yaml(
        path, tenant_id=tenant_id,
        max_steps=config.max_workflow_steps, max_depth=config.max_step_depth,
    )
    # every entity is accepted; --fail-entity ones fail as transient
    store = InMemoryRecordStore(unavailable=set(fail_entities))
    flow = Stepflow.in_memory(config, record_store=store, mode=ExecutionMode.INLINE, callbacks=[])
    for definition in definitions:
        await flow.workflows.upsert(definition)

    with console.status(f"[blue]Executing:[/blue] {name}"):
        run = await flow.triggers.execute_manual(tenant_id, name, payload)
    attempts = await flow.ledger.list_attempts(tenant_id, run.id)
    await flow.close()

    console.print()
    print_run(run)
    print_attempts(attempts, traces=traces)
    return run


def run_workflow(
    path: Path = typer.Argument(..., help="Path to workflows.yaml"),
    name: str = typer.Argument(..., help="logical_name of the workflow to run"),
    payload: str = typer.Option("{}", "--payload", "-p", help="Trigger payload as a JSON object"),
    tenant: str = typer.Option("default", "--tenant", "-t", help="Tenant for entries that don't name one"),
    fail_entity: Optional[list[str]] = typer.Option(
        None, "--fail-entity", help="Make record creation fail for this entity (repeatable)"
    ),
    traces: bool = typer.Option(False, "--traces", help="Show per-step traces"),
):
    """Run one workflow with an in-memory ledger and record store.

    Exits 1 when the run ends dead-lettered.

    Example:
        stepflow run workflows.yaml new_task --payload '{"status": "open"}'
    """
    from stepflow.exceptions import WorkflowError
    from stepflow.types import RunStatus

    try:
        data = json.loads(payload)
    except json.JSONDecodeError as exc:
        console.print(f"[red]--payload is not valid JSON:[/red] {exc}")
        raise typer.Exit(2)
    if not isinstance(data, dict):
        console.print("[red]--payload must be a JSON object[/red]")
        raise typer.Exit(2)

    try:
        run = asyncio.run(_execute(path, name, data, tenant, fail_entity or [], traces))
    except FileNotFoundError as exc:
        console.print(f"[red]✗[/red] {exc}")
        raise typer.Exit(1)
    except WorkflowError as exc:
        console.print(f"[red]✗ {exc}[/red]")
        for violation in getattr(exc, "violations", []):
            console.print(f"  [red]•[/red] {violation}")
        raise typer.Exit(1)

    if run.status == RunStatus.DEAD_LETTERED:
        raise typer.Exit(1)
