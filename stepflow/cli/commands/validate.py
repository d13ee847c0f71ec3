"""stepflow validate — Check a workflows.yaml file without running anything."""

from pathlib import Path

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table
from rich import box

console = Console()


def validate_file(
    path: Path = typer.Argument(..., help="Path to workflows.yaml"),
    tenant: str = typer.Option("default", "--tenant", "-t", help="Tenant for entries that don't name one"),
):
    """Validate every workflow in *path*.  Exits 1 when any entry is invalid.

    Example:
        stepflow validate workflows.yaml
    """
    from stepflow.config import config, load_workflows_yaml
    from stepflow.exceptions import WorkflowValidationError
    from stepflow.workflows.steps import count_steps

    try:
        definitions = load_workflows_yaml(
            path, tenant_id=tenant,
            max_steps=config.max_workflow_steps, max_depth=config.max_step_depth,
        )
    except FileNotFoundError as exc:
        console.print(f"[red]✗[/red] {exc}")
        raise typer.Exit(1)
    except WorkflowValidationError as exc:
        console.print(f"[red]✗ {exc}[/red]")
        for violation in exc.violations:
            console.print(f"  [red]•[/red] {violation}")
        raise typer.Exit(1)
    except ValidationError as exc:
        console.print(f"[red]✗ {path} does not match the workflows schema[/red]")
        for error in exc.errors():
            loc = ".".join(str(p) for p in error["loc"])
            console.print(f"  [red]•[/red] {loc}: {error['msg']}")
        raise typer.Exit(1)

    table = Table(box=box.ROUNDED, header_style="bold dim", show_lines=False)
    table.add_column("Workflow", style="cyan")
    table.add_column("Tenant", style="dim")
    table.add_column("Trigger")
    table.add_column("Steps", justify="right")
    table.add_column("Max attempts", justify="right")
    table.add_column("Enabled")

    for d in definitions:
        trigger = d.trigger_type.value
        if d.trigger_entity_logical_name:
            trigger += f" ({d.trigger_entity_logical_name})"
        table.add_row(
            d.logical_name,
            d.tenant_id,
            trigger,
            str(count_steps(d.steps)),
            str(d.max_attempts),
            "[green]yes[/green]" if d.is_enabled else "[dim]no[/dim]",
        )

    console.print(table)
    console.print(f"[green]✓[/green] {len(definitions)} workflow(s) valid")
