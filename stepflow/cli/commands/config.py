"""stepflow config — Show resolved STEPFLOW configuration."""

from rich.console import Console
from rich.table import Table
from rich import box

console = Console()

_SECTIONS = [
    ("App", ["debug", "log_level", "secret_key"]),
    ("Database", ["database_url"]),
    ("Auth", ["jwt_algorithm", "jwt_expiry_minutes"]),
    ("Server", ["host", "port", "cors_origins"]),
    ("Workflows", ["max_workflow_steps", "max_step_depth"]),
    ("Execution", [
        "execution_mode",
        "max_concurrent_runs",
        "attempt_timeout_seconds",
        "record_create_timeout_seconds",
        "ledger_write_timeout_seconds",
    ]),
    ("Retry", ["retry_base_delay_seconds", "retry_max_delay_seconds", "retry_multiplier", "retry_jitter"]),
    ("Triggers", ["schedule_tick_interval_seconds", "event_dedupe_capacity"]),
    ("Recovery", ["stale_run_threshold_seconds"]),
    ("Record store", ["record_store_url", "record_store_token"]),
]

_SENSITIVE = {"secret_key", "record_store_token"}


def _mask(val: str) -> str:
    s = str(val)
    if len(s) <= 8:
        return "***"
    return s[:4] + "…" + "***"


def config_show():
    """Show the resolved STEPFLOW configuration.

    Reads from environment variables and .env file.
    Sensitive values are masked.

    Example:
        stepflow config
    """
    from stepflow.config import StepflowConfig
    cfg = StepflowConfig()

    table = Table(
        box=box.ROUNDED,
        header_style="bold dim",
        show_lines=False,
        title="[bold]STEPFLOW Configuration[/bold]",
    )
    table.add_column("Key", style="cyan", width=32)
    table.add_column("Value", width=50)
    table.add_column("Env Var", style="dim", width=40)

    first = True
    for section_name, fields in _SECTIONS:
        if not first:
            table.add_row("", "", "")
        first = False
        table.add_row(f"[bold dim]── {section_name} ──[/bold dim]", "", "")
        for attr in fields:
            val = getattr(cfg, attr, None)
            if val is None:
                display = "[dim](not set)[/dim]"
            elif attr in _SENSITIVE:
                display = _mask(str(val))
            else:
                display = str(val)
            table.add_row(f"  {attr}", display, f"STEPFLOW_{attr.upper()}")

    console.print()
    console.print(table)
    console.print()
    console.print("[dim]Source: environment variables + .env file (prefix: STEPFLOW_)[/dim]")
