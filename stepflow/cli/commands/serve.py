"""stepflow serve — Start the API server."""

from typing import Optional

import typer
from rich.console import Console

console = Console()


def serve(
    host: Optional[str] = typer.Option(None, help="Host to bind to (default: STEPFLOW_HOST)"),
    port: Optional[int] = typer.Option(None, help="Port to listen on (default: STEPFLOW_PORT)"),
    reload: bool = typer.Option(False, help="Reload on code changes"),
):
    """Start the STEPFLOW API server."""
    import uvicorn
    from stepflow.config import config

    host = host or config.host
    port = port or config.port
    console.print(f"[green]Starting STEPFLOW on {host}:{port}[/green]")
    uvicorn.run("stepflow.api.main:app", host=host, port=port, reload=reload, log_level=config.log_level.lower())
