"""Run the HTTP API under uvicorn.

Usage:
    territoires serve
    territoires serve --port 8080 --reload
"""

import click
import uvicorn

from ..config import get_settings


@click.command(name="serve")
@click.option("--host", default=None, help="Bind address (default: API_HOST)")
@click.option("--port", type=int, default=None, help="Bind port (default: API_PORT)")
@click.option("--reload", is_flag=True, help="Restart on code changes (development)")
def serve_command(host: str | None, port: int | None, reload: bool):
    """Start the API server."""
    settings = get_settings()
    uvicorn.run(
        "main:app",
        host=host or settings.api_host,
        port=port or settings.api_port,
        reload=reload,
        log_config=None,
    )
