"""CLI commands for batch request housekeeping.

Usage:
    territoires batch cleanup
"""

import asyncio
from datetime import datetime, timezone

import click

from ..db import close_all_connections
from ..logging import setup_logging


@click.group(name="batch")
def cli():
    """Batch request commands."""
    setup_logging()


@cli.command(name="cleanup")
def cleanup():
    """Delete batch requests past their expiry time."""
    from ..batch import SqlBatchRepository

    async def _cleanup():
        try:
            return await SqlBatchRepository().delete_expired(datetime.now(timezone.utc))
        finally:
            await close_all_connections()

    deleted = asyncio.run(_cleanup())
    click.echo(f"Deleted {deleted} expired batch request(s)")
