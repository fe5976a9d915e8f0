"""Celery tasks for batch housekeeping."""

import asyncio
from datetime import datetime, timezone

from ..db import close_all_connections
from ..logging import get_logger
from ..worker import app
from .sql_repository import SqlBatchRepository

logger = get_logger(__name__)


async def _delete_expired() -> int:
    repository = SqlBatchRepository()
    try:
        return await repository.delete_expired(datetime.now(timezone.utc))
    finally:
        # Each run gets a fresh event loop; the pooled engine can't outlive it
        await close_all_connections()


@app.task(name="territoires.batch.tasks.cleanup_expired_batches")
def cleanup_expired_batches() -> dict:
    """Delete batch requests (and their items) past their expiry time."""
    deleted = asyncio.run(_delete_expired())
    logger.info(f"Expired batch cleanup removed {deleted} request(s)")
    return {"status": "ok", "deleted": deleted}
