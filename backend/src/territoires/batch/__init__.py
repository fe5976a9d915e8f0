"""Batch territoire matching.

Accepts large lists of queries, deduplicates them and resolves them in
the background. Progress and results are polled by request id.
"""

from .coordinator import BatchCoordinator, BatchValidationError, deduplication_key
from .models import (
    BatchItemInput,
    BatchMatchItem,
    BatchMatchRequest,
    BatchNotReady,
    BatchResultItem,
    BatchResultsResponse,
    BatchStatus,
    BatchStatusResponse,
    BatchSubmitResponse,
    BatchSummary,
    ItemOutcome,
    ItemStatus,
)
from .repository import BatchRepository, InMemoryBatchRepository
from .scheduler import BatchQueueFullError, BatchScheduler
from .sql_repository import SqlBatchRepository
from .webhook import WebhookNotifier

__all__ = [
    "BatchCoordinator",
    "BatchItemInput",
    "BatchMatchItem",
    "BatchMatchRequest",
    "BatchNotReady",
    "BatchQueueFullError",
    "BatchRepository",
    "BatchResultItem",
    "BatchResultsResponse",
    "BatchScheduler",
    "BatchStatus",
    "BatchStatusResponse",
    "BatchSubmitResponse",
    "BatchSummary",
    "BatchValidationError",
    "InMemoryBatchRepository",
    "ItemOutcome",
    "ItemStatus",
    "SqlBatchRepository",
    "WebhookNotifier",
    "deduplication_key",
]
