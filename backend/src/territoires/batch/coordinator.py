"""Batch matching coordinator.

Accepts up to ``max_items`` queries per submission and resolves them
asynchronously:

1. The request and its items are stored as pending and the batch is
   handed to the scheduler.
2. When a worker picks it up, items are grouped by deduplication key
   (query + hints) so each distinct lookup is resolved once.
3. Groups are resolved in chunks of ``concurrency``; every item in a
   group receives its own copy of the shared result.
4. Counters are incremented after each chunk so progress can be polled
   while the batch runs.

Results are always returned ordered by input index.
"""

import asyncio
import json
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable
from uuid import UUID

from ..logging import get_context_logger, log_batch_deduplication, log_batch_progress
from ..matching.matcher import TerritoireMatcher
from ..matching.types import MatchHints, MatchRequest
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
from .repository import BatchRepository
from .scheduler import BatchQueueFullError, BatchScheduler
from .webhook import WebhookNotifier

logger = get_context_logger(__name__)

BATCH_MAX_ITEMS = 1000
BATCH_TTL_HOURS = 24
BATCH_CONCURRENCY = 10
ITEMS_PER_SECOND = 50
QUERY_MAX_LENGTH = 200
CLIENT_ID_MAX_LENGTH = 100
RESULTS_RETRY_AFTER_SECONDS = 5


class BatchValidationError(ValueError):
    """A submission was rejected before anything was stored."""


@dataclass
class GroupCounts:
    """Outcome counts for one deduplication group."""

    processed: int = 0
    matched: int = 0
    suggestions: int = 0
    failed: int = 0

    def add(self, other: "GroupCounts") -> None:
        self.processed += other.processed
        self.matched += other.matched
        self.suggestions += other.suggestions
        self.failed += other.failed


def deduplication_key(query: str, hints: MatchHints | None = None) -> str:
    """Key identifying items that resolve identically.

    Queries are compared case-insensitively after trimming; hints are
    part of the key so the same name with different context is resolved
    separately.
    """
    normalized_query = query.strip().lower()
    if not hints:
        return normalized_query

    hints_str = json.dumps(
        {
            "d": hints.departement or "",
            "r": hints.region or "",
            "t": hints.type or "",
        },
        sort_keys=True,
    )
    return f"{normalized_query}|{hints_str}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BatchCoordinator:
    """Fans batch items out to the matcher and tracks their lifecycle."""

    def __init__(
        self,
        repository: BatchRepository,
        matcher: TerritoireMatcher,
        scheduler: BatchScheduler | None = None,
        notifier: WebhookNotifier | None = None,
        max_items: int = BATCH_MAX_ITEMS,
        ttl_hours: int = BATCH_TTL_HOURS,
        concurrency: int = BATCH_CONCURRENCY,
        items_per_second: int = ITEMS_PER_SECOND,
        retry_after_seconds: int = RESULTS_RETRY_AFTER_SECONDS,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """Initialize the coordinator.

        Args:
            repository: Storage for requests and items
            matcher: Resolver used for every unique query
            scheduler: Work queue running accepted batches. Without one,
                batches only run when ``process_batch`` is called.
            notifier: Sends completion webhooks
            max_items: Largest accepted submission
            ttl_hours: Lifetime of a request before it is reaped
            concurrency: Unique queries resolved in parallel
            items_per_second: Throughput used for duration estimates
            retry_after_seconds: Hint given when results are not ready
            clock: Source of the current time
        """
        self.repository = repository
        self.matcher = matcher
        self.scheduler = scheduler
        self.notifier = notifier if notifier is not None else WebhookNotifier()
        self.max_items = max_items
        self.ttl = timedelta(hours=ttl_hours)
        self.concurrency = concurrency
        self.items_per_second = items_per_second
        self.retry_after_seconds = retry_after_seconds
        self.clock = clock

    # =========================
    # Submission
    # =========================

    async def submit(
        self,
        items: list[BatchItemInput] | None,
        client_id: str | None = None,
        webhook_url: str | None = None,
        base_url: str = "",
    ) -> BatchSubmitResponse:
        """Validate, store and schedule a batch.

        Raises:
            BatchValidationError: If ``items`` is missing, empty or too
                large. Nothing is stored in that case.
            BatchQueueFullError: If the scheduler cannot take another
                batch. Checked before storing; if the queue fills while the
                request is being stored, the request is marked failed.
        """
        if items is None:
            raise BatchValidationError("Items array is required")
        if len(items) == 0:
            raise BatchValidationError("Items array cannot be empty")
        if len(items) > self.max_items:
            raise BatchValidationError(f"Maximum {self.max_items} items per batch")

        if self.scheduler is not None and self.scheduler.full:
            raise BatchQueueFullError("Batch queue is full, retry later")

        now = self.clock()
        request = BatchMatchRequest(
            client_id=client_id.strip()[:CLIENT_ID_MAX_LENGTH] if client_id else None,
            webhook_url=webhook_url.strip() if webhook_url else None,
            total_items=len(items),
            created_at=now,
            expires_at=now + self.ttl,
        )
        batch_items = [
            BatchMatchItem(
                request_id=request.id,
                input_index=index,
                query=item.query.strip()[:QUERY_MAX_LENGTH],
                hints=item.hints.cleaned() if item.hints else None,
            )
            for index, item in enumerate(items)
        ]

        await self.repository.create_request(request, batch_items)
        logger.info(
            f"Batch {request.id} accepted with {len(items)} items",
            extra={"request_id": str(request.id), "client_id": request.client_id},
        )

        if self.scheduler is not None:
            try:
                await self.scheduler.enqueue(request.id, self.process_batch)
            except BatchQueueFullError:
                logger.warning(f"Batch {request.id} rejected: queue filled while storing")
                await self.repository.mark_finished(request.id, BatchStatus.FAILED, self.clock())
                raise

        base_url = base_url.rstrip("/")
        return BatchSubmitResponse(
            request_id=request.id,
            status=BatchStatus.PENDING,
            total_items=len(items),
            estimated_duration=math.ceil(len(items) / self.items_per_second),
            status_url=f"{base_url}/api/v1/territoires/batch/{request.id}",
            results_url=f"{base_url}/api/v1/territoires/batch/{request.id}/results",
        )

    # =========================
    # Processing
    # =========================

    async def process_batch(self, request_id: UUID) -> None:
        """Resolve every pending item of a batch.

        Item-level failures stay on their items. Only a fault in the
        coordination itself marks the whole batch failed; results
        already written stay readable.
        """
        try:
            await self.repository.mark_processing(request_id, self.clock())

            items = await self.repository.list_items(request_id, pending_only=True)

            groups: dict[str, list[BatchMatchItem]] = {}
            for item in items:
                groups.setdefault(deduplication_key(item.query, item.hints), []).append(item)

            if len(groups) < len(items):
                log_batch_deduplication(str(request_id), len(items), len(groups))

            entries = list(groups.values())
            processed_total = 0

            for chunk_number, start in enumerate(range(0, len(entries), self.concurrency), 1):
                chunk = entries[start:start + self.concurrency]

                outcomes = await asyncio.gather(
                    *(self._process_group(request_id, group) for group in chunk),
                    return_exceptions=True,
                )

                chunk_counts = GroupCounts()
                for group, outcome in zip(chunk, outcomes):
                    if isinstance(outcome, BaseException):
                        # _process_group handles its own errors; count the group as failed
                        logger.error(f"Batch {request_id} group failed: {outcome}")
                        chunk_counts.add(GroupCounts(processed=len(group), failed=len(group)))
                    else:
                        chunk_counts.add(outcome)

                await self.repository.increment_counters(
                    request_id,
                    processed=chunk_counts.processed,
                    matched=chunk_counts.matched,
                    suggestions=chunk_counts.suggestions,
                    failed=chunk_counts.failed,
                )
                processed_total += chunk_counts.processed
                log_batch_progress(str(request_id), chunk_number, processed_total, len(items))

            await self.repository.mark_finished(request_id, BatchStatus.COMPLETED, self.clock())
            logger.info(f"Batch {request_id} completed", extra={"request_id": str(request_id)})

        except Exception:
            logger.exception(f"Batch processing error for {request_id}")
            await self.repository.mark_finished(request_id, BatchStatus.FAILED, self.clock())

        await self._notify(request_id)

    async def _process_group(
        self, request_id: UUID, group: list[BatchMatchItem]
    ) -> GroupCounts:
        """Resolve one deduplication group and write the result to each item."""
        first = group[0]

        try:
            result = await self.matcher.match(MatchRequest(query=first.query, hints=first.hints))
            outcome = ItemOutcome.from_match_result(result)
            await asyncio.gather(
                *(
                    self.repository.save_item_outcome(item.id, outcome.model_copy(deep=True))
                    for item in group
                )
            )
        except Exception as e:
            message = str(e) or "Unknown error"
            logger.warning(f"Batch {request_id}: group {first.query!r} failed: {message}")
            failure = ItemOutcome.failure(message)
            await asyncio.gather(
                *(self.repository.save_item_outcome(item.id, failure) for item in group)
            )
            return GroupCounts(processed=len(group), failed=len(group))

        size = len(group)
        if outcome.status == ItemStatus.MATCHED:
            return GroupCounts(processed=size, matched=size)
        if outcome.status == ItemStatus.SUGGESTIONS:
            return GroupCounts(processed=size, suggestions=size)
        if outcome.status == ItemStatus.FAILED:
            return GroupCounts(processed=size, failed=size)
        raise ValueError(f"Unexpected item status after matching: {outcome.status}")

    async def _notify(self, request_id: UUID) -> None:
        request = await self.repository.get_request(request_id)
        if request is None or not request.webhook_url:
            return

        payload = self._status_response(request).model_dump(mode="json", by_alias=True)
        await self.notifier.notify(request.webhook_url, payload)

    # =========================
    # Retrieval
    # =========================

    async def get_status(self, request_id: UUID) -> BatchStatusResponse | None:
        """Current counters and progress, or None if unknown."""
        request = await self.repository.get_request(request_id)
        if request is None:
            return None
        return self._status_response(request)

    async def get_results(
        self, request_id: UUID
    ) -> BatchResultsResponse | BatchNotReady | None:
        """Per-item results ordered by input index.

        Returns:
            BatchResultsResponse once the batch has finished,
            BatchNotReady while it is pending or processing,
            None if the request does not exist
        """
        request = await self.repository.get_request(request_id)
        if request is None:
            return None

        summary = BatchSummary(
            total=request.total_items,
            matched=request.matched,
            suggestions=request.suggestions,
            failed=request.failed,
            success_rate=(
                round(100 * request.matched / request.total_items)
                if request.total_items > 0
                else 0
            ),
        )

        if request.status in (BatchStatus.PENDING, BatchStatus.PROCESSING):
            return BatchNotReady(
                request_id=request.id,
                status=request.status,
                summary=summary,
                retry_after=self.retry_after_seconds,
            )

        items = await self.repository.list_items(request_id)
        results = [
            BatchResultItem(
                index=item.input_index,
                query=item.query,
                status=item.status,
                code=item.code,
                nom=item.nom,
                type=item.type,
                confidence=item.confidence,
                match_source=item.match_source,
                alternatives=item.alternatives,
                error=item.error_message,
            )
            for item in sorted(items, key=lambda i: i.input_index)
        ]

        return BatchResultsResponse(
            request_id=request.id,
            status=request.status,
            results=results,
            summary=summary,
        )

    def _status_response(self, request: BatchMatchRequest) -> BatchStatusResponse:
        return BatchStatusResponse(
            request_id=request.id,
            status=request.status,
            total_items=request.total_items,
            processed=request.processed,
            matched=request.matched,
            suggestions=request.suggestions,
            failed=request.failed,
            created_at=request.created_at,
            started_at=request.started_at,
            completed_at=request.completed_at,
            progress=request.progress,
        )

    # =========================
    # Expiry
    # =========================

    async def cleanup_expired(self) -> int:
        """Delete requests past their expiry time."""
        deleted = await self.repository.delete_expired(self.clock())
        if deleted:
            logger.info(f"Deleted {deleted} expired batch request(s)")
        return deleted
