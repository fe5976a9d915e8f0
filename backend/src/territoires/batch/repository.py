"""Persistence interface for batch requests and their items."""

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime
from uuid import UUID

from .models import BatchMatchItem, BatchMatchRequest, BatchStatus, ItemOutcome, ItemStatus


class BatchRepository(ABC):
    """Abstract storage for batch requests and items."""

    @abstractmethod
    async def create_request(
        self, request: BatchMatchRequest, items: list[BatchMatchItem]
    ) -> None:
        """Persist a new request together with all of its items."""
        ...

    @abstractmethod
    async def get_request(self, request_id: UUID) -> BatchMatchRequest | None:
        ...

    @abstractmethod
    async def list_items(
        self, request_id: UUID, pending_only: bool = False
    ) -> list[BatchMatchItem]:
        """List items of a request ordered by input index."""
        ...

    @abstractmethod
    async def save_item_outcome(self, item_id: UUID, outcome: ItemOutcome) -> None:
        ...

    @abstractmethod
    async def mark_processing(self, request_id: UUID, started_at: datetime) -> None:
        ...

    @abstractmethod
    async def mark_finished(
        self, request_id: UUID, status: BatchStatus, completed_at: datetime
    ) -> None:
        ...

    @abstractmethod
    async def increment_counters(
        self,
        request_id: UUID,
        processed: int,
        matched: int,
        suggestions: int,
        failed: int,
    ) -> None:
        """Atomically add to the progress counters of a request."""
        ...

    @abstractmethod
    async def delete_expired(self, now: datetime) -> int:
        """Delete requests (and their items) whose expiry is before ``now``.

        Returns:
            Number of requests deleted
        """
        ...


class InMemoryBatchRepository(BatchRepository):
    """Process-local batch storage for development and testing."""

    def __init__(self):
        self._requests: dict[UUID, BatchMatchRequest] = {}
        self._items: dict[UUID, BatchMatchItem] = {}
        self._lock = asyncio.Lock()

    async def create_request(
        self, request: BatchMatchRequest, items: list[BatchMatchItem]
    ) -> None:
        async with self._lock:
            self._requests[request.id] = request.model_copy()
            for item in items:
                self._items[item.id] = item.model_copy(deep=True)

    async def get_request(self, request_id: UUID) -> BatchMatchRequest | None:
        request = self._requests.get(request_id)
        return request.model_copy() if request else None

    async def list_items(
        self, request_id: UUID, pending_only: bool = False
    ) -> list[BatchMatchItem]:
        items = [
            item.model_copy(deep=True)
            for item in self._items.values()
            if item.request_id == request_id
            and (not pending_only or item.status == ItemStatus.PENDING)
        ]
        return sorted(items, key=lambda i: i.input_index)

    async def save_item_outcome(self, item_id: UUID, outcome: ItemOutcome) -> None:
        async with self._lock:
            item = self._items.get(item_id)
            if item is None:
                raise KeyError(f"Batch item not found: {item_id}")
            self._items[item_id] = item.with_outcome(outcome)

    async def mark_processing(self, request_id: UUID, started_at: datetime) -> None:
        await self._update(
            request_id, status=BatchStatus.PROCESSING, started_at=started_at
        )

    async def mark_finished(
        self, request_id: UUID, status: BatchStatus, completed_at: datetime
    ) -> None:
        await self._update(request_id, status=status, completed_at=completed_at)

    async def increment_counters(
        self,
        request_id: UUID,
        processed: int,
        matched: int,
        suggestions: int,
        failed: int,
    ) -> None:
        async with self._lock:
            request = self._requests[request_id]
            self._requests[request_id] = request.model_copy(
                update={
                    "processed": request.processed + processed,
                    "matched": request.matched + matched,
                    "suggestions": request.suggestions + suggestions,
                    "failed": request.failed + failed,
                }
            )

    async def delete_expired(self, now: datetime) -> int:
        async with self._lock:
            expired = {
                request_id
                for request_id, request in self._requests.items()
                if request.expires_at < now
            }
            for request_id in expired:
                del self._requests[request_id]
            self._items = {
                item_id: item
                for item_id, item in self._items.items()
                if item.request_id not in expired
            }
            return len(expired)

    async def _update(self, request_id: UUID, **fields) -> None:
        async with self._lock:
            request = self._requests[request_id]
            self._requests[request_id] = request.model_copy(update=fields)
