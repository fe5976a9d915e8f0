"""PostgreSQL storage for batch requests and items."""

import json
from datetime import datetime
from typing import Any, Callable
from uuid import UUID

from sqlalchemy import text

from ..db import get_db_session
from ..matching.types import MatchAlternative, MatchHints
from .models import (
    BatchMatchItem,
    BatchMatchRequest,
    BatchStatus,
    ItemOutcome,
    ItemStatus,
)
from .repository import BatchRepository


def _load_json(value: Any) -> Any:
    """JSONB columns may come back decoded or as raw strings."""
    if value is None:
        return None
    if isinstance(value, str):
        return json.loads(value)
    return value


class SqlBatchRepository(BatchRepository):
    """Batch storage in the batch_match_requests / batch_match_items tables."""

    def __init__(self, session_factory: Callable[[], Any] = get_db_session):
        self._session = session_factory

    async def create_request(
        self, request: BatchMatchRequest, items: list[BatchMatchItem]
    ) -> None:
        async with self._session() as db:
            await db.execute(
                text("""
                    INSERT INTO batch_match_requests (
                        id, client_id, webhook_url, status, total_items,
                        processed, matched, suggestions, failed,
                        created_at, expires_at
                    ) VALUES (
                        :id, :client_id, :webhook_url, :status, :total_items,
                        0, 0, 0, 0,
                        :created_at, :expires_at
                    )
                """),
                {
                    "id": str(request.id),
                    "client_id": request.client_id,
                    "webhook_url": request.webhook_url,
                    "status": request.status.value,
                    "total_items": request.total_items,
                    "created_at": request.created_at,
                    "expires_at": request.expires_at,
                },
            )

            await db.execute(
                text("""
                    INSERT INTO batch_match_items (
                        id, request_id, input_index, query, hints, status
                    ) VALUES (
                        :id, :request_id, :input_index, :query,
                        CAST(:hints AS jsonb), :status
                    )
                """),
                [
                    {
                        "id": str(item.id),
                        "request_id": str(request.id),
                        "input_index": item.input_index,
                        "query": item.query,
                        "hints": item.hints.model_dump_json(exclude_none=True) if item.hints else None,
                        "status": item.status.value,
                    }
                    for item in items
                ],
            )

    async def get_request(self, request_id: UUID) -> BatchMatchRequest | None:
        async with self._session() as db:
            result = await db.execute(
                text("SELECT * FROM batch_match_requests WHERE id = :id"),
                {"id": str(request_id)},
            )
            row = result.fetchone()

        if not row:
            return None

        return BatchMatchRequest(
            id=UUID(str(row.id)),
            client_id=row.client_id,
            webhook_url=row.webhook_url,
            status=BatchStatus(row.status),
            total_items=row.total_items,
            processed=row.processed,
            matched=row.matched,
            suggestions=row.suggestions,
            failed=row.failed,
            created_at=row.created_at,
            started_at=row.started_at,
            completed_at=row.completed_at,
            expires_at=row.expires_at,
        )

    async def list_items(
        self, request_id: UUID, pending_only: bool = False
    ) -> list[BatchMatchItem]:
        status_filter = "AND status = 'pending'" if pending_only else ""

        async with self._session() as db:
            result = await db.execute(
                text(f"""
                    SELECT * FROM batch_match_items
                    WHERE request_id = :request_id
                    {status_filter}
                    ORDER BY input_index ASC
                """),
                {"request_id": str(request_id)},
            )
            rows = result.fetchall()

        return [self._row_to_item(row) for row in rows]

    async def save_item_outcome(self, item_id: UUID, outcome: ItemOutcome) -> None:
        alternatives = None
        if outcome.alternatives is not None:
            alternatives = json.dumps(
                [alt.model_dump(mode="json", exclude_none=True) for alt in outcome.alternatives]
            )

        async with self._session() as db:
            await db.execute(
                text("""
                    UPDATE batch_match_items
                    SET status = :status,
                        code = :code,
                        nom = :nom,
                        type = :type,
                        confidence = :confidence,
                        match_source = :match_source,
                        alternatives = CAST(:alternatives AS jsonb),
                        error_message = :error_message
                    WHERE id = :id
                """),
                {
                    "id": str(item_id),
                    "status": outcome.status.value,
                    "code": outcome.code,
                    "nom": outcome.nom,
                    "type": outcome.type,
                    "confidence": outcome.confidence,
                    "match_source": outcome.match_source,
                    "alternatives": alternatives,
                    "error_message": outcome.error_message,
                },
            )

    async def mark_processing(self, request_id: UUID, started_at: datetime) -> None:
        async with self._session() as db:
            await db.execute(
                text("""
                    UPDATE batch_match_requests
                    SET status = 'processing', started_at = :started_at
                    WHERE id = :id
                """),
                {"id": str(request_id), "started_at": started_at},
            )

    async def mark_finished(
        self, request_id: UUID, status: BatchStatus, completed_at: datetime
    ) -> None:
        async with self._session() as db:
            await db.execute(
                text("""
                    UPDATE batch_match_requests
                    SET status = :status, completed_at = :completed_at
                    WHERE id = :id
                """),
                {
                    "id": str(request_id),
                    "status": status.value,
                    "completed_at": completed_at,
                },
            )

    async def increment_counters(
        self,
        request_id: UUID,
        processed: int,
        matched: int,
        suggestions: int,
        failed: int,
    ) -> None:
        # Single UPDATE with relative increments keeps this atomic
        async with self._session() as db:
            await db.execute(
                text("""
                    UPDATE batch_match_requests
                    SET processed = processed + :processed,
                        matched = matched + :matched,
                        suggestions = suggestions + :suggestions,
                        failed = failed + :failed
                    WHERE id = :id
                """),
                {
                    "id": str(request_id),
                    "processed": processed,
                    "matched": matched,
                    "suggestions": suggestions,
                    "failed": failed,
                },
            )

    async def delete_expired(self, now: datetime) -> int:
        # Items go with their request (ON DELETE CASCADE)
        async with self._session() as db:
            result = await db.execute(
                text("DELETE FROM batch_match_requests WHERE expires_at < :now"),
                {"now": now},
            )
            return result.rowcount or 0

    def _row_to_item(self, row) -> BatchMatchItem:
        hints = _load_json(row.hints)
        alternatives = _load_json(row.alternatives)

        return BatchMatchItem(
            id=UUID(str(row.id)),
            request_id=UUID(str(row.request_id)),
            input_index=row.input_index,
            query=row.query,
            hints=MatchHints.model_validate(hints) if hints else None,
            status=ItemStatus(row.status),
            code=row.code,
            nom=row.nom,
            type=row.type,
            confidence=row.confidence,
            match_source=row.match_source,
            alternatives=(
                [MatchAlternative.model_validate(a) for a in alternatives]
                if alternatives is not None
                else None
            ),
            error_message=row.error_message,
        )
