"""Data models for batch territoire matching.

Defines the persisted request/item records, the per-item outcome
derived from a match result, and the API-facing response shapes.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from ..matching.types import (
    CamelModel,
    MatchAlternative,
    MatchFailed,
    MatchHints,
    MatchResult,
    MatchSuccess,
    MatchSuggestions,
)


class BatchStatus(str, Enum):
    """Lifecycle of a batch request: pending -> processing -> completed | failed."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ItemStatus(str, Enum):
    """Status of a single batch item."""

    PENDING = "pending"
    MATCHED = "matched"
    SUGGESTIONS = "suggestions"
    FAILED = "failed"


# =========================
# Persisted records
# =========================


class BatchMatchRequest(BaseModel):
    """A submitted batch and its progress counters."""

    id: UUID = Field(default_factory=uuid4)
    client_id: str | None = None
    webhook_url: str | None = None
    status: BatchStatus = BatchStatus.PENDING
    total_items: int
    processed: int = 0
    matched: int = 0
    suggestions: int = 0
    failed: int = 0
    created_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None
    expires_at: datetime

    @property
    def progress(self) -> int:
        """Percentage of items processed (0-100)."""
        if self.total_items <= 0:
            return 0
        return round(100 * self.processed / self.total_items)

    @property
    def is_finished(self) -> bool:
        return self.status in (BatchStatus.COMPLETED, BatchStatus.FAILED)


class ItemOutcome(BaseModel):
    """Resolved fields written onto a batch item."""

    status: ItemStatus
    code: str | None = None
    nom: str | None = None
    type: str | None = None
    confidence: float | None = None
    match_source: str | None = None
    alternatives: list[MatchAlternative] | None = None
    error_message: str | None = None

    @classmethod
    def from_match_result(cls, result: MatchResult) -> "ItemOutcome":
        """Convert a match result into item fields."""
        if isinstance(result, MatchSuccess):
            return cls(
                status=ItemStatus.MATCHED,
                code=result.code,
                nom=result.nom,
                type=result.type,
                confidence=result.confidence,
                match_source=result.match_source.value,
            )
        if isinstance(result, MatchSuggestions):
            return cls(
                status=ItemStatus.SUGGESTIONS,
                alternatives=[alt.model_copy() for alt in result.alternatives],
            )
        if isinstance(result, MatchFailed):
            return cls(status=ItemStatus.FAILED, error_message=result.message)
        raise TypeError(f"Unhandled match result: {result!r}")

    @classmethod
    def failure(cls, message: str) -> "ItemOutcome":
        return cls(status=ItemStatus.FAILED, error_message=message)


class BatchMatchItem(BaseModel):
    """One query within a batch. Owned by its parent request."""

    id: UUID = Field(default_factory=uuid4)
    request_id: UUID
    input_index: int
    query: str
    hints: MatchHints | None = None
    status: ItemStatus = ItemStatus.PENDING
    code: str | None = None
    nom: str | None = None
    type: str | None = None
    confidence: float | None = None
    match_source: str | None = None
    alternatives: list[MatchAlternative] | None = None
    error_message: str | None = None

    def with_outcome(self, outcome: ItemOutcome) -> "BatchMatchItem":
        """Return a copy of this item carrying ``outcome``."""
        outcome = outcome.model_copy(deep=True)
        update = {name: getattr(outcome, name) for name in ItemOutcome.model_fields}
        return self.model_copy(update=update)


# =========================
# Input / response models
# =========================


class BatchItemInput(CamelModel):
    """One entry of a batch submission."""

    query: str
    hints: MatchHints | None = None


class BatchSubmitResponse(CamelModel):
    """Acknowledgement returned when a batch is accepted."""

    request_id: UUID
    status: BatchStatus
    total_items: int
    estimated_duration: int
    status_url: str
    results_url: str


class BatchStatusResponse(CamelModel):
    """Progress counters for a batch."""

    request_id: UUID
    status: BatchStatus
    total_items: int
    processed: int
    matched: int
    suggestions: int
    failed: int
    created_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None
    progress: int = Field(ge=0, le=100)


class BatchResultItem(CamelModel):
    """Per-item result, addressed by its input index."""

    index: int
    query: str
    status: ItemStatus
    code: str | None = None
    nom: str | None = None
    type: str | None = None
    confidence: float | None = None
    match_source: str | None = None
    alternatives: list[MatchAlternative] | None = None
    error: str | None = None


class BatchSummary(CamelModel):
    """Aggregate counts for a batch."""

    total: int
    matched: int
    suggestions: int
    failed: int
    success_rate: int


class BatchResultsResponse(CamelModel):
    """Full results of a finished batch, ordered by input index."""

    request_id: UUID
    status: BatchStatus
    results: list[BatchResultItem]
    summary: BatchSummary


class BatchNotReady(CamelModel):
    """Results were requested before the batch finished."""

    request_id: UUID
    status: BatchStatus
    message: str = "Batch is still processing. Check status endpoint for progress."
    results: list[BatchResultItem] = Field(default_factory=list)
    summary: BatchSummary
    retry_after: int = Field(exclude=True)
