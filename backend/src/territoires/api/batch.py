"""Batch territoire matching endpoints.

Submit up to 1000 queries at once, poll progress, and fetch results
once processing has finished.
"""

from uuid import UUID

from fastapi import APIRouter, Request, Response
from pydantic import Field

from ..batch import (
    BatchItemInput,
    BatchNotReady,
    BatchQueueFullError,
    BatchResultsResponse,
    BatchStatusResponse,
    BatchSubmitResponse,
    BatchValidationError,
)
from ..matching.types import CamelModel
from . import NotFoundError, ServiceUnavailableError, ValidationError
from .admission import Admitted
from .dependencies import Coordinator

router = APIRouter(prefix="/territoires/batch")


class BatchSubmitRequest(CamelModel):
    """Body of a batch submission."""

    # Optional here so a missing array gets the same error as an empty one
    items: list[BatchItemInput] | None = None
    client_id: str | None = None
    webhook_url: str | None = Field(default=None, max_length=2048)


def _parse_request_id(request_id: str) -> UUID:
    try:
        return UUID(request_id)
    except ValueError:
        raise ValidationError(f"Invalid request id: {request_id}")


@router.post(
    "",
    response_model=BatchSubmitResponse,
    status_code=202,
    responses={503: {"description": "Batch queue is full"}},
)
async def submit_batch(
    body: BatchSubmitRequest,
    request: Request,
    coordinator: Coordinator,
    _: Admitted,
):
    """Accept a batch for asynchronous matching."""
    try:
        return await coordinator.submit(
            body.items,
            client_id=body.client_id,
            webhook_url=body.webhook_url,
            base_url=str(request.base_url),
        )
    except BatchValidationError as e:
        raise ValidationError(str(e))
    except BatchQueueFullError:
        raise ServiceUnavailableError(
            "Too many batches waiting, retry later",
            retry_after=coordinator.retry_after_seconds,
        )


@router.get("/{request_id}", response_model=BatchStatusResponse)
async def get_batch_status(
    request_id: str,
    coordinator: Coordinator,
    _: Admitted,
):
    """Progress counters for a batch."""
    status = await coordinator.get_status(_parse_request_id(request_id))
    if status is None:
        raise NotFoundError("Batch request", request_id)
    return status


@router.get(
    "/{request_id}/results",
    response_model=None,
    responses={202: {"description": "Batch still processing"}},
)
async def get_batch_results(
    request_id: str,
    response: Response,
    coordinator: Coordinator,
    _: Admitted,
):
    """Per-item results ordered by input index.

    Answers 202 with a Retry-After header while the batch is still
    running.
    """
    results = await coordinator.get_results(_parse_request_id(request_id))
    if results is None:
        raise NotFoundError("Batch request", request_id)

    if isinstance(results, BatchNotReady):
        response.status_code = 202
        response.headers["Retry-After"] = str(results.retry_after)
        return results.model_dump(mode="json", by_alias=True, exclude_none=True)
    if isinstance(results, BatchResultsResponse):
        return results.model_dump(mode="json", by_alias=True, exclude_none=True)
    raise TypeError(f"Unhandled batch results: {results!r}")
