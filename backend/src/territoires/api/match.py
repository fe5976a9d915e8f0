"""Single territoire matching endpoint."""

import time

from fastapi import APIRouter, Response

from ..config import get_settings
from ..matching import MatchRequest, MatchResult
from . import ValidationError
from .admission import Admitted
from .dependencies import Matcher

router = APIRouter(prefix="/territoires")


@router.post(
    "/match",
    response_model=MatchResult,
    response_model_exclude_none=True,
)
async def match_territoire(
    body: MatchRequest,
    response: Response,
    matcher: Matcher,
    _: Admitted,
):
    """Resolve a free-text name to an official code.

    Returns a matched result, a list of suggestions when ambiguous, or a
    failure with a reason.
    """
    query = body.query.strip()
    if not query:
        raise ValidationError("Query is required")

    max_length = get_settings().match_query_max_length
    if len(query) > max_length:
        raise ValidationError(f"Query must be at most {max_length} characters")

    start = time.perf_counter()
    result = await matcher.match(
        MatchRequest(query=query, hints=body.hints.cleaned() if body.hints else None)
    )
    response.headers["X-Response-Time"] = f"{round((time.perf_counter() - start) * 1000)}ms"

    return result
