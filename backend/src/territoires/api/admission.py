"""Admission gate applied to every territoire endpoint."""

from typing import Annotated

from fastapi import Depends, Request, Response

from ..admission import AdmissionDecision
from . import RateLimitError
from .dependencies import Admission

API_KEY_HEADER = "X-API-Key"


def get_client_ip(request: Request) -> str:
    """Client address: first X-Forwarded-For hop, then X-Real-IP, then the peer."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        ip = forwarded.split(",")[0].strip()
        if ip:
            return ip

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    if request.client:
        return request.client.host
    return "unknown"


def quota_headers(decision: AdmissionDecision) -> dict[str, str]:
    """X-RateLimit-* headers describing the caller's quota."""
    reset = decision.reset_at.isoformat(timespec="milliseconds").replace("+00:00", "Z")
    headers = {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(decision.remaining),
        "X-RateLimit-Reset": reset,
    }
    if decision.api_key_valid is False:
        headers["X-API-Key-Valid"] = "false"
    return headers


async def enforce_admission(
    request: Request,
    response: Response,
    admission: Admission,
) -> AdmissionDecision:
    """Count the request against the caller's quota.

    Raises:
        RateLimitError: If the caller is over quota or blocked
    """
    decision = await admission.admit(
        get_client_ip(request), request.headers.get(API_KEY_HEADER)
    )
    headers = quota_headers(decision)

    if not decision.allowed:
        raise RateLimitError(
            retry_after=decision.retry_after or 1,
            blocked=decision.blocked,
            headers=headers,
        )

    response.headers.update(headers)
    return decision


Admitted = Annotated[AdmissionDecision, Depends(enforce_admission)]
