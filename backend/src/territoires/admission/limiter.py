"""Admission control for the matching endpoints.

Two quota classes share one algorithm:

- anonymous: keyed by client IP
- authenticated: keyed by a validated API key

Each identity gets a fixed window counter: the count starts at the
first request and resets all at once at ``reset_at``, so a client can
spend up to twice its limit across a window boundary. A request over
quota is denied and counted as a violation; once the violation threshold is
reached the identity is blocked for the cooldown period, regardless of
its window.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable

from ..logging import get_context_logger, log_identity_blocked, log_rate_limit_violation
from .api_keys import ApiKeyValidator
from .store import InMemoryRateLimitStore, RateLimitEntry, RateLimitStore

logger = get_context_logger(__name__)

ANONYMOUS_LIMIT = 500
AUTHENTICATED_LIMIT = 5000
WINDOW_SECONDS = 60
MAX_VIOLATIONS = 20
BLOCK_SECONDS = 15 * 60


class QuotaClass(str, Enum):
    ANONYMOUS = "anonymous"
    AUTHENTICATED = "authenticated"


@dataclass
class AdmissionDecision:
    """Result of an admission check."""

    allowed: bool
    limit: int
    remaining: int
    reset_at: datetime
    retry_after: int | None = None
    blocked: bool = False
    quota_class: QuotaClass = QuotaClass.ANONYMOUS
    # None when no key was presented
    api_key_valid: bool | None = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _seconds_until(moment: datetime, now: datetime) -> int:
    return max(1, math.ceil((moment - now).total_seconds()))


class AdmissionController:
    """Per-identity quotas and temporary blocking."""

    def __init__(
        self,
        store: RateLimitStore | None = None,
        validator: ApiKeyValidator | None = None,
        anonymous_limit: int = ANONYMOUS_LIMIT,
        authenticated_limit: int = AUTHENTICATED_LIMIT,
        window_seconds: int = WINDOW_SECONDS,
        max_violations: int = MAX_VIOLATIONS,
        block_seconds: int = BLOCK_SECONDS,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store if store is not None else InMemoryRateLimitStore()
        self.validator = validator
        self.limits = {
            QuotaClass.ANONYMOUS: anonymous_limit,
            QuotaClass.AUTHENTICATED: authenticated_limit,
        }
        self.window = timedelta(seconds=window_seconds)
        self.max_violations = max_violations
        self.block = timedelta(seconds=block_seconds)
        self.clock = clock

    async def admit(self, client_ip: str, api_key: str | None = None) -> AdmissionDecision:
        """Resolve the caller's identity and check its quota.

        A key that fails validation does not deny the request; the caller
        is limited by IP and the decision reports ``api_key_valid=False``.
        """
        api_key_valid = None

        if api_key and self.validator is not None:
            validation = await self.validator.validate(api_key)
            if validation.valid:
                decision = self.check(f"key:{validation.key_id}", QuotaClass.AUTHENTICATED)
                decision.api_key_valid = True
                return decision
            logger.debug(f"API key rejected for {client_ip}: {validation.reason}")
            api_key_valid = False

        decision = self.check(f"ip:{client_ip}", QuotaClass.ANONYMOUS)
        decision.api_key_valid = api_key_valid
        return decision

    def check(self, identity: str, quota_class: QuotaClass) -> AdmissionDecision:
        """Count one request against ``identity``.

        Synchronous so the read-modify-write of an entry never spans a
        suspension point.
        """
        now = self.clock()
        limit = self.limits[quota_class]
        key = f"{quota_class.value}:{identity}"
        entry = self.store.get(key)

        if entry is not None and entry.is_blocked(now):
            return AdmissionDecision(
                allowed=False,
                limit=limit,
                remaining=0,
                reset_at=entry.blocked_until,
                retry_after=_seconds_until(entry.blocked_until, now),
                blocked=True,
                quota_class=quota_class,
            )

        if entry is None or entry.reset_at <= now:
            violations = entry.violations if entry is not None else 0
            # A served block wipes the slate
            if entry is not None and entry.blocked_until is not None:
                violations = 0
            entry = RateLimitEntry(count=0, reset_at=now + self.window, violations=violations)

        if entry.count >= limit:
            entry.violations += 1
            log_rate_limit_violation(identity, quota_class.value, entry.violations)

            if entry.violations >= self.max_violations:
                entry.blocked_until = now + self.block
                self.store.set(key, entry)
                log_identity_blocked(
                    identity, entry.violations, int(self.block.total_seconds())
                )
                return AdmissionDecision(
                    allowed=False,
                    limit=limit,
                    remaining=0,
                    reset_at=entry.blocked_until,
                    retry_after=_seconds_until(entry.blocked_until, now),
                    blocked=True,
                    quota_class=quota_class,
                )

            self.store.set(key, entry)
            return AdmissionDecision(
                allowed=False,
                limit=limit,
                remaining=0,
                reset_at=entry.reset_at,
                retry_after=_seconds_until(entry.reset_at, now),
                quota_class=quota_class,
            )

        entry.count += 1
        self.store.set(key, entry)

        return AdmissionDecision(
            allowed=True,
            limit=limit,
            remaining=limit - entry.count,
            reset_at=entry.reset_at,
            quota_class=quota_class,
        )

    def sweep(self) -> int:
        """Evict stale rate limit entries and cached key validations."""
        now = self.clock()
        removed = self.store.sweep(now)
        if self.validator is not None:
            self.validator.sweep(now)
        if removed:
            logger.debug(f"Swept {removed} rate limit entries")
        return removed
