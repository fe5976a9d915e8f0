"""Rate limit state storage.

State is process-local. Eviction is explicit: callers invoke ``sweep``
on whatever schedule they choose, there are no background timers here.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime


@dataclass
class RateLimitEntry:
    """Window counter and violation state for one identity."""

    count: int
    reset_at: datetime
    violations: int = 0
    blocked_until: datetime | None = None

    def is_blocked(self, now: datetime) -> bool:
        return self.blocked_until is not None and self.blocked_until > now

    def is_stale(self, now: datetime) -> bool:
        """True once both the window and any block have elapsed."""
        return self.reset_at < now and not self.is_blocked(now)


class RateLimitStore(ABC):
    """Keyed storage for rate limit entries."""

    @abstractmethod
    def get(self, key: str) -> RateLimitEntry | None:
        ...

    @abstractmethod
    def set(self, key: str, entry: RateLimitEntry) -> None:
        ...

    @abstractmethod
    def sweep(self, now: datetime) -> int:
        """Drop stale entries.

        Returns:
            Number of entries removed
        """
        ...


class InMemoryRateLimitStore(RateLimitStore):
    """Dictionary-backed store for a single process."""

    def __init__(self):
        self._entries: dict[str, RateLimitEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> RateLimitEntry | None:
        return self._entries.get(key)

    def set(self, key: str, entry: RateLimitEntry) -> None:
        self._entries[key] = entry

    def sweep(self, now: datetime) -> int:
        stale = [key for key, entry in self._entries.items() if entry.is_stale(now)]
        for key in stale:
            del self._entries[key]
        return len(stale)
