"""API key hashing, storage and validation.

Keys look like ``atf_<random>``. Only a bcrypt hash is stored,
alongside the first few characters of the key so candidates can be
found without scanning every row. Successful validations are cached
for a few minutes so the hash isn't recomputed on every request.
"""

import asyncio
import hashlib
import secrets
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable
from uuid import UUID, uuid4

import bcrypt
from pydantic import BaseModel, Field
from sqlalchemy import text

from ..db import get_db_session
from ..logging import get_context_logger

logger = get_context_logger(__name__)

API_KEY_PREFIX = "atf_"
API_KEY_MIN_LENGTH = 20
API_KEY_LOOKUP_LENGTH = 12
API_KEY_CACHE_TTL_SECONDS = 5 * 60

BCRYPT_ROUNDS = 10


# =========================
# Hashing
# =========================


def hash_api_key(api_key: str, rounds: int = BCRYPT_ROUNDS) -> str:
    """Hash an API key for storage.

    Returns:
        A bcrypt hash (``$2b$<rounds>$...``), compatible with hashes
        written by bcryptjs.
    """
    return bcrypt.hashpw(api_key.encode(), bcrypt.gensalt(rounds)).decode("ascii")


def verify_api_key(api_key: str, key_hash: str) -> bool:
    """Check an API key against a stored bcrypt hash.

    A malformed hash, or a key bcrypt refuses to process, is a mismatch.
    """
    try:
        return bcrypt.checkpw(api_key.encode(), key_hash.encode())
    except ValueError:
        return False


def generate_api_key() -> str:
    """Create a new random key with the expected prefix."""
    return f"{API_KEY_PREFIX}{secrets.token_urlsafe(32)}"


def lookup_prefix(api_key: str, length: int = API_KEY_LOOKUP_LENGTH) -> str:
    return api_key[:length]


# =========================
# Storage
# =========================


class ApiKeyRecord(BaseModel):
    """A provisioned API key (hash only)."""

    id: UUID = Field(default_factory=uuid4)
    name: str = ""
    key_prefix: str
    key_hash: str
    revoked: bool = False
    expires_at: datetime | None = None
    total_calls: int = 0
    last_used_at: datetime | None = None


class ApiKeyRepository(ABC):
    """Lookup of provisioned API keys."""

    @abstractmethod
    async def find_active_by_prefix(self, key_prefix: str) -> list[ApiKeyRecord]:
        """Non-revoked keys sharing a lookup prefix."""
        ...

    @abstractmethod
    async def record_usage(self, key_id: UUID, used_at: datetime) -> None:
        ...


class InMemoryApiKeyRepository(ApiKeyRepository):
    """Process-local key storage for development and testing."""

    def __init__(self):
        self._keys: dict[UUID, ApiKeyRecord] = {}

    def add(self, record: ApiKeyRecord) -> ApiKeyRecord:
        self._keys[record.id] = record
        return record

    def get(self, key_id: UUID) -> ApiKeyRecord | None:
        return self._keys.get(key_id)

    async def find_active_by_prefix(self, key_prefix: str) -> list[ApiKeyRecord]:
        return [
            record.model_copy()
            for record in self._keys.values()
            if record.key_prefix == key_prefix and not record.revoked
        ]

    async def record_usage(self, key_id: UUID, used_at: datetime) -> None:
        record = self._keys.get(key_id)
        if record is not None:
            self._keys[key_id] = record.model_copy(
                update={"total_calls": record.total_calls + 1, "last_used_at": used_at}
            )


class SqlApiKeyRepository(ApiKeyRepository):
    """API keys in the api_keys table."""

    def __init__(self, session_factory: Callable[[], Any] = get_db_session):
        self._session = session_factory

    async def find_active_by_prefix(self, key_prefix: str) -> list[ApiKeyRecord]:
        async with self._session() as db:
            result = await db.execute(
                text("""
                    SELECT id, name, key_prefix, key_hash, revoked,
                           expires_at, total_calls, last_used_at
                    FROM api_keys
                    WHERE key_prefix = :key_prefix AND revoked = false
                """),
                {"key_prefix": key_prefix},
            )
            rows = result.fetchall()

        return [
            ApiKeyRecord(
                id=UUID(str(row.id)),
                name=row.name or "",
                key_prefix=row.key_prefix,
                key_hash=row.key_hash,
                revoked=row.revoked,
                expires_at=row.expires_at,
                total_calls=row.total_calls,
                last_used_at=row.last_used_at,
            )
            for row in rows
        ]

    async def record_usage(self, key_id: UUID, used_at: datetime) -> None:
        async with self._session() as db:
            await db.execute(
                text("""
                    UPDATE api_keys
                    SET total_calls = total_calls + 1, last_used_at = :used_at
                    WHERE id = :id
                """),
                {"id": str(key_id), "used_at": used_at},
            )


# =========================
# Validation
# =========================


@dataclass
class ApiKeyValidation:
    """Outcome of validating a presented key."""

    valid: bool
    key_id: UUID | None = None
    reason: str | None = None


@dataclass
class _CachedKey:
    key_id: UUID
    validated_at: datetime


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ApiKeyValidator:
    """Validates presented API keys against stored hashes."""

    def __init__(
        self,
        repository: ApiKeyRepository,
        cache_ttl_seconds: int = API_KEY_CACHE_TTL_SECONDS,
        prefix: str = API_KEY_PREFIX,
        min_length: int = API_KEY_MIN_LENGTH,
        lookup_length: int = API_KEY_LOOKUP_LENGTH,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.repository = repository
        self.cache_ttl = timedelta(seconds=cache_ttl_seconds)
        self.prefix = prefix
        self.min_length = min_length
        self.lookup_length = lookup_length
        self.clock = clock
        self._cache: dict[str, _CachedKey] = {}

    @staticmethod
    def _cache_key(api_key: str) -> str:
        return hashlib.sha256(api_key.encode()).hexdigest()

    async def validate(self, api_key: str | None) -> ApiKeyValidation:
        """Validate a key presented by a client.

        Lookup or verification errors make the key invalid rather than
        propagating; the caller then falls back to anonymous limits.
        """
        if not api_key or not api_key.startswith(self.prefix) or len(api_key) < self.min_length:
            return ApiKeyValidation(valid=False, reason="Invalid API key format")

        now = self.clock()
        cache_key = self._cache_key(api_key)
        cached = self._cache.get(cache_key)
        if cached is not None and now - cached.validated_at < self.cache_ttl:
            return ApiKeyValidation(valid=True, key_id=cached.key_id)

        try:
            candidates = await self.repository.find_active_by_prefix(
                lookup_prefix(api_key, self.lookup_length)
            )
        except Exception as e:
            logger.error(f"API key lookup failed: {e}")
            return ApiKeyValidation(valid=False, reason="Validation error")

        if not candidates:
            return ApiKeyValidation(valid=False, reason="API key not found")

        for record in candidates:
            if record.expires_at is not None and record.expires_at < now:
                continue

            try:
                # bcrypt is CPU-bound; keep it off the event loop
                matched = await asyncio.to_thread(verify_api_key, api_key, record.key_hash)
            except Exception as e:
                logger.error(f"API key verification failed for {record.id}: {e}")
                return ApiKeyValidation(valid=False, reason="Validation error")

            if matched:
                self._cache[cache_key] = _CachedKey(key_id=record.id, validated_at=now)
                await self._record_usage(record.id, now)
                return ApiKeyValidation(valid=True, key_id=record.id)

        return ApiKeyValidation(valid=False, reason="API key not found or invalid")

    async def _record_usage(self, key_id: UUID, now: datetime) -> None:
        try:
            await self.repository.record_usage(key_id, now)
        except Exception as e:
            logger.warning(f"Failed to update API key stats for {key_id}: {e}")

    def sweep(self, now: datetime | None = None) -> int:
        """Evict cached validations older than the TTL."""
        now = now or self.clock()
        stale = [
            key for key, cached in self._cache.items()
            if now - cached.validated_at >= self.cache_ttl
        ]
        for key in stale:
            del self._cache[key]
        return len(stale)
