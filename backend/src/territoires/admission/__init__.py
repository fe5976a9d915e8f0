"""Admission control: per-identity quotas, blocking and API key validation."""

from .api_keys import (
    ApiKeyRecord,
    ApiKeyRepository,
    ApiKeyValidation,
    ApiKeyValidator,
    InMemoryApiKeyRepository,
    SqlApiKeyRepository,
    generate_api_key,
    hash_api_key,
    lookup_prefix,
    verify_api_key,
)
from .limiter import AdmissionController, AdmissionDecision, QuotaClass
from .store import InMemoryRateLimitStore, RateLimitEntry, RateLimitStore

__all__ = [
    "AdmissionController",
    "AdmissionDecision",
    "ApiKeyRecord",
    "ApiKeyRepository",
    "ApiKeyValidation",
    "ApiKeyValidator",
    "InMemoryApiKeyRepository",
    "InMemoryRateLimitStore",
    "QuotaClass",
    "RateLimitEntry",
    "RateLimitStore",
    "SqlApiKeyRepository",
    "generate_api_key",
    "hash_api_key",
    "lookup_prefix",
    "verify_api_key",
]
