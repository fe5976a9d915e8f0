"""Logging setup for API Territoires.

``LOG_FORMAT=json`` (the default) emits one JSON object per line for log
shippers; ``LOG_FORMAT=text`` prints aligned columns for local work.
Fields passed through ``extra=`` become top-level JSON keys.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from .config import get_settings

# Attributes every LogRecord carries; anything else came in through `extra`
_STANDARD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__.keys()
) | {"message", "asctime"}

_QUIET_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine", "celery", "asyncio")


class JSONFormatter(logging.Formatter):
    """One JSON document per record."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
        }
        payload.update(
            (key, value)
            for key, value in record.__dict__.items()
            if key not in _STANDARD_ATTRS and not key.startswith("_")
        )
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str, ensure_ascii=False)


class TextFormatter(logging.Formatter):
    """Column-aligned output for terminals."""

    def __init__(self):
        super().__init__("%(asctime)s %(levelname)-7s %(name)s: %(message)s", "%H:%M:%S")


def setup_logging() -> None:
    """Install a single stdout handler on the root logger.

    Safe to call more than once; the handler list is replaced, not
    appended to.
    """
    settings = get_settings()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if settings.log_format == "json" else TextFormatter())

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class LoggerAdapter(logging.LoggerAdapter):
    """Merges bound context into each call's ``extra``."""

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def get_context_logger(name: str, **context: Any) -> LoggerAdapter:
    """Logger that tags every record with ``context``.

    Usage:
        logger = get_context_logger(__name__, component="batch")
        logger.info("Batch accepted")  # record carries component="batch"
    """
    return LoggerAdapter(get_logger(name), context)


# =========================
# Convenience functions
# =========================


def log_match_result(
    query: str,
    status: str,
    code: str | None = None,
    confidence: float | None = None,
    source: str | None = None,
) -> None:
    """Log the terminal outcome of a single resolution.

    Args:
        query: Query text as received
        status: matched, suggestions or failed
        code: Matched official code (if any)
        confidence: Match confidence (if matched)
        source: direct, alias or database (if matched)
    """
    logger = get_logger("territoires.matching")
    logger.debug(
        f"Match {status}: {query} -> {code or '-'}",
        extra={
            "query": query,
            "status": status,
            "code": code,
            "confidence": confidence,
            "match_source": source,
            "event": "match_result",
        },
    )


def log_batch_deduplication(request_id: str, total_items: int, unique_queries: int) -> None:
    """Log how many lookups were collapsed by deduplication."""
    logger = get_logger("territoires.batch")
    reduction = round((1 - unique_queries / total_items) * 100) if total_items else 0
    logger.info(
        f"Batch {request_id}: {total_items} items -> {unique_queries} unique queries",
        extra={
            "request_id": request_id,
            "total_items": total_items,
            "unique_queries": unique_queries,
            "reduction_percent": reduction,
            "event": "batch_deduplication",
        },
    )


def log_batch_progress(
    request_id: str,
    chunk_number: int,
    processed: int,
    total: int,
) -> None:
    """Log completion of a chunk within a batch run.

    Args:
        request_id: Batch request identifier
        chunk_number: Chunk sequence number
        processed: Items processed so far
        total: Total items in the batch
    """
    logger = get_logger("territoires.batch")
    progress = round(100 * processed / total) if total else 0
    logger.info(
        f"Batch {request_id} progress: {progress}%",
        extra={
            "request_id": request_id,
            "chunk_number": chunk_number,
            "processed": processed,
            "total": total,
            "progress_percent": progress,
            "event": "batch_progress",
        },
    )


def log_rate_limit_violation(identity: str, quota_class: str, violations: int) -> None:
    """Log a request denied for exceeding its quota."""
    logger = get_logger("territoires.admission")
    logger.warning(
        f"Rate limit exceeded for {identity}",
        extra={
            "identity": identity,
            "quota_class": quota_class,
            "violations": violations,
            "event": "rate_limit_exceeded",
        },
    )


def log_identity_blocked(identity: str, violations: int, block_seconds: int) -> None:
    """Log an identity entering the blocked state."""
    logger = get_logger("territoires.admission")
    logger.warning(
        f"Identity blocked for {block_seconds}s: {identity} ({violations} violations)",
        extra={
            "identity": identity,
            "violations": violations,
            "block_seconds": block_seconds,
            "event": "identity_blocked",
        },
    )


def log_api_request(
    method: str,
    path: str,
    status_code: int,
    duration_ms: float,
    request_id: str | None = None,
) -> None:
    """Log an API request.

    Args:
        method: HTTP method
        path: Request path
        status_code: Response status code
        duration_ms: Request duration in milliseconds
        request_id: Request correlation ID
    """
    logger = get_logger("territoires.api")
    logger.info(
        f"{method} {path} - {status_code}",
        extra={
            "method": method,
            "path": path,
            "status_code": status_code,
            "duration_ms": duration_ms,
            "request_id": request_id,
            "event": "api_request",
        },
    )
