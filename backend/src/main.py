"""FastAPI application entry point for API Territoires.

Resolves French territorial entity names to official codes.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Awaitable, Callable

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from territoires import __version__
from territoires.admission import (
    AdmissionController,
    ApiKeyValidator,
    InMemoryApiKeyRepository,
    InMemoryRateLimitStore,
    SqlApiKeyRepository,
)
from territoires.api import register_exception_handlers
from territoires.api.middleware import setup_middleware
from territoires.batch import (
    BatchCoordinator,
    BatchScheduler,
    InMemoryBatchRepository,
    SqlBatchRepository,
    WebhookNotifier,
)
from territoires.config import Settings, get_settings
from territoires.db import close_all_connections, ping_database
from territoires.logging import get_logger, setup_logging
from territoires.matching import InMemoryReferenceStore, SqlReferenceStore, TerritoireMatcher

# Initialize logging
setup_logging()
logger = get_logger(__name__)


def build_services(app: FastAPI, settings: Settings) -> None:
    """Create the matcher, batch coordinator and admission controller."""
    if settings.use_memory_store:
        reference_store = InMemoryReferenceStore()
        batch_repository = InMemoryBatchRepository()
        api_key_repository = InMemoryApiKeyRepository()
        logger.warning("Using in-memory stores; data is lost on restart")
    else:
        reference_store = SqlReferenceStore()
        batch_repository = SqlBatchRepository()
        api_key_repository = SqlApiKeyRepository()

    matcher = TerritoireMatcher(
        reference_store,
        search_limit=settings.match_search_limit,
        high_confidence=settings.match_high_confidence,
    )

    scheduler = BatchScheduler(
        workers=settings.batch_workers,
        queue_size=settings.batch_queue_size,
    )

    app.state.matcher = matcher
    app.state.scheduler = scheduler
    app.state.coordinator = BatchCoordinator(
        batch_repository,
        matcher,
        scheduler=scheduler,
        notifier=WebhookNotifier(timeout=settings.webhook_timeout_seconds),
        max_items=settings.batch_max_items,
        ttl_hours=settings.batch_ttl_hours,
        concurrency=settings.batch_concurrency,
        items_per_second=settings.batch_items_per_second,
        retry_after_seconds=settings.batch_retry_after_seconds,
    )
    app.state.admission = AdmissionController(
        store=InMemoryRateLimitStore(),
        validator=ApiKeyValidator(
            api_key_repository,
            cache_ttl_seconds=settings.api_key_cache_ttl_seconds,
            prefix=settings.api_key_prefix,
            min_length=settings.api_key_min_length,
            lookup_length=settings.api_key_lookup_length,
        ),
        anonymous_limit=settings.rate_limit_anonymous_requests,
        authenticated_limit=settings.rate_limit_authenticated_requests,
        window_seconds=settings.rate_limit_window_seconds,
        max_violations=settings.rate_limit_max_violations,
        block_seconds=settings.rate_limit_block_seconds,
    )


async def run_periodically(
    name: str, interval_seconds: int, job: Callable[[], Awaitable[object] | object]
) -> None:
    """Run ``job`` every ``interval_seconds`` until cancelled."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            result = job()
            if asyncio.iscoroutine(result):
                await result
        except Exception as e:
            logger.warning(f"Maintenance job {name} failed: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup and shutdown events."""
    # Startup
    settings = get_settings()
    logger.info(
        "Starting API Territoires",
        extra={
            "environment": settings.environment,
            "debug": settings.api_debug,
        },
    )

    build_services(app, settings)
    await app.state.scheduler.start()

    maintenance = [
        asyncio.create_task(
            run_periodically(
                "batch-cleanup",
                settings.batch_cleanup_interval_seconds,
                app.state.coordinator.cleanup_expired,
            )
        ),
        asyncio.create_task(
            run_periodically(
                "rate-limit-sweep",
                settings.rate_limit_sweep_interval_seconds,
                app.state.admission.sweep,
            )
        ),
    ]

    yield

    # Shutdown
    logger.info("Shutting down API Territoires")
    for task in maintenance:
        task.cancel()
    await asyncio.gather(*maintenance, return_exceptions=True)
    await app.state.scheduler.stop()
    await close_all_connections()


# Create FastAPI application
settings = get_settings()

app = FastAPI(
    title="API Territoires",
    description="Matching of French territorial entity names to official codes",
    version=__version__,
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
    openapi_url="/openapi.json" if settings.is_development else None,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "X-API-Key", "X-Request-ID"],
    expose_headers=[
        "X-RateLimit-Limit",
        "X-RateLimit-Remaining",
        "X-RateLimit-Reset",
        "Retry-After",
        "X-Request-ID",
    ],
)
setup_middleware(app)
register_exception_handlers(app)


# =========================
# Health Check Endpoints
# =========================


@app.get("/health", tags=["Health"])
async def health_check():
    """Basic health check endpoint."""
    return {"status": "healthy", "service": "api-territoires"}


@app.get("/health/ready", tags=["Health"])
async def readiness_check():
    """Ready once the reference database answers.

    Always ready when running on the in-memory stores.
    """
    if get_settings().use_memory_store:
        return {"status": "ready", "database": "memory"}

    try:
        reachable = await ping_database()
    except Exception as e:
        logger.warning(f"Readiness check failed: {e}")
        reachable = False

    if not reachable:
        return JSONResponse(
            status_code=503,
            content={"status": "unavailable", "database": "unreachable"},
        )
    return {"status": "ready", "database": "postgresql"}


# =========================
# API Routers
# =========================

from territoires.api.batch import router as batch_router
from territoires.api.match import router as match_router

app.include_router(match_router, prefix="/api/v1", tags=["Matching"])
app.include_router(batch_router, prefix="/api/v1", tags=["Batch"])
