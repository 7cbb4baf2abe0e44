"""
Event Admission API - Main Application Entry Point

Capacity-bounded event registration with:
- Optimistic insert-then-reconcile admission and a FIFO waitlist
- Time-boxed check-in window with undo
- Sliding-window rate limiting backed by the database or Redis
- Structured logging with request correlation and Prometheus metrics
"""

import asyncio
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from event_admission.api.exception_handlers import setup_exception_handlers
from event_admission.api.middleware import RequestLoggingMiddleware
from event_admission.api.router import api_router
from event_admission.core.config import get_settings
from event_admission.core.logging import get_logger, setup_logging
from event_admission.core.metrics import metrics_endpoint
from event_admission.infrastructure.redis_client import close_redis, get_redis
from event_admission.services.cache_service import get_cache_stats
from event_admission.services.rate_limit_service import run_rate_limit_sweeper
from event_admission.services.strategy_factory import get_rate_limiter

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown hooks."""
    setup_logging()
    logger = get_logger(__name__)

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
        rate_limit_backend=settings.RATE_LIMIT_BACKEND,
    )

    redis_client = await get_redis()
    if redis_client:
        logger.info("redis_ready")
    else:
        logger.warning("redis_unavailable", message="Running without cache")

    sweeper = None
    if settings.RATE_LIMIT_SWEEP_ENABLED and settings.RATE_LIMIT_BACKEND == "database":
        sweeper = asyncio.create_task(
            run_rate_limit_sweeper(
                get_rate_limiter(),
                settings.RATE_LIMIT_SWEEP_INTERVAL_SECONDS,
                settings.RATE_LIMIT_SWEEP_BATCH_SIZE,
            )
        )
        logger.info("rate_limit_sweeper_started", interval_seconds=settings.RATE_LIMIT_SWEEP_INTERVAL_SECONDS)

    yield

    if sweeper is not None:
        sweeper.cancel()
        with suppress(asyncio.CancelledError):
            await sweeper
    await close_redis()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Capacity-bounded event registration, waitlist and check-in API",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)

setup_exception_handlers(app)
app.include_router(api_router)


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    cache_stats = await get_cache_stats()
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "rate_limit_backend": settings.RATE_LIMIT_BACKEND,
        "cache": cache_stats,
    }


@app.get("/metrics", include_in_schema=False)
async def metrics():
    return metrics_endpoint()


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
