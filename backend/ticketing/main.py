"""
Ticketing Core API - Main Application Entry Point

An event ticketing backend demonstrating:
- Oversell-free ticket inventory with row-level pessimistic locking
- A bounded access queue with lazily expiring leases
- Admission policy layered over settings, process overrides and Redis
- Structured logging with request correlation and Prometheus metrics
"""

import asyncio
from contextlib import asynccontextmanager, suppress
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ticketing.core.config import get_settings
from ticketing.core.exceptions import DomainError
from ticketing.core.logging import setup_logging, get_logger
from ticketing.core.metrics import metrics_endpoint
from ticketing.api.router import api_router
from ticketing.api.middleware import RequestLoggingMiddleware
from ticketing.db.session import AsyncSessionLocal
from ticketing.services.admission_service import QueueAdmissionController, run_reconciler
from ticketing.services.cache_service import get_redis, close_redis, get_cache_stats
from ticketing.services.policy_service import get_policy_store

settings = get_settings()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown hooks."""
    setup_logging()

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
    )

    redis_client = await get_redis()
    if redis_client:
        logger.info("redis_ready")
    else:
        logger.warning("redis_unavailable", message="Admission policy from local settings only")

    reconciler = None
    if settings.QUEUE_RECONCILE_INTERVAL_SECONDS > 0:
        controller = QueueAdmissionController(AsyncSessionLocal, get_policy_store())
        reconciler = asyncio.create_task(
            run_reconciler(controller, settings.QUEUE_RECONCILE_INTERVAL_SECONDS)
        )

    yield

    if reconciler is not None:
        reconciler.cancel()
        with suppress(asyncio.CancelledError):
            await reconciler
    await close_redis()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Ticket inventory and access queue API with concurrency-safe accounting",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestLoggingMiddleware)

app.include_router(api_router)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    logger.warning("domain_error", code=exc.code.value, detail=exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code.value},
    )


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    cache_stats = await get_cache_stats()
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "cache": cache_stats,
    }


@app.get("/metrics", tags=["Health"])
async def metrics():
    return metrics_endpoint()


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
