"""
EventHub Booking API - Main Application Entry Point

Event management and ticket booking:
- Oversell-free ticket inventory via atomic conditional updates
- Booking, event and resource lifecycles driven by status transition tables
- Notifications dispatched from a queue after commit, never blocking a booking
- Structured logging with request correlation and Prometheus metrics
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from eventhub.api.dependencies import build_container
from eventhub.api.errors import register_exception_handlers
from eventhub.api.middleware import RequestLoggingMiddleware
from eventhub.api.router import api_router
from eventhub.core.config import get_settings
from eventhub.core.logging import get_logger, setup_logging
from eventhub.core.metrics import metrics_endpoint
from eventhub.db.session import AsyncSessionLocal, engine
from eventhub.infrastructure.redis_client import close_redis, redis_status
from eventhub.services.queue_factory import build_email_sender, build_notification_queue

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
    )

    queue = await build_notification_queue(settings)
    container = build_container(
        settings,
        AsyncSessionLocal,
        queue,
        build_email_sender(settings),
    )
    app.state.container = container

    if settings.NOTIFICATION_WORKER_ENABLED:
        container.dispatcher.start()
    if settings.SCHEDULER_ENABLED:
        container.scheduler.start()

    yield

    await container.scheduler.stop()
    await container.dispatcher.stop()
    await queue.close()
    await close_redis()
    await engine.dispose()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Event management and ticket booking API",
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
register_exception_handlers(app)

app.include_router(api_router)


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "redis": await redis_status(),
    }


@app.get("/metrics", include_in_schema=False)
def metrics():
    return metrics_endpoint()


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
