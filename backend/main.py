"""
FastAPI application entry point for ShopCast

Initializes the FastAPI app, registers routers, and sets up startup/shutdown events.
"""
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import Depends, FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from app.core.config import settings
from app.core.database import engine, Base
from app.core.errors import ErrorKind, PushServiceError
from app.core.logging_config import setup_logging, get_logger
from app.core.metrics import init_metrics, get_metrics, get_content_type
from app.middleware.logging_middleware import RequestLoggingMiddleware, get_current_request_id
from app.api.v1.tokens import router as tokens_router
from app.api.v1.notifications import router as notifications_router
from app.api.v1.shop import router as shop_router
from app.api.v1.system import router as system_router
from app.schemas.system import HealthResponse
from app.services.push.delivery_engine import (
    DeliveryEngine,
    get_delivery_engine,
    shutdown_delivery_engine,
)
from app.services.registry.token_registry import get_token_registry
from app.services.shop_close_scheduler import (
    initialize_shop_close_scheduler,
    shutdown_shop_close_scheduler,
)

# Application version
APP_VERSION = "1.0.0"

# Initialize structured JSON logging
setup_logging(app_version=APP_VERSION)
logger = get_logger(__name__)

# Initialize Prometheus metrics
init_metrics(version=APP_VERSION)

# Global scheduler instance for maintenance jobs
scheduler: AsyncIOScheduler = None

# HTTP status for each error kind that aborts a request
ERROR_KIND_STATUS = {
    ErrorKind.INVALID_INPUT: 400,
    ErrorKind.TRANSPORT_UNAVAILABLE: 503,
    ErrorKind.STORE_UNAVAILABLE: 503,
}


async def scheduled_registration_sweep_job():
    """
    Scheduled sweep that runs daily at 2:00 AM

    Removes registrations not refreshed within REGISTRATION_MAX_AGE_DAYS.
    Only scheduled when the setting is greater than zero.
    """
    try:
        registry = get_token_registry()
        removed = registry.prune_stale(settings.REGISTRATION_MAX_AGE_DAYS)
        logger.info(
            f"Scheduled registration sweep complete: {len(removed)} removed",
            extra={
                "event_type": "scheduled_sweep_complete",
                "removed": len(removed),
                "max_age_days": settings.REGISTRATION_MAX_AGE_DAYS,
            }
        )
    except Exception as e:
        logger.error(f"Scheduled registration sweep failed: {e}", exc_info=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler for startup and shutdown events.

    Manages the application lifecycle:
    - Startup: Creates database tables, loads the registry, starts schedulers
    - Shutdown: Stops schedulers and closes the push transport
    """
    global scheduler

    logger.info(
        "Application starting",
        extra={
            "event_type": "app_startup",
            "version": APP_VERSION,
            "log_level": settings.LOG_LEVEL,
            "debug_mode": settings.DEBUG,
        }
    )

    # Create database tables
    Base.metadata.create_all(bind=engine)
    logger.info(
        "Database initialized",
        extra={"event_type": "database_init", "status": "success"}
    )

    # Load registrations into the in-process cache
    registry = get_token_registry()
    loaded = registry.resync()
    logger.info(
        "Token registry loaded",
        extra={"event_type": "registry_init", "registrations": loaded}
    )

    # Build the delivery engine (FCM transport if configured)
    delivery_engine = get_delivery_engine()
    logger.info(
        "Delivery engine ready",
        extra={
            "event_type": "delivery_engine_init",
            "transport": delivery_engine.transport.name if delivery_engine.transport else None,
        }
    )

    # Daily shop auto-close
    try:
        await initialize_shop_close_scheduler()
    except Exception as e:
        logger.error(
            f"Failed to initialize shop close scheduler: {e}",
            extra={"event_type": "shop_close_scheduler_init_error", "error": str(e)}
        )

    # Stale registration sweep
    if settings.REGISTRATION_MAX_AGE_DAYS > 0:
        scheduler = AsyncIOScheduler()
        scheduler.add_job(
            scheduled_registration_sweep_job,
            trigger=CronTrigger(hour=2, minute=0),  # Daily at 2:00 AM
            id="daily_registration_sweep",
            name="Daily stale registration sweep",
            replace_existing=True
        )
        scheduler.start()
        logger.info(
            "Scheduler started",
            extra={"event_type": "scheduler_init", "jobs": ["daily_registration_sweep"]}
        )

    yield  # Application runs here

    logger.info(
        "Application shutting down",
        extra={"event_type": "app_shutdown_start", "version": APP_VERSION}
    )

    try:
        await shutdown_shop_close_scheduler()
    except Exception as e:
        logger.error(
            f"Error stopping shop close scheduler: {e}",
            extra={"event_type": "shop_close_scheduler_shutdown_error", "error": str(e)}
        )

    if scheduler and scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info(
            "Scheduler stopped",
            extra={"event_type": "scheduler_shutdown"}
        )

    await shutdown_delivery_engine()

    logger.info(
        "Application shutdown complete",
        extra={"event_type": "app_shutdown_complete", "version": APP_VERSION}
    )


# Create FastAPI app
app = FastAPI(
    title="ShopCast API",
    description="Push notification fan-out for shop announcements",
    version=APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(PushServiceError)
async def push_service_error_handler(request: Request, exc: PushServiceError):
    """Map a service error to its HTTP status with a structured body."""
    status_code = ERROR_KIND_STATUS.get(exc.kind, 500)
    log = logger.warning if status_code < 500 else logger.error
    log(
        f"Request failed: {exc.message}",
        extra={
            "event_type": exc.kind.value,
            "path": request.url.path,
            "status_code": status_code,
        }
    )
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": exc.to_dict(),
            "request_id": get_current_request_id(),
        },
    )


# Add request logging middleware
app.add_middleware(RequestLoggingMiddleware)

# Register API routers
app.include_router(tokens_router, prefix=settings.API_V1_PREFIX)
app.include_router(notifications_router, prefix=settings.API_V1_PREFIX)
app.include_router(shop_router, prefix=settings.API_V1_PREFIX)
app.include_router(system_router, prefix=settings.API_V1_PREFIX)


@app.get("/", response_model=HealthResponse)
async def root(delivery_engine: DeliveryEngine = Depends(get_delivery_engine)):
    """Root endpoint - API status check"""
    return HealthResponse(
        status="online",
        message="Notification server is running",
        timestamp=datetime.now(timezone.utc),
        fcm_configured=delivery_engine.transport is not None,
    )


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy"}


@app.get("/metrics")
async def prometheus_metrics():
    """
    Prometheus metrics endpoint

    Returns Prometheus-compatible metrics for scraping.
    """
    return Response(
        content=get_metrics(),
        media_type=get_content_type()
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
