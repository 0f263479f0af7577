"""
app/main.py

Purpose: Application entry point

- Initializes FastAPI app
- Loads configuration and logging
- Builds the dialog dispatcher and its collaborators
- Registers API routes (webhook)
- Runs the meeting request expiry sweep
- Manages application lifecycle (startup/shutdown)
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import asyncio
import time
from typing import Optional

from app.core.config import settings, validate_settings
from app.core.errors import add_exception_handlers
from app.core.logging import setup_logging, get_logger
from app.db.mongo import connect_to_mongo, close_mongo_connection, check_database_health
from app.db.indexes import create_indexes
from app.flow.context import FlowContext
from app.flow.dispatcher import DialogDispatcher
from app.services.chat_service import chat_service
from app.services.meeting_service import meeting_service
from app.services.search_service import search_service
from app.services.session_service import SessionStore
from app.services.telegram_service import telegram_service
from app.services.user_service import user_service
from app.api import webhook

# Initialize logging first
setup_logging()
logger = get_logger(__name__)

VERSION = "1.0.0"


def build_dispatcher() -> DialogDispatcher:
    """Wires the dispatcher to the production collaborators."""
    ctx = FlowContext(
        store=SessionStore(),
        messenger=telegram_service,
        users=user_service,
        meetings=meeting_service,
        search=search_service,
        chats=chat_service,
    )
    return DialogDispatcher(ctx)


async def expire_meetings_periodically(interval_seconds: int):
    """
    Marks overdue PENDING meeting requests as EXPIRED every
    `interval_seconds`.
    """
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await meeting_service.expire_overdue_requests()
        except Exception as e:
            logger.error(f"Meeting expiry sweep failed: {str(e)}", exc_info=True)


def start_expiry_sweep(interval_seconds: int) -> Optional[asyncio.Task]:
    """Starts the expiry sweep task; an interval of 0 disables it."""
    if interval_seconds <= 0:
        logger.info("⏸️ Meeting expiry sweep disabled")
        return None
    return asyncio.create_task(expire_meetings_periodically(interval_seconds))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    # Startup
    logger.info("🚀 Starting NearMeet application...")
    sweep_task = None

    try:
        logger.info("Validating configuration...")
        validate_settings()
        logger.info("✅ Configuration validated")

        logger.info("Connecting to MongoDB...")
        await connect_to_mongo()
        logger.info("✅ MongoDB connected")

        logger.info("Creating database indexes...")
        await create_indexes()
        logger.info("✅ Database indexes created")

        is_healthy = await check_database_health()
        if not is_healthy:
            logger.warning("⚠️ Database health check failed during startup")
        else:
            logger.info("✅ Database health check passed")

        if not telegram_service.is_configured():
            logger.warning("⚠️ Telegram bot token is not configured; outgoing messages will fail")

        app.state.dispatcher = build_dispatcher()
        sweep_task = start_expiry_sweep(settings.MEETING_EXPIRY_SWEEP_SECONDS)

        logger.info("🎉 NearMeet application started successfully!")
        logger.info(f"Environment: {settings.ENVIRONMENT}")
        logger.info(f"Debug Mode: {settings.DEBUG}")

    except Exception as e:
        logger.critical(f"Failed to start application: {str(e)}", exc_info=True)
        raise

    yield  # Application runs here

    # Shutdown
    logger.info("🛑 Shutting down NearMeet application...")

    try:
        if sweep_task is not None:
            sweep_task.cancel()
            try:
                await sweep_task
            except asyncio.CancelledError:
                pass
            logger.info("✅ Meeting expiry sweep stopped")

        await close_mongo_connection()
        logger.info("✅ MongoDB connection closed")

        logger.info("👋 NearMeet application shut down successfully")

    except Exception as e:
        logger.error(f"Error during shutdown: {str(e)}", exc_info=True)


# Create FastAPI app with lifespan
app = FastAPI(
    title="NearMeet - Nearby Dating Bot",
    description="Telegram bot for meeting people nearby",
    version=VERSION,
    lifespan=lifespan,
    debug=settings.DEBUG,
    docs_url="/docs" if settings.is_development else None,  # Disable docs in production
    redoc_url="/redoc" if settings.is_development else None,
)

# CORS Middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request timing middleware
@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    """Add processing time header to all responses."""
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    response.headers["X-Process-Time"] = str(process_time)

    if process_time > 5.0:
        logger.warning(
            f"Slow request detected: {request.method} {request.url.path}",
            extra={"process_time": process_time}
        )

    return response


add_exception_handlers(app)

# Register API routes
app.include_router(webhook.router, prefix=settings.API_PREFIX, tags=["Webhook"])


@app.get("/", tags=["Health"])
async def root():
    """Root endpoint - basic info."""
    return {
        "name": "NearMeet API",
        "version": VERSION,
        "description": "Telegram bot for meeting people nearby",
        "status": "running",
        "environment": settings.ENVIRONMENT
    }


@app.get("/health", tags=["Health"])
async def health_check(request: Request):
    """
    Health check endpoint.
    Checks database connectivity and reports session counts.
    """
    health_status = {
        "status": "healthy",
        "timestamp": time.time(),
        "environment": settings.ENVIRONMENT,
        "version": VERSION,
        "checks": {}
    }

    try:
        db_healthy = await check_database_health()
        health_status["checks"]["database"] = "healthy" if db_healthy else "unhealthy"

        if not db_healthy:
            health_status["status"] = "degraded"
    except Exception as e:
        logger.error(f"Database health check failed: {str(e)}")
        health_status["checks"]["database"] = "unhealthy"
        health_status["status"] = "unhealthy"

    health_status["checks"]["telegram"] = "configured" if telegram_service.is_configured() else "not_configured"

    dispatcher = getattr(request.app.state, "dispatcher", None)
    if dispatcher is not None:
        health_status["sessions"] = dispatcher.ctx.store.stats()

    status_code = 200 if health_status["status"] == "healthy" else 503
    return JSONResponse(content=health_status, status_code=status_code)


# Readiness probe (for Kubernetes/orchestration)
@app.get("/ready", tags=["Health"])
async def readiness_check():
    """
    Readiness probe - indicates if app is ready to receive traffic.
    """
    try:
        db_healthy = await check_database_health()
        if db_healthy:
            return {"status": "ready"}
        else:
            return JSONResponse(
                status_code=503,
                content={"status": "not_ready", "reason": "database_unavailable"}
            )
    except Exception as e:
        return JSONResponse(
            status_code=503,
            content={"status": "not_ready", "reason": str(e)}
        )


# Liveness probe (for Kubernetes/orchestration)
@app.get("/live", tags=["Health"])
async def liveness_check():
    """
    Liveness probe - indicates if app is alive.
    """
    return {"status": "alive"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.is_development,
        log_level=settings.LOG_LEVEL.lower()
    )
