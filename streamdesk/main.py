"""
StreamDesk Coordinator - Main Application Entry Point

FastAPI application tracking employee presence and dispatching
camera commands, with a background delivery sweep.
"""

import logging
import sys
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import settings
from .database import init_database, close_database, get_database
from .database.exceptions import (
    DatabaseError,
    DatabaseConstraintError,
    EntityNotFoundError,
    ValidationError,
)
from .integrations.identity import IdentityVerifier
from .integrations.webpubsub import WebPubSubBroadcaster
from .scheduler.jobs import SchedulerManager
from .services.container import build_services
from .services.exceptions import AuthenticationError, PermissionDeniedError
from .utils.datetime_utils import isoformat_utc, utc_now

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.debug else getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup and shutdown."""
    # Startup
    logger.info("Starting StreamDesk Coordinator...")

    if await init_database():
        logger.info("Database initialized")
    else:
        logger.warning("Database not configured or failed to initialize")

    broadcaster = WebPubSubBroadcaster()
    if not broadcaster.is_configured:
        logger.warning("Web PubSub not configured, commands will stay queued")

    services = build_services(broadcaster, database=get_database())
    app.state.broadcaster = broadcaster
    app.state.verifier = IdentityVerifier()
    app.state.services = services

    scheduler = SchedulerManager(services.commands)
    try:
        scheduler.start()
    except Exception as e:
        logger.warning(f"Failed to start scheduler: {e}")
    app.state.scheduler = scheduler

    logger.info("StreamDesk Coordinator started")

    yield

    # Shutdown
    logger.info("Shutting down...")

    try:
        scheduler.stop()
    except Exception as e:
        logger.warning(f"Failed to stop scheduler during shutdown: {e}")

    try:
        await close_database()
    except Exception as e:
        logger.warning(f"Failed to close database during shutdown: {e}")

    logger.info("Shutdown complete")


# Create FastAPI app
app = FastAPI(
    title="StreamDesk Coordinator",
    description="Presence tracking and camera command dispatch",
    version="1.0.0",
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

from .web.routes import router as api_router
app.include_router(api_router)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    db_health = {"status": "not_configured"}
    try:
        db_health = await get_database().health_check()
    except Exception as e:
        db_health = {"status": "error", "error": str(e)}

    return {
        "status": "healthy",
        "timestamp": isoformat_utc(utc_now()),
        "database": db_health.get("status", "unknown"),
    }


# Error handlers
@app.exception_handler(EntityNotFoundError)
async def not_found_handler(request: Request, exc: EntityNotFoundError):
    return JSONResponse(status_code=404, content={"error": str(exc)})


@app.exception_handler(ValidationError)
async def validation_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"error": str(exc)})


@app.exception_handler(AuthenticationError)
async def authentication_handler(request: Request, exc: AuthenticationError):
    return JSONResponse(
        status_code=401,
        content={"error": str(exc)},
        headers={"WWW-Authenticate": "Bearer"},
    )


@app.exception_handler(PermissionDeniedError)
async def permission_handler(request: Request, exc: PermissionDeniedError):
    return JSONResponse(status_code=403, content={"error": str(exc)})


@app.exception_handler(DatabaseConstraintError)
async def conflict_handler(request: Request, exc: DatabaseConstraintError):
    logger.warning(f"Constraint conflict on {request.url.path}: {exc}")
    return JSONResponse(status_code=409, content={"error": str(exc)})


@app.exception_handler(DatabaseError)
async def storage_error_handler(request: Request, exc: DatabaseError):
    logger.error(f"Storage failure on {request.url.path}: {exc}", exc_info=exc)
    content = {"error": "Internal server error"}
    if settings.debug:
        content["detail"] = str(exc)
        content["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return JSONResponse(status_code=500, content=content)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler."""
    logger.error(f"Unhandled exception: {exc}", exc_info=exc)
    content = {"error": "Internal server error"}
    if settings.debug:
        content["detail"] = str(exc)
    return JSONResponse(status_code=500, content=content)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "streamdesk.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug
    )
