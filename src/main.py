"""
Bulk Operation Orchestrator - Main Application Entry Point

FastAPI application exposing the bulk operation API, health and metrics
endpoints, plus the housekeeping scheduler.
"""

import logging
import sys
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from config import settings
from .cache.redis_client import close_redis
from .database import init_database, close_database, get_database
from .monitoring.middleware import metrics_middleware
from .scheduler.jobs import get_scheduler_manager
from .utils.background_tasks import active_task_count

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
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
    logger.info("Starting Bulk Operation Orchestrator...")

    if settings.bulk_record_store == "sql":
        try:
            if await init_database():
                logger.info("Record store database initialized")
            else:
                logger.warning("Record store database not configured or failed to initialize")
        except Exception as e:
            logger.warning(f"Database init failed: {e}")
    else:
        logger.info("Using in-memory record store")

    try:
        scheduler = get_scheduler_manager()
        scheduler.start()
        logger.info("Scheduler started")
    except Exception as e:
        logger.warning(f"Scheduler failed: {e}")

    yield

    # Shutdown
    logger.info("Shutting down...")

    try:
        get_scheduler_manager().stop()
    except Exception as e:
        logger.warning(f"Failed to stop scheduler during shutdown: {e}")

    await close_redis()

    if settings.bulk_record_store == "sql":
        try:
            await close_database()
        except Exception as e:
            logger.warning(f"Failed to close database during shutdown: {e}")

    logger.info("Shutdown complete")


# Create FastAPI app
app = FastAPI(
    title="Bulk Operation Orchestrator",
    description="Validate, preview, execute and roll back bulk changes to clients, projects and tasks",
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
app.middleware("http")(metrics_middleware)

# Register bulk operation routes
from .web.bulk_routes import router as bulk_router
app.include_router(bulk_router)


@app.get("/")
async def root():
    """Root endpoint - health check."""
    return {
        "status": "healthy",
        "service": settings.app_name,
        "version": "1.0.0"
    }


@app.get("/health")
async def health_check():
    """Detailed health check endpoint."""
    db_health = {"status": "not_configured"}
    if settings.bulk_record_store == "sql":
        try:
            db_health = await get_database().health_check()
        except Exception as e:
            db_health = {"status": "error", "error": str(e)}

    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "services": {
            "record_store": settings.bulk_record_store,
            "database": db_health.get("status", "unknown"),
            "redis": bool(settings.redis_url),
            "background_tasks": active_task_count(),
        }
    }


@app.get("/metrics")
async def metrics():
    """Prometheus scrape endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


# Error handlers
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"success": False, "errors": ["Internal server error"], "detail": str(exc)}
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "src.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug
    )
