"""
FastAPI application initialization
"""

from fastapi import FastAPI
from api.routes import health, tasks
from core.config import settings
from core.logging import setup_logging
import logging
from ingestion.scheduler import SyncScheduler

setup_logging()

logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Catalog Mirror Sync",
    description="Incremental synchronization of the upstream catalog",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# Include routers
app.include_router(health.router)
app.include_router(tasks.router)


@app.on_event("startup")
async def startup_event():
    """Application startup event"""
    logger.info("Starting Catalog Mirror Sync")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Database: {settings.DATABASE_URL.split('@')[1] if '@' in settings.DATABASE_URL else 'configured'}")

    app.state.scheduler = SyncScheduler()
    app.state.scheduler.start()


@app.on_event("shutdown")
async def shutdown_event():
    """Application shutdown event"""
    logger.info("Shutting down Catalog Mirror Sync")
    scheduler = getattr(app.state, "scheduler", None)
    if scheduler is not None:
        scheduler.stop()


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Catalog Mirror Sync",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "trigger": "/tasks/update"
        }
    }
