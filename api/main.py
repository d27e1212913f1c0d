"""
FastAPI application initialization
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from api.middleware import RequestContextMiddleware
from api.routes import health, sync
from core.config import settings
from core.logging import setup_logging
from pipeline.services import build_services

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the pipeline services once per process"""
    setup_logging()
    logger.info("Starting figure sync API")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Database: {settings.DATABASE_URL.split('@')[1] if '@' in settings.DATABASE_URL else 'configured'}")

    app.state.services = build_services()
    try:
        yield
    finally:
        logger.info("Shutting down figure sync API")
        await app.state.services.close()


# Create FastAPI app
app = FastAPI(
    title="Figure Sync API",
    description="Sync job intake, live status and retry for catalog syncs",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(RequestContextMiddleware)

# Include routers
app.include_router(health.router)
app.include_router(sync.router)


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Figure Sync API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "submit": "/sync/jobs",
            "job_status": "/sync/jobs/{job_id}/status",
            "session": "/sync/sessions/{id}",
            "retry": "/sync/sessions/{id}/retry",
        },
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("api.main:app", host=settings.API_HOST, port=settings.API_PORT)
