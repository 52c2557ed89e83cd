"""
Main FastAPI application for the GeoGuessr Rating Tracker.
"""
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from prometheus_fastapi_instrumentator import Instrumentator

from app.core.config import settings
from app.core.database import init_db
from app.core.exceptions import (
    PlayerAlreadyExistsError,
    PlayerNotFoundError,
    StoreUnavailableError,
    UpstreamUnavailableError,
)
from app.core.logging import configure_logging, get_logger
from app.core.middleware import CorrelationIdMiddleware
from app.core.rate_limit import GENERAL_LIMIT, HEALTH_LIMIT, limiter
from app.core import metrics
from app.api.routes import players, tracking

# Configure structured logging (JSON in production, coloured console otherwise)
configure_logging(
    level=settings.LOG_LEVEL,
    json_output=settings.LOG_JSON
)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Application lifespan events."""
    # Startup
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")

    init_db()

    if settings.TRACKER_ENABLED:
        from app.core.scheduler import start_scheduler
        await start_scheduler()
        logger.info("Tracking scheduler started")
    else:
        logger.info("Tracking scheduler disabled (TRACKER_ENABLED=false)")

    metrics.update_scheduler_metrics()
    logger.info("Application started")

    yield

    # Shutdown
    from app.core.scheduler import stop_scheduler
    from app.services.geoguessr.client import close_geoguessr_client
    await stop_scheduler()
    metrics.update_scheduler_metrics()
    await close_geoguessr_client()
    logger.info("Shutting down application")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Competitive rating history for GeoGuessr players",
    lifespan=lifespan
)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Add correlation ID middleware (must be added before CORS for proper header handling)
app.add_middleware(CorrelationIdMiddleware)

# Initialize Prometheus metrics BEFORE including routes
instrumentator = Instrumentator()
instrumentator.instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# API v1
app.include_router(players.router, prefix="/api/v1")
app.include_router(tracking.router, prefix="/api/v1")


@app.get("/")
@limiter.limit(GENERAL_LIMIT)
async def root(request: Request):
    """Root endpoint with API information."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running",
        "endpoints": {
            "api_version": "v1",
            "players": "/api/v1/players",
            "search": "/api/v1/players/search",
            "tracking": "/api/v1/tracking/status",
            "metrics": "/metrics",
            "docs": "/docs",
            "health": "/health"
        }
    }


@app.get("/health")
@limiter.limit(HEALTH_LIMIT)
async def health_check(request: Request):
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": settings.APP_VERSION
    }


# Exception handlers
@app.exception_handler(PlayerNotFoundError)
async def player_not_found_handler(request: Request, exc: PlayerNotFoundError):
    return JSONResponse(
        status_code=404,
        content={"error": "Player not found", "detail": str(exc)}
    )


@app.exception_handler(PlayerAlreadyExistsError)
async def player_exists_handler(request: Request, exc: PlayerAlreadyExistsError):
    return JSONResponse(
        status_code=409,
        content={"error": "Player already registered", "detail": str(exc)}
    )


@app.exception_handler(StoreUnavailableError)
async def store_unavailable_handler(request: Request, exc: StoreUnavailableError):
    logger.error(f"Store unavailable: {exc}")
    return JSONResponse(
        status_code=503,
        content={"error": "Database unavailable", "detail": str(exc)}
    )


@app.exception_handler(UpstreamUnavailableError)
async def upstream_unavailable_handler(request: Request, exc: UpstreamUnavailableError):
    logger.warning(f"GeoGuessr unavailable: {exc}")
    return JSONResponse(
        status_code=502,
        content={"error": "GeoGuessr unavailable", "detail": str(exc)}
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler."""
    logger.error(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "detail": str(exc)}
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG
    )
