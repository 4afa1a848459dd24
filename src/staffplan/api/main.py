"""
StaffPlan API Main Application

Entry point for the FastAPI application.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app

from staffplan.platform.config import settings
from staffplan.platform.logging import configure_logging, get_logger
from staffplan.api.routers import allocations, conflicts, utilization
from staffplan.api.dependencies import (
    init_resources,
    close_resources,
    get_postgres_adapter,
)
from staffplan.engine.errors import (
    AllocationEngineError,
    CapacityExceededError,
    ConcurrencyConflictError,
    NotFoundError,
    OverlapConflictError,
    ValidationError,
)

# Configure logging on import
configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan handler for startup/shutdown."""
    # Startup
    logger.info("Starting StaffPlan API...")
    try:
        init_resources()
        logger.info("Resources initialized successfully.")
    except Exception as e:
        logger.error("Failed to initialize resources", error=str(e))
        raise

    yield

    # Shutdown
    logger.info("Shutting down StaffPlan API...")
    close_resources()
    logger.info("Resources closed.")


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.VERSION,
    description="Allocation conflict and capacity engine",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS.split(",") if settings.CORS_ORIGINS else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# =============================================================================
# OBSERVABILITY
# =============================================================================

# Add Prometheus metrics endpoint
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)


# =============================================================================
# ERROR HANDLING
# =============================================================================

ERROR_STATUS = (
    (ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (OverlapConflictError, status.HTTP_409_CONFLICT),
    (CapacityExceededError, status.HTTP_409_CONFLICT),
    (ConcurrencyConflictError, status.HTTP_409_CONFLICT),
)


def status_for(error: AllocationEngineError) -> int:
    for error_type, status_code in ERROR_STATUS:
        if isinstance(error, error_type):
            return status_code
    return status.HTTP_400_BAD_REQUEST


@app.exception_handler(AllocationEngineError)
async def engine_error_handler(request: Request, exc: AllocationEngineError) -> JSONResponse:
    status_code = status_for(exc)
    logger.warning(
        "Request rejected",
        path=request.url.path,
        code=exc.code,
        status_code=status_code,
        error=exc.message,
    )
    return JSONResponse(status_code=status_code, content={"detail": exc.to_dict()})


# =============================================================================
# HEALTH ENDPOINTS
# =============================================================================


@app.get("/health/live", tags=["Health"])
async def liveness() -> dict:
    """Liveness probe - is the service running?"""
    return {"status": "alive"}


@app.get("/health/ready", tags=["Health"])
async def readiness() -> dict:
    """
    Readiness probe - is the service ready to accept traffic?
    Checks the database connection.
    """
    database_healthy = get_postgres_adapter().health_check()

    return {
        "status": "ready" if database_healthy else "not_ready",
        "version": settings.VERSION,
        "checks": {
            "database": "healthy" if database_healthy else "unhealthy",
        },
    }


# =============================================================================
# API ROUTERS
# =============================================================================

app.include_router(allocations.router, prefix="/api/v1/allocations", tags=["Allocations"])
app.include_router(conflicts.router, prefix="/api/v1/conflicts", tags=["Conflicts"])
app.include_router(utilization.router, prefix="/api/v1/utilization", tags=["Utilization"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "staffplan.api.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=settings.DEBUG,
    )
