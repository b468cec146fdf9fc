"""
Live Room Admission API - Main Application Entry Point

Admission and lifecycle engine for scheduled live rooms:
- Capacity-bounded RSVPs with optimistic transactions and a waitlist
- Room lifecycle (upcoming / current / ended) resolved from schedule and live flag
- Live "yours / upcoming / current" catalog and a locked-room countdown gate
- Structured logging with request correlation and Prometheus metrics
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from liveroom.core.config import get_settings
from liveroom.core.errors import (
    EngineError,
    ProfileIncompleteError,
    RegistrationClosedError,
    RegistrationInProgressError,
    RoomNotFoundError,
    RsvpNotFoundError,
    StorePermissionError,
    TransientStoreError,
)
from liveroom.core.logging import setup_logging, get_logger
from liveroom.core.metrics import metrics_endpoint
from liveroom.api.router import api_router
from liveroom.api.middleware import RequestLoggingMiddleware
from liveroom.services.store_factory import get_store, close_store

settings = get_settings()
logger = get_logger(__name__)

ERROR_STATUS = {
    TransientStoreError: status.HTTP_503_SERVICE_UNAVAILABLE,
    StorePermissionError: status.HTTP_403_FORBIDDEN,
    RegistrationClosedError: status.HTTP_409_CONFLICT,
    RegistrationInProgressError: status.HTTP_409_CONFLICT,
    RoomNotFoundError: status.HTTP_404_NOT_FOUND,
    RsvpNotFoundError: status.HTTP_404_NOT_FOUND,
    ProfileIncompleteError: status.HTTP_422_UNPROCESSABLE_ENTITY,
}


def status_for(error: EngineError) -> int:
    for error_type in type(error).__mro__:
        if error_type in ERROR_STATUS:
            return ERROR_STATUS[error_type]
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown hooks."""
    setup_logging()

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
        store=settings.STORE_BACKEND,
    )

    get_store()
    logger.info("store_ready", backend=settings.STORE_BACKEND)

    yield

    await close_store()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Admission and lifecycle engine for scheduled live rooms",
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


@app.exception_handler(EngineError)
async def engine_error_handler(request: Request, exc: EngineError):
    status_code = status_for(exc)
    logger.warning("engine_error", error=type(exc).__name__, detail=exc.message, status_code=status_code)
    return JSONResponse(status_code=status_code, content={"detail": exc.message})


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "store": settings.STORE_BACKEND,
    }


@app.get("/metrics", tags=["Health"], include_in_schema=False)
def metrics():
    return metrics_endpoint()


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
