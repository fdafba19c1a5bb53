# pyright: reportMissingTypeStubs=false
"""
Provider Availability Engine API

A FastAPI application exposing provider schedules, time off, availability
computation, multi-provider suggestions and race-free booking reservation.

Features:
- Versioned weekly schedules interpreted in each provider's IANA zone
- Exceptions (PTO, Sick, Course, PublicHoliday, Block) overriding schedules
- Merged free ranges, window classification and bookable slots
- Per-provider serialized booking with conflict reporting
- PostgreSQL database with SQLAlchemy ORM
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api import providers
from core.constants import CORS_ORIGINS
from core.exceptions import (
    AvailabilityError, ConflictError, ExceptionNotFoundError, ImmutableExceptionError,
    AssignmentNotFoundError, InvalidRangeError, InvalidScheduleError, ProviderNotFoundError,
    ScheduleNotFoundError, TimezoneResolutionError
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler()],
)

logger = logging.getLogger(__name__)
logger.info("🗓️ Provider Availability API starting...")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    logger.info("🚀 Starting Provider Availability API")
    yield
    logger.info("🛑 Shutting down Provider Availability API")


# Create FastAPI application
app = FastAPI(
    title="Provider Availability Engine",
    description="Schedules, time off, availability and booking reservation for providers",
    version="1.0.0",
    docs_url="/docs",  # Swagger UI
    redoc_url="/redoc",  # ReDoc
    lifespan=lifespan,
)

# CORS middleware for frontend integration
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(
    providers.router,
    prefix="/api/providers",
    tags=["providers"],
    responses={
        400: {"description": "Bad request"},
        404: {"description": "Resource not found"},
        409: {"description": "Conflict"},
        500: {"description": "Internal server error"},
    },
)


@app.get(
    "/",
    summary="Root endpoint",
    description="Returns basic API information",
)
async def root() -> dict[str, str]:
    """Get API information."""
    return {
        "message": "Provider Availability Engine API",
        "version": "1.0.0",
        "status": "running"
    }


@app.get(
    "/health",
    summary="Health check",
    description="Returns the health status of the API",
)
async def health_check() -> dict[str, str]:
    """Check if the API is healthy and responding."""
    return {"status": "healthy"}


# Domain error -> HTTP status
ERROR_STATUS_CODES = {
    InvalidRangeError: 400,
    InvalidScheduleError: 400,
    TimezoneResolutionError: 400,
    ScheduleNotFoundError: 404,
    ProviderNotFoundError: 404,
    ExceptionNotFoundError: 404,
    AssignmentNotFoundError: 404,
    ConflictError: 409,
    ImmutableExceptionError: 409,
}


def status_code_for(exc: AvailabilityError) -> int:
    for error_class in type(exc).__mro__:
        if error_class in ERROR_STATUS_CODES:
            return ERROR_STATUS_CODES[error_class]
    return 400


# Global exception handlers
@app.exception_handler(AvailabilityError)
async def availability_error_handler(request: Request, exc: AvailabilityError):
    """Handle availability engine errors."""
    status_code = status_code_for(exc)
    if status_code == 409:
        logger.info(f"{type(exc).__name__}: {exc.message}")
    else:
        logger.warning(f"{type(exc).__name__}: {exc.message}")
    return JSONResponse(status_code=status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions globally."""
    logger.exception(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "type": "internal_error"},
    )


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    """Handle ValueError exceptions."""
    logger.warning(f"ValueError: {exc}")
    return JSONResponse(
        status_code=400,
        content={"detail": str(exc), "type": "validation_error"},
    )
