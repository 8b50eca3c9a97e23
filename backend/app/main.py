"""
FastAPI Application Entry Point.

Shell around the Travel Companion consistency engine: creates the schema,
maps engine errors to HTTP responses and exposes a health check. Request
handlers calling the engine live with the consuming services.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from backend.app.core.config import settings
from backend.app.core.observability import ObservabilityMiddleware, configure_logging
from backend.app.db.session import engine, Base
from backend.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)
from fastapi import HTTPException

# Import models to ensure they are registered with Base
from backend.app.models.user import User
from backend.app.models.audit_log import AuditLog
from backend.app.models.geo import Agglo, City, Neighborhood, NeighborhoodCity, Airport, AirportAgglo
from backend.app.models.address import Address, UserAddress, TravelerAddress
from backend.app.models.traveler import Traveler, UserTraveler
from backend.app.models.trip import Trip
from backend.app.models.via import Via
from backend.app.models.via_traveler import ViaTraveler
from backend.app.models.rider import Rider, RiderTraveler, RiderUser
from backend.app.models.ride import Ride, RideRiderRequest
from backend.app.models.ride_rider import RideRider
from backend.app.models.task import Task, TaskTraveler, TaskViaTraveler, TaskUser


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    1. Configures the application logger.
    2. Creates database tables on startup.
    """
    configure_logging()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await engine.dispose()

# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Itinerary and membership consistency engine for a travel-companion platform",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)

# Register global exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check endpoint.

    Returns:
        dict: Status and application information
    """
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.api_version,
    }


@app.get("/", tags=["Root"])
async def root():
    """
    Root endpoint.

    Returns:
        dict: Welcome message and API documentation links
    """
    return {
        "message": f"Welcome to {settings.app_name}",
        "docs": "/docs",
        "health": "/health",
    }
