"""
FastAPI application factory.

* Registers routes for trips, bookings, reviews and admin.
* Starts / stops the background lifecycle worker via lifespan events.
* Applies rate-limiting middleware and renders domain errors.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from src.api.middleware import domain_error_handler, limiter
from src.api.routes import admin, bookings, reviews, trips
from src.domain.errors import DomainError
from src.workers import lifecycle as _lifecycle

logging.basicConfig(level=logging.INFO)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the lifecycle worker on startup; stop on shutdown."""
    await _lifecycle.start_lifecycle_loop()
    yield
    await _lifecycle.stop_lifecycle_loop()


def create_app() -> FastAPI:
    app = FastAPI(
        title="Carpool Booking API",
        description=(
            "Drivers publish trips, passengers request seats. Seat capacity "
            "is enforced by an atomic per-trip ledger so a trip is never "
            "oversold, even under concurrent accepts."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # Domain errors -> {code, message, details}
    app.add_exception_handler(DomainError, domain_error_handler)

    # Routers
    app.include_router(trips.router, prefix="/api/v1")
    app.include_router(bookings.router, prefix="/api/v1")
    app.include_router(reviews.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")

    return app
