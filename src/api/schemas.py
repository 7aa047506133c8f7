"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from src.domain.entities import Location, Place
from src.domain.enums import BookingStatus, ReviewStatus, TripStatus


# ── Shared ────────────────────────────────────────────────────────────


class GeoPoint(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class PlaceSchema(BaseModel):
    text: str = Field(..., min_length=1, max_length=255)
    geo: GeoPoint

    def to_domain(self) -> Place:
        return Place(self.text, Location(self.geo.lat, self.geo.lng))

    @classmethod
    def from_domain(cls, place: Place) -> "PlaceSchema":
        return cls(
            text=place.text,
            geo=GeoPoint(lat=place.geo.latitude, lng=place.geo.longitude),
        )


class ErrorResponse(BaseModel):
    code: str
    message: str
    details: dict = {}


# Documented on every router; 422 keeps FastAPI's own validation schema.
ERROR_RESPONSES = {
    403: {"model": ErrorResponse, "description": "Caller may not act on this resource"},
    404: {"model": ErrorResponse, "description": "Resource not found"},
    409: {"model": ErrorResponse, "description": "State conflict"},
}


# ── Requests ──────────────────────────────────────────────────────────


class TripOfferCreateRequest(BaseModel):
    vehicle_id: int
    origin: PlaceSchema
    destination: PlaceSchema
    departure_at: datetime
    estimated_arrival_at: datetime
    price_per_seat: float = Field(..., ge=0)
    total_seats: int = Field(..., ge=1, le=8)
    status: TripStatus = TripStatus.PUBLISHED
    notes: str = Field("", max_length=1000)


class TripOfferUpdateRequest(BaseModel):
    price_per_seat: Optional[float] = Field(None, ge=0)
    total_seats: Optional[int] = Field(None, ge=1, le=8)
    notes: Optional[str] = Field(None, max_length=1000)
    status: Optional[TripStatus] = None


class BookingCreateRequest(BaseModel):
    trip_id: int
    seats: int = Field(1, ge=1, le=8)
    note: str = Field("", max_length=300)


class ReviewCreateRequest(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    text: str = Field("", max_length=1000)


# ── Responses ─────────────────────────────────────────────────────────


class TripOfferResponse(BaseModel):
    id: int
    driver_id: int
    vehicle_id: int
    origin: PlaceSchema
    destination: PlaceSchema
    departure_at: datetime
    estimated_arrival_at: datetime
    price_per_seat: float
    total_seats: int
    status: TripStatus
    notes: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, trip) -> "TripOfferResponse":
        return cls(
            id=trip.id,
            driver_id=trip.driver_id,
            vehicle_id=trip.vehicle_id,
            origin=PlaceSchema.from_domain(trip.origin),
            destination=PlaceSchema.from_domain(trip.destination),
            departure_at=trip.departure_at,
            estimated_arrival_at=trip.estimated_arrival_at,
            price_per_seat=trip.price_per_seat,
            total_seats=trip.total_seats,
            status=trip.status,
            notes=trip.notes,
            created_at=trip.created_at,
            updated_at=trip.updated_at,
        )


class BookingResponse(BaseModel):
    """Public view of a booking.  ``refund_needed`` is deliberately absent."""

    id: int
    trip_id: int
    passenger_id: int
    status: BookingStatus
    seats: int
    note: str
    accepted_at: Optional[datetime] = None
    accepted_by: Optional[int] = None
    declined_at: Optional[datetime] = None
    declined_by: Optional[int] = None
    canceled_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class SeatAvailabilityResponse(BaseModel):
    trip_id: int
    total_seats: int
    allocated_seats: int
    remaining_seats: int


class ReviewResponse(BaseModel):
    id: int
    trip_id: int
    driver_id: int
    rating: int
    text: str
    status: ReviewStatus
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class OwnReviewResponse(ReviewResponse):
    """The caller's review plus the time the delete window closes."""

    locked_at: Optional[datetime] = None


class DriverReviewItem(BaseModel):
    id: int
    rating: int
    text: str
    author: str
    created_at: Optional[datetime] = None


class DriverReviewPageResponse(BaseModel):
    items: list[DriverReviewItem]
    page: int
    page_size: int
    total: int
    total_pages: int

    @classmethod
    def from_domain(cls, result) -> "DriverReviewPageResponse":
        return cls(
            items=[
                DriverReviewItem(
                    id=review.id,
                    rating=review.rating,
                    text=review.text,
                    author=author,
                    created_at=review.created_at,
                )
                for review, author in result.items
            ],
            page=result.page,
            page_size=result.page_size,
            total=result.total,
            total_pages=result.total_pages,
        )


class ReviewDeletedResponse(BaseModel):
    deleted: bool = True


class RatingAggregateResponse(BaseModel):
    driver_id: int
    avg_rating: float
    count: int
    histogram: dict[int, int]
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class LifecycleJobResponse(BaseModel):
    completed_trips: int = Field(..., serialization_alias="completedTrips")
    expired_pendings: int = Field(..., serialization_alias="expiredPendings")

    model_config = {"from_attributes": True}


class HealthResponse(BaseModel):
    status: str = "ok"
