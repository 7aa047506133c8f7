"""
Trip offer endpoints
====================

POST  /api/v1/trips                       -- create a trip (draft or published)
GET   /api/v1/trips                       -- caller's trips as driver
GET   /api/v1/trips/{trip_id}             -- trip details
PATCH /api/v1/trips/{trip_id}             -- update price / seats / notes / status
POST  /api/v1/trips/{trip_id}/cancel      -- cancel (not idempotent)
GET   /api/v1/trips/{trip_id}/seats       -- ledger view of seat availability
GET   /api/v1/trips/{trip_id}/bookings    -- booking requests (driver only)
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from src.api.dependencies import (
    get_booking_service,
    get_current_user_id,
    get_trip_service,
)
from src.api.middleware import limiter
from src.api.schemas import (
    ERROR_RESPONSES,
    BookingResponse,
    SeatAvailabilityResponse,
    TripOfferCreateRequest,
    TripOfferResponse,
    TripOfferUpdateRequest,
)
from src.config import settings
from src.domain.enums import BookingStatus, TripStatus
from src.services.bookings import BookingRequestService
from src.services.trip_offers import NewTripOffer, TripOfferChanges, TripOfferService

router = APIRouter(prefix="/trips", tags=["trips"], responses=ERROR_RESPONSES)


@router.post(
    "",
    status_code=201,
    response_model=TripOfferResponse,
    summary="Create a trip offer",
)
@limiter.limit(settings.rate_limit)
async def create_trip(
    request: Request,
    body: TripOfferCreateRequest,
    driver_id: int = Depends(get_current_user_id),
    service: TripOfferService = Depends(get_trip_service),
):
    trip = await service.create(
        driver_id,
        NewTripOffer(
            vehicle_id=body.vehicle_id,
            origin=body.origin.to_domain(),
            destination=body.destination.to_domain(),
            departure_at=body.departure_at,
            estimated_arrival_at=body.estimated_arrival_at,
            price_per_seat=body.price_per_seat,
            total_seats=body.total_seats,
            status=body.status,
            notes=body.notes,
        ),
    )
    return TripOfferResponse.from_domain(trip)


@router.get(
    "",
    response_model=list[TripOfferResponse],
    summary="List the caller's trip offers",
)
@limiter.limit(settings.rate_limit)
async def list_my_trips(
    request: Request,
    status: Optional[list[TripStatus]] = Query(None),
    upcoming: bool = Query(False, description="Only published trips departing later"),
    driver_id: int = Depends(get_current_user_id),
    service: TripOfferService = Depends(get_trip_service),
):
    if upcoming:
        trips = await service.list_upcoming_for_driver(driver_id)
    else:
        trips = await service.list_for_driver(driver_id, status)
    return [TripOfferResponse.from_domain(t) for t in trips]


@router.get(
    "/{trip_id}",
    response_model=TripOfferResponse,
    summary="Get a trip offer",
)
@limiter.limit(settings.rate_limit)
async def get_trip(
    request: Request,
    trip_id: int,
    service: TripOfferService = Depends(get_trip_service),
):
    return TripOfferResponse.from_domain(await service.get(trip_id))


@router.patch(
    "/{trip_id}",
    response_model=TripOfferResponse,
    summary="Update a trip offer",
    description=(
        "Only non-terminal trips may change price, seats or status; notes "
        "stay editable. Status changes follow draft -> published -> "
        "completed, with canceled reachable from draft and published."
    ),
)
@limiter.limit(settings.rate_limit)
async def update_trip(
    request: Request,
    trip_id: int,
    body: TripOfferUpdateRequest,
    driver_id: int = Depends(get_current_user_id),
    service: TripOfferService = Depends(get_trip_service),
):
    trip = await service.update(
        trip_id,
        driver_id,
        TripOfferChanges(
            price_per_seat=body.price_per_seat,
            total_seats=body.total_seats,
            notes=body.notes,
            status=body.status,
        ),
    )
    return TripOfferResponse.from_domain(trip)


@router.post(
    "/{trip_id}/cancel",
    response_model=TripOfferResponse,
    summary="Cancel a trip offer",
    responses={409: {"description": "already_canceled / cannot_cancel_completed"}},
)
@limiter.limit(settings.rate_limit)
async def cancel_trip(
    request: Request,
    trip_id: int,
    driver_id: int = Depends(get_current_user_id),
    service: TripOfferService = Depends(get_trip_service),
):
    return TripOfferResponse.from_domain(await service.cancel(trip_id, driver_id))


@router.get(
    "/{trip_id}/seats",
    response_model=SeatAvailabilityResponse,
    summary="Seat availability from the ledger",
)
@limiter.limit(settings.rate_limit)
async def get_trip_seats(
    request: Request,
    trip_id: int,
    service: TripOfferService = Depends(get_trip_service),
):
    trip = await service.get(trip_id)
    ledger = await service.ledgers.get_by_trip(trip_id)
    allocated = ledger.allocated_seats if ledger else 0
    return SeatAvailabilityResponse(
        trip_id=trip_id,
        total_seats=trip.total_seats,
        allocated_seats=allocated,
        remaining_seats=max(0, trip.total_seats - allocated),
    )


@router.get(
    "/{trip_id}/bookings",
    response_model=list[BookingResponse],
    summary="List booking requests for the caller's trip",
)
@limiter.limit(settings.rate_limit)
async def list_trip_bookings(
    request: Request,
    trip_id: int,
    status: Optional[list[BookingStatus]] = Query(None),
    driver_id: int = Depends(get_current_user_id),
    service: BookingRequestService = Depends(get_booking_service),
):
    bookings = await service.list_for_trip(trip_id, driver_id, status)
    return [BookingResponse.model_validate(b) for b in bookings]
