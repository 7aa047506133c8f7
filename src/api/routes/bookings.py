"""
Booking request endpoints
=========================

POST /api/v1/bookings                         -- request seats (passenger)
GET  /api/v1/bookings                         -- caller's requests
GET  /api/v1/bookings/{booking_id}            -- one request (passenger or driver)
POST /api/v1/bookings/{booking_id}/accept     -- driver accepts; allocates seats
POST /api/v1/bookings/{booking_id}/decline    -- driver declines (idempotent)
POST /api/v1/bookings/{booking_id}/cancel     -- passenger cancels (idempotent)
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from src.api.dependencies import get_booking_service, get_current_user_id
from src.api.middleware import limiter
from src.api.schemas import ERROR_RESPONSES, BookingCreateRequest, BookingResponse
from src.config import settings
from src.domain.enums import BookingStatus
from src.services.bookings import BookingRequestService

router = APIRouter(prefix="/bookings", tags=["bookings"], responses=ERROR_RESPONSES)


@router.post(
    "",
    status_code=201,
    response_model=BookingResponse,
    summary="Request seats on a published trip",
)
@limiter.limit(settings.rate_limit)
async def create_booking(
    request: Request,
    body: BookingCreateRequest,
    passenger_id: int = Depends(get_current_user_id),
    service: BookingRequestService = Depends(get_booking_service),
):
    booking = await service.create(passenger_id, body.trip_id, body.seats, body.note)
    return BookingResponse.model_validate(booking)


@router.get(
    "",
    response_model=list[BookingResponse],
    summary="List the caller's booking requests",
)
@limiter.limit(settings.rate_limit)
async def list_my_bookings(
    request: Request,
    status: Optional[list[BookingStatus]] = Query(None),
    passenger_id: int = Depends(get_current_user_id),
    service: BookingRequestService = Depends(get_booking_service),
):
    bookings = await service.list_for_passenger(passenger_id, status)
    return [BookingResponse.model_validate(b) for b in bookings]


@router.get(
    "/{booking_id}",
    response_model=BookingResponse,
    summary="Get a booking request",
)
@limiter.limit(settings.rate_limit)
async def get_booking(
    request: Request,
    booking_id: int,
    user_id: int = Depends(get_current_user_id),
    service: BookingRequestService = Depends(get_booking_service),
):
    return BookingResponse.model_validate(await service.get_for_user(booking_id, user_id))


@router.post(
    "/{booking_id}/accept",
    response_model=BookingResponse,
    summary="Accept a pending booking request",
    description=(
        "Atomically allocates the requested seats on the trip's seat ledger. "
        "Fails with 409 capacity_exceeded when they do not fit; the request "
        "then stays pending. Do not retry automatically."
    ),
)
@limiter.limit(settings.rate_limit)
async def accept_booking(
    request: Request,
    booking_id: int,
    driver_id: int = Depends(get_current_user_id),
    service: BookingRequestService = Depends(get_booking_service),
):
    return BookingResponse.model_validate(await service.accept(booking_id, driver_id))


@router.post(
    "/{booking_id}/decline",
    response_model=BookingResponse,
    summary="Decline a pending booking request",
)
@limiter.limit(settings.rate_limit)
async def decline_booking(
    request: Request,
    booking_id: int,
    driver_id: int = Depends(get_current_user_id),
    service: BookingRequestService = Depends(get_booking_service),
):
    return BookingResponse.model_validate(await service.decline(booking_id, driver_id))


@router.post(
    "/{booking_id}/cancel",
    response_model=BookingResponse,
    summary="Cancel the caller's booking request",
    description="Pending or accepted requests can be canceled; accepted seats are released.",
)
@limiter.limit(settings.rate_limit)
async def cancel_booking(
    request: Request,
    booking_id: int,
    passenger_id: int = Depends(get_current_user_id),
    service: BookingRequestService = Depends(get_booking_service),
):
    return BookingResponse.model_validate(await service.cancel(booking_id, passenger_id))
