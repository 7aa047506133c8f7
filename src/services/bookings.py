"""
Booking request service
=======================

Create / accept / decline / cancel flows for a passenger's seat request.

Capacity enforcement
--------------------
There are two capacity checks and only one of them is a guard:

* **create** sums the seats of active requests and only *logs* when the
  trip looks oversubscribed.  It exists for UX and must never be relied on.
* **accept** calls ``SeatLedgerRepository.allocate``, a single conditional
  increment executed by the store.  This is the invariant
  ``allocated_seats <= total_seats``; concurrent accepts for the last seat
  are serialised by the store and exactly the ones that fit succeed.
  The trip row is locked first, so a seat shrink or cancel on the trip
  waits for the accept to commit.

Each command runs in one transaction: the ledger increment and the
``pending -> accepted`` write commit together or not at all.

Idempotency
-----------
* ``decline`` on an already-declined booking returns it unchanged.
* ``cancel`` on an already-canceled booking returns it unchanged, without
  writing.  If the booking was accepted after it was read, the cancel is
  retried once from ``accepted`` and the seats go back to the ledger.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.domain.entities import BookingRequest, TripOffer, utcnow
from src.domain.enums import BookingStatus, TripStatus
from src.domain.errors import (
    CapacityExceeded,
    ConflictError,
    ForbiddenError,
    NotFoundError,
)
from src.infrastructure.database import transaction
from src.infrastructure.repositories import (
    BookingRequestRepository,
    SeatLedgerRepository,
    TripOfferRepository,
)

logger = logging.getLogger(__name__)


class BookingRequestService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.bookings = BookingRequestRepository(session)
        self.trips = TripOfferRepository(session)
        self.ledgers = SeatLedgerRepository(session)

    # ── Queries ───────────────────────────────────────────────────────

    async def get(self, booking_id: int) -> BookingRequest:
        booking = await self.bookings.find_by_id(booking_id)
        if booking is None:
            raise NotFoundError("Booking request not found", "booking_not_found")
        return booking

    async def get_for_user(self, booking_id: int, user_id: int) -> BookingRequest:
        """Visible to the requesting passenger and to the trip's driver."""
        booking = await self.get(booking_id)
        if booking.belongs_to(user_id):
            return booking
        trip = await self._trip(booking.trip_id)
        if trip.driver_id != user_id:
            raise ForbiddenError(
                "You do not own this booking request", "ownership_violation"
            )
        return booking

    async def list_for_passenger(
        self, passenger_id: int, status: Any = None
    ) -> list[BookingRequest]:
        return await self.bookings.find_by_passenger(passenger_id, status)

    async def list_for_trip(
        self, trip_id: int, driver_id: int, status: Any = None
    ) -> list[BookingRequest]:
        trip = await self._trip(trip_id)
        if trip.driver_id != driver_id:
            raise ForbiddenError("You do not own this trip offer", "ownership_violation")
        return await self.bookings.find_by_trip(trip_id, status)

    # ── Commands ──────────────────────────────────────────────────────

    async def create(
        self, passenger_id: int, trip_id: int, seats: int = 1, note: str = ""
    ) -> BookingRequest:
        # entity validation (seats >= 1, note length) before touching the store
        draft = BookingRequest(
            trip_id=trip_id, passenger_id=passenger_id, seats=seats, note=note or ""
        )

        async with transaction(self.session):
            trip = await self._trip(trip_id)
            if trip.status != TripStatus.PUBLISHED:
                raise ConflictError(
                    "Cannot request booking for trip that is not published",
                    "invalid_trip_state",
                )
            if not trip.is_departure_in_future():
                raise ConflictError(
                    "Cannot request booking for trip with past departure time",
                    "invalid_trip_state",
                )

            existing = await self.bookings.find_active_booking(passenger_id, trip_id)
            if existing is not None:
                raise ConflictError(
                    "You already have an active booking request for this trip",
                    "duplicate_request",
                    {"booking_id": existing.id},
                )

            # Advisory only: the ledger enforces capacity at accept time.
            active_seats = await self.bookings.sum_active_seats(trip_id)
            if active_seats + seats > trip.total_seats:
                logger.warning(
                    "Booking may exceed capacity (advisory): trip=%s total=%d "
                    "active=%d requested=%d",
                    trip_id,
                    trip.total_seats,
                    active_seats,
                    seats,
                )

            try:
                booking = await self.bookings.create(draft)
            except IntegrityError as exc:
                # unique active-request index lost a race with a twin request
                raise ConflictError(
                    "You already have an active booking request for this trip",
                    "duplicate_request",
                ) from exc

        logger.info(
            "Booking request created: booking=%s passenger=%s trip=%s seats=%d",
            booking.id,
            passenger_id,
            trip_id,
            seats,
        )
        return booking

    async def accept(self, booking_id: int, driver_id: int) -> BookingRequest:
        async with transaction(self.session):
            booking = await self.get(booking_id)
            # row lock: status and total_seats hold until commit
            trip = await self._trip(booking.trip_id, for_update=True)
            if trip.driver_id != driver_id:
                raise ForbiddenError("You do not own this trip offer", "ownership_violation")

            now = utcnow()
            booking.accept(driver_id, now)  # raises unless pending

            if trip.status != TripStatus.PUBLISHED or not trip.is_departure_in_future(now):
                raise ConflictError(
                    "Trip is no longer open for bookings", "invalid_trip_state"
                )

            ledger = await self.ledgers.allocate(trip.id, booking.seats)
            if ledger is None:
                remaining = await self.ledgers.remaining_seats(trip.id, trip.total_seats)
                logger.info(
                    "Seat allocation refused: booking=%s trip=%s requested=%d remaining=%d",
                    booking_id,
                    trip.id,
                    booking.seats,
                    remaining,
                )
                raise CapacityExceeded(trip.id, booking.seats, remaining)

            accepted = await self.bookings.accept(booking_id, driver_id, now)
            if accepted is None:
                # status changed under us; rolling back returns the seats
                raise ConflictError(
                    "Booking is no longer pending", "invalid_state"
                )

        logger.info(
            "Booking accepted: booking=%s trip=%s seats=%d allocated=%d/%d",
            booking_id,
            trip.id,
            booking.seats,
            ledger.allocated_seats,
            trip.total_seats,
        )
        return accepted

    async def decline(self, booking_id: int, driver_id: int) -> BookingRequest:
        async with transaction(self.session):
            booking = await self.get(booking_id)
            trip = await self._trip(booking.trip_id)
            if trip.driver_id != driver_id:
                raise ForbiddenError("You do not own this trip offer", "ownership_violation")

            if booking.status == BookingStatus.DECLINED:
                logger.info("Booking already declined (idempotent): booking=%s", booking_id)
                return booking

            now = utcnow()
            booking.decline(driver_id, now)

            declined = await self.bookings.decline(booking_id, driver_id, now)
            if declined is None:
                current = await self.get(booking_id)
                if current.status != BookingStatus.DECLINED:
                    raise ConflictError("Booking is no longer pending", "invalid_state")
                declined = current

        logger.info("Booking declined: booking=%s driver=%s", booking_id, driver_id)
        return declined

    async def cancel(self, booking_id: int, passenger_id: int) -> BookingRequest:
        async with transaction(self.session):
            booking = await self.get(booking_id)
            if not booking.belongs_to(passenger_id):
                raise ForbiddenError(
                    "You do not own this booking request", "ownership_violation"
                )

            if booking.is_canceled_by_passenger():
                logger.info("Booking already canceled (idempotent): booking=%s", booking_id)
                return booking

            trip = await self._trip(booking.trip_id)
            now = utcnow()
            canceled = None
            # a second pass picks up a status that changed under us,
            # e.g. an accept that committed after our read
            for _ in range(2):
                previous = booking.status
                held_seats = booking.holds_seats()
                if not booking.cancel_by_passenger(now):  # raises unless cancelable
                    logger.info(
                        "Booking already canceled (idempotent): booking=%s", booking_id
                    )
                    return booking
                refund_needed = booking.is_refund_eligible(
                    trip.departure_at, timedelta(hours=settings.refund_window_hours), now
                )
                canceled = await self.bookings.cancel(
                    booking_id, previous, now, refund_needed
                )
                if canceled is not None:
                    break
                booking = await self.get(booking_id)
            if canceled is None:
                raise ConflictError("Booking was modified concurrently", "invalid_state")

            if held_seats:
                await self._release_seats(trip, booking)

        logger.info(
            "Booking canceled: booking=%s passenger=%s previous=%s refund_needed=%s",
            booking_id,
            passenger_id,
            previous.value,
            refund_needed,
        )
        return canceled

    # ── Helpers ───────────────────────────────────────────────────────

    async def _trip(self, trip_id: int, for_update: bool = False) -> TripOffer:
        trip = await self.trips.find_by_id(trip_id, for_update=for_update)
        if trip is None:
            raise NotFoundError("Trip offer not found", "trip_not_found")
        return trip

    async def _release_seats(self, trip: TripOffer, booking: BookingRequest) -> None:
        ledger = await self.ledgers.release(trip.id, booking.seats)
        if ledger is None:
            logger.error(
                "Seat ledger underflow on release: trip=%s booking=%s seats=%d",
                trip.id,
                booking.id,
                booking.seats,
            )
            return
        logger.info(
            "Seats released: trip=%s seats=%d allocated=%d/%d",
            trip.id,
            booking.seats,
            ledger.allocated_seats,
            trip.total_seats,
        )
