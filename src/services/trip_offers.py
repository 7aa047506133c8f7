"""
Trip offer service
==================

Create / update / cancel flows for a driver's trips.

Invariants enforced
-------------------
* The vehicle exists, belongs to the driver, and can carry ``total_seats``.
* ``departure_at < estimated_arrival_at``; published trips depart in the
  future.
* Optionally, a driver cannot publish two trips whose
  ``[departure_at, estimated_arrival_at)`` windows intersect.
* Status only moves along ``TRIP_TRANSITIONS``.  Cancel is **not**
  idempotent: a second cancel fails with ``already_canceled``.
* ``update`` and ``cancel`` lock the trip row, as booking accepts do, so a
  seat shrink or a cancel cannot interleave with a seat allocation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.domain.entities import Place, TripOffer
from src.domain.enums import TripStatus, UserRole
from src.domain.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from src.infrastructure.database import transaction
from src.infrastructure.repositories import (
    SeatLedgerRepository,
    TripOfferRepository,
    UserRepository,
    VehicleRepository,
)

logger = logging.getLogger(__name__)


@dataclass
class NewTripOffer:
    vehicle_id: int
    origin: Place
    destination: Place
    departure_at: datetime
    estimated_arrival_at: datetime
    price_per_seat: float
    total_seats: int
    status: TripStatus = TripStatus.PUBLISHED
    notes: str = ""


@dataclass
class TripOfferChanges:
    price_per_seat: Optional[float] = None
    total_seats: Optional[int] = None
    notes: Optional[str] = None
    status: Optional[TripStatus] = None

    def as_dict(self) -> dict[str, Any]:
        return {k: v for k, v in self.__dict__.items() if v is not None}

    def touches_locked_fields(self) -> bool:
        """Anything beyond ``notes`` is frozen once a trip is terminal."""
        return any(
            v is not None for v in (self.price_per_seat, self.total_seats, self.status)
        )


class TripOfferService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.trips = TripOfferRepository(session)
        self.vehicles = VehicleRepository(session)
        self.users = UserRepository(session)
        self.ledgers = SeatLedgerRepository(session)

    # ── Queries ───────────────────────────────────────────────────────

    async def get(self, trip_id: int) -> TripOffer:
        trip = await self.trips.find_by_id(trip_id)
        if trip is None:
            raise NotFoundError("Trip offer not found", "trip_not_found")
        return trip

    async def list_for_driver(self, driver_id: int, status: Any = None) -> list[TripOffer]:
        return await self.trips.find_by_driver_id(driver_id, status)

    async def list_upcoming_for_driver(self, driver_id: int) -> list[TripOffer]:
        return await self.trips.find_upcoming_by_driver(driver_id)

    # ── Commands ──────────────────────────────────────────────────────

    async def create(
        self,
        driver_id: int,
        data: NewTripOffer,
        check_overlap: Optional[bool] = None,
    ) -> TripOffer:
        if check_overlap is None:
            check_overlap = settings.check_trip_overlap

        async with transaction(self.session):
            driver = await self.users.get_by_id(driver_id)
            if driver is None:
                raise NotFoundError("Driver not found", "driver_not_found")
            if driver.role != UserRole.DRIVER:
                raise ForbiddenError("User is not a driver", "not_a_driver")

            await self._check_vehicle(driver_id, data.vehicle_id, data.total_seats)

            if data.status not in (TripStatus.DRAFT, TripStatus.PUBLISHED):
                raise ValidationError(
                    "New trips must be draft or published",
                    "invalid_status",
                    {"status": data.status.value},
                )

            trip = TripOffer(
                driver_id=driver_id,
                vehicle_id=data.vehicle_id,
                origin=data.origin,
                destination=data.destination,
                departure_at=data.departure_at,
                estimated_arrival_at=data.estimated_arrival_at,
                price_per_seat=data.price_per_seat,
                total_seats=data.total_seats,
                status=data.status,
                notes=data.notes,
            )

            if trip.status == TripStatus.PUBLISHED and not trip.is_departure_in_future():
                raise ValidationError("departureAt must be in the future", "departure_in_past")
            trip.validate_timing()

            if check_overlap and trip.status == TripStatus.PUBLISHED:
                await self._check_overlap(trip)

            created = await self.trips.create(trip)

        logger.info(
            "Trip offer created: trip=%s driver=%s status=%s departure=%s",
            created.id,
            driver_id,
            created.status.value,
            created.departure_at.isoformat(),
        )
        return created

    async def update(
        self,
        trip_id: int,
        driver_id: int,
        changes: TripOfferChanges,
        check_overlap: Optional[bool] = None,
    ) -> TripOffer:
        if check_overlap is None:
            check_overlap = settings.check_trip_overlap
        updates = changes.as_dict()
        if not updates:
            raise ValidationError("No fields to update", "no_changes")

        async with transaction(self.session):
            trip = await self._owned_trip(trip_id, driver_id, for_update=True)

            if trip.is_terminal() and changes.touches_locked_fields():
                raise ConflictError(
                    f"Cannot update {trip.status.value} trip (only notes can be updated)",
                    "invalid_status_for_update",
                )

            if changes.status is not None:
                if not trip.can_transition_to(changes.status):
                    raise ConflictError(
                        f"Invalid status transition from {trip.status.value} "
                        f"to {changes.status.value}",
                        "invalid_status_transition",
                    )
                publishing = (
                    trip.status == TripStatus.DRAFT
                    and changes.status == TripStatus.PUBLISHED
                )
                if publishing and not trip.is_departure_in_future():
                    raise ValidationError(
                        "Cannot publish trip with past departure time",
                        "departure_in_past",
                    )
                if publishing and check_overlap:
                    await self._check_overlap(trip)

            if changes.total_seats is not None:
                await self._check_vehicle(driver_id, trip.vehicle_id, changes.total_seats)
                ledger = await self.ledgers.get_by_trip(trip_id)
                if ledger is not None and changes.total_seats < ledger.allocated_seats:
                    raise ConflictError(
                        "totalSeats cannot drop below seats already allocated",
                        "invalid_state",
                        {"allocated_seats": ledger.allocated_seats},
                    )

            updated = await self.trips.update(trip_id, updates, expected_status=trip.status)
            if updated is None:
                raise ConflictError("Trip was modified concurrently", "invalid_state")

        logger.info(
            "Trip offer updated: trip=%s driver=%s fields=%s",
            trip_id,
            driver_id,
            ",".join(sorted(updates)),
        )
        return updated

    async def cancel(self, trip_id: int, driver_id: int) -> TripOffer:
        async with transaction(self.session):
            trip = await self._owned_trip(trip_id, driver_id, for_update=True)

            if trip.status == TripStatus.CANCELED:
                raise ConflictError("Trip is already canceled", "already_canceled")
            if trip.status == TripStatus.COMPLETED:
                raise ConflictError("Cannot cancel completed trip", "cannot_cancel_completed")

            canceled = await self.trips.cancel(trip_id)
            if canceled is None:
                # lost a race against another cancel or the lifecycle job
                current = await self.trips.find_by_id(trip_id)
                if current is not None and current.status == TripStatus.COMPLETED:
                    raise ConflictError(
                        "Cannot cancel completed trip", "cannot_cancel_completed"
                    )
                raise ConflictError("Trip is already canceled", "already_canceled")

        logger.info("Trip offer canceled: trip=%s driver=%s", trip_id, driver_id)
        return canceled

    # ── Helpers ───────────────────────────────────────────────────────

    async def _owned_trip(
        self, trip_id: int, driver_id: int, for_update: bool = False
    ) -> TripOffer:
        trip = await self.trips.find_by_id(trip_id, for_update=for_update)
        if trip is None:
            raise NotFoundError("Trip offer not found", "trip_not_found")
        if trip.driver_id != driver_id:
            raise ForbiddenError("You do not own this trip offer", "ownership_violation")
        return trip

    async def _check_vehicle(self, driver_id: int, vehicle_id: int, total_seats: int) -> None:
        if total_seats < 1:
            raise ValidationError("totalSeats must be at least 1", "invalid_seats")
        vehicle = await self.vehicles.get_by_id(vehicle_id)
        if vehicle is None:
            raise NotFoundError("Vehicle not found", "vehicle_not_found")
        if vehicle.owner_id != driver_id:
            raise ForbiddenError(
                "Vehicle does not belong to the driver", "vehicle_ownership_violation"
            )
        if total_seats > vehicle.capacity:
            raise ValidationError(
                f"totalSeats ({total_seats}) exceeds vehicle capacity ({vehicle.capacity})",
                "exceeds_vehicle_capacity",
                {"capacity": vehicle.capacity},
            )

    async def _check_overlap(self, trip: TripOffer) -> None:
        overlapping = await self.trips.find_overlapping(
            trip.driver_id,
            trip.departure_at,
            trip.estimated_arrival_at,
            exclude_trip_id=trip.id,
        )
        if overlapping:
            raise ConflictError(
                "You have another published trip during this time window",
                "overlapping_trip",
                {"trip_ids": [t.id for t in overlapping]},
            )
