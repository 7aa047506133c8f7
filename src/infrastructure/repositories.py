"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives an ``AsyncSession`` (unit-of-work), exposes
domain-relevant queries only and returns plain domain entities, never ORM
rows.  Every status change is a single conditional ``UPDATE`` whose
``WHERE`` clause re-checks the expected current status, so a concurrent
writer can never be silently overwritten.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Optional

from sqlalchemy import and_, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from .models import (
    BookingRequestModel,
    RatingAggregateModel,
    ReviewModel,
    SeatLedgerModel,
    TripOfferModel,
    UserModel,
    VehicleModel,
)
from src.domain.entities import (
    BookingRequest,
    Location,
    Place,
    RatingAggregate,
    Review,
    SeatLedger,
    TripOffer,
    User,
    Vehicle,
    utcnow,
)
from src.domain.enums import (
    ACTIVE_BOOKING_STATUSES,
    BookingStatus,
    ReviewStatus,
    TripStatus,
)


def _insert_for(session: AsyncSession):
    """Dialect-specific INSERT supporting ``ON CONFLICT``."""
    if session.get_bind().dialect.name == "postgresql":
        return pg_insert
    return sqlite_insert


def _status_filter(column, status: Any):
    if status is None:
        return None
    if isinstance(status, (list, tuple, set, frozenset)):
        return column.in_(list(status))
    return column == status


# ── Mapping ───────────────────────────────────────────────────────────


def _to_trip(row: TripOfferModel) -> TripOffer:
    return TripOffer(
        id=row.id,
        driver_id=row.driver_id,
        vehicle_id=row.vehicle_id,
        origin=Place(row.origin_text, Location(row.origin_lat, row.origin_lng)),
        destination=Place(
            row.destination_text, Location(row.destination_lat, row.destination_lng)
        ),
        departure_at=row.departure_at,
        estimated_arrival_at=row.estimated_arrival_at,
        price_per_seat=row.price_per_seat,
        total_seats=row.total_seats,
        status=TripStatus(row.status),
        notes=row.notes or "",
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _to_booking(row: BookingRequestModel) -> BookingRequest:
    return BookingRequest(
        id=row.id,
        trip_id=row.trip_id,
        passenger_id=row.passenger_id,
        status=BookingStatus(row.status),
        seats=row.seats,
        note=row.note or "",
        accepted_at=row.accepted_at,
        accepted_by=row.accepted_by,
        declined_at=row.declined_at,
        declined_by=row.declined_by,
        canceled_at=row.canceled_at,
        paid_at=row.paid_at,
        refund_needed=bool(row.refund_needed),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _to_review(row: ReviewModel) -> Review:
    return Review(
        id=row.id,
        trip_id=row.trip_id,
        driver_id=row.driver_id,
        passenger_id=row.passenger_id,
        rating=row.rating,
        text=row.text or "",
        status=ReviewStatus(row.status),
        created_at=row.created_at,
    )


def _to_aggregate(row: RatingAggregateModel) -> RatingAggregate:
    # JSON object keys come back as strings
    histogram = {int(star): int(n) for star, n in (row.histogram or {}).items()}
    for star in range(1, 6):
        histogram.setdefault(star, 0)
    return RatingAggregate(
        driver_id=row.driver_id,
        avg_rating=row.avg_rating,
        count=row.count,
        histogram=histogram,
        updated_at=row.updated_at,
    )


# ── Read-only collaborators ───────────────────────────────────────────


class UserRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, user_id: int) -> Optional[User]:
        row = await self.session.get(UserModel, user_id)
        if row is None:
            return None
        return User(id=row.id, name=row.name, email=row.email, role=row.role)


class VehicleRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, vehicle_id: int) -> Optional[Vehicle]:
        row = await self.session.get(VehicleModel, vehicle_id)
        if row is None:
            return None
        return Vehicle(
            id=row.id, owner_id=row.owner_id, plate=row.plate, capacity=row.capacity
        )


# ── Trip offers ───────────────────────────────────────────────────────


class TripOfferRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, trip: TripOffer) -> TripOffer:
        row = TripOfferModel(
            driver_id=trip.driver_id,
            vehicle_id=trip.vehicle_id,
            origin_text=trip.origin.text,
            origin_lat=trip.origin.geo.latitude,
            origin_lng=trip.origin.geo.longitude,
            destination_text=trip.destination.text,
            destination_lat=trip.destination.geo.latitude,
            destination_lng=trip.destination.geo.longitude,
            departure_at=trip.departure_at,
            estimated_arrival_at=trip.estimated_arrival_at,
            price_per_seat=trip.price_per_seat,
            total_seats=trip.total_seats,
            status=trip.status,
            notes=trip.notes,
        )
        self.session.add(row)
        await self.session.flush()
        return _to_trip(row)

    async def find_by_id(
        self, trip_id: int, for_update: bool = False
    ) -> Optional[TripOffer]:
        """Load a trip; ``for_update`` takes SELECT ... FOR UPDATE on the row.

        Seat accepts and seat/status edits lock the trip first so the
        ``total_seats`` and status they check cannot change before commit.
        """
        if not for_update:
            row = await self.session.get(TripOfferModel, trip_id, populate_existing=True)
            return _to_trip(row) if row else None
        result = await self.session.execute(
            select(TripOfferModel)
            .where(TripOfferModel.id == trip_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        row = result.scalars().first()
        return _to_trip(row) if row else None

    async def find_by_driver_id(
        self, driver_id: int, status: Any = None
    ) -> list[TripOffer]:
        query = select(TripOfferModel).where(TripOfferModel.driver_id == driver_id)
        condition = _status_filter(TripOfferModel.status, status)
        if condition is not None:
            query = query.where(condition)
        result = await self.session.execute(
            query.order_by(TripOfferModel.departure_at)
        )
        return [_to_trip(r) for r in result.scalars().all()]

    async def find_upcoming_by_driver(
        self, driver_id: int, now: Optional[datetime] = None
    ) -> list[TripOffer]:
        result = await self.session.execute(
            select(TripOfferModel)
            .where(
                TripOfferModel.driver_id == driver_id,
                TripOfferModel.status == TripStatus.PUBLISHED,
                TripOfferModel.departure_at > (now or utcnow()),
            )
            .order_by(TripOfferModel.departure_at)
        )
        return [_to_trip(r) for r in result.scalars().all()]

    async def find_overlapping(
        self,
        driver_id: int,
        departure_at: datetime,
        estimated_arrival_at: datetime,
        exclude_trip_id: Optional[int] = None,
    ) -> list[TripOffer]:
        """Published trips of *driver_id* intersecting [departure, arrival)."""
        query = select(TripOfferModel).where(
            TripOfferModel.driver_id == driver_id,
            TripOfferModel.status == TripStatus.PUBLISHED,
            TripOfferModel.departure_at < estimated_arrival_at,
            TripOfferModel.estimated_arrival_at > departure_at,
        )
        if exclude_trip_id is not None:
            query = query.where(TripOfferModel.id != exclude_trip_id)
        result = await self.session.execute(query)
        return [_to_trip(r) for r in result.scalars().all()]

    async def update(
        self,
        trip_id: int,
        changes: dict[str, Any],
        expected_status: TripStatus,
    ) -> Optional[TripOffer]:
        """Apply *changes* only if the trip is still in *expected_status*."""
        result = await self.session.execute(
            update(TripOfferModel)
            .where(
                TripOfferModel.id == trip_id,
                TripOfferModel.status == expected_status,
            )
            .values(**changes, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return None
        return await self.find_by_id(trip_id)

    async def cancel(self, trip_id: int) -> Optional[TripOffer]:
        result = await self.session.execute(
            update(TripOfferModel)
            .where(
                TripOfferModel.id == trip_id,
                TripOfferModel.status.in_([TripStatus.DRAFT, TripStatus.PUBLISHED]),
            )
            .values(status=TripStatus.CANCELED, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return None
        return await self.find_by_id(trip_id)

    async def complete_finished(self, now: datetime) -> int:
        """Published trips whose estimated arrival has passed -> completed."""
        result = await self.session.execute(
            update(TripOfferModel)
            .where(
                TripOfferModel.status == TripStatus.PUBLISHED,
                TripOfferModel.estimated_arrival_at <= now,
            )
            .values(status=TripStatus.COMPLETED, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0


# ── Booking requests ──────────────────────────────────────────────────


class BookingRequestRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, booking: BookingRequest) -> BookingRequest:
        row = BookingRequestModel(
            trip_id=booking.trip_id,
            passenger_id=booking.passenger_id,
            status=booking.status,
            seats=booking.seats,
            note=booking.note,
        )
        if booking.created_at is not None:
            row.created_at = booking.created_at
        self.session.add(row)
        await self.session.flush()
        return _to_booking(row)

    async def find_by_id(self, booking_id: int) -> Optional[BookingRequest]:
        row = await self.session.get(
            BookingRequestModel, booking_id, populate_existing=True
        )
        return _to_booking(row) if row else None

    async def find_active_booking(
        self, passenger_id: int, trip_id: int
    ) -> Optional[BookingRequest]:
        result = await self.session.execute(
            select(BookingRequestModel).where(
                BookingRequestModel.passenger_id == passenger_id,
                BookingRequestModel.trip_id == trip_id,
                BookingRequestModel.status.in_(list(ACTIVE_BOOKING_STATUSES)),
            )
        )
        row = result.scalars().first()
        return _to_booking(row) if row else None

    async def find_by_trip(self, trip_id: int, status: Any = None) -> list[BookingRequest]:
        query = select(BookingRequestModel).where(BookingRequestModel.trip_id == trip_id)
        condition = _status_filter(BookingRequestModel.status, status)
        if condition is not None:
            query = query.where(condition)
        result = await self.session.execute(query.order_by(BookingRequestModel.created_at))
        return [_to_booking(r) for r in result.scalars().all()]

    async def find_by_passenger(
        self, passenger_id: int, status: Any = None
    ) -> list[BookingRequest]:
        query = select(BookingRequestModel).where(
            BookingRequestModel.passenger_id == passenger_id
        )
        condition = _status_filter(BookingRequestModel.status, status)
        if condition is not None:
            query = query.where(condition)
        result = await self.session.execute(
            query.order_by(BookingRequestModel.created_at.desc())
        )
        return [_to_booking(r) for r in result.scalars().all()]

    async def sum_active_seats(self, trip_id: int) -> int:
        result = await self.session.execute(
            select(func.coalesce(func.sum(BookingRequestModel.seats), 0)).where(
                BookingRequestModel.trip_id == trip_id,
                BookingRequestModel.status.in_(list(ACTIVE_BOOKING_STATUSES)),
            )
        )
        return int(result.scalar() or 0)

    async def _transition(
        self,
        booking_id: int,
        expected: Iterable[BookingStatus],
        values: dict[str, Any],
    ) -> Optional[BookingRequest]:
        result = await self.session.execute(
            update(BookingRequestModel)
            .where(
                BookingRequestModel.id == booking_id,
                BookingRequestModel.status.in_(list(expected)),
            )
            .values(**values, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return None
        return await self.find_by_id(booking_id)

    async def accept(
        self, booking_id: int, driver_id: int, now: datetime
    ) -> Optional[BookingRequest]:
        return await self._transition(
            booking_id,
            [BookingStatus.PENDING],
            {
                "status": BookingStatus.ACCEPTED,
                "accepted_at": now,
                "accepted_by": driver_id,
            },
        )

    async def decline(
        self, booking_id: int, driver_id: int, now: datetime
    ) -> Optional[BookingRequest]:
        return await self._transition(
            booking_id,
            [BookingStatus.PENDING],
            {
                "status": BookingStatus.DECLINED,
                "declined_at": now,
                "declined_by": driver_id,
            },
        )

    async def cancel(
        self,
        booking_id: int,
        expected: BookingStatus,
        now: datetime,
        refund_needed: bool = False,
    ) -> Optional[BookingRequest]:
        return await self._transition(
            booking_id,
            [expected],
            {
                "status": BookingStatus.CANCELED_BY_PASSENGER,
                "canceled_at": now,
                "refund_needed": refund_needed,
            },
        )

    async def expire_stale(self, created_before: datetime) -> int:
        result = await self.session.execute(
            update(BookingRequestModel)
            .where(
                BookingRequestModel.status == BookingStatus.PENDING,
                BookingRequestModel.created_at <= created_before,
            )
            .values(status=BookingStatus.EXPIRED, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0


# ── Seat ledger ───────────────────────────────────────────────────────


class SeatLedgerRepository:
    """Per-trip allocated-seat counter.

    ``allocate`` and ``release`` are single conditional UPDATEs; the store
    serialises concurrent writers on the ledger row, so
    ``allocated_seats <= total_seats`` holds without any application lock.
    Capacity is read from the trip row inside the UPDATE itself, never from
    a value the caller loaded earlier.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _ensure(self, trip_id: int) -> None:
        insert = _insert_for(self.session)
        await self.session.execute(
            insert(SeatLedgerModel)
            .values(trip_id=trip_id, allocated_seats=0, updated_at=utcnow())
            .on_conflict_do_nothing(index_elements=["trip_id"])
        )

    async def allocate(self, trip_id: int, seats: int = 1) -> Optional[SeatLedger]:
        """Add *seats* iff the result stays within the trip's ``total_seats``.

        Returns the new ledger state, or ``None`` when capacity would be
        exceeded (in which case nothing was written).
        """
        await self._ensure(trip_id)
        capacity = (
            select(TripOfferModel.total_seats)
            .where(TripOfferModel.id == trip_id)
            .scalar_subquery()
        )
        result = await self.session.execute(
            update(SeatLedgerModel)
            .where(
                SeatLedgerModel.trip_id == trip_id,
                SeatLedgerModel.allocated_seats + seats <= capacity,
            )
            .values(
                allocated_seats=SeatLedgerModel.allocated_seats + seats,
                updated_at=utcnow(),
            )
            .returning(SeatLedgerModel.allocated_seats, SeatLedgerModel.updated_at)
            .execution_options(synchronize_session=False)
        )
        row = result.one_or_none()
        if row is None:
            return None
        return SeatLedger(trip_id=trip_id, allocated_seats=row[0], updated_at=row[1])

    async def release(self, trip_id: int, seats: int = 1) -> Optional[SeatLedger]:
        """Give back *seats*; never drives the counter below zero."""
        result = await self.session.execute(
            update(SeatLedgerModel)
            .where(
                and_(
                    SeatLedgerModel.trip_id == trip_id,
                    SeatLedgerModel.allocated_seats >= seats,
                )
            )
            .values(
                allocated_seats=SeatLedgerModel.allocated_seats - seats,
                updated_at=utcnow(),
            )
            .returning(SeatLedgerModel.allocated_seats, SeatLedgerModel.updated_at)
            .execution_options(synchronize_session=False)
        )
        row = result.one_or_none()
        if row is None:
            return None
        return SeatLedger(trip_id=trip_id, allocated_seats=row[0], updated_at=row[1])

    async def get_by_trip(self, trip_id: int) -> Optional[SeatLedger]:
        result = await self.session.execute(
            select(SeatLedgerModel.allocated_seats, SeatLedgerModel.updated_at).where(
                SeatLedgerModel.trip_id == trip_id
            )
        )
        row = result.one_or_none()
        if row is None:
            return None
        return SeatLedger(trip_id=trip_id, allocated_seats=row[0], updated_at=row[1])

    async def get_or_create(self, trip_id: int) -> SeatLedger:
        """Return the ledger, inserting an empty one if the trip has none."""
        stmt = _insert_for(self.session)(SeatLedgerModel).values(
            trip_id=trip_id, allocated_seats=0, updated_at=utcnow()
        )
        # no-op update so RETURNING yields the existing row on conflict
        stmt = stmt.on_conflict_do_update(
            index_elements=["trip_id"], set_={"trip_id": stmt.excluded.trip_id}
        ).returning(SeatLedgerModel.allocated_seats, SeatLedgerModel.updated_at)
        row = (await self.session.execute(stmt)).one()
        return SeatLedger(trip_id=trip_id, allocated_seats=row[0], updated_at=row[1])

    async def remaining_seats(self, trip_id: int, total_seats: int) -> int:
        ledger = await self.get_by_trip(trip_id)
        if ledger is None:
            return total_seats
        return ledger.remaining(total_seats)


# ── Reviews & rating aggregates ───────────────────────────────────────


class ReviewRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, review: Review) -> Review:
        row = ReviewModel(
            trip_id=review.trip_id,
            driver_id=review.driver_id,
            passenger_id=review.passenger_id,
            rating=review.rating,
            text=review.text,
            status=review.status,
        )
        if review.created_at is not None:
            row.created_at = review.created_at
        self.session.add(row)
        await self.session.flush()
        return _to_review(row)

    async def find_by_id(self, review_id: int) -> Optional[Review]:
        row = await self.session.get(ReviewModel, review_id, populate_existing=True)
        return _to_review(row) if row else None

    async def find_for_trip_and_passenger(
        self, trip_id: int, passenger_id: int
    ) -> Optional[Review]:
        result = await self.session.execute(
            select(ReviewModel).where(
                ReviewModel.trip_id == trip_id,
                ReviewModel.passenger_id == passenger_id,
            )
        )
        row = result.scalars().first()
        return _to_review(row) if row else None

    async def find_visible_by_driver(
        self, driver_id: int, limit: int, offset: int = 0
    ) -> list[tuple[Review, str]]:
        """Newest first, each paired with its author's name."""
        result = await self.session.execute(
            select(ReviewModel, UserModel.name)
            .join(UserModel, UserModel.id == ReviewModel.passenger_id)
            .where(
                ReviewModel.driver_id == driver_id,
                ReviewModel.status == ReviewStatus.VISIBLE,
            )
            .order_by(ReviewModel.created_at.desc(), ReviewModel.id.desc())
            .limit(limit)
            .offset(offset)
        )
        return [(_to_review(row), name) for row, name in result.all()]

    async def count_visible_by_driver(self, driver_id: int) -> int:
        result = await self.session.execute(
            select(func.count(ReviewModel.id)).where(
                ReviewModel.driver_id == driver_id,
                ReviewModel.status == ReviewStatus.VISIBLE,
            )
        )
        return int(result.scalar_one())

    async def hide(self, review_id: int) -> bool:
        result = await self.session.execute(
            update(ReviewModel)
            .where(
                ReviewModel.id == review_id,
                ReviewModel.status == ReviewStatus.VISIBLE,
            )
            .values(status=ReviewStatus.HIDDEN)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def visible_ratings_for_driver(self, driver_id: int) -> list[int]:
        result = await self.session.execute(
            select(ReviewModel.rating).where(
                ReviewModel.driver_id == driver_id,
                ReviewModel.status == ReviewStatus.VISIBLE,
            )
        )
        return [int(r) for r in result.scalars().all()]


class RatingAggregateRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, driver_id: int) -> Optional[RatingAggregate]:
        row = await self.session.get(
            RatingAggregateModel, driver_id, populate_existing=True
        )
        return _to_aggregate(row) if row else None

    async def save(self, aggregate: RatingAggregate) -> RatingAggregate:
        """Upsert the aggregate row for ``aggregate.driver_id``."""
        now = utcnow()
        values = {
            "avg_rating": aggregate.avg_rating,
            "count": aggregate.count,
            "histogram": {str(k): v for k, v in aggregate.histogram.items()},
            "updated_at": now,
        }
        insert = _insert_for(self.session)
        await self.session.execute(
            insert(RatingAggregateModel)
            .values(driver_id=aggregate.driver_id, **values)
            .on_conflict_do_update(index_elements=["driver_id"], set_=values)
        )
        aggregate.updated_at = now
        return aggregate

    async def recompute(self, driver_id: int) -> RatingAggregate:
        """Rebuild from visible reviews; runs in the caller's transaction."""
        ratings = await ReviewRepository(self.session).visible_ratings_for_driver(driver_id)
        return await self.save(RatingAggregate.from_ratings(driver_id, ratings))
