"""
Domain entities with business logic.

Patterns used
-------------
- **State Pattern** on ``TripOffer`` and ``BookingRequest``: every status
  change goes through ``transition_to`` which checks the transition table
  in ``enums``.
- Entities reference each other by id only (``BookingRequest.trip_id``);
  relations are resolved through repository lookups.
- ``RatingAggregate.from_ratings`` is the single place the average and
  histogram are computed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from .enums import (
    ACTIVE_BOOKING_STATUSES,
    BOOKING_TRANSITIONS,
    TRIP_TRANSITIONS,
    BookingStatus,
    ReviewStatus,
    TripStatus,
    UserRole,
)
from .errors import InvalidStateTransition, ValidationError

NOTE_MAX_LENGTH = 300


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ── Value Objects ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class Location:
    latitude: float
    longitude: float


@dataclass(frozen=True)
class Place:
    text: str
    geo: Location


# ── Read-only collaborators ───────────────────────────────────────────


@dataclass
class User:
    id: Optional[int] = None
    name: str = ""
    email: str = ""
    role: UserRole = UserRole.PASSENGER


@dataclass
class Vehicle:
    id: Optional[int] = None
    owner_id: int = 0
    plate: str = ""
    capacity: int = 4


# ── Entities ──────────────────────────────────────────────────────────


@dataclass
class TripOffer:
    id: Optional[int] = None
    driver_id: int = 0
    vehicle_id: int = 0
    origin: Place = field(default_factory=lambda: Place("", Location(0, 0)))
    destination: Place = field(default_factory=lambda: Place("", Location(0, 0)))
    departure_at: datetime = field(default_factory=utcnow)
    estimated_arrival_at: datetime = field(default_factory=utcnow)
    price_per_seat: float = 0.0
    total_seats: int = 1
    status: TripStatus = TripStatus.PUBLISHED
    notes: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        self.departure_at = as_utc(self.departure_at)
        self.estimated_arrival_at = as_utc(self.estimated_arrival_at)

    def validate_timing(self) -> None:
        if self.departure_at >= self.estimated_arrival_at:
            raise ValidationError(
                "estimatedArrivalAt must be after departureAt", "invalid_time_range"
            )

    def is_departure_in_future(self, now: Optional[datetime] = None) -> bool:
        return self.departure_at > (now or utcnow())

    def is_terminal(self) -> bool:
        return not TRIP_TRANSITIONS[self.status]

    def can_transition_to(self, new_status: TripStatus) -> bool:
        return new_status in TRIP_TRANSITIONS.get(self.status, set())

    def transition_to(self, new_status: TripStatus) -> None:
        """Move to *new_status* if the transition is legal, else raise."""
        if not self.can_transition_to(new_status):
            raise InvalidStateTransition(self.status, new_status)
        self.status = new_status

    def overlaps_with(self, other: "TripOffer") -> bool:
        """Half-open interval test on [departure_at, estimated_arrival_at)."""
        return (
            self.departure_at < other.estimated_arrival_at
            and self.estimated_arrival_at > other.departure_at
        )


@dataclass
class BookingRequest:
    id: Optional[int] = None
    trip_id: int = 0
    passenger_id: int = 0
    status: BookingStatus = BookingStatus.PENDING
    seats: int = 1
    note: str = ""
    accepted_at: Optional[datetime] = None
    accepted_by: Optional[int] = None
    declined_at: Optional[datetime] = None
    declined_by: Optional[int] = None
    canceled_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    refund_needed: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        if isinstance(self.seats, bool) or not isinstance(self.seats, int) or self.seats < 1:
            raise ValidationError("Seats must be a positive integer", "invalid_seats")
        if self.note and len(self.note) > NOTE_MAX_LENGTH:
            raise ValidationError(
                f"Note cannot exceed {NOTE_MAX_LENGTH} characters", "note_too_long"
            )

    def is_active(self) -> bool:
        return self.status in ACTIVE_BOOKING_STATUSES

    def is_pending(self) -> bool:
        return self.status == BookingStatus.PENDING

    def is_canceled_by_passenger(self) -> bool:
        return self.status == BookingStatus.CANCELED_BY_PASSENGER

    def belongs_to(self, passenger_id: int) -> bool:
        return self.passenger_id == passenger_id

    def holds_seats(self) -> bool:
        """Only accepted bookings have seats allocated on the ledger."""
        return self.status == BookingStatus.ACCEPTED

    def transition_to(self, new_status: BookingStatus, code: str = "invalid_state") -> None:
        allowed = BOOKING_TRANSITIONS.get(self.status, set())
        if new_status not in allowed:
            raise InvalidStateTransition(self.status, new_status, code)
        self.status = new_status

    def accept(self, driver_id: int, now: Optional[datetime] = None) -> None:
        self.transition_to(BookingStatus.ACCEPTED)
        self.accepted_at = now or utcnow()
        self.accepted_by = driver_id

    def decline(self, driver_id: int, now: Optional[datetime] = None) -> None:
        self.transition_to(BookingStatus.DECLINED)
        self.declined_at = now or utcnow()
        self.declined_by = driver_id

    def cancel_by_passenger(self, now: Optional[datetime] = None) -> bool:
        """Cancel; returns False when already canceled (idempotent no-op)."""
        if self.is_canceled_by_passenger():
            return False
        self.transition_to(
            BookingStatus.CANCELED_BY_PASSENGER, "invalid_status_for_cancel"
        )
        self.canceled_at = now or utcnow()
        return True

    def is_refund_eligible(
        self, departure_at: datetime, window: timedelta, now: Optional[datetime] = None
    ) -> bool:
        """Paid bookings canceled at least *window* before departure."""
        if self.paid_at is None:
            return False
        return departure_at - (now or utcnow()) >= window


@dataclass
class SeatLedger:
    trip_id: int
    allocated_seats: int = 0
    updated_at: Optional[datetime] = None

    def remaining(self, total_seats: int) -> int:
        return max(0, total_seats - self.allocated_seats)


@dataclass
class Review:
    id: Optional[int] = None
    trip_id: int = 0
    driver_id: int = 0
    passenger_id: int = 0
    rating: int = 5
    text: str = ""
    status: ReviewStatus = ReviewStatus.VISIBLE
    created_at: Optional[datetime] = None

    def is_visible(self) -> bool:
        return self.status == ReviewStatus.VISIBLE

    def locked_at(self, window: timedelta) -> Optional[datetime]:
        return self.created_at + window if self.created_at else None

    def is_editable(self, window: timedelta, now: Optional[datetime] = None) -> bool:
        lock = self.locked_at(window)
        return lock is not None and (now or utcnow()) <= lock


@dataclass
class RatingAggregate:
    driver_id: int
    avg_rating: float = 0.0
    count: int = 0
    histogram: dict[int, int] = field(
        default_factory=lambda: {star: 0 for star in range(1, 6)}
    )
    updated_at: Optional[datetime] = None

    @classmethod
    def from_ratings(cls, driver_id: int, ratings: Iterable[int]) -> "RatingAggregate":
        histogram = {star: 0 for star in range(1, 6)}
        total = 0
        for rating in ratings:
            histogram[rating] += 1
            total += rating
        count = sum(histogram.values())
        avg = round(total / count, 2) if count else 0.0
        return cls(driver_id=driver_id, avg_rating=avg, count=count, histogram=histogram)
