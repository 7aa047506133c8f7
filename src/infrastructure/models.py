"""
SQLAlchemy ORM models  (maps to PostgreSQL).

Tables
------
* ``users``             -- passengers, drivers and admins
* ``vehicles``          -- driver-owned vehicles with a seat capacity
* ``trip_offers``       -- a driver's published trip
* ``booking_requests``  -- a passenger's request for seats on a trip
* ``seat_ledgers``      -- per-trip allocated-seat counter (1:1, lazy)
* ``reviews``           -- passenger reviews of a driver after a trip
* ``rating_aggregates`` -- per-driver denormalised rating summary

Indexes
-------
* **B-Tree** on ``status`` + time columns used by the lifecycle jobs, and
  on the foreign keys used by ownership / duplicate checks.
* Partial unique index on ``booking_requests (passenger_id, trip_id)``
  where the status is active backs the one-active-request rule on
  PostgreSQL.
"""

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)

from .database import Base
from .types import UTCDateTime
from src.domain.entities import utcnow
from src.domain.enums import BookingStatus, ReviewStatus, TripStatus, UserRole


def _enum(enum_cls, name: str) -> Enum:
    # persist the lowercase values ("published"), not the member names
    return Enum(
        enum_cls,
        name=name,
        values_callable=lambda members: [m.value for m in members],
        native_enum=False,
        length=32,
    )


class UserModel(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(120), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    role = Column(_enum(UserRole, "user_role"), default=UserRole.PASSENGER, nullable=False)
    created_at = Column(UTCDateTime, default=utcnow)


class VehicleModel(Base):
    __tablename__ = "vehicles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    plate = Column(String(20), nullable=False)
    capacity = Column(Integer, default=4, nullable=False)
    created_at = Column(UTCDateTime, default=utcnow)

    __table_args__ = (
        CheckConstraint("capacity > 0", name="ck_vehicles_capacity_positive"),
        Index("idx_vehicles_owner", "owner_id"),
    )


class TripOfferModel(Base):
    __tablename__ = "trip_offers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    driver_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id"), nullable=False)

    origin_text = Column(String(255), nullable=False)
    origin_lat = Column(Float, nullable=False)
    origin_lng = Column(Float, nullable=False)
    destination_text = Column(String(255), nullable=False)
    destination_lat = Column(Float, nullable=False)
    destination_lng = Column(Float, nullable=False)

    departure_at = Column(UTCDateTime, nullable=False)
    estimated_arrival_at = Column(UTCDateTime, nullable=False)
    price_per_seat = Column(Float, nullable=False)
    total_seats = Column(Integer, nullable=False)
    status = Column(
        _enum(TripStatus, "trip_status"), default=TripStatus.PUBLISHED, nullable=False
    )
    notes = Column(Text, default="", nullable=False)

    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint("total_seats > 0", name="ck_trip_offers_seats_positive"),
        Index("idx_trip_offers_driver", "driver_id", "status"),
        Index("idx_trip_offers_status_arrival", "status", "estimated_arrival_at"),
    )


class BookingRequestModel(Base):
    __tablename__ = "booking_requests"

    id = Column(Integer, primary_key=True, autoincrement=True)
    trip_id = Column(Integer, ForeignKey("trip_offers.id"), nullable=False)
    passenger_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    status = Column(
        _enum(BookingStatus, "booking_status"),
        default=BookingStatus.PENDING,
        nullable=False,
    )
    seats = Column(Integer, default=1, nullable=False)
    note = Column(String(300), default="", nullable=False)

    accepted_at = Column(UTCDateTime, nullable=True)
    accepted_by = Column(Integer, nullable=True)
    declined_at = Column(UTCDateTime, nullable=True)
    declined_by = Column(Integer, nullable=True)
    canceled_at = Column(UTCDateTime, nullable=True)
    paid_at = Column(UTCDateTime, nullable=True)
    refund_needed = Column(Boolean, default=False, nullable=False)

    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint("seats >= 1", name="ck_booking_requests_seats_positive"),
        Index("idx_booking_requests_trip", "trip_id", "status"),
        Index("idx_booking_requests_passenger", "passenger_id", "status"),
        Index("idx_booking_requests_status_created", "status", "created_at"),
        Index(
            "uq_booking_requests_active",
            "passenger_id",
            "trip_id",
            unique=True,
            postgresql_where=text("status IN ('pending', 'accepted')"),
            sqlite_where=text("status IN ('pending', 'accepted')"),
        ),
    )


class SeatLedgerModel(Base):
    __tablename__ = "seat_ledgers"

    trip_id = Column(Integer, ForeignKey("trip_offers.id"), primary_key=True)
    allocated_seats = Column(Integer, default=0, nullable=False)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint("allocated_seats >= 0", name="ck_seat_ledgers_non_negative"),
    )


class ReviewModel(Base):
    __tablename__ = "reviews"

    id = Column(Integer, primary_key=True, autoincrement=True)
    trip_id = Column(Integer, ForeignKey("trip_offers.id"), nullable=False)
    driver_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    passenger_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    rating = Column(Integer, nullable=False)
    text = Column(Text, default="", nullable=False)
    status = Column(
        _enum(ReviewStatus, "review_status"), default=ReviewStatus.VISIBLE, nullable=False
    )
    created_at = Column(UTCDateTime, default=utcnow)

    __table_args__ = (
        CheckConstraint("rating BETWEEN 1 AND 5", name="ck_reviews_rating_range"),
        UniqueConstraint("trip_id", "passenger_id", name="uq_reviews_trip_passenger"),
        Index("idx_reviews_driver_status", "driver_id", "status"),
    )


class RatingAggregateModel(Base):
    __tablename__ = "rating_aggregates"

    driver_id = Column(Integer, ForeignKey("users.id"), primary_key=True)
    avg_rating = Column(Float, default=0.0, nullable=False)
    count = Column(Integer, default=0, nullable=False)
    histogram = Column(JSON, nullable=False)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)
