"""Domain enumerations and state-transition rules."""

import enum


class TripStatus(str, enum.Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    CANCELED = "canceled"
    COMPLETED = "completed"


# State machine: maps current status -> set of valid next statuses
TRIP_TRANSITIONS: dict[TripStatus, set[TripStatus]] = {
    TripStatus.DRAFT: {TripStatus.PUBLISHED, TripStatus.CANCELED},
    TripStatus.PUBLISHED: {TripStatus.CANCELED, TripStatus.COMPLETED},
    TripStatus.CANCELED: set(),
    TripStatus.COMPLETED: set(),
}


class BookingStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    CANCELED_BY_PASSENGER = "canceled_by_passenger"
    EXPIRED = "expired"


BOOKING_TRANSITIONS: dict[BookingStatus, set[BookingStatus]] = {
    BookingStatus.PENDING: {
        BookingStatus.ACCEPTED,
        BookingStatus.DECLINED,
        BookingStatus.CANCELED_BY_PASSENGER,
        BookingStatus.EXPIRED,
    },
    BookingStatus.ACCEPTED: {BookingStatus.CANCELED_BY_PASSENGER},
    BookingStatus.DECLINED: set(),
    BookingStatus.CANCELED_BY_PASSENGER: set(),
    BookingStatus.EXPIRED: set(),
}

# Statuses that hold (or may come to hold) seats on a trip
ACTIVE_BOOKING_STATUSES = frozenset({BookingStatus.PENDING, BookingStatus.ACCEPTED})


class ReviewStatus(str, enum.Enum):
    VISIBLE = "visible"
    HIDDEN = "hidden"


class UserRole(str, enum.Enum):
    PASSENGER = "passenger"
    DRIVER = "driver"
    ADMIN = "admin"


class LifecycleJob(str, enum.Enum):
    COMPLETE_TRIPS = "complete-trips"  # both jobs
    AUTO_COMPLETE_TRIPS = "auto-complete-trips"
    EXPIRE_PENDINGS = "expire-pendings"
