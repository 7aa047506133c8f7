"""Unit tests for booking request state transitions and validation."""

from datetime import datetime, timedelta, timezone

import pytest

from src.domain.entities import BookingRequest, RatingAggregate, Review
from src.domain.enums import BookingStatus
from src.domain.errors import InvalidStateTransition, ValidationError

NOW = datetime(2026, 11, 1, 12, 0, tzinfo=timezone.utc)


class TestBookingValidation:
    def test_defaults(self):
        booking = BookingRequest(trip_id=1, passenger_id=2)
        assert booking.status == BookingStatus.PENDING
        assert booking.seats == 1
        assert booking.is_active()

    @pytest.mark.parametrize("seats", [0, -1, 1.5, True])
    def test_seats_must_be_positive_integer(self, seats):
        with pytest.raises(ValidationError) as exc:
            BookingRequest(trip_id=1, passenger_id=2, seats=seats)
        assert exc.value.code == "invalid_seats"

    def test_note_length_limit(self):
        BookingRequest(trip_id=1, passenger_id=2, note="x" * 300)
        with pytest.raises(ValidationError) as exc:
            BookingRequest(trip_id=1, passenger_id=2, note="x" * 301)
        assert exc.value.code == "note_too_long"


class TestBookingStateMachine:
    def test_accept_records_driver(self):
        booking = BookingRequest(trip_id=1, passenger_id=2)
        booking.accept(driver_id=9, now=NOW)
        assert booking.status == BookingStatus.ACCEPTED
        assert booking.accepted_by == 9
        assert booking.accepted_at == NOW
        assert booking.holds_seats()

    def test_decline_records_driver(self):
        booking = BookingRequest(trip_id=1, passenger_id=2)
        booking.decline(driver_id=9, now=NOW)
        assert booking.status == BookingStatus.DECLINED
        assert booking.declined_by == 9
        assert not booking.is_active()

    def test_accepted_cannot_be_declined(self):
        booking = BookingRequest(status=BookingStatus.ACCEPTED)
        with pytest.raises(InvalidStateTransition) as exc:
            booking.decline(driver_id=9)
        assert exc.value.code == "invalid_state"

    @pytest.mark.parametrize(
        "status",
        [BookingStatus.ACCEPTED, BookingStatus.DECLINED, BookingStatus.EXPIRED],
    )
    def test_only_pending_can_be_accepted(self, status):
        with pytest.raises(InvalidStateTransition):
            BookingRequest(status=status).accept(driver_id=9)

    @pytest.mark.parametrize("status", [BookingStatus.PENDING, BookingStatus.ACCEPTED])
    def test_passenger_can_cancel_active(self, status):
        booking = BookingRequest(status=status)
        assert booking.cancel_by_passenger(NOW) is True
        assert booking.status == BookingStatus.CANCELED_BY_PASSENGER
        assert booking.canceled_at == NOW

    def test_cancel_twice_is_noop(self):
        booking = BookingRequest(status=BookingStatus.CANCELED_BY_PASSENGER, canceled_at=NOW)
        assert booking.cancel_by_passenger(NOW + timedelta(hours=1)) is False
        assert booking.canceled_at == NOW

    @pytest.mark.parametrize("status", [BookingStatus.DECLINED, BookingStatus.EXPIRED])
    def test_cannot_cancel_closed_request(self, status):
        with pytest.raises(InvalidStateTransition) as exc:
            BookingRequest(status=status).cancel_by_passenger(NOW)
        assert exc.value.code == "invalid_status_for_cancel"


class TestRefundEligibility:
    def test_unpaid_never_refunded(self):
        booking = BookingRequest()
        assert not booking.is_refund_eligible(NOW + timedelta(days=3), timedelta(hours=24), NOW)

    def test_paid_and_early_enough(self):
        booking = BookingRequest(paid_at=NOW - timedelta(days=1))
        assert booking.is_refund_eligible(NOW + timedelta(hours=24), timedelta(hours=24), NOW)

    def test_paid_but_too_late(self):
        booking = BookingRequest(paid_at=NOW - timedelta(days=1))
        assert not booking.is_refund_eligible(NOW + timedelta(hours=23), timedelta(hours=24), NOW)


class TestReviewAndAggregate:
    def test_review_editable_inside_window(self):
        review = Review(created_at=NOW)
        window = timedelta(hours=24)
        assert review.is_editable(window, NOW + timedelta(hours=24))
        assert not review.is_editable(window, NOW + timedelta(hours=24, seconds=1))

    def test_aggregate_from_ratings(self):
        aggregate = RatingAggregate.from_ratings(7, [5, 4, 4])
        assert aggregate.count == 3
        assert aggregate.avg_rating == 4.33
        assert aggregate.histogram == {1: 0, 2: 0, 3: 0, 4: 2, 5: 1}

    def test_empty_aggregate(self):
        aggregate = RatingAggregate.from_ratings(7, [])
        assert aggregate.count == 0
        assert aggregate.avg_rating == 0.0
        assert sum(aggregate.histogram.values()) == 0
