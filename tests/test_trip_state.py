"""Unit tests for trip offer state transitions (State Pattern)."""

from datetime import datetime, timedelta, timezone

import pytest

from src.domain.entities import TripOffer
from src.domain.enums import TripStatus
from src.domain.errors import InvalidStateTransition, ValidationError

T0 = datetime(2026, 11, 2, 8, 0, tzinfo=timezone.utc)


def _trip(status=TripStatus.PUBLISHED, start=T0, hours=2):
    return TripOffer(
        status=status,
        departure_at=start,
        estimated_arrival_at=start + timedelta(hours=hours),
    )


class TestTripStateMachine:
    def test_default_status_is_published(self):
        assert TripOffer().status == TripStatus.PUBLISHED

    # ── Valid transitions ─────────────────────────────────────────

    def test_draft_to_published(self):
        trip = _trip(TripStatus.DRAFT)
        trip.transition_to(TripStatus.PUBLISHED)
        assert trip.status == TripStatus.PUBLISHED

    def test_draft_to_canceled(self):
        trip = _trip(TripStatus.DRAFT)
        trip.transition_to(TripStatus.CANCELED)
        assert trip.status == TripStatus.CANCELED

    def test_published_to_completed(self):
        trip = _trip()
        trip.transition_to(TripStatus.COMPLETED)
        assert trip.status == TripStatus.COMPLETED

    def test_published_to_canceled(self):
        trip = _trip()
        trip.transition_to(TripStatus.CANCELED)
        assert trip.status == TripStatus.CANCELED

    # ── Invalid transitions ───────────────────────────────────────

    def test_draft_cannot_complete(self):
        trip = _trip(TripStatus.DRAFT)
        with pytest.raises(InvalidStateTransition) as exc:
            trip.transition_to(TripStatus.COMPLETED)
        assert exc.value.code == "invalid_status_transition"
        assert exc.value.details == {"from": "draft", "to": "completed"}

    def test_published_cannot_go_back_to_draft(self):
        with pytest.raises(InvalidStateTransition):
            _trip().transition_to(TripStatus.DRAFT)

    @pytest.mark.parametrize("terminal", [TripStatus.CANCELED, TripStatus.COMPLETED])
    @pytest.mark.parametrize("target", list(TripStatus))
    def test_terminal_states_are_final(self, terminal, target):
        trip = _trip(terminal)
        assert trip.is_terminal()
        with pytest.raises(InvalidStateTransition):
            trip.transition_to(target)


class TestTripTiming:
    def test_arrival_must_follow_departure(self):
        trip = _trip(hours=0)
        with pytest.raises(ValidationError) as exc:
            trip.validate_timing()
        assert exc.value.code == "invalid_time_range"

    def test_naive_datetimes_are_treated_as_utc(self):
        trip = TripOffer(
            departure_at=datetime(2026, 11, 2, 8, 0),
            estimated_arrival_at=datetime(2026, 11, 2, 10, 0),
        )
        assert trip.departure_at == T0

    def test_departure_in_future(self):
        trip = _trip()
        assert trip.is_departure_in_future(T0 - timedelta(minutes=1))
        assert not trip.is_departure_in_future(T0)

    def test_overlap_is_half_open(self):
        first = _trip(start=T0, hours=2)
        touching = _trip(start=T0 + timedelta(hours=2))
        inside = _trip(start=T0 + timedelta(hours=1))
        assert not first.overlaps_with(touching)
        assert first.overlaps_with(inside)
        assert inside.overlaps_with(first)
