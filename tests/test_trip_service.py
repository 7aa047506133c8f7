"""Trip offer service tests: create / update / cancel rules."""

from datetime import timedelta

import pytest

from src.domain.entities import utcnow
from src.domain.enums import TripStatus
from src.domain.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from src.services.bookings import BookingRequestService
from src.services.trip_offers import NewTripOffer, TripOfferChanges, TripOfferService
from tests.conftest import BERLIN, LEIPZIG, add_trip


def _offer(vehicle_id, departs_in=timedelta(days=1), hours=2, seats=3, **kwargs):
    departure = utcnow() + departs_in
    return NewTripOffer(
        vehicle_id=vehicle_id,
        origin=BERLIN,
        destination=LEIPZIG,
        departure_at=departure,
        estimated_arrival_at=departure + timedelta(hours=hours),
        price_per_seat=18.0,
        total_seats=seats,
        **kwargs,
    )


class TestCreate:
    @pytest.mark.asyncio
    async def test_create_published_trip(self, session_factory, world):
        async with session_factory() as session:
            trip = await TripOfferService(session).create(
                world["driver"], _offer(world["vehicle"], notes="no smoking")
            )
        assert trip.id is not None
        assert trip.status == TripStatus.PUBLISHED
        assert trip.origin.text == "Berlin Hbf"
        assert trip.destination.geo.latitude == pytest.approx(51.3455)
        assert trip.notes == "no smoking"

    @pytest.mark.asyncio
    async def test_create_draft(self, session_factory, world):
        async with session_factory() as session:
            trip = await TripOfferService(session).create(
                world["driver"], _offer(world["vehicle"], status=TripStatus.DRAFT)
            )
        assert trip.status == TripStatus.DRAFT

    @pytest.mark.asyncio
    async def test_passenger_cannot_offer_trips(self, session_factory, world):
        async with session_factory() as session:
            with pytest.raises(ForbiddenError) as exc:
                await TripOfferService(session).create(
                    world["passengers"][0], _offer(world["vehicle"])
                )
        assert exc.value.code == "not_a_driver"

    @pytest.mark.asyncio
    async def test_vehicle_must_belong_to_driver(self, session_factory, world):
        async with session_factory() as session:
            with pytest.raises(ForbiddenError) as exc:
                await TripOfferService(session).create(
                    world["driver"], _offer(world["other_vehicle"])
                )
        assert exc.value.code == "vehicle_ownership_violation"

    @pytest.mark.asyncio
    async def test_unknown_vehicle(self, session_factory, world):
        async with session_factory() as session:
            with pytest.raises(NotFoundError) as exc:
                await TripOfferService(session).create(world["driver"], _offer(999))
        assert exc.value.code == "vehicle_not_found"

    @pytest.mark.asyncio
    async def test_seats_within_vehicle_capacity(self, session_factory, world):
        async with session_factory() as session:
            with pytest.raises(ValidationError) as exc:
                await TripOfferService(session).create(
                    world["driver"], _offer(world["vehicle"], seats=5)
                )
        assert exc.value.code == "exceeds_vehicle_capacity"
        assert exc.value.details == {"capacity": 4}

    @pytest.mark.asyncio
    async def test_departure_must_be_in_future(self, session_factory, world):
        async with session_factory() as session:
            with pytest.raises(ValidationError) as exc:
                await TripOfferService(session).create(
                    world["driver"], _offer(world["vehicle"], departs_in=-timedelta(hours=1))
                )
        assert exc.value.code == "departure_in_past"

    @pytest.mark.asyncio
    async def test_arrival_after_departure(self, session_factory, world):
        async with session_factory() as session:
            with pytest.raises(ValidationError) as exc:
                await TripOfferService(session).create(
                    world["driver"], _offer(world["vehicle"], hours=0)
                )
        assert exc.value.code == "invalid_time_range"

    @pytest.mark.asyncio
    async def test_new_trip_cannot_start_completed(self, session_factory, world):
        async with session_factory() as session:
            with pytest.raises(ValidationError) as exc:
                await TripOfferService(session).create(
                    world["driver"], _offer(world["vehicle"], status=TripStatus.COMPLETED)
                )
        assert exc.value.code == "invalid_status"

    @pytest.mark.asyncio
    async def test_overlapping_published_trips_rejected(self, session_factory, world):
        async with session_factory() as session:
            service = TripOfferService(session)
            first = await service.create(world["driver"], _offer(world["vehicle"]))
            with pytest.raises(ConflictError) as exc:
                await service.create(
                    world["driver"],
                    _offer(world["vehicle"], departs_in=timedelta(days=1, hours=1)),
                )
            assert exc.value.code == "overlapping_trip"
            assert exc.value.details == {"trip_ids": [first.id]}

            # back-to-back windows do not overlap
            await service.create(
                world["driver"],
                _offer(world["vehicle"], departs_in=timedelta(days=1, hours=2)),
            )

    @pytest.mark.asyncio
    async def test_overlap_check_can_be_disabled(self, session_factory, world):
        async with session_factory() as session:
            service = TripOfferService(session)
            await service.create(world["driver"], _offer(world["vehicle"]))
            second = await service.create(
                world["driver"], _offer(world["vehicle"]), check_overlap=False
            )
        assert second.status == TripStatus.PUBLISHED


class TestUpdate:
    @pytest.mark.asyncio
    async def test_update_price_and_notes(self, session_factory, world):
        async with session_factory() as session:
            service = TripOfferService(session)
            trip = await service.create(world["driver"], _offer(world["vehicle"]))
            updated = await service.update(
                trip.id, world["driver"], TripOfferChanges(price_per_seat=21.5, notes="ac")
            )
        assert updated.price_per_seat == 21.5
        assert updated.notes == "ac"

    @pytest.mark.asyncio
    async def test_empty_update_rejected(self, session_factory, world):
        async with session_factory() as session:
            with pytest.raises(ValidationError) as exc:
                await TripOfferService(session).update(1, world["driver"], TripOfferChanges())
        assert exc.value.code == "no_changes"

    @pytest.mark.asyncio
    async def test_only_owner_can_update(self, session_factory, world):
        async with session_factory() as session:
            service = TripOfferService(session)
            trip = await service.create(world["driver"], _offer(world["vehicle"]))
            with pytest.raises(ForbiddenError) as exc:
                await service.update(
                    trip.id, world["other_driver"], TripOfferChanges(notes="mine now")
                )
        assert exc.value.code == "ownership_violation"

    @pytest.mark.asyncio
    async def test_publish_draft(self, session_factory, world):
        async with session_factory() as session:
            service = TripOfferService(session)
            trip = await service.create(
                world["driver"], _offer(world["vehicle"], status=TripStatus.DRAFT)
            )
            published = await service.update(
                trip.id, world["driver"], TripOfferChanges(status=TripStatus.PUBLISHED)
            )
        assert published.status == TripStatus.PUBLISHED

    @pytest.mark.asyncio
    async def test_published_cannot_return_to_draft(self, session_factory, world):
        async with session_factory() as session:
            service = TripOfferService(session)
            trip = await service.create(world["driver"], _offer(world["vehicle"]))
            with pytest.raises(ConflictError) as exc:
                await service.update(
                    trip.id, world["driver"], TripOfferChanges(status=TripStatus.DRAFT)
                )
        assert exc.value.code == "invalid_status_transition"

    @pytest.mark.asyncio
    async def test_terminal_trip_only_accepts_notes(self, session_factory, world):
        async with session_factory() as session:
            service = TripOfferService(session)
            trip = await service.create(world["driver"], _offer(world["vehicle"]))
            await service.cancel(trip.id, world["driver"])
            with pytest.raises(ConflictError) as exc:
                await service.update(
                    trip.id, world["driver"], TripOfferChanges(price_per_seat=1.0)
                )
            assert exc.value.code == "invalid_status_for_update"
            noted = await service.update(
                trip.id, world["driver"], TripOfferChanges(notes="sorry, car broke")
            )
        assert noted.status == TripStatus.CANCELED
        assert noted.notes == "sorry, car broke"

    @pytest.mark.asyncio
    async def test_seats_cannot_drop_below_allocated(self, session_factory, world):
        async with session_factory() as session:
            service = TripOfferService(session)
            trip = await service.create(world["driver"], _offer(world["vehicle"], seats=3))
            bookings = BookingRequestService(session)
            booking = await bookings.create(world["passengers"][0], trip.id, seats=2)
            await bookings.accept(booking.id, world["driver"])

            with pytest.raises(ConflictError) as exc:
                await service.update(trip.id, world["driver"], TripOfferChanges(total_seats=1))
            assert exc.value.code == "invalid_state"

            grown = await service.update(
                trip.id, world["driver"], TripOfferChanges(total_seats=4)
            )
        assert grown.total_seats == 4

    @pytest.mark.asyncio
    async def test_seats_capped_by_vehicle_on_update(self, session_factory, world):
        async with session_factory() as session:
            service = TripOfferService(session)
            trip = await service.create(world["driver"], _offer(world["vehicle"]))
            with pytest.raises(ValidationError) as exc:
                await service.update(trip.id, world["driver"], TripOfferChanges(total_seats=7))
        assert exc.value.code == "exceeds_vehicle_capacity"


class TestCancel:
    @pytest.mark.asyncio
    async def test_cancel_is_not_idempotent(self, session_factory, world):
        async with session_factory() as session:
            service = TripOfferService(session)
            trip = await service.create(world["driver"], _offer(world["vehicle"]))
            canceled = await service.cancel(trip.id, world["driver"])
            assert canceled.status == TripStatus.CANCELED
            with pytest.raises(ConflictError) as exc:
                await service.cancel(trip.id, world["driver"])
        assert exc.value.code == "already_canceled"

    @pytest.mark.asyncio
    async def test_cannot_cancel_completed(self, session_factory, world):
        async with session_factory() as session:
            trip = await add_trip(
                session, world["driver"], world["vehicle"], status=TripStatus.COMPLETED
            )
            await session.commit()
            with pytest.raises(ConflictError) as exc:
                await TripOfferService(session).cancel(trip.id, world["driver"])
        assert exc.value.code == "cannot_cancel_completed"

    @pytest.mark.asyncio
    async def test_cancel_draft(self, session_factory, world):
        async with session_factory() as session:
            service = TripOfferService(session)
            trip = await service.create(
                world["driver"], _offer(world["vehicle"], status=TripStatus.DRAFT)
            )
            canceled = await service.cancel(trip.id, world["driver"])
        assert canceled.status == TripStatus.CANCELED


class TestQueries:
    @pytest.mark.asyncio
    async def test_upcoming_lists_future_published_only(self, session_factory, world):
        async with session_factory() as session:
            service = TripOfferService(session)
            live = await service.create(world["driver"], _offer(world["vehicle"]))
            await service.create(
                world["driver"],
                _offer(world["vehicle"], departs_in=timedelta(days=3), status=TripStatus.DRAFT),
            )
            await add_trip(
                session, world["driver"], world["vehicle"], departs_in=-timedelta(days=1)
            )
            await session.commit()

            upcoming = await service.list_upcoming_for_driver(world["driver"])
            drafts = await service.list_for_driver(world["driver"], TripStatus.DRAFT)
            everything = await service.list_for_driver(world["driver"])
        assert [t.id for t in upcoming] == [live.id]
        assert len(drafts) == 1
        assert len(everything) == 3
