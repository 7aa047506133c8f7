"""
Seed script -- populates the database with sample data for reviewers.

Run after migrations:
    python seed.py

Creates:
  - 1 admin, 3 drivers and 6 passengers
  - one vehicle per driver
  - 5 trips (published, draft, completed)
  - booking requests in every active state, with seat ledgers to match
"""

import asyncio
from datetime import timedelta

from sqlalchemy import text

from src.domain.entities import utcnow
from src.domain.enums import BookingStatus, TripStatus, UserRole
from src.infrastructure.database import async_session_factory, engine
from src.infrastructure.models import (
    BookingRequestModel,
    SeatLedgerModel,
    TripOfferModel,
    UserModel,
    VehicleModel,
)

USERS = [
    {"name": "Ops Admin", "email": "admin@example.com", "role": UserRole.ADMIN},
    {"name": "Lena Fischer", "email": "lena@example.com", "role": UserRole.DRIVER},
    {"name": "Tomasz Nowak", "email": "tomasz@example.com", "role": UserRole.DRIVER},
    {"name": "Ines Moreau", "email": "ines@example.com", "role": UserRole.DRIVER},
    {"name": "Jonas Weber", "email": "jonas@example.com", "role": UserRole.PASSENGER},
    {"name": "Sara Rossi", "email": "sara@example.com", "role": UserRole.PASSENGER},
    {"name": "Milan Horvat", "email": "milan@example.com", "role": UserRole.PASSENGER},
    {"name": "Eva Lindqvist", "email": "eva@example.com", "role": UserRole.PASSENGER},
    {"name": "Pablo Ruiz", "email": "pablo@example.com", "role": UserRole.PASSENGER},
    {"name": "Hana Kovac", "email": "hana@example.com", "role": UserRole.PASSENGER},
]

VEHICLES = [
    # (driver index, plate, capacity)
    (1, "B-LF-1042", 4),
    (2, "WX-7731A", 3),
    (3, "GE-225-MR", 6),
]

PLACES = {
    "berlin": ("Berlin Hbf", 52.5251, 13.3694),
    "leipzig": ("Leipzig Hbf", 51.3455, 12.3821),
    "dresden": ("Dresden Neustadt", 51.0656, 13.7410),
    "prague": ("Praha hlavni nadrazi", 50.0833, 14.4353),
    "munich": ("Muenchen Hbf", 48.1402, 11.5600),
}


async def seed():
    async with async_session_factory() as session:
        # Check if already seeded
        result = await session.execute(text("SELECT count(*) FROM users"))
        if result.scalar() > 0:
            print("Database already seeded. Skipping.")
            return

        now = utcnow()

        # ── Users ─────────────────────────────────────────────────────
        user_models = []
        for u in USERS:
            m = UserModel(name=u["name"], email=u["email"], role=u["role"])
            session.add(m)
            user_models.append(m)
        await session.flush()
        print(f"  Created {len(user_models)} users")

        # ── Vehicles ──────────────────────────────────────────────────
        vehicle_models = []
        for driver_idx, plate, capacity in VEHICLES:
            m = VehicleModel(
                owner_id=user_models[driver_idx].id, plate=plate, capacity=capacity
            )
            session.add(m)
            vehicle_models.append(m)
        await session.flush()
        print(f"  Created {len(vehicle_models)} vehicles")

        # ── Trips ─────────────────────────────────────────────────────
        trips_data = [
            # (vehicle idx, from, to, departs in, hours, price, seats, status)
            (0, "berlin", "leipzig", timedelta(days=1), 2, 18.0, 3, TripStatus.PUBLISHED),
            (0, "leipzig", "berlin", timedelta(days=3), 2, 18.0, 3, TripStatus.DRAFT),
            (1, "dresden", "prague", timedelta(hours=30), 2, 15.5, 3, TripStatus.PUBLISHED),
            (2, "munich", "berlin", timedelta(days=2), 6, 39.0, 5, TripStatus.PUBLISHED),
            (2, "berlin", "dresden", -timedelta(days=2), 2, 14.0, 4, TripStatus.COMPLETED),
        ]
        trip_models = []
        for v_idx, origin, dest, departs_in, hours, price, seats, status in trips_data:
            vehicle = vehicle_models[v_idx]
            departure = now + departs_in
            o_text, o_lat, o_lng = PLACES[origin]
            d_text, d_lat, d_lng = PLACES[dest]
            m = TripOfferModel(
                driver_id=vehicle.owner_id,
                vehicle_id=vehicle.id,
                origin_text=o_text,
                origin_lat=o_lat,
                origin_lng=o_lng,
                destination_text=d_text,
                destination_lat=d_lat,
                destination_lng=d_lng,
                departure_at=departure,
                estimated_arrival_at=departure + timedelta(hours=hours),
                price_per_seat=price,
                total_seats=seats,
                status=status,
            )
            session.add(m)
            trip_models.append(m)
        await session.flush()
        print(f"  Created {len(trip_models)} trips")

        # ── Bookings ──────────────────────────────────────────────────
        bookings_data = [
            # (trip idx, passenger idx, seats, status)
            (0, 4, 1, BookingStatus.ACCEPTED),
            (0, 5, 1, BookingStatus.PENDING),
            (0, 6, 2, BookingStatus.PENDING),
            (2, 7, 2, BookingStatus.ACCEPTED),
            (2, 8, 1, BookingStatus.DECLINED),
            (3, 9, 1, BookingStatus.CANCELED_BY_PASSENGER),
            (4, 4, 1, BookingStatus.ACCEPTED),
            (4, 5, 2, BookingStatus.ACCEPTED),
        ]
        allocated: dict[int, int] = {}
        for t_idx, p_idx, seats, status in bookings_data:
            trip = trip_models[t_idx]
            booking = BookingRequestModel(
                trip_id=trip.id,
                passenger_id=user_models[p_idx].id,
                seats=seats,
                status=status,
            )
            if status == BookingStatus.ACCEPTED:
                booking.accepted_at = now
                booking.accepted_by = trip.driver_id
                allocated[trip.id] = allocated.get(trip.id, 0) + seats
            elif status == BookingStatus.DECLINED:
                booking.declined_at = now
                booking.declined_by = trip.driver_id
            elif status == BookingStatus.CANCELED_BY_PASSENGER:
                booking.canceled_at = now
            session.add(booking)

        # ledger rows must agree with the accepted bookings
        for trip_id, seats in allocated.items():
            session.add(SeatLedgerModel(trip_id=trip_id, allocated_seats=seats))
        await session.flush()
        print(f"  Created {len(bookings_data)} bookings, {len(allocated)} seat ledgers")

        await session.commit()
        print("\nSeed complete!")


async def main():
    print("Seeding database...")
    await seed()
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
