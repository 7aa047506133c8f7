"""
Shared test fixtures.

Uses a file-backed SQLite database (via aiosqlite) so tests run without
Docker / PostgreSQL / Redis.  The production models are used as-is; every
transaction starts with ``BEGIN IMMEDIATE`` so concurrent sessions are
serialised by SQLite the way row locks serialise them on PostgreSQL.
"""

from datetime import datetime, timedelta
from typing import AsyncGenerator, Optional

import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from src.domain.entities import BookingRequest, Location, Place, TripOffer, utcnow
from src.domain.enums import BookingStatus, TripStatus, UserRole
from src.infrastructure.database import Base
from src.infrastructure.models import UserModel, VehicleModel
from src.infrastructure.repositories import (
    BookingRequestRepository,
    TripOfferRepository,
)

BERLIN = Place("Berlin Hbf", Location(52.5251, 13.3694))
LEIPZIG = Place("Leipzig Hbf", Location(51.3455, 12.3821))


# ── Engine / sessions ─────────────────────────────────────────────────


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    test_engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        connect_args={"timeout": 30},
    )

    @event.listens_for(test_engine.sync_engine, "connect")
    def _no_implicit_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(test_engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    await test_engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine) -> async_sessionmaker:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# ── Seed helpers ──────────────────────────────────────────────────────


async def add_user(
    session: AsyncSession, name: str, role: UserRole = UserRole.PASSENGER
) -> int:
    user = UserModel(name=name, email=f"{name.lower()}@example.com", role=role)
    session.add(user)
    await session.flush()
    return user.id


async def add_vehicle(session: AsyncSession, owner_id: int, capacity: int = 4) -> int:
    vehicle = VehicleModel(owner_id=owner_id, plate=f"T-{owner_id}-{capacity}", capacity=capacity)
    session.add(vehicle)
    await session.flush()
    return vehicle.id


async def add_trip(
    session: AsyncSession,
    driver_id: int,
    vehicle_id: int,
    total_seats: int = 3,
    status: TripStatus = TripStatus.PUBLISHED,
    departs_in: timedelta = timedelta(days=2),
    duration: timedelta = timedelta(hours=2),
) -> TripOffer:
    """Insert a trip directly, bypassing the service-level checks."""
    departure = utcnow() + departs_in
    return await TripOfferRepository(session).create(
        TripOffer(
            driver_id=driver_id,
            vehicle_id=vehicle_id,
            origin=BERLIN,
            destination=LEIPZIG,
            departure_at=departure,
            estimated_arrival_at=departure + duration,
            price_per_seat=18.0,
            total_seats=total_seats,
            status=status,
        )
    )


async def add_booking(
    session: AsyncSession,
    trip_id: int,
    passenger_id: int,
    seats: int = 1,
    status: BookingStatus = BookingStatus.PENDING,
    created_at: Optional[datetime] = None,
) -> BookingRequest:
    return await BookingRequestRepository(session).create(
        BookingRequest(
            trip_id=trip_id,
            passenger_id=passenger_id,
            seats=seats,
            status=status,
            created_at=created_at,
        )
    )


@pytest_asyncio.fixture
async def world(session_factory) -> dict:
    """A driver with a 4-seat car, three passengers and an admin, committed."""
    async with session_factory() as session:
        driver = await add_user(session, "Lena", UserRole.DRIVER)
        other_driver = await add_user(session, "Tomasz", UserRole.DRIVER)
        passengers = [
            await add_user(session, name) for name in ("Jonas", "Sara", "Milan")
        ]
        admin = await add_user(session, "Ops", UserRole.ADMIN)
        vehicle = await add_vehicle(session, driver, capacity=4)
        other_vehicle = await add_vehicle(session, other_driver, capacity=3)
        await session.commit()
    return {
        "driver": driver,
        "other_driver": other_driver,
        "passengers": passengers,
        "admin": admin,
        "vehicle": vehicle,
        "other_vehicle": other_vehicle,
    }
