"""FastAPI dependency injection helpers."""

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from src.domain.enums import UserRole
from src.domain.errors import ForbiddenError
from src.infrastructure.database import async_session_factory
from src.infrastructure.repositories import UserRepository
from src.services.bookings import BookingRequestService
from src.services.lifecycle import LifecycleJobService
from src.services.ratings import RatingAggregateService
from src.services.trip_offers import TripOfferService


async def get_db() -> AsyncSession:  # type: ignore[misc]
    """Yield an async DB session; commit on success, rollback on error."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_current_user_id(x_user_id: int = Header(..., alias="X-User-Id")) -> int:
    """Acting user id, set by the authentication layer in front of the API."""
    return x_user_id


async def require_admin(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> int:
    user = await UserRepository(db).get_by_id(user_id)
    if user is None or user.role != UserRole.ADMIN:
        raise ForbiddenError("Admin role required", "admin_only")
    return user_id


def get_trip_service(db: AsyncSession = Depends(get_db)) -> TripOfferService:
    return TripOfferService(db)


def get_booking_service(db: AsyncSession = Depends(get_db)) -> BookingRequestService:
    return BookingRequestService(db)


def get_lifecycle_service(db: AsyncSession = Depends(get_db)) -> LifecycleJobService:
    return LifecycleJobService(db)


def get_rating_service(db: AsyncSession = Depends(get_db)) -> RatingAggregateService:
    return RatingAggregateService(db)
