"""
Driver rating aggregates.

A driver's ``RatingAggregate`` is derived from their *visible* reviews.
Whenever review visibility changes, the review write and the aggregate
recompute run in one transaction, so readers never see an aggregate that
disagrees with the review table.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.domain.entities import RatingAggregate, Review
from src.domain.enums import BookingStatus, TripStatus
from src.domain.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from src.infrastructure.database import transaction
from src.infrastructure.repositories import (
    BookingRequestRepository,
    RatingAggregateRepository,
    ReviewRepository,
    TripOfferRepository,
    UserRepository,
)

logger = logging.getLogger(__name__)


MAX_PAGE_SIZE = 50


def author_label(name: str) -> str:
    """Public byline: first name plus last initial, e.g. ``Ada L.``."""
    parts = (name or "").split()
    if not parts:
        return "Anonymous"
    if len(parts) == 1:
        return parts[0]
    return f"{parts[0]} {parts[-1][0]}."


@dataclass
class DriverReviewPage:
    items: list[tuple[Review, str]]
    page: int
    page_size: int
    total: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.page_size)


class RatingAggregateService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.reviews = ReviewRepository(session)
        self.aggregates = RatingAggregateRepository(session)
        self.trips = TripOfferRepository(session)
        self.bookings = BookingRequestRepository(session)
        self.users = UserRepository(session)

    @property
    def edit_window(self) -> timedelta:
        return timedelta(hours=settings.review_edit_window_hours)

    async def get_aggregate(self, driver_id: int) -> RatingAggregate:
        aggregate = await self.aggregates.get(driver_id)
        return aggregate or RatingAggregate(driver_id=driver_id)

    async def list_for_driver(
        self, driver_id: int, page: int = 1, page_size: int = 10
    ) -> DriverReviewPage:
        """Visible reviews of *driver_id*, newest first."""
        if page < 1 or page_size < 1:
            raise ValidationError("page and page_size must be positive", "invalid_page")
        if await self.users.get_by_id(driver_id) is None:
            raise NotFoundError("Driver not found", "driver_not_found")

        page_size = min(page_size, MAX_PAGE_SIZE)
        rows = await self.reviews.find_visible_by_driver(
            driver_id, limit=page_size, offset=(page - 1) * page_size
        )
        total = await self.reviews.count_visible_by_driver(driver_id)
        return DriverReviewPage(
            items=[(review, author_label(name)) for review, name in rows],
            page=page,
            page_size=page_size,
            total=total,
        )

    async def get_own_review(self, trip_id: int, passenger_id: int) -> Review:
        """The caller's review of *trip_id*, hidden or not."""
        review = await self.reviews.find_for_trip_and_passenger(trip_id, passenger_id)
        if review is None:
            raise NotFoundError("Review not found", "review_not_found")
        return review

    async def recompute_aggregate(self, driver_id: int) -> RatingAggregate:
        async with transaction(self.session):
            aggregate = await self.aggregates.recompute(driver_id)
        logger.info(
            "Rating aggregate recomputed: driver=%s avg=%.2f count=%d",
            driver_id,
            aggregate.avg_rating,
            aggregate.count,
        )
        return aggregate

    async def create_review(
        self, trip_id: int, passenger_id: int, rating: int, text: str = ""
    ) -> Review:
        if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
            raise ValidationError("Rating must be an integer from 1 to 5", "invalid_rating")

        async with transaction(self.session):
            trip = await self.trips.find_by_id(trip_id)
            if trip is None:
                raise NotFoundError("Trip offer not found", "trip_not_found")
            if trip.status != TripStatus.COMPLETED:
                raise ConflictError("Only completed trips can be reviewed", "invalid_trip_state")

            riders = await self.bookings.find_by_trip(trip_id, BookingStatus.ACCEPTED)
            if not any(b.passenger_id == passenger_id for b in riders):
                raise ForbiddenError("You did not ride on this trip", "not_a_passenger")

            if await self.reviews.find_for_trip_and_passenger(trip_id, passenger_id):
                raise ConflictError("You already reviewed this trip", "duplicate_review")

            try:
                review = await self.reviews.create(
                    Review(
                        trip_id=trip_id,
                        driver_id=trip.driver_id,
                        passenger_id=passenger_id,
                        rating=rating,
                        text=text or "",
                    )
                )
            except IntegrityError as exc:
                raise ConflictError(
                    "You already reviewed this trip", "duplicate_review"
                ) from exc
            await self.aggregates.recompute(trip.driver_id)

        logger.info(
            "Review created: review=%s trip=%s driver=%s rating=%d",
            review.id,
            trip_id,
            review.driver_id,
            rating,
        )
        return review

    async def soft_delete_review(
        self, trip_id: int, review_id: int, passenger_id: int
    ) -> Optional[RatingAggregate]:
        """Hide the passenger's own review and recompute the driver aggregate.

        Allowed only within the edit window after creation.  The status flip
        and the recompute commit together; if either fails both are rolled
        back.  Hiding an already hidden review is a no-op returning ``None``.
        """
        async with transaction(self.session):
            review = await self.reviews.find_by_id(review_id)
            if review is None or review.trip_id != trip_id:
                raise NotFoundError("Review not found", "review_not_found")
            if review.passenger_id != passenger_id:
                raise ForbiddenError("You are not the author", "forbidden_owner")
            if not review.is_editable(self.edit_window):
                raise ValidationError("Delete window has closed", "review_locked")

            if not await self.reviews.hide(review_id):
                logger.info("Review already hidden: review=%s", review_id)
                return None
            aggregate = await self.aggregates.recompute(review.driver_id)

        logger.info(
            "Review hidden: review=%s driver=%s avg=%.2f count=%d",
            review_id,
            review.driver_id,
            aggregate.avg_rating,
            aggregate.count,
        )
        return aggregate
