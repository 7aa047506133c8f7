"""
Review endpoints
================

POST   /api/v1/trips/{trip_id}/reviews              -- review a completed trip
GET    /api/v1/trips/{trip_id}/reviews/me           -- caller's own review + lock time
DELETE /api/v1/trips/{trip_id}/reviews/{review_id}  -- hide own review (24 h window)
GET    /api/v1/drivers/{driver_id}/reviews          -- driver's visible reviews, paged
GET    /api/v1/drivers/{driver_id}/rating           -- driver rating aggregate
"""

from fastapi import APIRouter, Depends, Query, Request

from src.api.dependencies import get_current_user_id, get_rating_service
from src.api.middleware import limiter
from src.api.schemas import (
    ERROR_RESPONSES,
    DriverReviewPageResponse,
    OwnReviewResponse,
    RatingAggregateResponse,
    ReviewCreateRequest,
    ReviewDeletedResponse,
    ReviewResponse,
)
from src.config import settings
from src.services.ratings import MAX_PAGE_SIZE, RatingAggregateService

router = APIRouter(tags=["reviews"], responses=ERROR_RESPONSES)


@router.post(
    "/trips/{trip_id}/reviews",
    status_code=201,
    response_model=ReviewResponse,
    summary="Review the driver of a completed trip",
)
@limiter.limit(settings.rate_limit)
async def create_review(
    request: Request,
    trip_id: int,
    body: ReviewCreateRequest,
    passenger_id: int = Depends(get_current_user_id),
    service: RatingAggregateService = Depends(get_rating_service),
):
    review = await service.create_review(trip_id, passenger_id, body.rating, body.text)
    return ReviewResponse.model_validate(review)


@router.get(
    "/trips/{trip_id}/reviews/me",
    response_model=OwnReviewResponse,
    summary="Get the caller's own review of a trip",
)
@limiter.limit(settings.rate_limit)
async def get_own_review(
    request: Request,
    trip_id: int,
    passenger_id: int = Depends(get_current_user_id),
    service: RatingAggregateService = Depends(get_rating_service),
):
    review = await service.get_own_review(trip_id, passenger_id)
    return OwnReviewResponse(
        **ReviewResponse.model_validate(review).model_dump(),
        locked_at=review.locked_at(service.edit_window),
    )


@router.delete(
    "/trips/{trip_id}/reviews/{review_id}",
    response_model=ReviewDeletedResponse,
    summary="Hide the caller's own review",
    description=(
        "Soft-deletes the review and recomputes the driver's rating "
        "aggregate in the same transaction."
    ),
)
@limiter.limit(settings.rate_limit)
async def delete_review(
    request: Request,
    trip_id: int,
    review_id: int,
    passenger_id: int = Depends(get_current_user_id),
    service: RatingAggregateService = Depends(get_rating_service),
):
    await service.soft_delete_review(trip_id, review_id, passenger_id)
    return ReviewDeletedResponse()


@router.get(
    "/drivers/{driver_id}/reviews",
    response_model=DriverReviewPageResponse,
    summary="List a driver's visible reviews, newest first",
)
@limiter.limit(settings.rate_limit)
async def list_driver_reviews(
    request: Request,
    driver_id: int,
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=MAX_PAGE_SIZE),
    service: RatingAggregateService = Depends(get_rating_service),
):
    result = await service.list_for_driver(driver_id, page, page_size)
    return DriverReviewPageResponse.from_domain(result)


@router.get(
    "/drivers/{driver_id}/rating",
    response_model=RatingAggregateResponse,
    summary="Get a driver's rating aggregate",
)
@limiter.limit(settings.rate_limit)
async def get_driver_rating(
    request: Request,
    driver_id: int,
    service: RatingAggregateService = Depends(get_rating_service),
):
    return RatingAggregateResponse.model_validate(await service.get_aggregate(driver_id))
