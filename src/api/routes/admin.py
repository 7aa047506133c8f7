"""
Admin / operations endpoints
============================

POST /api/v1/admin/jobs/run?name=...                      -- run a lifecycle job
POST /api/v1/admin/drivers/{driver_id}/rating/recompute   -- rebuild an aggregate
GET  /api/v1/admin/health                                 -- simple health check
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from src.api.dependencies import (
    get_lifecycle_service,
    get_rating_service,
    require_admin,
)
from src.api.middleware import limiter
from src.api.schemas import (
    ERROR_RESPONSES,
    HealthResponse,
    LifecycleJobResponse,
    RatingAggregateResponse,
)
from src.config import settings
from src.services.lifecycle import LifecycleJobService
from src.services.ratings import RatingAggregateService

router = APIRouter(prefix="/admin", tags=["admin"], responses=ERROR_RESPONSES)


@router.post(
    "/jobs/run",
    response_model=LifecycleJobResponse,
    summary="Run a lifecycle job now",
    description=(
        "Jobs: `complete-trips` (both), `auto-complete-trips`, "
        "`expire-pendings`. Safe to re-run."
    ),
)
@limiter.limit(settings.rate_limit)
async def run_lifecycle_job(
    request: Request,
    name: str = Query("complete-trips"),
    pending_ttl_hours: Optional[int] = Query(None, alias="pendingTtlHours", ge=1),
    admin_id: int = Depends(require_admin),
    service: LifecycleJobService = Depends(get_lifecycle_service),
):
    result = await service.run(name, pending_ttl_hours)
    return LifecycleJobResponse.model_validate(result)


@router.post(
    "/drivers/{driver_id}/rating/recompute",
    response_model=RatingAggregateResponse,
    summary="Recompute a driver's rating aggregate",
)
@limiter.limit(settings.rate_limit)
async def recompute_rating(
    request: Request,
    driver_id: int,
    admin_id: int = Depends(require_admin),
    service: RatingAggregateService = Depends(get_rating_service),
):
    return RatingAggregateResponse.model_validate(
        await service.recompute_aggregate(driver_id)
    )


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health():
    return HealthResponse()
