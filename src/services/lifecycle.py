"""
Lifecycle jobs
==============

Time-driven batch transitions, each a single set-based conditional UPDATE:

* **auto-complete-trips** -- published trips whose estimated arrival
  (departure plus duration) has passed become ``completed``.
* **expire-pendings** -- pending requests older than ``ttl_hours`` become
  ``expired``.

Both touch only rows still matching their predicate, so re-running after a
partial failure is safe.  Jobs are triggered by an admin or by the
background worker in ``src.workers.lifecycle``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.domain.entities import utcnow
from src.domain.enums import LifecycleJob
from src.domain.errors import ValidationError
from src.infrastructure.database import transaction
from src.infrastructure.repositories import (
    BookingRequestRepository,
    TripOfferRepository,
)

logger = logging.getLogger(__name__)


@dataclass
class LifecycleJobResult:
    completed_trips: int = 0
    expired_pendings: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "completedTrips": self.completed_trips,
            "expiredPendings": self.expired_pendings,
        }


class LifecycleJobService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.trips = TripOfferRepository(session)
        self.bookings = BookingRequestRepository(session)

    async def auto_complete_trips(self, now: Optional[datetime] = None) -> int:
        now = now or utcnow()
        async with transaction(self.session):
            completed = await self.trips.complete_finished(now)
        logger.info("Lifecycle: %d trips auto-completed", completed)
        return completed

    async def expire_pendings(
        self, ttl_hours: Optional[int] = None, now: Optional[datetime] = None
    ) -> int:
        if ttl_hours is None:
            ttl_hours = settings.pending_ttl_hours
        if ttl_hours <= 0:
            raise ValidationError("pendingTtlHours must be positive", "invalid_ttl")
        cutoff = (now or utcnow()) - timedelta(hours=ttl_hours)
        async with transaction(self.session):
            expired = await self.bookings.expire_stale(cutoff)
        logger.info(
            "Lifecycle: %d pending bookings expired (ttl=%dh)", expired, ttl_hours
        )
        return expired

    async def run(
        self,
        name: Union[str, LifecycleJob] = LifecycleJob.COMPLETE_TRIPS,
        pending_ttl_hours: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> LifecycleJobResult:
        try:
            job = LifecycleJob(name)
        except ValueError:
            valid = ", ".join(j.value for j in LifecycleJob)
            raise ValidationError(
                f"Invalid job name: {name}. Valid names: {valid}", "invalid_job_name"
            ) from None

        result = LifecycleJobResult()
        if job in (LifecycleJob.COMPLETE_TRIPS, LifecycleJob.AUTO_COMPLETE_TRIPS):
            result.completed_trips = await self.auto_complete_trips(now)
        if job in (LifecycleJob.COMPLETE_TRIPS, LifecycleJob.EXPIRE_PENDINGS):
            result.expired_pendings = await self.expire_pendings(pending_ttl_hours, now)

        logger.info(
            "Lifecycle job %s finished: completed_trips=%d expired_pendings=%d",
            job.value,
            result.completed_trips,
            result.expired_pendings,
        )
        return result
