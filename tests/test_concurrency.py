"""
Concurrency safety tests.

Demonstrates:
1. Distributed lock prevents two workers running a lifecycle cycle at once.
2. A worker that cannot take the lock skips its cycle.
3. A cycle that takes the lock runs the jobs and always releases it.
"""

from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest

from src.domain.enums import TripStatus
from src.infrastructure.locks import DistributedLock, LockNotAcquired
from src.infrastructure.repositories import TripOfferRepository
from src.workers import lifecycle as worker
from tests.conftest import add_trip


class TestDistributedLock:
    """Tests the Redis distributed lock logic (mocked Redis)."""

    @pytest.mark.asyncio
    async def test_acquire_succeeds(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)

        lock = DistributedLock(mock_redis, "test-key", ttl_seconds=10)
        assert await lock.acquire() is True
        mock_redis.set.assert_awaited_once_with(
            "lock:test-key", lock.token, nx=True, ex=10
        )

    @pytest.mark.asyncio
    async def test_acquire_fails_if_held(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=None)

        lock = DistributedLock(mock_redis, "test-key", ttl_seconds=10)
        assert await lock.acquire() is False
        assert lock.held is False

    @pytest.mark.asyncio
    async def test_release_calls_eval_with_own_token(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)
        mock_redis.eval = AsyncMock(return_value=1)

        lock = DistributedLock(mock_redis, "test-key", ttl_seconds=10)
        await lock.acquire()
        assert await lock.release() is True

        args = mock_redis.eval.call_args.args
        assert args[1:] == (1, "lock:test-key", lock.token)

    @pytest.mark.asyncio
    async def test_release_without_acquire_is_noop(self):
        mock_redis = AsyncMock()
        lock = DistributedLock(mock_redis, "test-key")
        assert await lock.release() is False
        mock_redis.eval.assert_not_called()

    @pytest.mark.asyncio
    async def test_two_holders_get_distinct_tokens(self):
        a = DistributedLock(AsyncMock(), "same")
        b = DistributedLock(AsyncMock(), "same")
        assert a.key == b.key
        assert a.token != b.token

    @pytest.mark.asyncio
    async def test_context_manager_acquire_fail_raises(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=False)

        lock = DistributedLock(mock_redis, "test-key", ttl_seconds=10)
        with pytest.raises(LockNotAcquired, match="Could not acquire lock"):
            async with lock:
                pass


class TestLifecycleWorker:
    @pytest.mark.asyncio
    async def test_cycle_skipped_when_lock_held(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=False)
        factory = AsyncMock()

        with (
            patch.object(worker, "get_redis", return_value=mock_redis),
            patch.object(worker, "async_session_factory", factory),
        ):
            assert await worker.run_lifecycle_cycle() is None

        factory.assert_not_called()
        mock_redis.eval.assert_not_called()

    @pytest.mark.asyncio
    async def test_cycle_runs_jobs_and_releases_lock(self, session_factory, world):
        async with session_factory() as session:
            trip = await add_trip(
                session, world["driver"], world["vehicle"], departs_in=-timedelta(days=1)
            )
            await session.commit()

        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)
        mock_redis.eval = AsyncMock(return_value=1)

        with (
            patch.object(worker, "get_redis", return_value=mock_redis),
            patch.object(worker, "async_session_factory", session_factory),
        ):
            result = await worker.run_lifecycle_cycle()

        assert result.completed_trips == 1
        assert result.expired_pendings == 0
        mock_redis.eval.assert_awaited_once()

        async with session_factory() as session:
            stored = await TripOfferRepository(session).find_by_id(trip.id)
        assert stored.status == TripStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_lock_released_when_cycle_fails(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)
        mock_redis.eval = AsyncMock(return_value=1)

        def _broken_factory():
            raise RuntimeError("database unavailable")

        with (
            patch.object(worker, "get_redis", return_value=mock_redis),
            patch.object(worker, "async_session_factory", _broken_factory),
        ):
            with pytest.raises(RuntimeError):
                await worker.run_lifecycle_cycle()

        mock_redis.eval.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_disabled_worker_does_not_start(self):
        with patch.object(worker.settings, "lifecycle_worker_enabled", False):
            await worker.start_lifecycle_loop()
        assert worker._task is None
