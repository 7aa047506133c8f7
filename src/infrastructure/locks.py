"""
Redis-based distributed lock.

Used by the lifecycle worker so that, with several API processes running,
only one of them executes a lifecycle cycle at a time.  The lifecycle jobs
are idempotent, so the lock avoids duplicate work rather than protecting
correctness; seat allocation never takes a lock.

Acquire is ``SET key token NX EX ttl``; release is a Lua compare-and-delete
so a process never frees a lock that expired and was re-taken by another.
"""

from __future__ import annotations

import uuid
from typing import Optional

import redis.asyncio as aioredis

from src.config import settings

_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""

_pool: Optional[aioredis.ConnectionPool] = None


def get_redis() -> aioredis.Redis:
    """Client on a process-wide connection pool, created on first use."""
    global _pool
    if _pool is None:
        _pool = aioredis.ConnectionPool.from_url(
            settings.redis_url, decode_responses=True
        )
    return aioredis.Redis(connection_pool=_pool)


class LockNotAcquired(RuntimeError):
    pass


class DistributedLock:
    def __init__(self, client: aioredis.Redis, name: str, ttl_seconds: int = 30):
        self.redis = client
        self.key = f"lock:{name}"
        self.ttl = ttl_seconds
        self.token = uuid.uuid4().hex
        self.held = False

    async def acquire(self) -> bool:
        """Try once, without blocking.  Returns True on success."""
        self.held = bool(
            await self.redis.set(self.key, self.token, nx=True, ex=self.ttl)
        )
        return self.held

    async def release(self) -> bool:
        """Release only if we still own the lock.  Returns True if deleted."""
        if not self.held:
            return False
        deleted = await self.redis.eval(_RELEASE_SCRIPT, 1, self.key, self.token)
        self.held = False
        return bool(deleted)

    async def __aenter__(self) -> "DistributedLock":
        if not await self.acquire():
            raise LockNotAcquired(f"Could not acquire lock: {self.key}")
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.release()
