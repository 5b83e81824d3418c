"""
Per-key locks that serialize every mutation of one ride.

Two implementations of the same interface:

* ``LocalLockManager`` -- one ``asyncio.Lock`` per key.  Enough for a
  single API process.
* ``RedisLockManager`` -- a ``DistributedLock`` per key, so several API
  processes share the same critical sections.

``hold(*keys)`` acquires keys in sorted order, which rules out deadlock
between callers that need more than one key (``start_ride`` holds both
``driver:<id>`` and ``ride:<id>``).

The Redis lock uses SET NX EX for acquire and a Lua script for atomic
check-and-delete on release.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from contextlib import AbstractAsyncContextManager, AsyncExitStack, asynccontextmanager
from typing import AsyncIterator, Protocol

import redis.asyncio as aioredis

from carpool.domain.errors import LockTimeout

logger = logging.getLogger(__name__)


def ride_key(ride_id: int) -> str:
    return f"ride:{ride_id}"


def driver_key(driver_id: int) -> str:
    return f"driver:{driver_id}"


class LockManager(Protocol):
    def hold(self, *keys: str) -> AbstractAsyncContextManager[None]: ...


# ── In-process ────────────────────────────────────────────────────────


class LocalLockManager:
    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def _hold_one(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]

    @asynccontextmanager
    async def hold(self, *keys: str) -> AsyncIterator[None]:
        async with AsyncExitStack() as stack:
            for key in sorted(set(keys)):
                await stack.enter_async_context(self._hold_one(key))
            yield

    def __len__(self) -> int:
        return len(self._locks)


# ── Redis ─────────────────────────────────────────────────────────────


class DistributedLock:
    def __init__(
        self,
        client: aioredis.Redis,
        key: str,
        ttl_seconds: int = 30,
        wait_seconds: float = 10.0,
        retry_interval: float = 0.05,
    ):
        self.redis = client
        self.key = f"lock:{key}"
        self.ttl = ttl_seconds
        self.wait = wait_seconds
        self.retry_interval = retry_interval
        self.token = str(uuid.uuid4())

    async def acquire(self) -> bool:
        """Try to acquire once. Returns True on success."""
        return bool(
            await self.redis.set(self.key, self.token, nx=True, ex=self.ttl)
        )

    async def acquire_blocking(self) -> None:
        """Poll until acquired or ``wait_seconds`` elapse."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.wait
        while not await self.acquire():
            if loop.time() >= deadline:
                logger.warning("Timed out waiting for %s", self.key)
                raise LockTimeout()
            await asyncio.sleep(self.retry_interval)

    async def release(self) -> None:
        """Release only if we still own the lock (atomic via Lua)."""
        lua = """
        if redis.call("get", KEYS[1]) == ARGV[1] then
            return redis.call("del", KEYS[1])
        else
            return 0
        end
        """
        await self.redis.eval(lua, 1, self.key, self.token)

    # context-manager support
    async def __aenter__(self):
        await self.acquire_blocking()
        return self

    async def __aexit__(self, *args):
        await asyncio.shield(self.release())


class RedisLockManager:
    def __init__(
        self,
        client: aioredis.Redis,
        ttl_seconds: int = 30,
        wait_seconds: float = 10.0,
        retry_interval: float = 0.05,
    ):
        self.redis = client
        self.ttl = ttl_seconds
        self.wait = wait_seconds
        self.retry_interval = retry_interval

    @asynccontextmanager
    async def hold(self, *keys: str) -> AsyncIterator[None]:
        async with AsyncExitStack() as stack:
            for key in sorted(set(keys)):
                await stack.enter_async_context(
                    DistributedLock(
                        self.redis,
                        key,
                        ttl_seconds=self.ttl,
                        wait_seconds=self.wait,
                        retry_interval=self.retry_interval,
                    )
                )
            yield
