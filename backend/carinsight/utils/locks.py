# /carinsight/utils/locks.py

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional, Protocol

import redis.asyncio as redis
from redis.exceptions import LockError, RedisError


# Per-conversation single-writer locks. Turns for the same key run one after
# another; different keys never wait on each other.

logger = logging.getLogger(__name__)


class KeyedLock(Protocol):
    def hold(self, key: str):
        ...


class KeyedAsyncLock:
    """In-process lock per key. Entries are dropped once nobody holds or waits for them."""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                self._locks.pop(key, None)


class RedisKeyedLock:
    """
    Distributed lock per key for deployments with several workers. When Redis
    is unreachable or the lock cannot be taken in time, the turn runs under an
    in-process lock for the same key instead of failing.
    """

    def __init__(self, client: redis.Redis, timeout: float = 60.0, blocking_timeout: Optional[float] = None):
        self.client = client
        self.timeout = timeout
        self.blocking_timeout = blocking_timeout if blocking_timeout is not None else timeout
        self.fallback = KeyedAsyncLock()

    @classmethod
    def from_url(cls, redis_url: str, timeout: float = 60.0) -> "RedisKeyedLock":
        return cls(redis.from_url(redis_url), timeout=timeout)

    async def _acquire(self, key: str):
        """Returns the acquired Redis lock, or None when the in-process lock must be used."""
        lock = self.client.lock(
            f"conversation_lock:{key}", timeout=self.timeout, blocking_timeout=self.blocking_timeout
        )
        try:
            acquired = await lock.acquire()
        except RedisError as e:
            logger.error(f"Redis lock for conversation {key} unavailable, using in-process lock: {e}")
            return None
        if not acquired:
            logger.warning(
                f"Could not lock conversation {key} in Redis within {self.blocking_timeout}s, using in-process lock"
            )
            return None
        return lock

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = await self._acquire(key)
        if lock is None:
            async with self.fallback.hold(key):
                yield
            return
        try:
            yield
        finally:
            try:
                await lock.release()
            except LockError as e:
                # The lock expired while the turn was running.
                logger.warning(f"Conversation lock for {key} was already released: {e}")
            except RedisError as e:
                logger.error(f"Could not release conversation lock for {key}: {e}")

    async def close(self):
        await self.client.aclose()
