"""Durable store adapters.

The queue engine only needs single-key primitives, named after the Redis
commands they map to. ``RedisJobStore`` is the production backend;
``MemoryJobStore`` keeps the same semantics in-process for single-node
deployments and tests.
"""

import asyncio
import bisect
import logging
from abc import ABC, abstractmethod
from typing import Optional

import redis.asyncio as redis

from depict_jobs.errors import StoreUnavailable

logger = logging.getLogger(__name__)


class JobStore(ABC):
    """Minimal key/value + sorted-set store used by queues."""

    @abstractmethod
    async def ping(self) -> bool: ...

    @abstractmethod
    async def get(self, key: str) -> Optional[str]: ...

    @abstractmethod
    async def set(self, key: str, value: str) -> None: ...

    @abstractmethod
    async def replace(self, key: str, value: str) -> bool:
        """Overwrite an existing key; False (and no write) when it is absent."""

    @abstractmethod
    async def delete(self, *keys: str) -> int: ...

    @abstractmethod
    async def incr(self, key: str) -> int: ...

    @abstractmethod
    async def zadd(self, key: str, member: str, score: float, only_existing: bool = False) -> None:
        """Add or rescore a member; with only_existing, never add a new one."""

    @abstractmethod
    async def zrem(self, key: str, member: str) -> int:
        """Remove a member; returns 1 only for the caller that removed it."""

    @abstractmethod
    async def zrange(self, key: str, start: int, stop: int) -> list[str]:
        """Members by ascending score, inclusive rank range (stop=-1 is last)."""

    @abstractmethod
    async def zrangebyscore(self, key: str, min_score: float, max_score: float) -> list[str]: ...

    @abstractmethod
    async def zscore(self, key: str, member: str) -> Optional[float]: ...

    @abstractmethod
    async def zcard(self, key: str) -> int: ...

    async def close(self) -> None:
        """Release connections."""


class RedisJobStore(JobStore):
    """Store backed by Redis (shared by every queue of the process)."""

    def __init__(self, redis_url: str):
        self.redis_url = redis_url
        self._redis = redis.from_url(
            redis_url,
            encoding="utf-8",
            decode_responses=True,
        )

    async def ping(self) -> bool:
        return bool(await self._redis.ping())

    async def get(self, key: str) -> Optional[str]:
        return await self._redis.get(key)

    async def set(self, key: str, value: str) -> None:
        await self._redis.set(key, value)

    async def replace(self, key: str, value: str) -> bool:
        return bool(await self._redis.set(key, value, xx=True))

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return await self._redis.delete(*keys)

    async def incr(self, key: str) -> int:
        return await self._redis.incr(key)

    async def zadd(self, key: str, member: str, score: float, only_existing: bool = False) -> None:
        await self._redis.zadd(key, {member: score}, xx=only_existing)

    async def zrem(self, key: str, member: str) -> int:
        return await self._redis.zrem(key, member)

    async def zrange(self, key: str, start: int, stop: int) -> list[str]:
        return await self._redis.zrange(key, start, stop)

    async def zrangebyscore(self, key: str, min_score: float, max_score: float) -> list[str]:
        return await self._redis.zrangebyscore(key, min_score, max_score)

    async def zscore(self, key: str, member: str) -> Optional[float]:
        return await self._redis.zscore(key, member)

    async def zcard(self, key: str) -> int:
        return await self._redis.zcard(key)

    async def close(self) -> None:
        await self._redis.aclose()
        logger.info("Disconnected from Redis")


class _SortedSet:
    """Score-ordered members; ties ordered by member like Redis."""

    def __init__(self):
        self.scores: dict[str, float] = {}
        self.order: list[tuple[float, str]] = []

    def add(self, member: str, score: float) -> None:
        self.remove(member)
        self.scores[member] = score
        bisect.insort(self.order, (score, member))

    def remove(self, member: str) -> int:
        score = self.scores.pop(member, None)
        if score is None:
            return 0
        self.order.pop(bisect.bisect_left(self.order, (score, member)))
        return 1


class MemoryJobStore(JobStore):
    """In-process store. Not shared across processes and not persistent."""

    def __init__(self):
        self._values: dict[str, str] = {}
        self._sets: dict[str, _SortedSet] = {}

    def _zset(self, key: str) -> _SortedSet:
        return self._sets.setdefault(key, _SortedSet())

    async def ping(self) -> bool:
        return True

    async def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    async def set(self, key: str, value: str) -> None:
        self._values[key] = value

    async def replace(self, key: str, value: str) -> bool:
        if key not in self._values:
            return False
        self._values[key] = value
        return True

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self._values.pop(key, None) is not None:
                removed += 1
            if self._sets.pop(key, None) is not None:
                removed += 1
        return removed

    async def incr(self, key: str) -> int:
        value = int(self._values.get(key, "0")) + 1
        self._values[key] = str(value)
        return value

    async def zadd(self, key: str, member: str, score: float, only_existing: bool = False) -> None:
        zset = self._zset(key)
        if only_existing and member not in zset.scores:
            return
        zset.add(member, float(score))

    async def zrem(self, key: str, member: str) -> int:
        zset = self._sets.get(key)
        return zset.remove(member) if zset else 0

    async def zrange(self, key: str, start: int, stop: int) -> list[str]:
        zset = self._sets.get(key)
        if not zset:
            return []
        members = [member for _, member in zset.order]
        if stop < 0:
            stop = len(members) + stop
        return members[start:stop + 1]

    async def zrangebyscore(self, key: str, min_score: float, max_score: float) -> list[str]:
        zset = self._sets.get(key)
        if not zset:
            return []
        return [member for score, member in zset.order if min_score <= score <= max_score]

    async def zscore(self, key: str, member: str) -> Optional[float]:
        zset = self._sets.get(key)
        return zset.scores.get(member) if zset else None

    async def zcard(self, key: str) -> int:
        zset = self._sets.get(key)
        return len(zset.scores) if zset else 0


def create_store(settings) -> JobStore:
    """Build the store adapter selected by settings.queue_backend."""
    if settings.queue_backend == "memory":
        return MemoryJobStore()
    if settings.queue_backend == "redis":
        return RedisJobStore(settings.redis_url)
    raise ValueError(f"Unknown queue backend: {settings.queue_backend}")


async def probe_store(store: JobStore, timeout: float = 3.0) -> None:
    """Check the store once at boot.

    Raises:
        StoreUnavailable: if the store does not answer in time
    """
    try:
        ok = await asyncio.wait_for(store.ping(), timeout=timeout)
    except asyncio.TimeoutError as e:
        raise StoreUnavailable("Store ping timed out") from e
    except Exception as e:
        raise StoreUnavailable(f"Store unreachable: {e}") from e
    if not ok:
        raise StoreUnavailable("Store ping returned a negative answer")
