import asyncio
import time
from collections.abc import AsyncIterator
from collections.abc import Callable
from contextlib import asynccontextmanager
from logging import getLogger
from typing import Optional

from giscus_proxy.types import CacheEntry

from .base import BaseCacheBackend

DEFAULT_MAX_ENTRIES = 512

logger = getLogger(__name__)


class ReadWriteLock:
    """Asyncio lock allowing many concurrent readers or a single writer."""

    def __init__(self) -> None:
        self._cond = asyncio.Condition()
        self._readers = 0
        self._writing = False

    @asynccontextmanager
    async def read(self) -> AsyncIterator[None]:
        async with self._cond:
            await self._cond.wait_for(lambda: not self._writing)
            self._readers += 1
        try:
            yield
        finally:
            async with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @asynccontextmanager
    async def write(self) -> AsyncIterator[None]:
        async with self._cond:
            await self._cond.wait_for(
                lambda: not self._writing and self._readers == 0
            )
            self._writing = True
        try:
            yield
        finally:
            async with self._cond:
                self._writing = False
                self._cond.notify_all()


class MemoryBackend(BaseCacheBackend):
    """Bounded in-memory response cache with lazy per-entry expiry.

    When the cache is full, storing a new key evicts one arbitrary existing
    entry. There is no recency ordering.
    """

    def __init__(
        self,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if max_entries < 1:
            msg = "max_entries must be at least 1"
            raise ValueError(msg)
        self.cache: dict[str, CacheEntry] = {}
        self.max_entries = max_entries
        self.clock = clock
        self.lock = ReadWriteLock()

    async def get(self, key: str) -> Optional[CacheEntry]:
        async with self.lock.read():
            entry = self.cache.get(key)
            if entry is None:
                return None
            if self.clock() > entry.expires:
                return None
            return entry

    async def set(self, key: str, entry: CacheEntry) -> None:
        async with self.lock.write():
            if key not in self.cache and len(self.cache) >= self.max_entries:
                evicted = next(iter(self.cache))
                del self.cache[evicted]
                logger.debug("Evicted cache entry <%s>", evicted)
            self.cache[key] = entry

    def __len__(self) -> int:
        return len(self.cache)
