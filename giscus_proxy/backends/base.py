from abc import ABC
from abc import abstractmethod
from typing import Optional

from giscus_proxy.types import CacheEntry


class BaseCacheBackend(ABC):
    """Base class for all response cache backends."""

    @abstractmethod
    async def get(self, key: str) -> Optional[CacheEntry]:
        """Retrieve a live cache entry, or None when absent or expired."""

    @abstractmethod
    async def set(self, key: str, entry: CacheEntry) -> None:
        """Store an entry, replacing any existing one for the key."""
