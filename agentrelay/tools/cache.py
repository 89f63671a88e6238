"""Tool result cache.

The cache is shared by every request of a runtime. ``set`` follows
first-writer-wins: while a live entry exists for a fingerprint, later writes
are ignored, so two requests racing on the same fingerprint may both run the
tool but can never interleave or replace each other's cached value.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CacheEntry:
    value: Any
    expires_at: Optional[float] = None

    def expired(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at


class ToolCache(Protocol):
    """Key-value store used by the tool mediator (in-memory, Redis, ...)."""

    async def get(self, key: str) -> Optional[CacheEntry]:
        ...

    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> bool:
        ...


class InMemoryToolCache:
    """Process-local TTL cache with a bounded number of entries."""

    def __init__(
        self,
        *,
        default_ttl: Optional[float] = None,
        max_entries: int = 1024,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()
        self._default_ttl = default_ttl
        self._max_entries = max_entries
        self._clock = clock

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    async def get(self, key: str) -> Optional[CacheEntry]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.expired(self._clock()):
                del self._entries[key]
                return None
            return entry

    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> bool:
        """Store ``value`` unless a live entry already exists.

        Returns:
            True if this call stored the value
        """
        ttl = self._default_ttl if ttl is None else ttl
        with self._lock:
            now = self._clock()
            current = self._entries.get(key)
            if current is not None and not current.expired(now):
                return False

            self._entries[key] = CacheEntry(value=value, expires_at=now + ttl if ttl else None)
            self._entries.move_to_end(key)
            self._evict(now)
            return True

    async def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def _evict(self, now: float) -> None:
        if len(self._entries) <= self._max_entries:
            return
        for key in [k for k, entry in self._entries.items() if entry.expired(now)]:
            del self._entries[key]
        while len(self._entries) > self._max_entries:
            evicted, _ = self._entries.popitem(last=False)
            LOGGER.debug(f"Evicted tool cache entry {evicted[:12]}")
