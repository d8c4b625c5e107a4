"""Time-bounded query result cache."""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Optional

logger = logging.getLogger("roadrisk")

DEFAULT_TTL_SECONDS = 5 * 60
DEFAULT_MAX_ENTRIES = 100


@dataclass
class CacheEntry:
    key: str
    value: Any
    timestamp: float


class QueryCache:
    """Insertion-ordered cache with a TTL and a size cap.

    Expiry is checked lazily on read. Past ``max_entries`` the oldest
    inserted key is dropped. All methods are synchronous, so a
    check-then-fill sequence never straddles an ``await``.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def get(self, key: str) -> Optional[CacheEntry]:
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None
        if self._clock() - entry.timestamp > self.ttl_seconds:
            del self._entries[key]
            self.misses += 1
            return None
        self.hits += 1
        return entry

    def put(self, key: str, value: Any) -> CacheEntry:
        entry = CacheEntry(key=key, value=value, timestamp=self._clock())
        self._entries.pop(key, None)
        self._entries[key] = entry
        while len(self._entries) > self.max_entries:
            oldest, _ = self._entries.popitem(last=False)
            logger.debug("Query cache full; evicted %s", oldest)
        return entry

    def clear(self) -> None:
        self._entries.clear()
        self.hits = 0
        self.misses = 0

    def stats(self) -> dict:
        return {
            "size": len(self._entries),
            "max_entries": self.max_entries,
            "ttl_seconds": self.ttl_seconds,
            "hits": self.hits,
            "misses": self.misses,
        }


__all__ = ["CacheEntry", "QueryCache", "DEFAULT_MAX_ENTRIES", "DEFAULT_TTL_SECONDS"]
