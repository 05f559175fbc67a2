"""Process-local query cache with per-entry TTL and substring invalidation."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 5 * 60


@dataclass
class CacheEntry:
    data: Any
    stored_at: float
    ttl: float

    def is_valid(self, now: float) -> bool:
        return now - self.stored_at <= self.ttl


class QueryCache:
    """Key/value cache for read-path query results.

    Expired entries are evicted lazily by the lookup that finds them; there is
    no background sweeper. Lookups never raise: anything unexpected in the
    internal state is treated as a miss so a cache fault cannot block a read.
    """

    def __init__(
        self,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._entries: Dict[str, CacheEntry] = {}
        self._default_ttl = default_ttl
        self._clock = clock
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> Optional[Any]:
        try:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            if not entry.is_valid(self._clock()):
                self._entries.pop(key, None)
                self._misses += 1
                logger.debug("Cache entry expired for %s", key)
                return None
        except Exception:  # noqa: BLE001
            logger.warning("Discarding malformed cache entry for %s", key, exc_info=True)
            self._entries.pop(key, None)
            self._misses += 1
            return None
        self._hits += 1
        return entry.data

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        self._entries[key] = CacheEntry(
            data=value,
            stored_at=self._clock(),
            ttl=self._default_ttl if ttl is None else ttl,
        )

    def invalidate(self, pattern: str) -> int:
        """Drop every key containing ``pattern``; returns how many were removed."""
        doomed = [key for key in self._entries if pattern in key]
        for key in doomed:
            del self._entries[key]
        if doomed:
            logger.debug("Invalidated %d cache keys matching %r", len(doomed), pattern)
        return len(doomed)

    def clear(self) -> None:
        self._entries.clear()

    def keys(self) -> List[str]:
        return list(self._entries)

    def stats(self) -> Dict[str, Any]:
        return {
            "size": len(self._entries),
            "keys": self.keys(),
            "hits": self._hits,
            "misses": self._misses,
        }


__all__ = ["CacheEntry", "DEFAULT_TTL_SECONDS", "QueryCache"]
