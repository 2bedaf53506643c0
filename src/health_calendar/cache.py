"""Session-scoped memoization of statistics and chart series."""

from collections import OrderedDict
from datetime import date, datetime, tzinfo

import structlog

from .dates import day_of
from .metrics import CACHE_HITS, CACHE_MISSES
from .models import ChartPoint, PeriodStats
from .types import CacheStats

logger = structlog.get_logger(__name__)

CacheValue = PeriodStats | tuple[ChartPoint, ...]


def cache_key(
    category_name: str,
    start: date | datetime,
    end: date | datetime,
    tz: tzinfo,
    hourly: bool | None = None,
) -> str:
    """Build a cache key from a category and a day-normalized range.

    Two ranges that differ only in time of day produce the same key. The
    granularity flag is only part of chart keys.
    """
    key = f"{category_name}_{day_of(start, tz):%Y-%m-%d}_{day_of(end, tz):%Y-%m-%d}"
    if hourly is not None:
        key += f"_{'hourly' if hourly else 'daily'}"
    return key


class ResultCache:
    """In-memory cache of computed results for the lifetime of a session.

    There is no expiry: entries live until ``clear()``. Not thread-safe;
    concurrent misses for the same key may both recompute.
    """

    def __init__(self) -> None:
        self._entries: OrderedDict[str, CacheValue] = OrderedDict()
        self._hits = 0
        self._misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def get(self, key: str) -> CacheValue | None:
        """Return the cached value or None on a miss."""
        value = self._entries.get(key)
        if value is None:
            self._misses += 1
            CACHE_MISSES.inc()
            return None
        self._hits += 1
        CACHE_HITS.inc()
        return value

    def put(self, key: str, value: CacheValue) -> None:
        self._entries[key] = value

    def clear(self) -> None:
        """Clear all entries from cache."""
        size = len(self._entries)
        self._entries.clear()
        logger.info("session_cache_cleared", entries=size)

    def get_stats(self) -> CacheStats:
        """Get cache statistics."""
        total = self._hits + self._misses
        hit_rate = (self._hits / total * 100) if total > 0 else 0.0
        return {
            "size": len(self._entries),
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate_pct": round(hit_rate, 2),
        }
