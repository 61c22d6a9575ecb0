"""
In-memory region cache for upstream poll results.

Each entry holds the full flight set returned for one quantized region,
stamped with the fetch time. Nearby requests round to the same key, so
many clients looking at roughly the same area share a single upstream
poll.

Freshness depends on authentication state. OpenSky serves authenticated
clients at a finer time resolution, so while a bearer token is held the
cache refreshes on the shorter TTL; anonymous sessions keep entries for
longer to stay within the tighter credit allowance. Between polls the
feed service dead-reckons positions forward, so a longer TTL costs little
visual accuracy.

Entries are immutable. A write for a key replaces the whole entry, so
concurrent readers see either the old snapshot or the new one.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Optional, Tuple

from flightfeed.config import config
from flightfeed.models.flight_state import FlightState

logger = logging.getLogger(__name__)


def region_key(lat: float, lng: float, radius: float, precision: Optional[int] = None) -> str:
    """
    Quantize a query to its cache key.

    Latitude and longitude are rounded to `precision` decimal places
    (0.01 degrees ~ 1.1 km by default); radius is kept as given.
    """
    if precision is None:
        precision = config.cache.key_precision
    return f'{lat:.{precision}f}_{lng:.{precision}f}_{radius:g}'


@dataclass(frozen=True)
class RegionCacheEntry:
    """One cached poll result."""
    key: str
    flights: Tuple[FlightState, ...]
    timestamp: int  # epoch ms of the upstream fetch

    def age_ms(self, now_ms: int) -> int:
        return max(0, now_ms - self.timestamp)


class RegionCache:
    """
    Thread-safe cache of region poll results.

    Size-bounded: once more than max_entries regions are held, the oldest
    half by fetch time is evicted. Reads never extend an entry's life.
    """

    def __init__(
        self,
        ttl_authenticated_seconds: Optional[int] = None,
        ttl_anonymous_seconds: Optional[int] = None,
        max_entries: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ):
        if ttl_authenticated_seconds is None:
            ttl_authenticated_seconds = config.cache.ttl_authenticated_seconds
        if ttl_anonymous_seconds is None:
            ttl_anonymous_seconds = config.cache.ttl_anonymous_seconds

        self.ttl_authenticated_ms = int(ttl_authenticated_seconds * 1000)
        self.ttl_anonymous_ms = int(ttl_anonymous_seconds * 1000)
        self.max_entries = max_entries or config.cache.max_entries
        self._clock = clock

        self._entries: Dict[str, RegionCacheEntry] = {}
        self._lock = threading.RLock()

        # Statistics
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def now_ms(self) -> int:
        return int(self._clock() * 1000)

    def get(self, key: str) -> Optional[RegionCacheEntry]:
        """Return the latest entry for a key regardless of age."""
        with self._lock:
            return self._entries.get(key)

    def put(
        self,
        key: str,
        flights: Iterable[FlightState],
        timestamp: Optional[int] = None,
    ) -> RegionCacheEntry:
        """Store a fresh poll result, superseding any previous entry for the key."""
        entry = RegionCacheEntry(
            key=key,
            flights=tuple(flights),
            timestamp=self.now_ms() if timestamp is None else timestamp,
        )

        with self._lock:
            self._entries[key] = entry

            if len(self._entries) > self.max_entries:
                self.purge_oldest(len(self._entries) // 2)

        return entry

    def ttl_ms(self, authenticated: bool) -> int:
        return self.ttl_authenticated_ms if authenticated else self.ttl_anonymous_ms

    def is_fresh(
        self,
        entry: RegionCacheEntry,
        authenticated: bool,
        now_ms: Optional[int] = None,
    ) -> bool:
        """Whether an entry may be served without polling upstream."""
        if now_ms is None:
            now_ms = self.now_ms()
        return now_ms - entry.timestamp < self.ttl_ms(authenticated)

    def get_fresh(
        self,
        key: str,
        authenticated: bool,
        now_ms: Optional[int] = None,
    ) -> Optional[RegionCacheEntry]:
        """Return the entry for a key only if it is still fresh."""
        entry = self.get(key)
        if entry is not None and self.is_fresh(entry, authenticated, now_ms):
            with self._lock:
                self._hits += 1
            return entry

        with self._lock:
            self._misses += 1
        return None

    def purge_oldest(self, count: int) -> int:
        """Remove the `count` entries with the oldest fetch time."""
        if count <= 0:
            return 0

        with self._lock:
            oldest = sorted(
                self._entries.values(),
                key=lambda entry: entry.timestamp,
            )[:count]
            for entry in oldest:
                del self._entries[entry.key]
            self._evictions += len(oldest)

        logger.debug(f'Evicted {len(oldest)} region cache entries')
        return len(oldest)

    def invalidate(self, key: str) -> None:
        """Remove specific entry from cache."""
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        """Clear entire cache."""
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    @property
    def stats(self) -> dict:
        """Get cache statistics."""
        with self._lock:
            lookups = self._hits + self._misses
            return {
                'entries': len(self._entries),
                'max_entries': self.max_entries,
                'hits': self._hits,
                'misses': self._misses,
                'evictions': self._evictions,
                'hit_rate': self._hits / lookups if lookups > 0 else 0,
                'ttl_authenticated_ms': self.ttl_authenticated_ms,
                'ttl_anonymous_ms': self.ttl_anonymous_ms,
            }
