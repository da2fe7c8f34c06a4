"""
band_cache.py — Process-lifetime cache of rendered bands, keyed by day.

One entry per forecast day holds both tiers, so a request for either tier
is served from the same computation.  Entries are replaced wholesale;
readers holding the old entry keep a consistent view.

Concurrent misses for the same day are collapsed by a per-day lock in
:meth:`BandCache.get_or_compute`: the first caller computes, the others
wait and then read the fresh entry.
"""

import logging
import os
import threading
import time
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 15 * 60


@dataclass(frozen=True)
class CacheEntry:
    """Both tier results for one day."""

    tiers: dict
    last_modified: str
    timestamp: float
    notes: list = field(default_factory=list)

    def result(self, resolution: str) -> dict:
        """Return ``{"geojson", "payload", "metrics"}`` for one tier."""
        return self.tiers[resolution]


class BandCache:
    """
    TTL cache of :class:`CacheEntry` objects.

    Args:
        ttl_seconds: Entry lifetime. Defaults to ``WSSI_CACHE_TTL`` or
                     15 minutes.
        clock: Zero-argument callable returning seconds; injectable so
               tests can move time.
    """

    def __init__(self, ttl_seconds: float | None = None, clock=time.time):
        if ttl_seconds is None:
            ttl_seconds = float(
                os.environ.get("WSSI_CACHE_TTL", DEFAULT_TTL_SECONDS)
            )
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._entries: dict[int, CacheEntry] = {}
        self._locks: dict[int, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def get(self, day: int) -> CacheEntry | None:
        """Return the entry for ``day`` if it is younger than the TTL."""
        entry = self._entries.get(day)
        if entry is None:
            return None
        age = self.clock() - entry.timestamp
        if age >= self.ttl_seconds:
            logger.debug("Cache entry for day %d expired (age %.0fs)",
                         day, age)
            return None
        return entry

    def put(self, day: int, entry: CacheEntry) -> None:
        """Install ``entry`` for ``day``, replacing any previous one."""
        self._entries[day] = entry

    def clear(self) -> None:
        self._entries.clear()

    def _lock_for(self, day: int) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(day, threading.Lock())

    def get_or_compute(self, day: int, compute) -> tuple[CacheEntry, bool]:
        """
        Return a fresh entry for ``day``, computing it at most once per
        expiry across concurrent callers.

        Args:
            day: Forecast day.
            compute: Zero-argument callable returning a new
                     :class:`CacheEntry`. Exceptions propagate and nothing
                     is cached.

        Returns:
            Tuple of (entry, served_from_cache).
        """
        entry = self.get(day)
        if entry is not None:
            return entry, True

        with self._lock_for(day):
            # Another caller may have filled it while we waited
            entry = self.get(day)
            if entry is not None:
                return entry, True

            entry = compute()
            self.put(day, entry)
            return entry, False


# ── Shared instance (re-used across invocations) ────────────────────

_default_cache: BandCache | None = None


def get_default_cache() -> BandCache:
    """Return the process-wide cache, creating it on first use."""
    global _default_cache
    if _default_cache is None:
        _default_cache = BandCache()
        logger.info("Created band cache (ttl=%ss)", _default_cache.ttl_seconds)
    return _default_cache


def reset_default_cache() -> None:
    """Drop the shared cache — useful between test runs."""
    global _default_cache
    _default_cache = None
