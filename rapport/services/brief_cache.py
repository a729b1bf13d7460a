"""Process-wide cache of generated briefs, gated by age and record count."""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from typing import Callable, Optional

from rapport.services.models import CacheEntry

DEFAULT_TTL_SECONDS = 3600.0

_logger = logging.getLogger("rapport.briefs")


def default_is_fresh(entry: CacheEntry, generation: int, now: float, ttl_seconds: float) -> bool:
    return (now - entry.cached_at) < ttl_seconds and entry.generation == generation


class BriefCache:
    """Keyed by subject id.

    An entry is served only while it is younger than the TTL and the
    subject's record count matches the count it was generated from.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
        is_fresh: Callable[[CacheEntry, int, float, float], bool] = default_is_fresh,
    ) -> None:
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._is_fresh = is_fresh
        self._entries: dict[str, CacheEntry] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._mutex = threading.Lock()

    @property
    def ttl_seconds(self) -> float:
        return self._ttl_seconds

    def get(self, subject_id: str, generation: int) -> Optional[str]:
        with self._mutex:
            entry = self._entries.get(subject_id)
        if entry is None:
            return None
        if not self._is_fresh(entry, generation, self._clock(), self._ttl_seconds):
            _logger.debug(
                "Brief for %s is stale (cached generation=%d, current=%d)",
                subject_id,
                entry.generation,
                generation,
            )
            return None
        return entry.brief

    def put(self, subject_id: str, brief: str, generation: int) -> CacheEntry:
        entry = CacheEntry(
            brief=brief, cached_at=self._clock(), subject_id=subject_id, generation=generation
        )
        with self._mutex:
            self._entries[subject_id] = entry
        return entry

    def clear(self, subject_id: Optional[str] = None) -> None:
        with self._mutex:
            if subject_id is None:
                self._entries.clear()
            else:
                self._entries.pop(subject_id, None)
        _logger.info("Cleared brief cache (%s)", subject_id or "all")

    def lock(self, subject_id: str) -> asyncio.Lock:
        """Per-subject lock that serializes brief generation."""
        with self._mutex:
            lock = self._locks.get(subject_id)
            if lock is None:
                lock = asyncio.Lock()
                self._locks[subject_id] = lock
            return lock
