"""
In-process verification cache with a time-to-live.
Stale entries are masked on read rather than evicted; the next put overwrites them.
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Optional

from shared.models.domain import AggregateVerdict, CacheStats
from shared.utils.logging import get_logger
from shared.utils.metrics import CACHE_ENTRIES, CACHE_LOOKUPS

logger = get_logger(__name__)

DEFAULT_TTL_S = 24 * 60 * 60


@dataclass(frozen=True)
class CacheEntry:
    key: str
    value: AggregateVerdict
    stored_at: float


class VerificationCache:
    """Keyed store of aggregate verdicts. Clock is injectable so tests can fast-forward expiry."""

    def __init__(
        self,
        ttl_s: float = DEFAULT_TTL_S,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_s
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._hits = 0
        self._misses = 0

    @property
    def ttl_s(self) -> float:
        return self._ttl

    @property
    def size(self) -> int:
        """Entries held, stale ones included. No __len__, so an empty cache stays truthy."""
        return len(self._entries)

    def _is_fresh(self, entry: CacheEntry) -> bool:
        return self._clock() - entry.stored_at < self._ttl

    def get(self, key: str) -> Optional[AggregateVerdict]:
        entry = self._entries.get(key)
        if entry is None or not self._is_fresh(entry):
            self._misses += 1
            CACHE_LOOKUPS.labels(result="miss" if entry is None else "expired").inc()
            return None
        self._hits += 1
        CACHE_LOOKUPS.labels(result="hit").inc()
        return entry.value

    def put(self, key: str, value: AggregateVerdict) -> None:
        self._entries[key] = CacheEntry(key=key, value=value, stored_at=self._clock())
        CACHE_ENTRIES.set(len(self._entries))

    def clear(self) -> None:
        self._entries.clear()
        self._hits = 0
        self._misses = 0
        CACHE_ENTRIES.set(0)

    def stats(self) -> CacheStats:
        lookups = self._hits + self._misses
        return CacheStats(
            size=len(self._entries),
            hits=self._hits,
            misses=self._misses,
            hit_rate=round(self._hits / lookups, 4) if lookups else 0.0,
        )
