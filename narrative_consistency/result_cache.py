"""
narrative_consistency/result_cache.py -- Bounded cache of validation results.

Entries are keyed by ``(universe_id, content_type, content_hash, revision)``
where the hash covers the tab type and the canonical JSON of the payload and
``revision`` is the universe revision the result was computed against.  A
result computed from a snapshot that was superseded mid-run is stored under
its old revision and is never served once the universe has moved on.  The cache
is an LRU bounded by ``max_size`` whose entries also expire after
``ttl_seconds``.  All access goes through one lock; writes are best-effort
and never raise.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from typing import Callable, Optional

from narrative_consistency.models.consistency import ValidationResult
from narrative_consistency.observability import ConsistencyMetrics
from narrative_consistency.utils import content_hash

logger = logging.getLogger(__name__)

CacheKey = tuple[str, str, str, int]


def make_key(
    universe_id: str, content_type: str, tab_type: str, content, revision: int = 0,
) -> CacheKey:
    return (universe_id, content_type or "", content_hash(tab_type, content), revision)


class ResultCache:
    """Thread-safe LRU + TTL map of ``ValidationResult`` objects.

    Parameters
    ----------
    max_size : int
        Maximum number of entries; the least recently used is evicted first.
    ttl_seconds : float
        Lifetime of an entry measured from when it was stored.
    clock : callable, optional
        Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        max_size: int = 256,
        ttl_seconds: float = 300.0,
        metrics: Optional[ConsistencyMetrics] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self.metrics = metrics or ConsistencyMetrics()
        self._clock = clock
        self._entries: OrderedDict[CacheKey, tuple[float, ValidationResult]] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, key: CacheKey) -> Optional[ValidationResult]:
        """Return the cached result for *key*, or None if absent or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                stored_at, result = entry
                if self._clock() - stored_at <= self.ttl_seconds:
                    self._entries.move_to_end(key)
                    self.metrics.increment("cache_hits")
                    return result
                del self._entries[key]
        self.metrics.increment("cache_misses")
        return None

    def put(self, key: CacheKey, result: ValidationResult) -> None:
        """Store *result*.  Failures are logged and swallowed."""
        try:
            with self._lock:
                self._entries[key] = (self._clock(), result)
                self._entries.move_to_end(key)
                while len(self._entries) > self.max_size:
                    self._entries.popitem(last=False)
        except Exception:
            logger.warning("Result cache write failed for %s", key[:2], exc_info=True)

    def invalidate_universe(self, universe_id: str) -> int:
        """Drop every entry for *universe_id*; returns how many were removed."""
        with self._lock:
            stale = [k for k in self._entries if k[0] == universe_id]
            for key in stale:
                del self._entries[key]
        if stale:
            logger.debug("Invalidated %d cached result(s) for '%s'", len(stale), universe_id)
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
