"""
narrative_consistency/observability.py -- Engine metrics.

Counters and histograms are recorded through the OpenTelemetry metrics API.
Without an SDK configured by the host application the API meter is a
no-op, so the engine also keeps a small in-process tally that tests and
diagnostics can read back through ``snapshot()``.

Counter names:
    validations        completed validation runs
    cache_hits         results served from the result cache
    cache_misses       lookups that fell through to the pipeline
    violations         violations found, by dimension
    degraded           runs that returned the permissive fallback
    cancelled          runs abandoned by cancellation or timeout
    validator_errors   validator exceptions absorbed as warnings
    corrections_applied / corrections_skipped
    updates / update_failures
"""

from __future__ import annotations

import logging
import threading
from collections import Counter
from typing import Optional

from opentelemetry import metrics
from opentelemetry.metrics import Meter

logger = logging.getLogger(__name__)

_PREFIX = "narrative_consistency"

_COUNTERS = {
    "validations": "Completed validation runs",
    "cache_hits": "Validation results served from cache",
    "cache_misses": "Validation cache misses",
    "violations": "Consistency violations detected",
    "degraded": "Validations that fell back to the permissive result",
    "cancelled": "Validations abandoned by cancellation or timeout",
    "validator_errors": "Dimension validator failures",
    "corrections_applied": "Automatic corrections applied to content",
    "corrections_skipped": "Corrections skipped because they no longer applied",
    "updates": "Universe updates committed",
    "update_failures": "Universe updates rolled back",
}


class ConsistencyMetrics:
    """Thin wrapper over OpenTelemetry instruments plus a local tally."""

    def __init__(self, meter: Optional[Meter] = None):
        self.meter = meter or metrics.get_meter(__name__)
        self._counters = {
            key: self.meter.create_counter(
                name=f"{_PREFIX}_{key}_total",
                description=description,
                unit="1",
            )
            for key, description in _COUNTERS.items()
        }
        self.validation_duration = self.meter.create_histogram(
            name=f"{_PREFIX}_validation_duration_seconds",
            description="Duration of a full validation run",
            unit="s",
        )
        self.validation_score = self.meter.create_histogram(
            name=f"{_PREFIX}_validation_score",
            description="Distribution of overall consistency scores",
            unit="1",
        )
        self._tally: Counter = Counter()
        self._lock = threading.Lock()

    def increment(self, key: str, amount: int = 1, **attributes) -> None:
        if amount <= 0:
            return
        counter = self._counters.get(key)
        if counter is None:
            logger.debug("Unknown metric key '%s' ignored", key)
            return
        counter.add(amount, attributes or None)
        with self._lock:
            self._tally[key] += amount

    def record_validation(self, duration_s: float, score: float, **attributes) -> None:
        self.validation_duration.record(duration_s, attributes or None)
        self.validation_score.record(score, attributes or None)
        self.increment("validations", **attributes)

    def snapshot(self) -> dict[str, int]:
        """Return a copy of the in-process counter tally."""
        with self._lock:
            return dict(self._tally)
