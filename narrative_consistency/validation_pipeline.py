"""
narrative_consistency/validation_pipeline.py -- Validation state machine.

One run moves through:

    IDLE -> VALIDATING -> SCORED -> (CORRECTING) -> COMPLETE

VALIDATING takes a point-in-time snapshot of the universe and fans the four
dimension validators out on a thread pool; they are joined before scoring.
CORRECTING is entered only when at least one violation is auto-correctible.

Failures degrade instead of aborting:

    store / snapshot failure  -> permissive result (valid, score 0.7,
                                 one system warning), never cached
    one validator raising     -> zero violations for that dimension plus
                                 a system warning

A caller may cancel a run through a ``threading.Event`` or bound it with a
timeout.  A cancelled or timed-out run returns ``None``.  Validation never
mutates the universe either way.

Usage:
    pipeline = ValidationPipeline(store, cache)
    result = pipeline.validate(content, "dialogue", "harbor-saga", "script")
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from enum import Enum, auto
from typing import Any, Callable, Optional

from narrative_consistency.config import ConsistencyPolicy
from narrative_consistency.corrections import CorrectionGenerator
from narrative_consistency.models.consistency import (
    ConsistencySuggestion,
    ConsistencyViolation,
    ConsistencyWarning,
    ValidationResult,
)
from narrative_consistency.models.content import parse_payload
from narrative_consistency.models.universe import NarrativeUniverse
from narrative_consistency.observability import ConsistencyMetrics
from narrative_consistency.result_cache import ResultCache, make_key
from narrative_consistency.scorer import ConsistencyScorer
from narrative_consistency.universe_store import UniverseStore
from narrative_consistency.utils import texts_conflict
from narrative_consistency.validators import DimensionValidator, default_validators
from narrative_consistency.validators.base import lookup

logger = logging.getLogger(__name__)

# How often a waiting run re-checks its cancel event.
_POLL_INTERVAL = 0.05


class PipelineState(Enum):
    IDLE = auto()
    VALIDATING = auto()
    SCORED = auto()
    CORRECTING = auto()
    COMPLETE = auto()


TransitionCallback = Callable[[PipelineState, str], None]


class ValidationPipeline:
    """Validate content units against universe snapshots.

    The pipeline holds no per-run state; everything that survives a call
    lives in the ``UniverseStore`` or the ``ResultCache``.

    Parameters
    ----------
    store : UniverseStore
        Source of universe snapshots.
    cache : ResultCache, optional
        Shared result cache.  A private one is created when omitted.
    policy : ConsistencyPolicy, optional
        Scoring and correction policy.
    validators : dict, optional
        Dimension validators keyed by dimension name.  Defaults to the
        character, world, plot and theme validators.
    max_workers : int
        Size of the validator thread pool.
    default_timeout : float, optional
        Timeout applied when a call does not pass its own.
    on_transition : callable, optional
        Called with ``(state, universe_id)`` on every state change.
    """

    def __init__(
        self,
        store: UniverseStore,
        cache: Optional[ResultCache] = None,
        policy: Optional[ConsistencyPolicy] = None,
        validators: Optional[dict[str, DimensionValidator]] = None,
        max_workers: int = 4,
        default_timeout: Optional[float] = None,
        metrics: Optional[ConsistencyMetrics] = None,
        on_transition: Optional[TransitionCallback] = None,
    ):
        self.store = store
        self.policy = policy or ConsistencyPolicy()
        self.metrics = metrics or ConsistencyMetrics()
        self.cache = cache if cache is not None else ResultCache(metrics=self.metrics)
        self.validators = validators if validators is not None else default_validators(self.policy)
        self.scorer = ConsistencyScorer(self.policy)
        self.corrections = CorrectionGenerator(self.policy)
        self.default_timeout = default_timeout
        self.on_transition = on_transition
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="consistency-validator",
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def validate(
        self,
        content: Any,
        content_type: str,
        universe_id: str,
        tab_type: str,
        *,
        cancel_event: Optional[threading.Event] = None,
        timeout: Optional[float] = None,
    ) -> Optional[ValidationResult]:
        """Validate *content* against the current state of *universe_id*.

        Returns
        -------
        ValidationResult or None
            ``None`` only when the run was cancelled or timed out.

        Raises
        ------
        ValueError
            If *universe_id* is not a non-empty string.
        """
        if not isinstance(universe_id, str) or not universe_id.strip():
            raise ValueError(f"Invalid universe id: {universe_id!r}")

        self._transition(PipelineState.IDLE, universe_id)
        if cancel_event is not None and cancel_event.is_set():
            self.metrics.increment("cancelled")
            return None

        try:
            revision = self.store.revision(universe_id)
        except Exception as exc:
            return self._degraded(universe_id, exc)

        key = make_key(universe_id, content_type, tab_type, content, revision)
        cached = self.cache.get(key)
        if cached is not None:
            self._transition(PipelineState.COMPLETE, universe_id)
            return cached

        started = time.perf_counter()
        timeout = timeout if timeout is not None else self.default_timeout
        deadline = started + timeout if timeout is not None else None

        self._transition(PipelineState.VALIDATING, universe_id)
        try:
            snapshot = self.store.get_or_create(universe_id)
        except Exception as exc:
            return self._degraded(universe_id, exc)
        if snapshot.revision != revision:
            key = make_key(universe_id, content_type, tab_type, content, snapshot.revision)

        payload = parse_payload(tab_type, content)
        outcome = self._run_validators(payload, tab_type, snapshot, cancel_event, deadline)
        if outcome is None:
            logger.info("Validation for '%s' cancelled or timed out", universe_id)
            self.metrics.increment("cancelled")
            return None
        violations, warnings = outcome
        warnings.extend(self._transition_warnings(payload, snapshot))

        score = self.scorer.score(violations, warnings)
        is_valid = self.scorer.is_valid(score, violations)
        self._transition(PipelineState.SCORED, universe_id)

        corrections = ()
        if any(v.auto_correctible for v in violations):
            self._transition(PipelineState.CORRECTING, universe_id)
            corrections = self.corrections.generate(violations, content)

        result = ValidationResult(
            is_valid=is_valid,
            overall_score=score,
            violations=tuple(violations),
            warnings=tuple(warnings),
            suggestions=tuple(self._suggestions(violations)),
            corrections=corrections,
        )
        self._transition(PipelineState.COMPLETE, universe_id)

        self.cache.put(key, result)
        self._record(result, time.perf_counter() - started, tab_type)
        logger.debug(
            "Validated %s content for '%s': score=%.2f valid=%s violations=%d",
            tab_type, universe_id, score, is_valid, len(violations),
        )
        return result

    def _degraded(self, universe_id: str, exc: Exception) -> ValidationResult:
        logger.exception("Universe snapshot failed for '%s'", universe_id)
        self.metrics.increment("degraded")
        self._transition(PipelineState.COMPLETE, universe_id)
        return ValidationResult.permissive(str(exc))

    def shutdown(self) -> None:
        """Stop the validator pool.  Running validators are abandoned."""
        self._executor.shutdown(wait=True, cancel_futures=True)

    # ------------------------------------------------------------------
    # Fan-out
    # ------------------------------------------------------------------

    def _run_validators(self, payload, tab_type, snapshot: NarrativeUniverse, cancel_event, deadline):
        """Run every validator and join them.

        Returns ``(violations, warnings)`` in validator order, or ``None``
        if the run was cancelled or hit its deadline first.
        """
        futures: dict[str, Future] = {
            dimension: self._executor.submit(validator.validate, payload, tab_type, snapshot)
            for dimension, validator in self.validators.items()
        }
        pending = set(futures.values())
        while pending:
            if cancel_event is not None and cancel_event.is_set():
                self._cancel(pending)
                return None
            wait_for = None
            if deadline is not None:
                remaining = deadline - time.perf_counter()
                if remaining <= 0:
                    self._cancel(pending)
                    return None
                wait_for = remaining
            if cancel_event is not None:
                wait_for = _POLL_INTERVAL if wait_for is None else min(wait_for, _POLL_INTERVAL)
            _done, pending = wait(pending, timeout=wait_for, return_when=FIRST_COMPLETED)

        violations: list[ConsistencyViolation] = []
        warnings: list[ConsistencyWarning] = []
        for dimension, future in futures.items():
            try:
                violations.extend(future.result())
            except Exception as exc:
                logger.error("%s validator failed", dimension, exc_info=True)
                self.metrics.increment("validator_errors", dimension=dimension)
                warnings.append(ConsistencyWarning(
                    type="system",
                    message=f"{dimension.capitalize()} validation failed: {exc}",
                    suggestion="Review this dimension manually",
                ))
        return violations, warnings

    @staticmethod
    def _cancel(pending) -> None:
        for future in pending:
            future.cancel()

    # ------------------------------------------------------------------
    # Result assembly
    # ------------------------------------------------------------------

    def _transition_warnings(self, payload, snapshot: NarrativeUniverse) -> list[ConsistencyWarning]:
        """Warn about state changes that no arc event accounts for."""
        warnings = []
        seen = set()
        for ref in payload.characters():
            state = lookup(snapshot.characters, ref.name)
            if state is None or ref.arc_event or state.name in seen:
                continue
            current = state.current_state
            changed = []
            if texts_conflict(ref.emotional_state, current.emotional_state):
                changed.append("emotional")
            if texts_conflict(ref.physical_state, current.physical_state):
                changed.append("physical")
            if not changed:
                continue
            seen.add(state.name)
            warnings.append(ConsistencyWarning(
                type="unattributed_transition",
                message=f"{state.name}'s {' and '.join(changed)} state changes with no arc event",
                suggestion="Add an arc_event describing what caused the change",
            ))
        return warnings

    @staticmethod
    def _suggestions(violations) -> list[ConsistencySuggestion]:
        return [
            ConsistencySuggestion(
                type=v.type,
                suggestion=v.suggested_fix,
                benefit=f"Resolves: {v.description}",
            )
            for v in violations
            if not v.auto_correctible and v.suggested_fix
        ]

    def _record(self, result: ValidationResult, duration: float, tab_type: str) -> None:
        self.metrics.record_validation(duration, result.overall_score, tab_type=tab_type)
        for v in result.violations:
            self.metrics.increment("violations", type=v.type, severity=v.severity)

    def _transition(self, state: PipelineState, universe_id: str) -> None:
        if self.on_transition is None:
            return
        try:
            self.on_transition(state, universe_id)
        except Exception:
            logger.warning("Pipeline transition callback failed", exc_info=True)
