"""
narrative_consistency/corrections.py -- Correction generation and application.

``CorrectionGenerator`` turns every auto-correctible violation into exactly
one ``ConsistencyCorrection``.  The corrected value is the established
value the violation carries; the confidence comes from the policy's
per-check table, and thematic corrections are capped lower because theme
judgements are softer than factual contradictions.

``apply_corrections`` is a pure transform over a content payload.  Only
automatic corrections above the confidence threshold are applied, in the
order given.  A correction whose target moved or changed since it was
generated is logged and skipped; it never aborts the batch.
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Iterable, Optional, Sequence

from narrative_consistency.config import ConsistencyPolicy
from narrative_consistency.errors import CorrectionError
from narrative_consistency.models.consistency import ConsistencyCorrection, ConsistencyViolation
from narrative_consistency.observability import ConsistencyMetrics

logger = logging.getLogger(__name__)

_MISSING = object()


# ---------------------------------------------------------------------------
# Field paths
# ---------------------------------------------------------------------------

def get_path(data: Any, path: Sequence) -> Any:
    """Return the value at *path* inside nested dicts/lists.

    Raises
    ------
    CorrectionError
        If any step of the path does not exist.
    """
    if not path:
        raise CorrectionError("Empty field path")
    current = data
    for step in path:
        if isinstance(current, dict):
            current = current.get(step, _MISSING)
        elif isinstance(current, list) and isinstance(step, int) and -len(current) <= step < len(current):
            current = current[step]
        else:
            current = _MISSING
        if current is _MISSING:
            raise CorrectionError(f"Field path {list(path)} not found at '{step}'")
    return current


def set_path(data: Any, path: Sequence, value: Any) -> None:
    """Replace the existing value at *path* with *value*."""
    get_path(data, path)
    parent = get_path(data, path[:-1]) if len(path) > 1 else data
    parent[path[-1]] = value


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------

_EXPLANATIONS = {
    "character": "Restores the established character state: {fix}",
    "world": "Restores the established world detail: {fix}",
    "plot": "Aligns plot status with continuity: {fix}",
    "theme": "Steers the scene back to the series' themes: {fix}",
}


class CorrectionGenerator:
    """Build one correction per auto-correctible violation."""

    def __init__(self, policy: Optional[ConsistencyPolicy] = None):
        self.policy = policy or ConsistencyPolicy()

    def confidence_for(self, violation: ConsistencyViolation) -> float:
        confidence = self.policy.confidence_for(violation.kind)
        if violation.type == "theme":
            confidence = min(confidence, self.policy.theme_confidence_cap)
        return max(0.0, min(1.0, confidence))

    def generate(self, violations: Iterable[ConsistencyViolation], content: Any) -> tuple[ConsistencyCorrection, ...]:
        """Return corrections for *violations*, in violation order.

        Parameters
        ----------
        violations : iterable of ConsistencyViolation
            Output of the dimension validators.
        content : dict
            The raw payload the violations were found in.  Used to render
            ``original_content`` and ``corrected_content``.
        """
        corrections = []
        for violation in violations:
            if violation.auto_correctible:
                corrections.append(self._correction_for(violation, content))
        return tuple(corrections)

    def _correction_for(self, violation: ConsistencyViolation, content: Any) -> ConsistencyCorrection:
        confidence = self.confidence_for(violation)
        correction_type = "automatic" if confidence > self.policy.automatic_threshold else "suggested"
        corrected_content = None
        if isinstance(content, dict):
            corrected_content = copy.deepcopy(content)
            try:
                set_path(corrected_content, violation.field_path, violation.expected_value)
            except CorrectionError:
                # The stated value was implied rather than written, so
                # there is nothing to rewrite in place.
                corrected_content = None
        template = _EXPLANATIONS.get(violation.type, "{fix}")
        return ConsistencyCorrection(
            violation_id=violation.id,
            correction_type=correction_type,
            field_path=violation.field_path,
            original_value=violation.affected_content.content,
            corrected_value=violation.expected_value,
            original_content=copy.deepcopy(content),
            corrected_content=corrected_content,
            explanation=template.format(fix=violation.suggested_fix or violation.description),
            confidence=confidence,
        )


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------

def apply_corrections(
    content: Any,
    corrections: Iterable[ConsistencyCorrection],
    policy: Optional[ConsistencyPolicy] = None,
    metrics: Optional[ConsistencyMetrics] = None,
) -> Any:
    """Return a copy of *content* with the automatic corrections applied.

    Suggested and manual corrections, and automatic ones at or below the
    policy threshold, are left for a human.  The input is never modified.
    """
    policy = policy or ConsistencyPolicy()
    result = copy.deepcopy(content)
    for correction in corrections:
        if correction.correction_type != "automatic" or correction.confidence <= policy.automatic_threshold:
            continue
        try:
            _apply_one(result, correction)
        except CorrectionError as exc:
            logger.warning("Skipping correction %s: %s", correction.violation_id, exc)
            if metrics is not None:
                metrics.increment("corrections_skipped")
            continue
        except Exception:
            logger.warning(
                "Skipping correction %s: could not apply at %r",
                correction.violation_id, correction.field_path, exc_info=True,
            )
            if metrics is not None:
                metrics.increment("corrections_skipped")
            continue
        if metrics is not None:
            metrics.increment("corrections_applied")
    return result


def _apply_one(content: Any, correction: ConsistencyCorrection) -> None:
    path = correction.field_path
    current = get_path(content, path)
    if current != correction.original_value:
        raise CorrectionError(
            f"Value at {list(path)} is {current!r}, expected {correction.original_value!r}"
        )
    set_path(content, path, copy.deepcopy(correction.corrected_value))
