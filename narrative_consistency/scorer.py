"""
narrative_consistency/scorer.py -- Consistency score and acceptance.

The score starts at 1.0 and loses the policy weight of every violation
(by severity) and every warning, clamped to [0, 1].  Content is valid
when the score reaches the policy threshold and no critical violation is
present.

Usage:
    from narrative_consistency.scorer import ConsistencyScorer

    scorer = ConsistencyScorer()
    score = scorer.score(violations, warnings)
    scorer.is_valid(score, violations)
"""

from __future__ import annotations

from typing import Iterable, Optional, Sequence

from narrative_consistency.config import ConsistencyPolicy
from narrative_consistency.models.consistency import ConsistencyViolation, ConsistencyWarning


class ConsistencyScorer:
    """Deterministic scoring driven by a ``ConsistencyPolicy``."""

    def __init__(self, policy: Optional[ConsistencyPolicy] = None):
        self.policy = policy or ConsistencyPolicy()

    def score(
        self,
        violations: Iterable[ConsistencyViolation],
        warnings: Iterable[ConsistencyWarning] = (),
    ) -> float:
        """Return the consistency score in [0, 1].

        Rounded to four decimals so that equal penalty sets always compare
        equal regardless of summation order.
        """
        penalty = sum(self.policy.weight_for(v.severity) for v in violations)
        penalty += self.policy.warning_weight * sum(1 for _ in warnings)
        return round(min(1.0, max(0.0, 1.0 - penalty)), 4)

    def is_valid(self, score: float, violations: Sequence[ConsistencyViolation]) -> bool:
        if any(v.severity == "critical" for v in violations):
            return False
        return score >= self.policy.validity_threshold
