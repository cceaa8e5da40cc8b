"""
narrative_consistency/models/consistency.py -- Validation output models.

Violations, corrections and results are immutable.  A validation run never
edits a violation; a later run simply produces new ones.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from narrative_consistency.models.universe import ContentReference

ViolationType = Literal["character", "world", "plot", "theme"]
Severity = Literal["critical", "major", "minor", "suggestion"]
CorrectionType = Literal["automatic", "suggested", "manual"]

SEVERITIES: tuple[str, ...] = ("critical", "major", "minor", "suggestion")


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class ConsistencyViolation(_Frozen):
    """A detected contradiction between new content and universe state."""

    id: str
    type: ViolationType
    severity: Severity
    kind: str
    description: str
    affected_content: ContentReference
    conflicts_with: ContentReference
    suggested_fix: str = ""
    auto_correctible: bool = False
    expected_value: Any = None

    @property
    def field_path(self) -> tuple[Any, ...]:
        return self.affected_content.field_path


class ConsistencyWarning(_Frozen):
    type: str
    message: str
    suggestion: str = ""


class ConsistencySuggestion(_Frozen):
    type: str
    suggestion: str
    benefit: str = ""


class ConsistencyCorrection(_Frozen):
    """A proposed edit resolving exactly one violation."""

    violation_id: str
    correction_type: CorrectionType
    field_path: tuple[Any, ...] = ()
    original_value: Any = None
    corrected_value: Any = None
    original_content: Any = None
    corrected_content: Any = None
    explanation: str = ""
    confidence: float = Field(ge=0.0, le=1.0)


class ValidationResult(_Frozen):
    """The pipeline's verdict for one content unit."""

    is_valid: bool
    overall_score: float = Field(ge=0.0, le=1.0)
    violations: tuple[ConsistencyViolation, ...] = ()
    warnings: tuple[ConsistencyWarning, ...] = ()
    suggestions: tuple[ConsistencySuggestion, ...] = ()
    corrections: tuple[ConsistencyCorrection, ...] = ()
    degraded: bool = False

    @property
    def critical_count(self) -> int:
        return sum(1 for v in self.violations if v.severity == "critical")

    def violations_of(self, dimension: str) -> list[ConsistencyViolation]:
        return [v for v in self.violations if v.type == dimension]

    def format_human(self) -> str:
        """Format the result for display to the user."""
        if self.is_valid and not self.violations and not self.warnings:
            return f"Consistent (score {self.overall_score:.2f})."
        lines = [
            f"{'Accepted' if self.is_valid else 'Rejected'} "
            f"(score {self.overall_score:.2f})"
        ]
        if self.violations:
            lines.append(f"{len(self.violations)} violation(s):")
            for v in self.violations:
                lines.append(f"  [{v.severity}/{v.type}] {v.description}")
        if self.warnings:
            lines.append(f"{len(self.warnings)} warning(s):")
            for w in self.warnings:
                lines.append(f"  {w.message}")
        return "\n".join(lines)

    @classmethod
    def permissive(cls, message: str) -> ValidationResult:
        """Degraded result used when the engine itself is unhealthy."""
        return cls(
            is_valid=True,
            overall_score=0.7,
            warnings=(
                ConsistencyWarning(
                    type="system",
                    message=f"Validation failed: {message}",
                    suggestion="Manual review recommended",
                ),
            ),
            degraded=True,
        )
