"""
narrative_consistency/models/ -- Pydantic v2 models for the consistency engine.

Submodules:
    universe     Durable narrative state (universe, characters, world, plot, theme).
    consistency  Validation output (violations, corrections, results).
    content      Tagged union of per-tab content payloads and extracted references.
"""

from narrative_consistency.models.consistency import (
    ConsistencyCorrection,
    ConsistencySuggestion,
    ConsistencyViolation,
    ConsistencyWarning,
    ValidationResult,
)
from narrative_consistency.models.universe import (
    CharacterState,
    ContentReference,
    NarrativeUniverse,
    StoryBible,
)

__all__ = [
    "CharacterState",
    "ConsistencyCorrection",
    "ConsistencySuggestion",
    "ConsistencyViolation",
    "ConsistencyWarning",
    "ContentReference",
    "NarrativeUniverse",
    "StoryBible",
    "ValidationResult",
]
