"""
narrative_consistency -- Narrative consistency validation engine.

Keeps durable per-project narrative state (a universe of characters, world
facts, plot threads and themes) and checks every new piece of content
against it before the content is accepted.

Modules:
    consistency_engine   ConsistencyEngine facade
    universe_store       Thread-safe registry of universes
    validators/          Character, world, plot and theme checks
    scorer               Score and acceptance decision
    corrections          Correction generation and application
    validation_pipeline  Validation state machine
    universe_updater     Folds accepted content into a universe
    result_cache         Bounded LRU + TTL result cache
    config               Acceptance policy and engine settings
    observability        OpenTelemetry counters
"""

from narrative_consistency.config import ConsistencyPolicy, EngineSettings
from narrative_consistency.consistency_engine import ConsistencyEngine
from narrative_consistency.errors import (
    ConsistencyError,
    CorrectionError,
    PolicyError,
    UniverseStoreError,
)
from narrative_consistency.models import (
    ConsistencyCorrection,
    ConsistencyViolation,
    NarrativeUniverse,
    ValidationResult,
)

__version__ = "0.1.0"

__all__ = [
    "ConsistencyCorrection",
    "ConsistencyEngine",
    "ConsistencyError",
    "ConsistencyPolicy",
    "ConsistencyViolation",
    "CorrectionError",
    "EngineSettings",
    "NarrativeUniverse",
    "PolicyError",
    "UniverseStoreError",
    "ValidationResult",
]
