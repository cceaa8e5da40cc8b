"""
narrative_consistency/config.py -- Acceptance policy and engine settings.

Two layers of configuration:

    ConsistencyPolicy  What counts as consistent: severity weights, the
                       validity threshold, correction confidence gating,
                       the emotional transition table, relationship
                       polarity groups and voice heuristics.
    EngineSettings     How the engine runs: storage directory, cache
                       bounds, validator worker count, default timeout.

Policies can be loaded from a JSON file.  The file is checked against
``POLICY_SCHEMA`` with jsonschema first so that a bad policy fails with a
readable message instead of a half-applied configuration.

Usage::

    from narrative_consistency.config import ConsistencyPolicy

    policy = ConsistencyPolicy.from_file("policy.json")
    policy.is_transition_allowed("grieving", "euphoric")   # -> False
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

import jsonschema
from pydantic import BaseModel, ConfigDict, Field, field_validator

from narrative_consistency.errors import PolicyError
from narrative_consistency.models.consistency import SEVERITIES

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULT_SEVERITY_WEIGHTS = {
    "critical": 0.30,
    "major": 0.20,
    "minor": 0.10,
    "suggestion": 0.05,
}

# Allowed next emotional states keyed by the established state.  States
# missing from the table accept any transition.
DEFAULT_EMOTION_TRANSITIONS: dict[str, list[str]] = {
    "grieving": ["sad", "numb", "angry", "withdrawn", "reflective", "bitter", "hopeful", "exhausted"],
    "sad": ["grieving", "numb", "reflective", "hopeful", "calm", "angry", "withdrawn"],
    "numb": ["grieving", "sad", "angry", "withdrawn", "calm"],
    "euphoric": ["joyful", "happy", "content", "excited", "exhausted", "anxious"],
    "joyful": ["euphoric", "happy", "content", "excited", "calm", "anxious", "surprised"],
    "happy": ["joyful", "euphoric", "content", "calm", "excited", "anxious", "sad"],
    "angry": ["furious", "bitter", "resentful", "determined", "guilty", "calm", "sad"],
    "furious": ["angry", "bitter", "vengeful", "exhausted", "guilty"],
    "terrified": ["anxious", "panicked", "relieved", "numb", "angry", "determined"],
    "anxious": ["terrified", "nervous", "relieved", "calm", "determined", "angry"],
    "calm": ["content", "reflective", "anxious", "happy", "sad", "determined", "surprised"],
}

DEFAULT_RELATIONSHIP_POLARITY: dict[str, list[str]] = {
    "positive": ["ally", "friend", "spouse", "sibling", "lover", "mentor", "protege", "partner", "parent", "child"],
    "negative": ["enemy", "rival", "nemesis", "betrayer", "antagonist", "captor"],
}

DEFAULT_CORRECTION_CONFIDENCE: dict[str, float] = {
    "emotional_transition": 0.85,
    "relationship_type": 0.85,
    "relationship_polarity": 0.7,
    "voice_pattern": 0.65,
    "location_attribute": 0.9,
    "object_attribute": 0.9,
    "rule_description": 0.75,
    "plot_status": 0.7,
    "theme_membership": 0.6,
}


# ---------------------------------------------------------------------------
# JSON Schema for policy files
# ---------------------------------------------------------------------------

_UNIT = {"type": "number", "minimum": 0, "maximum": 1}

POLICY_SCHEMA = {
    "type": "object",
    "properties": {
        "severity_weights": {
            "type": "object",
            "properties": {s: _UNIT for s in SEVERITIES},
            "additionalProperties": False,
        },
        "warning_weight": _UNIT,
        "validity_threshold": _UNIT,
        "automatic_threshold": _UNIT,
        "theme_confidence_cap": _UNIT,
        "default_correction_confidence": _UNIT,
        "correction_confidence": {
            "type": "object",
            "additionalProperties": _UNIT,
        },
        "emotion_transitions": {
            "type": "object",
            "additionalProperties": {"type": "array", "items": {"type": "string"}},
        },
        "relationship_polarity": {
            "type": "object",
            "additionalProperties": {"type": "array", "items": {"type": "string"}},
        },
        "voice": {
            "type": "object",
            "properties": {
                "short_markers": {"type": "array", "items": {"type": "string"}},
                "long_markers": {"type": "array", "items": {"type": "string"}},
                "formal_markers": {"type": "array", "items": {"type": "string"}},
                "short_max_words": {"type": "number", "minimum": 1},
                "long_min_words": {"type": "number", "minimum": 1},
                "max_contraction_ratio": _UNIT,
            },
            "additionalProperties": False,
        },
    },
    "additionalProperties": False,
}


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------

class VoiceRules(BaseModel):
    """Heuristics mapping voice descriptor words to measurable dialogue traits."""

    model_config = ConfigDict(frozen=True)

    short_markers: tuple[str, ...] = ("terse", "laconic", "blunt", "clipped", "curt")
    long_markers: tuple[str, ...] = ("verbose", "eloquent", "rambling", "flowery", "long-winded")
    formal_markers: tuple[str, ...] = ("formal", "no contractions", "proper", "stiff")
    short_max_words: float = 12
    long_min_words: float = 8
    max_contraction_ratio: float = 0.0


class ConsistencyPolicy(BaseModel):
    """Acceptance policy for validation results and corrections."""

    model_config = ConfigDict(frozen=True)

    severity_weights: dict[str, float] = Field(
        default_factory=lambda: dict(DEFAULT_SEVERITY_WEIGHTS)
    )
    warning_weight: float = 0.02
    validity_threshold: float = 0.80
    automatic_threshold: float = 0.8
    theme_confidence_cap: float = 0.6
    default_correction_confidence: float = 0.8
    correction_confidence: dict[str, float] = Field(
        default_factory=lambda: dict(DEFAULT_CORRECTION_CONFIDENCE)
    )
    emotion_transitions: dict[str, list[str]] = Field(
        default_factory=lambda: {k: list(v) for k, v in DEFAULT_EMOTION_TRANSITIONS.items()}
    )
    relationship_polarity: dict[str, list[str]] = Field(
        default_factory=lambda: {k: list(v) for k, v in DEFAULT_RELATIONSHIP_POLARITY.items()}
    )
    voice: VoiceRules = Field(default_factory=VoiceRules)

    @field_validator("severity_weights")
    @classmethod
    def _complete_weights(cls, value: dict[str, float]) -> dict[str, float]:
        unknown = set(value) - set(SEVERITIES)
        if unknown:
            raise ValueError(f"Unknown severities: {', '.join(sorted(unknown))}")
        merged = dict(DEFAULT_SEVERITY_WEIGHTS)
        merged.update(value)
        return merged

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    @classmethod
    def from_dict(cls, data: dict) -> ConsistencyPolicy:
        """Validate *data* against ``POLICY_SCHEMA`` and build a policy."""
        try:
            jsonschema.validate(instance=data, schema=POLICY_SCHEMA)
        except jsonschema.ValidationError as exc:
            location = ".".join(str(p) for p in exc.absolute_path) or "policy"
            raise PolicyError(f"Invalid consistency policy at '{location}': {exc.message}") from exc
        return cls.model_validate(data)

    @classmethod
    def from_file(cls, path) -> ConsistencyPolicy:
        """Load a policy from a JSON file."""
        try:
            with open(path, "r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, json.JSONDecodeError) as exc:
            raise PolicyError(f"Could not read consistency policy '{path}': {exc}") from exc
        policy = cls.from_dict(data)
        logger.info("Loaded consistency policy from %s", path)
        return policy

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def weight_for(self, severity: str) -> float:
        return self.severity_weights.get(severity, 0.0)

    def confidence_for(self, kind: str) -> float:
        return self.correction_confidence.get(kind, self.default_correction_confidence)

    def is_transition_allowed(self, established: str, stated: str) -> bool:
        """True if moving from *established* to *stated* needs no arc point."""
        old = established.strip().lower()
        new = stated.strip().lower()
        if not old or not new or old == new:
            return True
        allowed = self.emotion_transitions.get(old)
        if allowed is None:
            return True
        return new in {a.strip().lower() for a in allowed}

    def polarity_of(self, relationship_type: str) -> Optional[str]:
        wanted = relationship_type.strip().lower()
        for polarity, types in self.relationship_polarity.items():
            if wanted in {t.lower() for t in types}:
                return polarity
        return None


class EngineSettings(BaseModel):
    """Runtime settings for the engine facade.

    Universes live in memory only unless ``persist`` is set.  A persisting
    engine without an explicit ``storage_dir`` writes to the per-user data
    directory.
    """

    storage_dir: Optional[Path] = None
    persist: bool = False
    cache_max_size: int = Field(default=256, ge=1)
    cache_ttl_seconds: float = Field(default=300.0, gt=0)
    max_workers: int = Field(default=4, ge=1)
    validation_timeout_seconds: Optional[float] = Field(default=30.0, gt=0)
