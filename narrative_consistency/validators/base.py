"""
Shared contract for the dimension validators.

Every validator is a pure function of ``(content, universe snapshot)``:
it reads references out of the typed payload, compares them with the
established state and returns violations.  Validators never write to the
snapshot, so the pipeline can run all four concurrently over one copy.
"""

from __future__ import annotations

from typing import Any, Optional, TypeVar

from narrative_consistency.config import ConsistencyPolicy
from narrative_consistency.models.consistency import ConsistencyViolation
from narrative_consistency.models.universe import ContentReference, NarrativeUniverse
from narrative_consistency.utils import normalize_text, short_digest


T = TypeVar("T")


def lookup(mapping: dict[str, T], name: str) -> Optional[T]:
    """Find *name* in *mapping*, falling back to a case-insensitive match."""
    if not name:
        return None
    if name in mapping:
        return mapping[name]
    wanted = normalize_text(name)
    for key, value in mapping.items():
        if normalize_text(key) == wanted:
            return value
    return None


class DimensionValidator:
    """Base class for the character, world, plot and theme validators."""

    dimension = ""

    def __init__(self, policy: Optional[ConsistencyPolicy] = None):
        self.policy = policy or ConsistencyPolicy()

    def validate(self, content, tab_type: str, universe: NarrativeUniverse) -> list[ConsistencyViolation]:
        raise NotImplementedError

    def violation(
        self,
        *,
        kind: str,
        severity: str,
        subject: str,
        description: str,
        tab_type: str,
        episode: Optional[int],
        stated: Any,
        stated_path: tuple,
        established: Any,
        established_path: tuple,
        established_source: Optional[ContentReference] = None,
        suggested_fix: str = "",
        auto_correctible: bool = False,
        expected_value: Any = None,
    ) -> ConsistencyViolation:
        """Build a violation with a deterministic id.

        The id is derived from the check, the subject and the location in
        the payload, so re-validating the same content yields the same ids.
        """
        source = established_source or ContentReference()
        return ConsistencyViolation(
            id=f"{self.dimension}-{short_digest(kind, subject, list(stated_path))}",
            type=self.dimension,
            severity=severity,
            kind=kind,
            description=description,
            affected_content=ContentReference(
                tab_type=tab_type,
                content=stated,
                field_path=tuple(stated_path),
                episode=episode,
            ),
            conflicts_with=ContentReference(
                tab_type=source.tab_type or "universe",
                content=established,
                field_path=tuple(established_path),
                episode=source.episode,
                timestamp=source.timestamp,
            ),
            suggested_fix=suggested_fix,
            auto_correctible=auto_correctible,
            expected_value=expected_value,
        )
