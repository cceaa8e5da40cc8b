"""
World dimension: locations, objects and rules.

A stated attribute that differs from the stored entity is a ``major``
violation that can be corrected by restoring the stored value.  Entities
the universe has not seen yet, and attributes the content leaves out,
are never violations.
"""

from __future__ import annotations

from narrative_consistency.models.consistency import ConsistencyViolation
from narrative_consistency.models.content import as_payload
from narrative_consistency.models.universe import NarrativeUniverse
from narrative_consistency.utils import texts_conflict
from narrative_consistency.validators.base import DimensionValidator, lookup

LOCATION_ATTRIBUTES = ("description", "status", "atmosphere")
OBJECT_ATTRIBUTES = ("description", "status", "location")
RULE_ATTRIBUTES = ("description",)


class WorldValidator(DimensionValidator):
    dimension = "world"

    def validate(self, content, tab_type, universe: NarrativeUniverse) -> list[ConsistencyViolation]:
        payload = as_payload(content, tab_type)
        world = universe.world_state
        violations: list[ConsistencyViolation] = []

        for ref in payload.locations():
            stored = lookup(world.locations, ref.name)
            if stored is not None:
                violations.extend(self._compare(
                    "location", ref, stored, LOCATION_ATTRIBUTES,
                    ("world_state", "locations", stored.name), payload,
                ))
        for ref in payload.objects():
            stored = lookup(world.objects, ref.name)
            if stored is not None:
                violations.extend(self._compare(
                    "object", ref, stored, OBJECT_ATTRIBUTES,
                    ("world_state", "objects", stored.name), payload,
                ))
        for ref in payload.rules():
            stored = lookup(world.rules, ref.name)
            if stored is not None:
                violations.extend(self._compare(
                    "rule", ref, stored, RULE_ATTRIBUTES,
                    ("world_state", "rules", stored.name), payload,
                ))
        return violations

    def _compare(self, entity, ref, stored, attributes, stored_path, payload):
        kind = "rule_description" if entity == "rule" else f"{entity}_attribute"
        violations = []
        for attr in attributes:
            stated = getattr(ref, attr, None)
            established = getattr(stored, attr, None)
            if not texts_conflict(stated, established):
                continue
            violations.append(self.violation(
                kind=kind,
                severity="major",
                subject=f"{ref.name}.{attr}",
                description=(
                    f"The {entity} '{ref.name}' has {attr} '{stated}' but it was "
                    f"established as '{established}'"
                ),
                tab_type=payload.tab_type,
                episode=payload.episode,
                stated=stated,
                stated_path=ref.path_for(attr),
                established=established,
                established_path=stored_path + (attr,),
                suggested_fix=f"Use the established {attr} of {ref.name}: '{established}'",
                auto_correctible=True,
                expected_value=established,
            ))
        return violations
