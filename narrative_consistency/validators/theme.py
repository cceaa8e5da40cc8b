"""
Theme dimension: thematic assertions against the established framework.

Theme checks are advisory.  A theme outside the primary theme and
subthemes is ``minor`` (or only a ``suggestion`` when it has already been
tallied as a recurring element) and never blocks acceptance on its own.
"""

from __future__ import annotations

from narrative_consistency.models.consistency import ConsistencyViolation
from narrative_consistency.models.content import as_payload
from narrative_consistency.models.universe import NarrativeUniverse
from narrative_consistency.utils import normalize_text
from narrative_consistency.validators.base import DimensionValidator, lookup


class ThemeValidator(DimensionValidator):
    dimension = "theme"

    def validate(self, content, tab_type, universe: NarrativeUniverse) -> list[ConsistencyViolation]:
        framework = universe.thematic_framework
        established = framework.established_themes
        if not established:
            return []

        payload = as_payload(content, tab_type)
        anchor = framework.primary_theme or framework.subthemes[0]
        violations: list[ConsistencyViolation] = []
        for ref in payload.themes():
            theme = normalize_text(ref.theme)
            if not theme or theme in established:
                continue
            recurring = lookup(framework.thematic_elements, ref.theme) is not None
            common = dict(
                subject=theme,
                tab_type=payload.tab_type,
                episode=payload.episode,
                stated=ref.theme,
                stated_path=ref.path_for("theme"),
                established=sorted(established),
                established_path=("thematic_framework",),
            )
            if recurring:
                violations.append(self.violation(
                    kind="theme_drift",
                    severity="suggestion",
                    description=(
                        f"'{ref.theme}' recurs in this series but is not one of its "
                        f"established themes"
                    ),
                    suggested_fix=f"Connect '{ref.theme}' back to '{anchor}' or promote it to a subtheme",
                    **common,
                ))
            else:
                violations.append(self.violation(
                    kind="theme_membership",
                    severity="minor",
                    description=f"'{ref.theme}' is outside the established themes of this series",
                    suggested_fix=f"Reframe the scene around '{anchor}'",
                    auto_correctible=True,
                    expected_value=anchor,
                    **common,
                ))
        return violations
