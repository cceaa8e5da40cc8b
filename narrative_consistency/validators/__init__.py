"""
narrative_consistency/validators/ -- One validator per consistency dimension.
"""

from narrative_consistency.validators.base import DimensionValidator
from narrative_consistency.validators.character import CharacterValidator
from narrative_consistency.validators.plot import PlotValidator
from narrative_consistency.validators.theme import ThemeValidator
from narrative_consistency.validators.world import WorldValidator


def default_validators(policy=None) -> dict[str, DimensionValidator]:
    """Return the four dimension validators keyed by dimension name."""
    return {
        v.dimension: v
        for v in (
            CharacterValidator(policy),
            WorldValidator(policy),
            PlotValidator(policy),
            ThemeValidator(policy),
        )
    }


__all__ = [
    "CharacterValidator",
    "DimensionValidator",
    "PlotValidator",
    "ThemeValidator",
    "WorldValidator",
    "default_validators",
]
