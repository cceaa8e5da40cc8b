"""
Tests for narrative_consistency/corrections.py -- generation and application.

Covers:
    - One correction per auto-correctible violation
    - Confidence table, automatic/suggested gating, theme cap
    - corrected_content rendering
    - apply_corrections: gating, ordering, skip-on-failure, purity
    - Field path helpers
"""

import logging

import pytest
from hypothesis import given, settings, strategies as st

from narrative_consistency.config import ConsistencyPolicy
from narrative_consistency.corrections import (
    CorrectionGenerator,
    apply_corrections,
    get_path,
    set_path,
)
from narrative_consistency.errors import CorrectionError
from narrative_consistency.models.consistency import ConsistencyCorrection, ConsistencyViolation
from narrative_consistency.models.universe import ContentReference
from narrative_consistency.observability import ConsistencyMetrics
from narrative_consistency.validators import default_validators


def violations_for(content, universe, tab_type="script"):
    found = []
    for validator in default_validators().values():
        found.extend(validator.validate(content, tab_type, universe))
    return found


def correction(path, original, corrected, confidence=0.9, correction_type="automatic", vid="v"):
    return ConsistencyCorrection(
        violation_id=vid,
        correction_type=correction_type,
        field_path=path,
        original_value=original,
        corrected_value=corrected,
        confidence=confidence,
    )


@pytest.fixture
def generator():
    return CorrectionGenerator()


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------

class TestGenerate:

    def test_emotional_correction_is_automatic(self, generator, sample_universe, mara_euphoric_script):
        violations = violations_for(mara_euphoric_script, sample_universe)
        corrections = generator.generate(violations, mara_euphoric_script)
        assert len(corrections) == 1
        c = corrections[0]
        assert c.violation_id == violations[0].id
        assert c.correction_type == "automatic"
        assert c.confidence == 0.85
        assert c.field_path == ("characters", 0, "emotional_state")
        assert c.original_value == "euphoric"
        assert c.corrected_value == "grieving"
        assert c.original_content == mara_euphoric_script
        assert c.corrected_content["characters"][0]["emotional_state"] == "grieving"
        assert c.explanation

    def test_one_correction_per_correctible_violation(self, generator, sample_universe):
        content = {
            "characters": [{"name": "Mara", "emotional_state": "euphoric",
                            "relationships": {"Tomas": "enemy"}}],
            "locations": [{"name": "Lighthouse", "description": "freshly painted"}],
            "callbacks": [{"id": "heist-plan"}],
            "themes": ["vengeance"],
        }
        violations = violations_for(content, sample_universe)
        corrections = generator.generate(violations, content)
        correctible = [v.id for v in violations if v.auto_correctible]
        assert [c.violation_id for c in corrections] == correctible
        assert len(correctible) == 4

    def test_kind_confidences(self, generator, sample_universe):
        content = {
            "locations": [{"name": "Lighthouse", "description": "freshly painted"}],
            "conflicts": [{"id": "storm-night", "status": "active"}],
            "characters": [{"name": "Mara", "relationships": {"Tomas": "enemy"}}],
        }
        corrections = generator.generate(violations_for(content, sample_universe), content)
        by_kind = {c.violation_id.split("-")[0]: c for c in corrections}
        assert by_kind["world"].confidence == 0.9
        assert by_kind["world"].correction_type == "automatic"
        assert by_kind["plot"].confidence == 0.7
        assert by_kind["plot"].correction_type == "suggested"
        assert by_kind["character"].confidence == 0.7

    def test_theme_confidence_capped(self, sample_universe):
        policy = ConsistencyPolicy(correction_confidence={"theme_membership": 0.99})
        content = {"themes": ["vengeance"]}
        generator = CorrectionGenerator(policy)
        corrections = generator.generate(violations_for(content, sample_universe), content)
        assert len(corrections) == 1
        assert corrections[0].confidence == 0.6
        assert corrections[0].correction_type == "suggested"

    def test_formal_dialogue_corrected(self, generator, sample_universe):
        content = {"characters": [{"name": "Tomas", "dialogue": ["We can't stay."]}]}
        corrections = generator.generate(violations_for(content, sample_universe), content)
        assert corrections[0].corrected_value == ["We cannot stay."]
        assert corrections[0].correction_type == "suggested"

    def test_implied_value_has_no_corrected_content(self, generator, sample_universe):
        content = {"conflicts": [{"id": "storm-night"}]}
        corrections = generator.generate(violations_for(content, sample_universe), content)
        assert corrections[0].corrected_content is None

    def test_uncorrectible_violations_skipped(self, generator, sample_universe, heist_callback_script):
        violations = violations_for(heist_callback_script, sample_universe)
        assert violations
        assert generator.generate(violations, heist_callback_script) == ()


kinds = st.sampled_from([
    ("character", "emotional_transition"),
    ("world", "location_attribute"),
    ("plot", "plot_status"),
    ("theme", "theme_membership"),
])


class TestGatingProperties:

    @given(kinds, st.floats(min_value=0.0, max_value=1.0, allow_nan=False))
    @settings(max_examples=300)
    def test_automatic_iff_above_threshold(self, dimension_kind, confidence):
        dimension, kind = dimension_kind
        policy = ConsistencyPolicy(correction_confidence={kind: confidence})
        violation = ConsistencyViolation(
            id="x", type=dimension, severity="minor", kind=kind, description="d",
            affected_content=ContentReference(content="a", field_path=("f",)),
            conflicts_with=ContentReference(content="b"),
            auto_correctible=True, expected_value="b",
        )
        (c,) = CorrectionGenerator(policy).generate([violation], {"f": "a"})
        assert (c.correction_type == "automatic") == (c.confidence > 0.8)
        if dimension == "theme":
            assert c.confidence <= 0.6


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------

class TestApplyCorrections:

    def test_applies_automatic_and_leaves_input_untouched(self, mara_euphoric_script):
        c = correction(("characters", 0, "emotional_state"), "euphoric", "grieving")
        fixed = apply_corrections(mara_euphoric_script, [c])
        assert fixed["characters"][0]["emotional_state"] == "grieving"
        assert mara_euphoric_script["characters"][0]["emotional_state"] == "euphoric"

    def test_suggested_never_applied(self, mara_euphoric_script):
        c = correction(("characters", 0, "emotional_state"), "euphoric", "grieving",
                       confidence=0.95, correction_type="suggested")
        assert apply_corrections(mara_euphoric_script, [c]) == mara_euphoric_script

    def test_automatic_at_threshold_not_applied(self, mara_euphoric_script):
        c = correction(("characters", 0, "emotional_state"), "euphoric", "grieving", confidence=0.8)
        assert apply_corrections(mara_euphoric_script, [c]) == mara_euphoric_script

    def test_failures_skipped_and_batch_continues(self, caplog):
        content = {"locations": [{"name": "Lighthouse", "description": "new"}], "episode": 4}
        metrics = ConsistencyMetrics()
        batch = [
            correction(("missing", 0), "x", "y", vid="missing-path"),
            correction(("locations", 0, "description"), "stale", "old", vid="stale"),
            correction(("locations", 0, "description"), "new", "abandoned", vid="good"),
        ]
        with caplog.at_level(logging.WARNING, logger="narrative_consistency.corrections"):
            fixed = apply_corrections(content, batch, metrics=metrics)
        assert fixed["locations"][0]["description"] == "abandoned"
        assert "missing-path" in caplog.text
        assert "stale" in caplog.text
        assert metrics.snapshot() == {"corrections_skipped": 2, "corrections_applied": 1}

    def test_unexpected_error_skipped_and_batch_continues(self, caplog):
        content = {"themes": ["vengeance"]}
        metrics = ConsistencyMetrics()
        batch = [
            correction((["unhashable"], 0), "x", "y", vid="bad-step"),
            correction(("themes", 0), "vengeance", "grief", vid="good"),
        ]
        with caplog.at_level(logging.WARNING, logger="narrative_consistency.corrections"):
            fixed = apply_corrections(content, batch, metrics=metrics)
        assert fixed == {"themes": ["grief"]}
        (record,) = [r for r in caplog.records if "bad-step" in r.getMessage()]
        assert record.exc_info is not None
        assert record.exc_info[0] is TypeError
        assert metrics.snapshot() == {"corrections_skipped": 1, "corrections_applied": 1}

    def test_applied_in_order(self):
        content = {"themes": ["vengeance"]}
        first = correction(("themes", 0), "vengeance", "grief", vid="first")
        second = correction(("themes", 0), "vengeance", "family", vid="second")
        assert apply_corrections(content, [first, second]) == {"themes": ["grief"]}

    def test_end_to_end_with_generated_corrections(self, sample_universe):
        content = {
            "characters": [{"name": "Mara", "emotional_state": "euphoric"}],
            "locations": [{"name": "Lighthouse", "atmosphere": "cheerful"}],
            "themes": ["vengeance"],
        }
        corrections = CorrectionGenerator().generate(violations_for(content, sample_universe), content)
        fixed = apply_corrections(content, corrections)
        assert fixed["characters"][0]["emotional_state"] == "grieving"
        assert fixed["locations"][0]["atmosphere"] == "eerie"
        # Theme corrections are only ever suggested
        assert fixed["themes"] == ["vengeance"]
        assert violations_for(fixed, sample_universe)[0].kind == "theme_membership"


class TestFieldPaths:

    def test_get_nested(self):
        data = {"a": [{"b": 1}]}
        assert get_path(data, ("a", 0, "b")) == 1

    @pytest.mark.parametrize("path", [(), ("x",), ("a", 5), ("a", "0"), ("a", 0, "b", "c")])
    def test_get_missing_raises(self, path):
        with pytest.raises(CorrectionError):
            get_path({"a": [{"b": 1}]}, path)

    def test_set_replaces_existing_only(self):
        data = {"a": [{"b": 1}]}
        set_path(data, ("a", 0, "b"), 2)
        assert data == {"a": [{"b": 2}]}
        with pytest.raises(CorrectionError):
            set_path(data, ("a", 0, "c"), 3)
