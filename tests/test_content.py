"""
Tests for narrative_consistency/models/content.py -- payload parsing.

Covers:
    - Reference extraction for each tab type
    - Field paths used later by corrections
    - Shorthand coercions (names as strings)
    - Unknown tab types, and malformed elements dropped one at a time
"""

import pytest

from narrative_consistency.models.content import (
    CastingContent,
    ScheduleContent,
    ScriptContent,
    StoryboardContent,
    UnknownContent,
    as_payload,
    parse_payload,
)


class TestScript:

    def test_characters(self):
        raw = {"episode": 2, "characters": [
            {"name": "Mara", "emotional_state": "numb", "dialogue": ["Go."], "mood_board": "ignored"},
        ]}
        payload = parse_payload("script", raw)
        assert isinstance(payload, ScriptContent)
        assert payload.episode == 2
        (mara,) = payload.characters()
        assert mara.name == "Mara"
        assert mara.dialogue == ("Go.",)
        assert mara.path_for("emotional_state") == ("characters", 0, "emotional_state")
        assert mara.payload == raw["characters"][0]
        assert payload.raw is raw

    def test_world(self):
        payload = parse_payload("script", {
            "locations": [{"name": "Harbor"}],
            "objects": [{"name": "Ledger", "location": "Harbor"}],
            "rules": [{"name": "Fog", "description": "Fog rolls in at dusk"}],
        })
        assert [loc.field_path for loc in payload.locations()] == [("locations", 0)]
        assert payload.objects()[0].path_for("location") == ("objects", 0, "location")
        assert payload.rules()[0].description == "Fog rolls in at dusk"

    def test_plot_elements_in_group_order(self):
        payload = parse_payload("script", {
            "subplots": [{"id": "s"}],
            "callbacks": [{"id": "c"}],
            "conflicts": [{"id": "k", "resolves": True, "participants": ["Mara"]}],
        })
        refs = payload.plot_elements()
        assert [(r.kind, r.thread_id) for r in refs] == [("conflict", "k"), ("callback", "c"), ("subplot", "s")]
        assert refs[0].resolves
        assert refs[0].participants == ("Mara",)
        assert refs[1].path_for("id") == ("callbacks", 0, "id")

    def test_theme_paths(self):
        payload = parse_payload("script", {"themes": ["grief", {"theme": "family", "strength": 0.5}]})
        grief, family = payload.themes()
        assert grief.path_for("theme") == ("themes", 0)
        assert family.path_for("theme") == ("themes", 1, "theme")
        assert family.strength == 0.5

    def test_symbols_and_motifs(self):
        payload = parse_payload("script", {"symbols": ["lamp"], "motifs": ["tide"]})
        assert payload.symbols() == ["lamp"]
        assert payload.motifs() == ["tide"]

    def test_tab_type_normalised(self):
        assert isinstance(parse_payload(" Script ", {}), ScriptContent)


class TestOtherTabs:

    def test_casting(self):
        payload = parse_payload("casting", {"characters": [{"name": "Piet", "role": "ferryman"}]})
        assert isinstance(payload, CastingContent)
        assert payload.characters()[0].role == "ferryman"
        assert payload.locations() == []

    def test_storyboard(self):
        payload = parse_payload("storyboard", {"episode": 3, "frames": [
            {"characters": ["Mara"], "character_states": {"Tomas": "calm"},
             "location": "Lighthouse", "objects": ["Brass Key"], "mood": "bleak"},
            {"theme": "isolation", "mood": "cold"},
        ]})
        assert isinstance(payload, StoryboardContent)
        mara, tomas = payload.characters()
        assert mara.emotional_state is None
        assert tomas.path_for("emotional_state") == ("frames", 0, "character_states", "Tomas")
        assert payload.locations()[0].name == "Lighthouse"
        assert payload.locations()[0].path_for("status") == ("frames", 0, "location", "status")
        assert payload.objects()[0].field_path == ("frames", 0, "objects", 0)
        (theme,) = payload.themes()
        assert (theme.theme, theme.expression) == ("isolation", "cold")
        assert theme.path_for("theme") == ("frames", 1, "theme")

    def test_schedule(self):
        payload = parse_payload("schedule", {"locations": ["Harbor", {"name": "Lighthouse", "status": "closed"}]})
        assert isinstance(payload, ScheduleContent)
        assert [(loc.name, loc.status) for loc in payload.locations()] == [("Harbor", None), ("Lighthouse", "closed")]
        assert payload.characters() == []


class TestFallbacks:

    @pytest.mark.parametrize("tab_type", ["budget", "", None])
    def test_unknown_tab(self, tab_type):
        payload = parse_payload(tab_type, {"characters": [{"name": "Mara"}]})
        assert isinstance(payload, UnknownContent)
        assert payload.characters() == []

    @pytest.mark.parametrize("content", [["not", "a", "dict"], None])
    def test_non_mapping_extracts_nothing(self, content):
        payload = parse_payload("script", content)
        assert isinstance(payload, UnknownContent)
        assert payload.tab_type == "script"
        assert payload.characters() == []
        assert payload.plot_elements() == []

    @pytest.mark.parametrize("content", [
        {"characters": "Mara"},
        {"characters": [{"emotional_state": "numb"}]},
        {"characters": [["Mara"]]},
    ])
    def test_malformed_characters_dropped(self, content):
        payload = parse_payload("script", content)
        assert isinstance(payload, ScriptContent)
        assert payload.characters() == []

    def test_bad_element_drops_only_itself(self):
        raw = {
            "callbacks": [{"id": "heist-plan"}],
            "characters": [
                {"emotional_state": "numb"},
                {"name": "Mara", "emotional_state": "euphoric"},
            ],
            "locations": [{"description": "a place with no name"}, {"name": "Harbor"}],
            "themes": [{"strength": 0.4}, "grief"],
        }
        payload = parse_payload("script", raw)
        assert isinstance(payload, ScriptContent)
        (mara,) = payload.characters()
        # Survivors keep the index they had in the raw payload
        assert mara.path_for("emotional_state") == ("characters", 1, "emotional_state")
        assert mara.payload == raw["characters"][1]
        assert [loc.field_path for loc in payload.locations()] == [("locations", 1)]
        assert [t.path_for("theme") for t in payload.themes()] == [("themes", 1)]
        assert [r.thread_id for r in payload.plot_elements()] == ["heist-plan"]

    def test_unusable_episode_ignored(self):
        payload = parse_payload("script", {"episode": "pilot", "characters": [{"name": "Mara"}]})
        assert payload.episode is None
        assert [c.name for c in payload.characters()] == ["Mara"]

    def test_bad_storyboard_frame_keeps_others(self):
        payload = parse_payload("storyboard", {"frames": [
            "not a frame",
            {"characters": ["Mara"], "location": {"status": "flooded"}, "objects": [{"status": "lost"}, "Lamp"]},
        ]})
        assert [c.field_path for c in payload.characters()] == [("frames", 1)]
        assert payload.locations() == []
        assert [o.field_path for o in payload.objects()] == [("frames", 1, "objects", 1)]

    def test_as_payload_passes_parsed_through(self):
        payload = parse_payload("script", {"characters": [{"name": "Mara"}]})
        assert as_payload(payload, "script") is payload
        assert isinstance(as_payload({}, "casting"), CastingContent)
