"""
Tests for narrative_consistency/consistency_engine.py -- ConsistencyEngine.

Covers:
    - Validate -> correct -> accept round trip
    - Cache invalidation after an accepted update
    - Story bible seeding
    - Persistence across engine instances
    - Lifecycle (shutdown, context manager)
"""

import json

import pytest

from narrative_consistency import ConsistencyEngine, EngineSettings
from narrative_consistency import consistency_engine as engine_module
from narrative_consistency.validation_pipeline import PipelineState


class TestRoundTrip:

    def test_validate_correct_accept(self, engine, universe_id, mara_euphoric_script):
        result = engine.validate_content_consistency(mara_euphoric_script, "dialogue", universe_id, "script")
        assert not result.is_valid

        fixed = engine.apply_consistency_corrections(mara_euphoric_script, result.corrections)
        assert fixed["characters"][0]["emotional_state"] == "grieving"
        assert mara_euphoric_script["characters"][0]["emotional_state"] == "euphoric"

        recheck = engine.validate_content_consistency(fixed, "dialogue", universe_id, "script")
        assert recheck.is_valid
        assert recheck.overall_score == 1.0

        engine.update_universe_with_content(fixed, "dialogue", universe_id, "script")
        universe = engine.get_universe(universe_id)
        assert universe.revision == 2
        assert universe.episode_history[-1].content == fixed

    def test_update_invalidates_cached_results(self, engine, universe_id, mara_euphoric_script):
        before = engine.validate_content_consistency(mara_euphoric_script, "dialogue", universe_id, "script")
        assert not before.is_valid

        engine.update_universe_with_content({"episode": 4, "characters": [{
            "name": "Mara", "emotional_state": "euphoric", "arc_event": "Finds her brother alive",
        }]}, "dialogue", universe_id, "script")

        after = engine.validate_content_consistency(mara_euphoric_script, "dialogue", universe_id, "script")
        assert after is not before
        assert after.is_valid
        assert after.overall_score == 1.0

    def test_failed_update_is_swallowed(self, engine, universe_id, lighthouse_script, monkeypatch):
        cached = engine.validate_content_consistency(lighthouse_script, "scene", universe_id, "script")

        def broken_replace(*_args, **_kwargs):
            raise OSError("read-only filesystem")

        monkeypatch.setattr(engine.store, "replace", broken_replace)
        assert engine.update_universe_with_content(lighthouse_script, "scene", universe_id, "script") is None
        assert engine.metrics.snapshot()["update_failures"] == 1
        # Nothing changed, so cached results stay valid
        again = engine.validate_content_consistency(lighthouse_script, "scene", universe_id, "script")
        assert again is cached

    def test_get_universe_returns_snapshot(self, engine, universe_id):
        snapshot = engine.get_universe(universe_id)
        snapshot.characters["Mara"].current_state.emotional_state = "euphoric"
        assert engine.get_universe(universe_id).characters["Mara"].current_state.emotional_state == "grieving"

    def test_transition_observer(self, store, universe_id, lighthouse_script):
        seen = []
        with ConsistencyEngine(store=store, on_transition=lambda s, u: seen.append((s, u))) as engine:
            engine.validate_content_consistency(lighthouse_script, "scene", universe_id, "script")
        assert seen[0] == (PipelineState.IDLE, universe_id)
        assert seen[-1] == (PipelineState.COMPLETE, universe_id)


class TestSeeding:

    def test_seed_new_universe(self):
        bible = {
            "logline": "A ferryman refuses to cross.",
            "theme": "duty",
            "subthemes": ["fear"],
            "world_rules": [{"name": "Fog", "type": "natural", "description": "Fog rolls in at dusk"}],
            "character_profiles": [{"name": "Piet", "voice": "gruff"}],
        }
        with ConsistencyEngine() as engine:
            universe = engine.seed_story_bible("ferry-tales", bible, title="Ferry Tales")
            assert universe.title == "Ferry Tales"
            assert universe.revision == 1
            assert universe.thematic_framework.primary_theme == "duty"
            assert universe.thematic_framework.subthemes == ["fear"]
            assert universe.world_state.rules["Fog"].description == "Fog rolls in at dusk"
            assert universe.plot_continuity.main_plotline.description == "A ferryman refuses to cross."

            result = engine.validate_content_consistency(
                {"themes": ["vengeance"]}, "scene", "ferry-tales", "script",
            )
            assert [v.kind for v in result.violations] == ["theme_membership"]
            assert result.violations[0].expected_value == "duty"

    def test_seed_invalidates_cache(self, engine, universe_id):
        content = {"rules": [{"name": "Fog", "description": "Fog never lifts"}]}
        first = engine.validate_content_consistency(content, "scene", universe_id, "script")
        assert first.violations == ()

        engine.seed_story_bible(universe_id, {
            "world_rules": [{"name": "Fog", "description": "Fog rolls in at dusk"}],
        })
        second = engine.validate_content_consistency(content, "scene", universe_id, "script")
        assert [v.kind for v in second.violations] == ["rule_description"]

    def test_seed_keeps_established_theme(self, engine, universe_id):
        universe = engine.seed_story_bible(universe_id, {"theme": "betrayal", "subthemes": ["family", "greed"]})
        assert universe.thematic_framework.primary_theme == "grief"
        assert universe.thematic_framework.subthemes == ["redemption", "family", "greed"]


class TestPersistence:

    def test_universe_survives_restart(self, tmp_path, universe_id, mara_euphoric_script):
        settings = EngineSettings(storage_dir=str(tmp_path), persist=True)
        with ConsistencyEngine(settings=settings) as engine:
            engine.seed_story_bible(universe_id, {"theme": "grief"})
            engine.update_universe_with_content(mara_euphoric_script, "dialogue", universe_id, "script")

        files = list(tmp_path.glob("*.json"))
        assert len(files) == 1
        assert json.loads(files[0].read_text(encoding="utf-8"))["revision"] == 2

        with ConsistencyEngine(settings=settings) as engine:
            universe = engine.get_universe(universe_id)
            assert universe.revision == 2
            assert universe.characters["Mara"].current_state.emotional_state == "euphoric"
            assert universe.thematic_framework.primary_theme == "grief"

    def test_persist_uses_default_dir(self, tmp_path, monkeypatch):
        monkeypatch.setattr(engine_module, "get_default_storage_dir", lambda: str(tmp_path))
        with ConsistencyEngine(settings=EngineSettings(persist=True)) as engine:
            assert engine.store.storage_dir == str(tmp_path)

    def test_memory_only_by_default(self):
        with ConsistencyEngine() as engine:
            assert engine.store.storage_dir is None


class TestLifecycle:

    def test_shutdown_idempotent(self, store):
        engine = ConsistencyEngine(store=store)
        engine.shutdown()
        engine.shutdown()

    def test_context_manager_shuts_down(self, store, universe_id, lighthouse_script):
        with ConsistencyEngine(store=store) as engine:
            engine.validate_content_consistency(lighthouse_script, "scene", universe_id, "script")
        assert len(engine.cache) == 0
        with pytest.raises(RuntimeError):
            engine.pipeline._executor.submit(print)
