"""
Character dimension: emotional continuity, dialogue voice, relationships.

Known characters are compared with their established ``CharacterState``.
Characters the universe has not met yet are only checked against the
story bible (the new-character path) and can produce at most ``minor``
violations.
"""

from __future__ import annotations

from narrative_consistency.models.consistency import ConsistencyViolation
from narrative_consistency.models.content import CharacterReference, as_payload
from narrative_consistency.models.universe import CharacterState, NarrativeUniverse
from narrative_consistency.utils import texts_conflict
from narrative_consistency.validators.base import DimensionValidator, lookup
from narrative_consistency.validators.voice import expand_contractions, voice_mismatch

_VOICE_FIXES = {
    "terse": "Shorten the lines; this character speaks in clipped sentences",
    "verbose": "Let the character elaborate; short lines break an expansive voice",
    "formal": "Remove contractions to keep the formal register",
}


class CharacterValidator(DimensionValidator):
    dimension = "character"

    def validate(self, content, tab_type, universe: NarrativeUniverse) -> list[ConsistencyViolation]:
        payload = as_payload(content, tab_type)
        violations: list[ConsistencyViolation] = []
        for ref in payload.characters():
            state = lookup(universe.characters, ref.name)
            if state is None:
                violations.extend(self._check_new_character(ref, payload.tab_type, payload.episode, universe))
                continue
            violations.extend(self._check_emotional_state(ref, state, payload.tab_type, payload.episode))
            if payload.tab_type == "script":
                violations.extend(self._check_voice(
                    ref, state.profile.voice, ("characters", state.name, "profile", "voice"),
                    payload.tab_type, payload.episode, state,
                ))
            violations.extend(self._check_relationships(ref, state, payload.tab_type, payload.episode))
        return violations

    # ------------------------------------------------------------------
    # Existing characters
    # ------------------------------------------------------------------

    def _check_emotional_state(self, ref: CharacterReference, state: CharacterState, tab_type, episode):
        established = state.current_state.emotional_state
        stated = ref.emotional_state
        if not stated or not established or ref.arc_event:
            return []
        if self.policy.is_transition_allowed(established, stated):
            return []
        return [self.violation(
            kind="emotional_transition",
            severity="major",
            subject=state.name,
            description=(
                f"{state.name} is shown as '{stated}' but was last established as "
                f"'{established}' with no arc point explaining the change"
            ),
            tab_type=tab_type,
            episode=episode,
            stated=stated,
            stated_path=ref.path_for("emotional_state"),
            established=established,
            established_path=("characters", state.name, "current_state", "emotional_state"),
            established_source=state.last_seen,
            suggested_fix=(
                f"Keep {state.name} '{established}', or add an arc_event that "
                f"motivates the shift to '{stated}'"
            ),
            auto_correctible=True,
            expected_value=established,
        )]

    def _check_voice(self, ref: CharacterReference, voice: str, voice_path: tuple,
                     tab_type, episode, state=None):
        trait = voice_mismatch(voice, ref.dialogue, self.policy.voice)
        if trait is None:
            return []
        correctible = trait == "formal"
        return [self.violation(
            kind="voice_pattern",
            severity="minor",
            subject=ref.name,
            description=f"{ref.name}'s dialogue does not match the established voice '{voice}' ({trait})",
            tab_type=tab_type,
            episode=episode,
            stated=list(ref.dialogue),
            stated_path=ref.path_for("dialogue"),
            established=voice,
            established_path=voice_path,
            established_source=state.last_seen if state is not None else None,
            suggested_fix=_VOICE_FIXES[trait],
            auto_correctible=correctible,
            expected_value=[expand_contractions(line) for line in ref.dialogue] if correctible else None,
        )]

    def _check_relationships(self, ref: CharacterReference, state: CharacterState, tab_type, episode):
        violations = []
        for other, stated_type in ref.relationships.items():
            stored = lookup(state.relationships, other)
            if stored is None or not texts_conflict(stated_type, stored.type):
                continue
            old_polarity = self.policy.polarity_of(stored.type)
            new_polarity = self.policy.polarity_of(stated_type)
            flipped = bool(old_polarity and new_polarity and old_polarity != new_polarity)
            kind = "relationship_polarity" if flipped else "relationship_type"
            if flipped:
                description = (
                    f"{state.name} treats {other} as '{stated_type}', reversing the "
                    f"established '{stored.type}' relationship"
                )
            else:
                description = (
                    f"{state.name}'s relationship with {other} is '{stated_type}' "
                    f"but was established as '{stored.type}'"
                )
            violations.append(self.violation(
                kind=kind,
                severity="major" if flipped else "minor",
                subject=f"{state.name}->{other}",
                description=description,
                tab_type=tab_type,
                episode=episode,
                stated=stated_type,
                stated_path=ref.path_for("relationships") + (other,),
                established=stored.type,
                established_path=("characters", state.name, "relationships", other, "type"),
                established_source=state.last_seen,
                suggested_fix=f"Restore the '{stored.type}' relationship or show the turning point on screen",
                auto_correctible=True,
                expected_value=stored.type,
            ))
        return violations

    # ------------------------------------------------------------------
    # New characters
    # ------------------------------------------------------------------

    def _check_new_character(self, ref: CharacterReference, tab_type, episode, universe: NarrativeUniverse):
        bible = universe.story_bible
        profile = bible.profile_for(ref.name)
        if profile is None:
            if not bible.character_profiles:
                return []
            return [self.violation(
                kind="unknown_character",
                severity="suggestion",
                subject=ref.name,
                description=f"{ref.name} does not appear in the story bible",
                tab_type=tab_type,
                episode=episode,
                stated=ref.name,
                stated_path=ref.path_for("name"),
                established=[p.name for p in bible.character_profiles],
                established_path=("story_bible", "character_profiles"),
                suggested_fix=f"Add a profile for {ref.name} to the story bible",
            )]
        if tab_type != "script":
            return []
        index = bible.character_profiles.index(profile)
        return self._check_voice(
            ref, profile.voice, ("story_bible", "character_profiles", index, "voice"),
            tab_type, episode,
        )
