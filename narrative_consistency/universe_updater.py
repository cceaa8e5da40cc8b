"""
narrative_consistency/universe_updater.py -- Fold accepted content into a universe.

Called only with content the caller has accepted.  Everything happens
inside one ``UniverseStore.replace`` call, so concurrent updates to the
same universe are serialized and a failure halfway through leaves the
universe untouched.

History is append-only: arc points, relationship history, location and
object change history, timeline events and episode snapshots are only
ever extended.  Current values are overwritten together with the history
entry that records the change.

Update failures are logged and swallowed.  Content generation must not
fail because the universe could not be updated.
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Optional

from narrative_consistency.models.content import PlotReference, as_payload
from narrative_consistency.models.universe import (
    CallbackElement,
    CharacterArcPoint,
    CharacterProfile,
    CharacterState,
    Conflict,
    ContentReference,
    EpisodeState,
    ForeshadowingElement,
    LocationState,
    Motif,
    NarrativeUniverse,
    ObjectState,
    PlotThread,
    RelationshipState,
    SymbolicElement,
    ThematicElement,
    TimelineEvent,
    WorldRule,
)
from narrative_consistency.observability import ConsistencyMetrics
from narrative_consistency.universe_store import UniverseStore
from narrative_consistency.utils import content_hash, normalize_text, now_utc, texts_conflict
from narrative_consistency.validators.base import lookup
from narrative_consistency.validators.world import LOCATION_ATTRIBUTES, OBJECT_ATTRIBUTES

logger = logging.getLogger(__name__)

_PROFILE_FIELDS = ("role", "voice", "personality", "background")


class _Changes:
    """Collects what one update touched, for the episode snapshot."""

    def __init__(self):
        self.characters: list[str] = []
        self.world: list[str] = []
        self.plot: list[str] = []


class UniverseUpdater:
    """Apply accepted content to universe state."""

    def __init__(self, store: UniverseStore, metrics: Optional[ConsistencyMetrics] = None):
        self.store = store
        self.metrics = metrics or ConsistencyMetrics()

    def apply(self, universe_id: str, content: Any, tab_type: str, content_type: str) -> bool:
        """Fold *content* into *universe_id*.

        Returns
        -------
        bool
            True if the update was committed, False if it failed and was
            rolled back.  Failures never raise.
        """
        if not isinstance(universe_id, str) or not universe_id.strip():
            raise ValueError(f"Invalid universe id: {universe_id!r}")
        try:
            self.store.replace(
                universe_id,
                lambda universe: self._fold(universe, content, tab_type, content_type),
            )
        except Exception:
            logger.exception("Universe update failed for '%s' (%s)", universe_id, tab_type)
            self.metrics.increment("update_failures")
            return False
        self.metrics.increment("updates")
        return True

    # ------------------------------------------------------------------
    # Fold
    # ------------------------------------------------------------------

    def _fold(self, universe: NarrativeUniverse, content, tab_type, content_type) -> None:
        payload = as_payload(content, tab_type)
        episode = payload.episode if payload.episode is not None else universe.world_state.current_episode
        source = ContentReference(
            tab_type=payload.tab_type, episode=episode, timestamp=now_utc(),
        )
        changes = _Changes()

        for ref in payload.characters():
            self._fold_character(universe, ref, episode, source, changes)
        self._fold_world(universe, payload, episode, changes)
        for ref in payload.plot_elements():
            self._fold_plot(universe, ref, episode, changes)
        self._fold_themes(universe, payload, episode)

        world = universe.world_state
        world.current_episode = max(world.current_episode, episode)
        universe.episode_history.append(EpisodeState(
            number=episode,
            tab_type=payload.tab_type,
            content_type=content_type or "",
            content_hash=content_hash(tab_type, content if isinstance(content, dict) else {}),
            content=copy.deepcopy(content) if isinstance(content, dict) else {},
            character_states={
                name: universe.characters[name].current_state.model_copy(deep=True)
                for name in changes.characters
            },
            world_changes=changes.world,
            plot_progress=changes.plot,
        ))

    # ------------------------------------------------------------------
    # Characters
    # ------------------------------------------------------------------

    def _fold_character(self, universe, ref, episode, source, changes: _Changes) -> None:
        state = lookup(universe.characters, ref.name)
        introduced = state is None
        if introduced:
            profile = universe.story_bible.profile_for(ref.name)
            profile = profile.model_copy(deep=True) if profile else CharacterProfile(name=ref.name)
            state = CharacterState(name=ref.name, profile=profile)
            universe.characters[ref.name] = state

        for field in _PROFILE_FIELDS:
            stated = getattr(ref, field)
            if stated and not getattr(state.profile, field):
                setattr(state.profile, field, stated)

        current = state.current_state
        state_changed = (
            texts_conflict(ref.emotional_state, current.emotional_state)
            or texts_conflict(ref.physical_state, current.physical_state)
        )
        if ref.emotional_state:
            current.emotional_state = ref.emotional_state
        if ref.physical_state:
            current.physical_state = ref.physical_state
        if ref.location:
            current.location = ref.location
        for fact in ref.knows:
            if fact not in current.knowledge.knows:
                current.knowledge.knows.append(fact)
        current.episode_position = episode

        if introduced or state_changed or ref.arc_event:
            if introduced and not ref.arc_event:
                event = "introduced"
            else:
                event = ref.arc_event or "state change"
            state.arc_progression.append(CharacterArcPoint(
                episode=episode,
                event=event,
                growth=ref.growth or "",
                new_state=current.emotional_state,
                tab_type=source.tab_type,
            ))

        for other, rel_type in ref.relationships.items():
            rel = lookup(state.relationships, other)
            if rel is None:
                state.relationships[other] = RelationshipState(
                    type=rel_type, history=[f"Episode {episode}: {rel_type}"],
                )
            elif texts_conflict(rel_type, rel.type):
                rel.history.append(f"Episode {episode}: {rel.type} -> {rel_type}")
                rel.type = rel_type

        state.last_seen = source
        if state.name not in changes.characters:
            changes.characters.append(state.name)

    # ------------------------------------------------------------------
    # World
    # ------------------------------------------------------------------

    def _fold_world(self, universe, payload, episode, changes: _Changes) -> None:
        world = universe.world_state
        for ref in payload.locations():
            loc = lookup(world.locations, ref.name)
            if loc is None:
                loc = LocationState(name=ref.name, history=[f"Episode {episode}: introduced"])
                world.locations[ref.name] = loc
                changes.world.append(f"New location: {ref.name}")
            self._update_attributes(loc, ref, LOCATION_ATTRIBUTES, episode, changes)
            self._mark_active(world, loc.name)

        for ref in payload.objects():
            obj = lookup(world.objects, ref.name)
            if obj is None:
                obj = ObjectState(name=ref.name, history=[f"Episode {episode}: introduced"])
                world.objects[ref.name] = obj
                changes.world.append(f"New object: {ref.name}")
            self._update_attributes(obj, ref, OBJECT_ATTRIBUTES, episode, changes)
            self._mark_active(world, obj.name)

        for ref in payload.rules():
            rule = lookup(world.rules, ref.name)
            if rule is None:
                world.rules[ref.name] = WorldRule(
                    name=ref.name, type=ref.type or "", description=ref.description or "",
                )
                changes.world.append(f"New rule: {ref.name}")
            elif texts_conflict(ref.description, rule.description):
                rule.description = ref.description
                changes.world.append(f"Rule '{rule.name}' redefined")

    @staticmethod
    def _update_attributes(entity, ref, attributes, episode, changes: _Changes) -> None:
        for attr in attributes:
            stated = getattr(ref, attr)
            old = getattr(entity, attr)
            if not stated or normalize_text(stated) == normalize_text(old):
                continue
            if old:
                entity.history.append(f"Episode {episode}: {attr} '{old}' -> '{stated}'")
                changes.world.append(f"{entity.name}: {attr} changed")
            setattr(entity, attr, stated)

    @staticmethod
    def _mark_active(world, name: str) -> None:
        if name not in world.active_elements:
            world.active_elements.append(name)

    # ------------------------------------------------------------------
    # Plot
    # ------------------------------------------------------------------

    def _fold_plot(self, universe, ref: PlotReference, episode, changes: _Changes) -> None:
        plot = universe.plot_continuity
        label = ref.thread_id or ref.description

        if ref.kind == "conflict" and ref.thread_id:
            conflict = plot.find_conflict(ref.thread_id)
            if conflict is None and plot.find_resolved(ref.thread_id) is None:
                conflict = Conflict(
                    id=ref.thread_id,
                    participants=list(ref.participants),
                    description=ref.description,
                )
                plot.active_conflicts.append(conflict)
                changes.plot.append(f"Conflict opened: {ref.thread_id}")
            if conflict is None:
                return
            for name in ref.participants:
                if name not in conflict.participants:
                    conflict.participants.append(name)
            if ref.description and not conflict.description:
                conflict.description = ref.description
            if ref.resolves or normalize_text(ref.status) == "resolved":
                plot.active_conflicts.remove(conflict)
                plot.resolved_threads.append(PlotThread(
                    id=conflict.id,
                    description=conflict.description,
                    status="resolved",
                    episodes=[episode],
                ))
                changes.plot.append(f"Conflict resolved: {conflict.id}")
                self._timeline(universe, episode, f"Resolved: {conflict.description or conflict.id}",
                               "resolution", conflict.participants)

        elif ref.kind == "subplot" and ref.thread_id:
            thread = plot.subplots.get(ref.thread_id)
            if thread is None:
                thread = PlotThread(id=ref.thread_id, description=ref.description)
                plot.subplots[ref.thread_id] = thread
                changes.plot.append(f"Subplot opened: {ref.thread_id}")
            if episode not in thread.episodes:
                thread.episodes.append(episode)
            status = normalize_text(ref.status)
            if status == "suspended":
                thread.status = "suspended"
            elif status == "resolved" or ref.resolves:
                thread.status = "resolved"
                del plot.subplots[ref.thread_id]
                plot.resolved_threads.append(thread)
                changes.plot.append(f"Subplot resolved: {ref.thread_id}")

        elif ref.kind == "revelation":
            changes.plot.append(f"Revelation: {label}")
            self._timeline(universe, episode, ref.description or label, "revelation", ref.participants)

        elif ref.kind == "callback":
            resolved = plot.find_resolved(ref.thread_id) if ref.thread_id else None
            plot.callbacks.append(CallbackElement(
                reference=label,
                original_episode=resolved.episodes[0] if resolved and resolved.episodes else None,
                context=ref.description,
            ))
            changes.plot.append(f"Callback: {label}")

        elif ref.kind == "foreshadowing":
            plot.foreshadowing.append(ForeshadowingElement(
                element=ref.description or ref.thread_id,
                thread_id=ref.thread_id,
            ))
            changes.plot.append(f"Foreshadowing: {label}")

    @staticmethod
    def _timeline(universe, episode, event, significance, affects) -> None:
        universe.world_state.timeline.append(TimelineEvent(
            episode=episode, event=event, significance=significance, affects=list(affects),
        ))

    # ------------------------------------------------------------------
    # Themes
    # ------------------------------------------------------------------

    @staticmethod
    def _fold_themes(universe, payload, episode) -> None:
        framework = universe.thematic_framework
        for ref in payload.themes():
            name = ref.theme.strip()
            if not name:
                continue
            element = lookup(framework.thematic_elements, name)
            if element is None:
                element = ThematicElement(theme=name)
                framework.thematic_elements[name] = element
            element.occurrences += 1
            element.strength = round(element.strength + ref.strength, 4)
            if ref.expression:
                element.expression = ref.expression

        marker = f"Episode {episode}"
        for symbol in payload.symbols():
            entry = lookup(framework.symbolism, symbol)
            if entry is None:
                entry = SymbolicElement(symbol=symbol)
                framework.symbolism[symbol] = entry
            entry.instances.append(marker)
        for motif in payload.motifs():
            entry = lookup(framework.motifs, motif)
            if entry is None:
                entry = Motif(element=motif)
                framework.motifs[motif] = entry
            entry.recurrence.append(marker)
