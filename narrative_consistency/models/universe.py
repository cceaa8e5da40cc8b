"""
narrative_consistency/models/universe.py -- Narrative universe state.

The universe is the durable per-project aggregate every piece of new
content is checked against.  Sub-entities are created the first time they
are seen and afterwards only extended: arc points, relationship history,
timeline events and episode snapshots are append-only.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from narrative_consistency.utils import now_utc


class _StateModel(BaseModel):
    """Base for mutable universe sub-entities (tolerates unknown fields)."""

    model_config = ConfigDict(extra="ignore", validate_assignment=False)


# ------------------------------------------------------------------
# References
# ------------------------------------------------------------------

class ContentReference(_StateModel):
    """Points at a content unit: which surface it came from and when.

    ``timestamp`` is ``None`` for content that has not been accepted yet,
    which keeps validation output deterministic for identical input.
    """

    tab_type: str = ""
    content: Any = None
    field_path: tuple[Any, ...] = ()
    episode: Optional[int] = None
    timestamp: Optional[datetime] = None

    model_config = ConfigDict(frozen=True)


# ------------------------------------------------------------------
# Story bible (static baseline)
# ------------------------------------------------------------------

class CharacterProfile(_StateModel):
    name: str = ""
    role: str = ""
    background: str = ""
    personality: str = ""
    voice: str = ""
    goals: list[str] = Field(default_factory=list)
    conflicts: list[str] = Field(default_factory=list)


class WorldRule(_StateModel):
    name: str = ""
    type: str = ""
    description: str = ""
    scope: str = ""
    exceptions: list[str] = Field(default_factory=list)


class WorldSetting(_StateModel):
    name: str = ""
    description: str = ""
    rules: list[str] = Field(default_factory=list)


class StoryBible(_StateModel):
    premise: str = ""
    logline: str = ""
    genre: list[str] = Field(default_factory=list)
    theme: str = ""
    subthemes: list[str] = Field(default_factory=list)
    tone: str = ""
    setting: WorldSetting = Field(default_factory=WorldSetting)
    character_profiles: list[CharacterProfile] = Field(default_factory=list)
    world_rules: list[WorldRule] = Field(default_factory=list)

    def profile_for(self, name: str) -> CharacterProfile | None:
        """Return the bible profile for *name* (case-insensitive)."""
        wanted = name.strip().lower()
        for profile in self.character_profiles:
            if profile.name.strip().lower() == wanted:
                return profile
        return None


# ------------------------------------------------------------------
# Characters
# ------------------------------------------------------------------

class KnowledgeState(_StateModel):
    knows: list[str] = Field(default_factory=list)
    suspects: list[str] = Field(default_factory=list)
    ignorant: list[str] = Field(default_factory=list)


class CharacterCurrentState(_StateModel):
    emotional_state: str = ""
    physical_state: str = ""
    goals: list[str] = Field(default_factory=list)
    conflicts: list[str] = Field(default_factory=list)
    knowledge: KnowledgeState = Field(default_factory=KnowledgeState)
    location: str = ""
    episode_position: int = 0


class CharacterArcPoint(_StateModel):
    """One attributed step in a character's arc."""

    episode: int = 0
    event: str = ""
    growth: str = ""
    new_state: str = ""
    tab_type: str = ""
    recorded_at: datetime = Field(default_factory=now_utc)


class RelationshipState(_StateModel):
    type: str = ""
    status: str = "active"
    dynamics: str = ""
    history: list[str] = Field(default_factory=list)


class CharacterState(_StateModel):
    name: str
    profile: CharacterProfile = Field(default_factory=CharacterProfile)
    current_state: CharacterCurrentState = Field(default_factory=CharacterCurrentState)
    arc_progression: list[CharacterArcPoint] = Field(default_factory=list)
    relationships: dict[str, RelationshipState] = Field(default_factory=dict)
    last_seen: ContentReference = Field(default_factory=ContentReference)


# ------------------------------------------------------------------
# World
# ------------------------------------------------------------------

class LocationState(_StateModel):
    name: str
    description: str = ""
    status: str = ""
    atmosphere: str = ""
    significance: str = ""
    rules: list[str] = Field(default_factory=list)
    history: list[str] = Field(default_factory=list)


class ObjectState(_StateModel):
    name: str
    description: str = ""
    status: str = ""
    location: str = ""
    significance: str = ""
    history: list[str] = Field(default_factory=list)


class TimelineEvent(_StateModel):
    episode: int = 0
    event: str = ""
    significance: str = ""
    affects: list[str] = Field(default_factory=list)


class WorldState(_StateModel):
    locations: dict[str, LocationState] = Field(default_factory=dict)
    objects: dict[str, ObjectState] = Field(default_factory=dict)
    rules: dict[str, WorldRule] = Field(default_factory=dict)
    timeline: list[TimelineEvent] = Field(default_factory=list)
    current_episode: int = 1
    active_elements: list[str] = Field(default_factory=list)


# ------------------------------------------------------------------
# Plot
# ------------------------------------------------------------------

ThreadStatus = Literal["active", "resolved", "suspended"]


class PlotThread(_StateModel):
    id: str
    description: str = ""
    status: ThreadStatus = "active"
    episodes: list[int] = Field(default_factory=list)


class Conflict(_StateModel):
    id: str
    type: str = ""
    participants: list[str] = Field(default_factory=list)
    description: str = ""
    stakes: str = ""
    status: str = "active"


class ForeshadowingElement(_StateModel):
    element: str
    thread_id: str = ""
    payoff_episode: Optional[int] = None
    subtlety: str = ""


class CallbackElement(_StateModel):
    reference: str
    original_episode: Optional[int] = None
    context: str = ""


class PlotContinuity(_StateModel):
    main_plotline: PlotThread = Field(default_factory=lambda: PlotThread(id="main"))
    subplots: dict[str, PlotThread] = Field(default_factory=dict)
    resolved_threads: list[PlotThread] = Field(default_factory=list)
    active_conflicts: list[Conflict] = Field(default_factory=list)
    foreshadowing: list[ForeshadowingElement] = Field(default_factory=list)
    callbacks: list[CallbackElement] = Field(default_factory=list)

    def find_resolved(self, thread_id: str) -> PlotThread | None:
        for thread in self.resolved_threads:
            if thread.id == thread_id:
                return thread
        return None

    def find_conflict(self, thread_id: str) -> Conflict | None:
        for conflict in self.active_conflicts:
            if conflict.id == thread_id:
                return conflict
        return None

    def thread_exists(self, thread_id: str) -> bool:
        """True if *thread_id* is known anywhere in plot continuity."""
        return (
            thread_id == self.main_plotline.id
            or thread_id in self.subplots
            or self.find_resolved(thread_id) is not None
            or self.find_conflict(thread_id) is not None
            or any(f.thread_id == thread_id or f.element == thread_id for f in self.foreshadowing)
        )


# ------------------------------------------------------------------
# Theme
# ------------------------------------------------------------------

class ThematicElement(_StateModel):
    theme: str
    expression: str = ""
    strength: float = 0.0
    occurrences: int = 0


class SymbolicElement(_StateModel):
    symbol: str
    meaning: str = ""
    instances: list[str] = Field(default_factory=list)


class Motif(_StateModel):
    element: str
    significance: str = ""
    recurrence: list[str] = Field(default_factory=list)


class ThematicFramework(_StateModel):
    primary_theme: str = ""
    subthemes: list[str] = Field(default_factory=list)
    thematic_elements: dict[str, ThematicElement] = Field(default_factory=dict)
    symbolism: dict[str, SymbolicElement] = Field(default_factory=dict)
    motifs: dict[str, Motif] = Field(default_factory=dict)

    @property
    def established_themes(self) -> set[str]:
        themes = {t.strip().lower() for t in self.subthemes if t.strip()}
        if self.primary_theme.strip():
            themes.add(self.primary_theme.strip().lower())
        return themes


# ------------------------------------------------------------------
# History and root aggregate
# ------------------------------------------------------------------

class EpisodeState(_StateModel):
    """Snapshot of one accepted content unit, kept for audit."""

    number: int = 0
    tab_type: str = ""
    content_type: str = ""
    content_hash: str = ""
    content: dict[str, Any] = Field(default_factory=dict)
    character_states: dict[str, CharacterCurrentState] = Field(default_factory=dict)
    world_changes: list[str] = Field(default_factory=list)
    plot_progress: list[str] = Field(default_factory=list)
    recorded_at: datetime = Field(default_factory=now_utc)


class NarrativeUniverse(_StateModel):
    id: str
    title: str = ""
    story_bible: StoryBible = Field(default_factory=StoryBible)
    characters: dict[str, CharacterState] = Field(default_factory=dict)
    world_state: WorldState = Field(default_factory=WorldState)
    plot_continuity: PlotContinuity = Field(default_factory=PlotContinuity)
    thematic_framework: ThematicFramework = Field(default_factory=ThematicFramework)
    episode_history: list[EpisodeState] = Field(default_factory=list)
    last_updated: datetime = Field(default_factory=now_utc)
    revision: int = 0

    @classmethod
    def empty(cls, universe_id: str) -> NarrativeUniverse:
        return cls(id=universe_id, title=f"Universe {universe_id}")

    def snapshot(self) -> NarrativeUniverse:
        """Return an independent deep copy for read-only validation."""
        return self.model_copy(deep=True)
