"""
narrative_consistency/models/content.py -- Typed content payloads.

Each originating surface (tab type) sends its own payload shape.  Payloads
are parsed into a tagged union keyed on ``tab_type`` and each member knows
how to extract the references the dimension validators need:

    characters  -> CharacterReference
    world       -> LocationReference / ObjectReference / RuleReference
    plot        -> PlotReference
    theme       -> ThemeReference

Every reference carries the ``field_path`` it was read from so that a
correction can later be applied to exactly that field.

Unknown tab types parse to ``UnknownContent`` (extracts nothing).  Inside a
known payload each list entry is validated on its own, and a malformed
entry is dropped without taking its siblings with it: a malformed element
is absence of evidence, not a contradiction.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Annotated, Any, ClassVar, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    ValidationInfo,
    field_validator,
)

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------
# Extracted references
# ------------------------------------------------------------------

class _Reference(BaseModel):
    model_config = ConfigDict(frozen=True)

    field_path: tuple[Any, ...] = ()
    attribute_paths: dict[str, tuple[Any, ...]] = Field(default_factory=dict)
    payload: dict[str, Any] = Field(default_factory=dict)

    def path_for(self, attribute: str) -> tuple[Any, ...]:
        """Location of *attribute* inside the raw payload."""
        if attribute in self.attribute_paths:
            return self.attribute_paths[attribute]
        return self.field_path + (attribute,)


class CharacterReference(_Reference):
    name: str
    emotional_state: Optional[str] = None
    physical_state: Optional[str] = None
    location: Optional[str] = None
    dialogue: tuple[str, ...] = ()
    relationships: dict[str, str] = Field(default_factory=dict)
    arc_event: Optional[str] = None
    growth: Optional[str] = None
    knows: tuple[str, ...] = ()
    role: Optional[str] = None
    voice: Optional[str] = None
    personality: Optional[str] = None
    background: Optional[str] = None


class LocationReference(_Reference):
    name: str
    description: Optional[str] = None
    status: Optional[str] = None
    atmosphere: Optional[str] = None


class ObjectReference(_Reference):
    name: str
    description: Optional[str] = None
    status: Optional[str] = None
    location: Optional[str] = None


class RuleReference(_Reference):
    name: str
    description: Optional[str] = None
    type: Optional[str] = None


PlotKind = Literal["conflict", "revelation", "callback", "foreshadowing", "subplot"]


class PlotReference(_Reference):
    kind: PlotKind
    thread_id: str = ""
    description: str = ""
    status: Optional[str] = None
    participants: tuple[str, ...] = ()
    resolves: bool = False


class ThemeReference(_Reference):
    theme: str
    expression: str = ""
    strength: float = 1.0


# ------------------------------------------------------------------
# Payload element models
# ------------------------------------------------------------------

class _Element(BaseModel):
    model_config = ConfigDict(extra="ignore")


class CharacterEntry(_Element):
    name: str
    emotional_state: Optional[str] = None
    physical_state: Optional[str] = None
    location: Optional[str] = None
    dialogue: list[str] = Field(default_factory=list)
    relationships: dict[str, str] = Field(default_factory=dict)
    arc_event: Optional[str] = None
    growth: Optional[str] = None
    knows: list[str] = Field(default_factory=list)
    role: Optional[str] = None
    voice: Optional[str] = None
    personality: Optional[str] = None
    background: Optional[str] = None


class LocationEntry(_Element):
    name: str
    description: Optional[str] = None
    status: Optional[str] = None
    atmosphere: Optional[str] = None


class ObjectEntry(_Element):
    name: str
    description: Optional[str] = None
    status: Optional[str] = None
    location: Optional[str] = None


class RuleEntry(_Element):
    name: str
    description: Optional[str] = None
    type: Optional[str] = None


class ThreadEntry(_Element):
    id: str = ""
    description: str = ""
    status: Optional[str] = None
    participants: list[str] = Field(default_factory=list)
    resolves: bool = False


class ThemeEntry(_Element):
    theme: str
    expression: str = ""
    strength: float = 1.0


def _theme_entry(value: Any) -> Any:
    return {"theme": value} if isinstance(value, str) else value


@lru_cache(maxsize=None)
def _entry_adapter(entry_type: Any) -> TypeAdapter:
    return TypeAdapter(entry_type)


def _lenient_entries(entry_type: Any, value: Any, field: str) -> list:
    """Validate list entries one at a time.

    A malformed entry becomes ``None`` so the survivors keep their original
    positions, which correction field paths index into.  A value that is
    not a list at all contributes nothing.
    """
    if value is None:
        return []
    if not isinstance(value, list):
        logger.debug("Ignoring %s: expected a list, got %s", field, type(value).__name__)
        return []
    adapter = _entry_adapter(entry_type)
    entries: list = []
    for i, item in enumerate(value):
        try:
            entries.append(adapter.validate_python(item))
        except ValidationError as exc:
            logger.debug(
                "Skipping malformed %s[%d]: %d error(s)", field, i, exc.error_count(),
            )
            entries.append(None)
    return entries


def _present(entries: list) -> list[tuple[int, Any]]:
    return [(i, e) for i, e in enumerate(entries) if e is not None]


class FrameEntry(_Element):
    characters: list[str] = Field(default_factory=list)
    character_states: dict[str, str] = Field(default_factory=dict)
    location: Optional[LocationEntry] = None
    objects: list[Optional[ObjectEntry]] = Field(default_factory=list)
    mood: Optional[str] = None
    theme: Optional[str] = None

    @field_validator("location", mode="before")
    @classmethod
    def _location_by_name(cls, value: Any) -> Any:
        if value is None:
            return None
        if isinstance(value, str):
            value = {"name": value}
        try:
            return LocationEntry.model_validate(value)
        except ValidationError:
            logger.debug("Ignoring malformed frame location %r", value)
            return None

    @field_validator("objects", mode="before")
    @classmethod
    def _objects_by_name(cls, value: Any) -> Any:
        if isinstance(value, list):
            value = [{"name": v} if isinstance(v, str) else v for v in value]
        return _lenient_entries(ObjectEntry, value, "objects")


# ------------------------------------------------------------------
# Tagged union of payloads
# ------------------------------------------------------------------

class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    episode: Optional[int] = None
    raw: dict[str, Any] = Field(default_factory=dict, exclude=True)

    # Element type of each list field; entries are validated one by one.
    entry_types: ClassVar[dict[str, Any]] = {}

    @field_validator(
        "characters_", "locations_", "objects_", "rules_",
        "conflicts", "revelations", "callbacks", "foreshadowing", "subplots",
        "themes_", "symbols_", "motifs_", "frames",
        mode="before", check_fields=False,
    )
    @classmethod
    def _lenient_lists(cls, value: Any, info: ValidationInfo) -> Any:
        entry_type = cls.entry_types.get(info.field_name)
        if entry_type is None:
            return value
        return _lenient_entries(entry_type, value, info.field_name.rstrip("_"))

    @field_validator("episode", mode="before")
    @classmethod
    def _lenient_episode(cls, value: Any) -> Any:
        if value is None:
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            logger.debug("Ignoring unusable episode number %r", value)
            return None

    def characters(self) -> list[CharacterReference]:
        return []

    def locations(self) -> list[LocationReference]:
        return []

    def objects(self) -> list[ObjectReference]:
        return []

    def rules(self) -> list[RuleReference]:
        return []

    def plot_elements(self) -> list[PlotReference]:
        return []

    def themes(self) -> list[ThemeReference]:
        return []

    def symbols(self) -> list[str]:
        return []

    def motifs(self) -> list[str]:
        return []


def _character_ref(entry: CharacterEntry, path: tuple, raw: Any) -> CharacterReference:
    return CharacterReference(
        name=entry.name,
        emotional_state=entry.emotional_state,
        physical_state=entry.physical_state,
        location=entry.location,
        dialogue=tuple(entry.dialogue),
        relationships=dict(entry.relationships),
        arc_event=entry.arc_event,
        growth=entry.growth,
        knows=tuple(entry.knows),
        role=entry.role,
        voice=entry.voice,
        personality=entry.personality,
        background=entry.background,
        field_path=path,
        payload=raw if isinstance(raw, dict) else {},
    )


def _raw_item(raw: dict, key: str, index: int) -> Any:
    items = raw.get(key)
    if isinstance(items, list) and index < len(items):
        return items[index]
    return {}


class ScriptContent(_Payload):
    """A script draft: the richest payload, touching every dimension."""

    tab_type: Literal["script"] = "script"
    characters_: list[Optional[CharacterEntry]] = Field(default_factory=list, alias="characters")
    locations_: list[Optional[LocationEntry]] = Field(default_factory=list, alias="locations")
    objects_: list[Optional[ObjectEntry]] = Field(default_factory=list, alias="objects")
    rules_: list[Optional[RuleEntry]] = Field(default_factory=list, alias="rules")
    conflicts: list[Optional[ThreadEntry]] = Field(default_factory=list)
    revelations: list[Optional[ThreadEntry]] = Field(default_factory=list)
    callbacks: list[Optional[ThreadEntry]] = Field(default_factory=list)
    foreshadowing: list[Optional[ThreadEntry]] = Field(default_factory=list)
    subplots: list[Optional[ThreadEntry]] = Field(default_factory=list)
    themes_: list[Optional[ThemeEntry]] = Field(default_factory=list, alias="themes")
    symbols_: list[Optional[str]] = Field(default_factory=list, alias="symbols")
    motifs_: list[Optional[str]] = Field(default_factory=list, alias="motifs")

    model_config = ConfigDict(populate_by_name=True)
    entry_types: ClassVar[dict[str, Any]] = {
        "characters_": CharacterEntry,
        "locations_": LocationEntry,
        "objects_": ObjectEntry,
        "rules_": RuleEntry,
        "conflicts": ThreadEntry,
        "revelations": ThreadEntry,
        "callbacks": ThreadEntry,
        "foreshadowing": ThreadEntry,
        "subplots": ThreadEntry,
        "themes_": ThemeEntry,
        "symbols_": str,
        "motifs_": str,
    }

    def characters(self) -> list[CharacterReference]:
        return [
            _character_ref(c, ("characters", i), _raw_item(self.raw, "characters", i))
            for i, c in _present(self.characters_)
        ]

    def locations(self) -> list[LocationReference]:
        return [
            LocationReference(
                name=loc.name, description=loc.description, status=loc.status,
                atmosphere=loc.atmosphere, field_path=("locations", i),
                payload=_raw_item(self.raw, "locations", i) or {},
            )
            for i, loc in _present(self.locations_)
        ]

    def objects(self) -> list[ObjectReference]:
        return [
            ObjectReference(
                name=obj.name, description=obj.description, status=obj.status,
                location=obj.location, field_path=("objects", i),
                payload=_raw_item(self.raw, "objects", i) or {},
            )
            for i, obj in _present(self.objects_)
        ]

    def rules(self) -> list[RuleReference]:
        return [
            RuleReference(
                name=rule.name, description=rule.description, type=rule.type,
                field_path=("rules", i),
                payload=_raw_item(self.raw, "rules", i) or {},
            )
            for i, rule in _present(self.rules_)
        ]

    def plot_elements(self) -> list[PlotReference]:
        refs: list[PlotReference] = []
        groups = (
            ("conflict", "conflicts", self.conflicts),
            ("revelation", "revelations", self.revelations),
            ("callback", "callbacks", self.callbacks),
            ("foreshadowing", "foreshadowing", self.foreshadowing),
            ("subplot", "subplots", self.subplots),
        )
        for kind, key, entries in groups:
            for i, entry in _present(entries):
                refs.append(PlotReference(
                    kind=kind,
                    thread_id=entry.id,
                    description=entry.description,
                    status=entry.status,
                    participants=tuple(entry.participants),
                    resolves=entry.resolves,
                    field_path=(key, i),
                    payload=_raw_item(self.raw, key, i) or {},
                ))
        return refs

    def themes(self) -> list[ThemeReference]:
        refs: list[ThemeReference] = []
        for i, t in _present(self.themes_):
            raw = _raw_item(self.raw, "themes", i)
            value_path = ("themes", i, "theme") if isinstance(raw, dict) else ("themes", i)
            refs.append(ThemeReference(
                theme=t.theme, expression=t.expression, strength=t.strength,
                field_path=("themes", i), attribute_paths={"theme": value_path},
            ))
        return refs

    def symbols(self) -> list[str]:
        return [s for s in self.symbols_ if s is not None]

    def motifs(self) -> list[str]:
        return [m for m in self.motifs_ if m is not None]


class CastingContent(_Payload):
    """Casting breakdown: character profiles plus their starting states."""

    tab_type: Literal["casting"] = "casting"
    characters_: list[Optional[CharacterEntry]] = Field(default_factory=list, alias="characters")

    model_config = ConfigDict(populate_by_name=True)
    entry_types: ClassVar[dict[str, Any]] = {"characters_": CharacterEntry}

    def characters(self) -> list[CharacterReference]:
        return [
            _character_ref(c, ("characters", i), _raw_item(self.raw, "characters", i))
            for i, c in _present(self.characters_)
        ]


class StoryboardContent(_Payload):
    """Storyboard frames: who is on screen, where, and in what mood."""

    tab_type: Literal["storyboard"] = "storyboard"
    frames: list[Optional[FrameEntry]] = Field(default_factory=list)

    entry_types: ClassVar[dict[str, Any]] = {"frames": FrameEntry}

    def characters(self) -> list[CharacterReference]:
        refs: list[CharacterReference] = []
        for i, frame in _present(self.frames):
            names = list(frame.characters)
            for name in frame.character_states:
                if name not in names:
                    names.append(name)
            for name in names:
                refs.append(CharacterReference(
                    name=name,
                    emotional_state=frame.character_states.get(name),
                    field_path=("frames", i),
                    attribute_paths={
                        "emotional_state": ("frames", i, "character_states", name),
                    },
                ))
        return refs

    def locations(self) -> list[LocationReference]:
        refs: list[LocationReference] = []
        for i, frame in _present(self.frames):
            loc = frame.location
            if loc is None:
                continue
            refs.append(LocationReference(
                name=loc.name, description=loc.description, status=loc.status,
                atmosphere=loc.atmosphere, field_path=("frames", i, "location"),
            ))
        return refs

    def objects(self) -> list[ObjectReference]:
        refs: list[ObjectReference] = []
        for i, frame in _present(self.frames):
            for j, obj in _present(frame.objects):
                refs.append(ObjectReference(
                    name=obj.name, description=obj.description, status=obj.status,
                    location=obj.location, field_path=("frames", i, "objects", j),
                ))
        return refs

    def themes(self) -> list[ThemeReference]:
        # Mood is visual direction; only an explicit frame theme is asserted.
        return [
            ThemeReference(
                theme=frame.theme, expression=frame.mood or "", strength=0.5,
                field_path=("frames", i),
                attribute_paths={"theme": ("frames", i, "theme")},
            )
            for i, frame in _present(self.frames)
            if frame.theme
        ]


class ScheduleContent(_Payload):
    """Shooting schedule: only location names and statuses are narrative."""

    tab_type: Literal["schedule"] = "schedule"
    locations_: list[Optional[LocationEntry]] = Field(default_factory=list, alias="locations")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("locations_", mode="before")
    @classmethod
    def _locations_by_name(cls, value: Any) -> Any:
        if isinstance(value, list):
            value = [{"name": v} if isinstance(v, str) else v for v in value]
        return _lenient_entries(LocationEntry, value, "locations")

    def locations(self) -> list[LocationReference]:
        return [
            LocationReference(
                name=loc.name, status=loc.status, field_path=("locations", i),
            )
            for i, loc in _present(self.locations_)
        ]


class UnknownContent(_Payload):
    """Fallback for tab types with no extraction logic."""

    tab_type: str = "unknown"


ContentPayload = Annotated[
    Union[ScriptContent, CastingContent, StoryboardContent, ScheduleContent],
    Field(discriminator="tab_type"),
]

_payload_adapter: TypeAdapter = TypeAdapter(ContentPayload)

KNOWN_TAB_TYPES = frozenset({"script", "casting", "storyboard", "schedule"})


def _normalise_raw(tab_type: str, content: dict) -> dict:
    data = dict(content)
    data["tab_type"] = tab_type
    if tab_type == "script" and isinstance(data.get("themes"), list):
        data["themes"] = [_theme_entry(t) for t in data["themes"]]
    return data


def parse_payload(tab_type: str, content: Any) -> _Payload:
    """Parse raw *content* into the typed payload for *tab_type*.

    Never raises for bad content.  Unknown tab types and non-mapping
    content come back as an ``UnknownContent`` that extracts nothing; a
    malformed element inside a known payload drops only itself.
    """
    tab = (tab_type or "").strip().lower()
    if not isinstance(content, dict) or tab not in KNOWN_TAB_TYPES:
        return UnknownContent(tab_type=tab or "unknown")
    try:
        payload = _payload_adapter.validate_python(_normalise_raw(tab, content))
    except ValidationError as exc:
        logger.debug(
            "Malformed %s payload treated as empty: %d error(s)",
            tab, exc.error_count(),
        )
        return UnknownContent(tab_type=tab)
    payload.raw = content
    return payload


def as_payload(content: Any, tab_type: str) -> _Payload:
    """Return *content* unchanged if already parsed, else parse it."""
    if isinstance(content, _Payload):
        return content
    return parse_payload(tab_type, content)
