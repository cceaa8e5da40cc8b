"""
Shared pytest fixtures for the narrative consistency test suite.

Provides:
    - sample_bible: story bible with two character profiles and a world rule
    - sample_universe: a universe where Mara is grieving, the Lighthouse is
      abandoned, "storm-night" is resolved and "inheritance-feud" is open
    - store: an in-memory UniverseStore holding sample_universe
    - engine: a ConsistencyEngine over that store
    - script payload builders for the common scenarios
"""

import sys
from pathlib import Path

import pytest

# ---------------------------------------------------------------------------
# Ensure the package is importable regardless of where pytest is invoked
# ---------------------------------------------------------------------------

PROJECT_ROOT = Path(__file__).resolve().parent.parent

if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from narrative_consistency.consistency_engine import ConsistencyEngine  # noqa: E402
from narrative_consistency.models.universe import (  # noqa: E402
    CharacterCurrentState,
    CharacterProfile,
    CharacterState,
    Conflict,
    LocationState,
    NarrativeUniverse,
    ObjectState,
    PlotContinuity,
    PlotThread,
    RelationshipState,
    StoryBible,
    ThematicElement,
    ThematicFramework,
    WorldRule,
    WorldState,
)
from narrative_consistency.universe_store import UniverseStore  # noqa: E402

UNIVERSE_ID = "harbor-saga"


# ---------------------------------------------------------------------------
# Universe fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def universe_id():
    return UNIVERSE_ID


@pytest.fixture
def sample_bible():
    """Return the story bible for the harbor saga."""
    return StoryBible(
        premise="A lighthouse keeper's daughter uncovers her family's smuggling past.",
        logline="Mara returns home after her father's death.",
        genre=["drama", "mystery"],
        theme="grief",
        subthemes=["redemption", "family"],
        tone="melancholic",
        character_profiles=[
            CharacterProfile(name="Mara", role="protagonist", voice="terse, clipped"),
            CharacterProfile(
                name="Tomas", role="lawyer",
                voice="formal, never uses contractions",
            ),
            CharacterProfile(name="Edda", role="aunt", voice="warm"),
        ],
        world_rules=[
            WorldRule(
                name="Tides",
                type="natural",
                description="The causeway floods twice a day",
            ),
        ],
    )


@pytest.fixture
def sample_universe(sample_bible):
    """Return a populated universe snapshot."""
    return NarrativeUniverse(
        id=UNIVERSE_ID,
        title="Harbor Saga",
        story_bible=sample_bible,
        characters={
            "Mara": CharacterState(
                name="Mara",
                profile=sample_bible.character_profiles[0],
                current_state=CharacterCurrentState(
                    emotional_state="grieving", location="Lighthouse",
                ),
                relationships={
                    "Tomas": RelationshipState(type="ally"),
                    "Edda": RelationshipState(type="rival"),
                },
            ),
            "Tomas": CharacterState(
                name="Tomas",
                profile=sample_bible.character_profiles[1],
                current_state=CharacterCurrentState(emotional_state="calm"),
            ),
        },
        world_state=WorldState(
            locations={
                "Lighthouse": LocationState(
                    name="Lighthouse",
                    description="abandoned, collapsing roof",
                    status="abandoned",
                    atmosphere="eerie",
                ),
            },
            objects={
                "Brass Key": ObjectState(
                    name="Brass Key",
                    description="a tarnished brass key",
                    location="Lighthouse",
                ),
            },
            rules={
                "Tides": WorldRule(
                    name="Tides",
                    type="natural",
                    description="The causeway floods twice a day",
                ),
            },
            current_episode=3,
        ),
        plot_continuity=PlotContinuity(
            main_plotline=PlotThread(id="main", description="Mara uncovers the truth"),
            subplots={"smuggling-ring": PlotThread(id="smuggling-ring")},
            resolved_threads=[
                PlotThread(id="storm-night", status="resolved", episodes=[1]),
            ],
            active_conflicts=[
                Conflict(
                    id="inheritance-feud",
                    participants=["Mara", "Edda"],
                    description="Who inherits the lighthouse",
                ),
            ],
        ),
        thematic_framework=ThematicFramework(
            primary_theme="grief",
            subthemes=["redemption", "family"],
            thematic_elements={
                "isolation": ThematicElement(theme="isolation", strength=1.5, occurrences=2),
            },
        ),
    )


@pytest.fixture
def store(sample_universe):
    """Return an in-memory store holding the sample universe."""
    s = UniverseStore()
    s.put(sample_universe)
    return s


@pytest.fixture
def engine(store):
    """Return an engine over the sample store; shut down after the test."""
    e = ConsistencyEngine(store=store)
    yield e
    e.shutdown()


# ---------------------------------------------------------------------------
# Payload fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def mara_euphoric_script():
    """Mara jumps from grieving to euphoric with no arc event."""
    return {
        "episode": 4,
        "characters": [
            {"name": "Mara", "emotional_state": "euphoric"},
        ],
    }


@pytest.fixture
def lighthouse_script():
    """Restates the Lighthouse exactly as established."""
    return {
        "episode": 4,
        "locations": [
            {"name": "Lighthouse", "description": "abandoned, collapsing roof"},
        ],
    }


@pytest.fixture
def heist_callback_script():
    """Calls back to a plot thread that was never set up."""
    return {
        "episode": 4,
        "callbacks": [
            {"id": "heist-plan", "description": "Remember the plan?"},
        ],
    }
