"""
narrative_consistency/universe_store.py -- Thread-safe universe registry.

Owns every live ``NarrativeUniverse``.  Each universe has its own
``threading.RLock`` so that updates to different universes never block
each other, while updates to the same universe are fully serialized.

Readers always receive a deep-copy snapshot.  Writers go through
``replace()``, which runs a mutator on a private copy and publishes the
result only if the mutator (and persistence, when enabled) succeed, so a
failed update leaves the live universe exactly as it was.

Usage:
    from narrative_consistency.universe_store import UniverseStore

    store = UniverseStore()
    snapshot = store.get_or_create("harbor-saga")
    store.replace("harbor-saga", lambda u: u.world_state.timeline.clear())
"""

from __future__ import annotations

import logging
import os
import threading
from typing import Callable, Optional

from pydantic import ValidationError

from narrative_consistency.errors import UniverseStoreError
from narrative_consistency.models.universe import NarrativeUniverse, StoryBible
from narrative_consistency.utils import (
    now_utc,
    safe_read_json,
    safe_write_json,
    short_digest,
    slugify,
)

logger = logging.getLogger(__name__)

Mutator = Callable[[NarrativeUniverse], Optional[NarrativeUniverse]]

_MISSING = object()


def _check_id(universe_id) -> str:
    if not isinstance(universe_id, str) or not universe_id.strip():
        raise ValueError(f"Invalid universe id: {universe_id!r}")
    return universe_id


class UniverseStore:
    """Registry of live universes with per-universe locks.

    Parameters
    ----------
    storage_dir : str or pathlib.Path, optional
        Directory for one JSON document per universe.  When omitted the
        store is memory-only.
    """

    def __init__(self, storage_dir=None):
        self.storage_dir = str(storage_dir) if storage_dir is not None else None
        self._universes: dict[str, NarrativeUniverse] = {}
        self._locks: dict[str, threading.RLock] = {}
        self._registry_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Locks
    # ------------------------------------------------------------------

    def lock_for(self, universe_id: str) -> threading.RLock:
        """Return the lock for *universe_id*, creating it on first use."""
        lock = self._locks.get(universe_id)
        if lock is not None:
            return lock
        with self._registry_lock:
            # Double-check after acquiring lock
            lock = self._locks.get(universe_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[universe_id] = lock
            return lock

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_or_create(self, universe_id: str) -> NarrativeUniverse:
        """Return a snapshot of the universe, creating an empty one if unknown.

        Raises
        ------
        ValueError
            If *universe_id* is empty or not a string.
        UniverseStoreError
            If a persisted document exists but cannot be loaded.
        """
        _check_id(universe_id)
        with self.lock_for(universe_id):
            return self._live(universe_id).snapshot()

    def revision(self, universe_id: str) -> int:
        """Return the live revision of the universe without copying it.

        Loads or creates the universe exactly as ``get_or_create`` does.
        """
        _check_id(universe_id)
        with self.lock_for(universe_id):
            return self._live(universe_id).revision

    def exists(self, universe_id: str) -> bool:
        # Lookups for unknown ids must not allocate a lock.
        _check_id(universe_id)
        with self._registry_lock:
            if universe_id in self._universes:
                return True
        return self.storage_dir is not None and os.path.exists(self._path_for(universe_id))

    def universe_ids(self) -> list[str]:
        """Return the ids of all universes currently held in memory."""
        with self._registry_lock:
            return sorted(self._universes)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def replace(self, universe_id: str, mutator: Mutator) -> NarrativeUniverse:
        """Apply *mutator* to a private copy and publish it atomically.

        The mutator may edit the copy in place (returning ``None``) or
        return a new universe.  On success the revision counter and
        ``last_updated`` advance, the document is persisted when a storage
        directory is configured, and a snapshot of the new state is
        returned.

        Any exception from the mutator or from persistence propagates and
        the live universe is left untouched.
        """
        _check_id(universe_id)
        with self.lock_for(universe_id):
            current = self._live(universe_id)
            working = current.snapshot()
            result = mutator(working)
            updated = result if result is not None else working
            if not isinstance(updated, NarrativeUniverse):
                raise TypeError(
                    f"Mutator must return NarrativeUniverse or None, got {type(updated).__name__}"
                )
            updated.id = universe_id
            updated.revision = current.revision + 1
            updated.last_updated = now_utc()
            self._persist(updated)
            with self._registry_lock:
                self._universes[universe_id] = updated
            logger.debug("Universe '%s' advanced to revision %d", universe_id, updated.revision)
            return updated.snapshot()

    def put(self, universe: NarrativeUniverse) -> NarrativeUniverse:
        """Install *universe* wholesale, replacing any existing state."""
        return self.replace(universe.id, lambda _current: universe.snapshot())

    def seed_story_bible(self, universe_id: str, bible, title: Optional[str] = None) -> NarrativeUniverse:
        """Install the static baseline for a universe.

        The bible's theme and subthemes seed an empty thematic framework,
        its world rules seed the rule registry, and its logline describes
        the main plotline when none is set yet.
        """
        if not isinstance(bible, StoryBible):
            bible = StoryBible.model_validate(bible)

        def _seed(universe: NarrativeUniverse) -> None:
            universe.story_bible = bible.model_copy(deep=True)
            if title:
                universe.title = title
            framework = universe.thematic_framework
            if not framework.primary_theme and bible.theme:
                framework.primary_theme = bible.theme
            for sub in bible.subthemes:
                if sub not in framework.subthemes:
                    framework.subthemes.append(sub)
            for rule in bible.world_rules:
                if rule.name:
                    universe.world_state.rules.setdefault(rule.name, rule.model_copy(deep=True))
            main = universe.plot_continuity.main_plotline
            if not main.description and bible.logline:
                main.description = bible.logline

        snapshot = self.replace(universe_id, _seed)
        logger.info("Seeded story bible for universe '%s'", universe_id)
        return snapshot

    def evict(self, universe_id: str) -> None:
        """Drop the in-memory copy.  Persisted documents are kept."""
        _check_id(universe_id)
        lock = self._locks.get(universe_id)
        if lock is None:
            # Never loaded, so nothing is held in memory.
            return
        with lock:
            with self._registry_lock:
                self._universes.pop(universe_id, None)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _live(self, universe_id: str) -> NarrativeUniverse:
        # Caller holds the universe lock.
        universe = self._universes.get(universe_id)
        if universe is not None:
            return universe
        universe = self._load(universe_id)
        if universe is None:
            universe = NarrativeUniverse.empty(universe_id)
            logger.info("Created universe '%s'", universe_id)
        with self._registry_lock:
            self._universes[universe_id] = universe
        return universe

    def _path_for(self, universe_id: str) -> str:
        slug = slugify(universe_id) or "universe"
        return os.path.join(self.storage_dir, f"{slug}-{short_digest(universe_id)}.json")

    def _load(self, universe_id: str) -> Optional[NarrativeUniverse]:
        if self.storage_dir is None:
            return None
        path = self._path_for(universe_id)
        if not os.path.exists(path):
            return None
        data = safe_read_json(path, default=_MISSING)
        if data is _MISSING:
            raise UniverseStoreError(f"Universe document '{path}' is unreadable")
        try:
            universe = NarrativeUniverse.model_validate(data)
        except ValidationError as exc:
            raise UniverseStoreError(
                f"Universe document '{path}' is invalid: {exc.error_count()} error(s)"
            ) from exc
        logger.info("Loaded universe '%s' (revision %d)", universe_id, universe.revision)
        return universe

    def _persist(self, universe: NarrativeUniverse) -> None:
        if self.storage_dir is None:
            return
        path = self._path_for(universe.id)
        try:
            safe_write_json(path, universe.model_dump(mode="json"))
        except OSError as exc:
            raise UniverseStoreError(f"Could not persist universe '{universe.id}': {exc}") from exc
