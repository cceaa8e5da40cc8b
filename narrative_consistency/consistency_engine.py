"""
narrative_consistency/consistency_engine.py -- Engine facade.

Wires the store, cache, pipeline and updater together and exposes the
three operations content producers call:

    validate_content_consistency   check content before it is accepted
    update_universe_with_content   fold accepted content into the universe
    apply_consistency_corrections  apply automatic fixes to a payload

The engine is constructed explicitly and owns its components; there is no
module-level instance.

Usage:
    from narrative_consistency import ConsistencyEngine

    with ConsistencyEngine() as engine:
        result = engine.validate_content_consistency(
            content, "dialogue", "harbor-saga", "script",
        )
        if result is not None and not result.is_valid:
            content = engine.apply_consistency_corrections(content, result.corrections)
        engine.update_universe_with_content(content, "dialogue", "harbor-saga", "script")
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Iterable, Optional

from narrative_consistency.config import ConsistencyPolicy, EngineSettings
from narrative_consistency.corrections import apply_corrections
from narrative_consistency.models.consistency import ConsistencyCorrection, ValidationResult
from narrative_consistency.models.universe import NarrativeUniverse
from narrative_consistency.observability import ConsistencyMetrics
from narrative_consistency.paths import get_default_storage_dir
from narrative_consistency.result_cache import ResultCache
from narrative_consistency.universe_store import UniverseStore
from narrative_consistency.universe_updater import UniverseUpdater
from narrative_consistency.validation_pipeline import TransitionCallback, ValidationPipeline

logger = logging.getLogger(__name__)


class ConsistencyEngine:
    """Owns one universe store and everything that reads or writes it.

    Parameters
    ----------
    settings : EngineSettings, optional
        Storage, cache and worker settings.
    policy : ConsistencyPolicy, optional
        Scoring and correction policy.
    store : UniverseStore, optional
        Pre-built store, e.g. shared with another component.  When given,
        ``settings.storage_dir`` and ``settings.persist`` are ignored.
    metrics : ConsistencyMetrics, optional
        Metrics sink shared by every component.
    on_transition : callable, optional
        Pipeline state observer, see ``ValidationPipeline``.
    """

    def __init__(
        self,
        settings: Optional[EngineSettings] = None,
        policy: Optional[ConsistencyPolicy] = None,
        store: Optional[UniverseStore] = None,
        metrics: Optional[ConsistencyMetrics] = None,
        on_transition: Optional[TransitionCallback] = None,
    ):
        self.settings = settings or EngineSettings()
        self.policy = policy or ConsistencyPolicy()
        self.metrics = metrics or ConsistencyMetrics()
        if store is None:
            storage_dir = self.settings.storage_dir
            if self.settings.persist and storage_dir is None:
                storage_dir = get_default_storage_dir()
            store = UniverseStore(storage_dir)
        self.store = store
        self.cache = ResultCache(
            max_size=self.settings.cache_max_size,
            ttl_seconds=self.settings.cache_ttl_seconds,
            metrics=self.metrics,
        )
        self.pipeline = ValidationPipeline(
            self.store,
            self.cache,
            policy=self.policy,
            max_workers=self.settings.max_workers,
            default_timeout=self.settings.validation_timeout_seconds,
            metrics=self.metrics,
            on_transition=on_transition,
        )
        self.updater = UniverseUpdater(self.store, metrics=self.metrics)
        self._closed = False
        logger.info("Consistency engine ready (storage: %s)", self.store.storage_dir or "memory")

    # ------------------------------------------------------------------
    # External operations
    # ------------------------------------------------------------------

    def validate_content_consistency(
        self,
        content: Any,
        content_type: str,
        universe_id: str,
        tab_type: str,
        *,
        cancel_event: Optional[threading.Event] = None,
        timeout: Optional[float] = None,
    ) -> Optional[ValidationResult]:
        """Validate *content* against the universe.

        Never raises for inconsistent content or an unhealthy store.
        Returns ``None`` only when the call was cancelled or timed out.
        """
        return self.pipeline.validate(
            content, content_type, universe_id, tab_type,
            cancel_event=cancel_event, timeout=timeout,
        )

    def update_universe_with_content(
        self, content: Any, content_type: str, universe_id: str, tab_type: str,
    ) -> None:
        """Fold accepted *content* into the universe.  Failures are logged only."""
        if self.updater.apply(universe_id, content, tab_type, content_type):
            self.cache.invalidate_universe(universe_id)

    def apply_consistency_corrections(
        self, content: Any, corrections: Iterable[ConsistencyCorrection],
    ) -> Any:
        """Return a copy of *content* with automatic corrections applied."""
        return apply_corrections(content, corrections, policy=self.policy, metrics=self.metrics)

    # ------------------------------------------------------------------
    # Universe management
    # ------------------------------------------------------------------

    def seed_story_bible(self, universe_id: str, story_bible, title: Optional[str] = None) -> NarrativeUniverse:
        universe = self.store.seed_story_bible(universe_id, story_bible, title=title)
        self.cache.invalidate_universe(universe_id)
        return universe

    def get_universe(self, universe_id: str) -> NarrativeUniverse:
        """Return a snapshot of *universe_id*."""
        return self.store.get_or_create(universe_id)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def shutdown(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.pipeline.shutdown()
        self.cache.clear()
        logger.info("Consistency engine shut down")

    def __enter__(self) -> ConsistencyEngine:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()
