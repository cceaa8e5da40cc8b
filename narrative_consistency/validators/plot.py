"""
Plot dimension: thread references and conflict status.

Checks, in order of severity:

    critical  a callback names a thread that is neither resolved nor an
              active conflict (subplots, the main plotline and pending
              foreshadowing have not played out yet)
    critical  a revelation names a thread that exists nowhere in plot
              continuity
    major     a conflict is presented as active although it was resolved,
              or as resolved although it is still open
"""

from __future__ import annotations

from narrative_consistency.models.consistency import ConsistencyViolation
from narrative_consistency.models.content import PlotReference, as_payload
from narrative_consistency.models.universe import NarrativeUniverse, PlotContinuity
from narrative_consistency.utils import normalize_text
from narrative_consistency.validators.base import DimensionValidator


class PlotValidator(DimensionValidator):
    dimension = "plot"

    def validate(self, content, tab_type, universe: NarrativeUniverse) -> list[ConsistencyViolation]:
        payload = as_payload(content, tab_type)
        plot = universe.plot_continuity
        violations: list[ConsistencyViolation] = []
        for ref in payload.plot_elements():
            if not ref.thread_id:
                continue
            if ref.kind == "callback" and not self._callback_target(ref.thread_id, plot):
                violations.append(self._unknown_thread(ref, payload, plot))
            elif ref.kind == "revelation" and not plot.thread_exists(ref.thread_id):
                violations.append(self._unknown_thread(ref, payload, plot))
            elif ref.kind == "conflict":
                violations.extend(self._check_conflict(ref, plot, payload))
        return violations

    @staticmethod
    def _callback_target(thread_id: str, plot: PlotContinuity) -> bool:
        return plot.find_resolved(thread_id) is not None or plot.find_conflict(thread_id) is not None

    def _unknown_thread(self, ref: PlotReference, payload, plot: PlotContinuity) -> ConsistencyViolation:
        if ref.kind == "callback" and plot.thread_exists(ref.thread_id):
            description = (
                f"The callback references '{ref.thread_id}', which is neither resolved "
                f"nor an active conflict"
            )
            fix = f"Let '{ref.thread_id}' play out on screen before calling back to it"
        else:
            description = f"The {ref.kind} references plot thread '{ref.thread_id}', which was never established"
            fix = f"Set up '{ref.thread_id}' in an earlier episode or remove the {ref.kind}"
        return self.violation(
            kind="unknown_thread",
            severity="critical",
            subject=ref.thread_id,
            description=description,
            tab_type=payload.tab_type,
            episode=payload.episode,
            stated=ref.thread_id,
            stated_path=ref.path_for("id"),
            established=None,
            established_path=("plot_continuity",),
            suggested_fix=fix,
        )

    def _check_conflict(self, ref: PlotReference, plot: PlotContinuity, payload):
        stated = normalize_text(ref.status)
        resolved = plot.find_resolved(ref.thread_id)
        active = plot.find_conflict(ref.thread_id)

        if resolved is not None and not ref.resolves and stated in ("", "active"):
            return [self._status_violation(
                ref, payload, stated or "active", "resolved",
                ("plot_continuity", "resolved_threads", resolved.id, "status"),
                f"The conflict '{ref.thread_id}' is presented as active but was already resolved",
            )]
        if active is not None and normalize_text(active.status) == "active" and stated == "resolved" and not ref.resolves:
            return [self._status_violation(
                ref, payload, stated, "active",
                ("plot_continuity", "active_conflicts", active.id, "status"),
                f"The conflict '{ref.thread_id}' is presented as resolved but no content has resolved it",
            )]
        return []

    def _status_violation(self, ref, payload, stated, expected, established_path, description):
        return self.violation(
            kind="plot_status",
            severity="major",
            subject=ref.thread_id,
            description=description,
            tab_type=payload.tab_type,
            episode=payload.episode,
            stated=stated,
            stated_path=ref.path_for("status"),
            established=expected,
            established_path=established_path,
            suggested_fix=f"Mark '{ref.thread_id}' as {expected}",
            auto_correctible=True,
            expected_value=expected,
        )
