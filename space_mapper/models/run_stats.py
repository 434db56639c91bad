"""
Run outcome and statistics models.

Architectural Overview:
=======================
Result records produced while a mapping run executes: one RunResult per
target, zone resolution diagnostics, spatial index diagnostics, the committed
RunHealth summary, preflight RunEstimate and the WritebackSummary.

All of these are frozen. RunHealth.check_invariants() returns the list of
violated counting invariants (empty when consistent) so tests and callers
can assert on it without the model raising on construction.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from space_mapper.errors import FailureKind
from space_mapper.models.data_models import PerformancePreset, PropertyLabelMode


# ═══════════════════════════════════════════════════════════════════════════
# 🎯 PER-TARGET RESULT
# ═══════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class RunResult:
    """Outcome of matching one target.

    Attributes:
        target_key: Key of the target element.
        matched_zone_keys: Resolved zones, ordered by rule then zone order.
        match_count: len(matched_zone_keys).
        had_bounds: False when geometry extraction returned NoGeometry.
        was_sampled: True for preflight sample results.
        candidate_count: Zones returned by the spatial index (broad phase).
        contained_count: Candidates passing the exact containment test.
        partial_zone_keys: Resolved zones the target only partially overlaps.
        failure: NO_GEOMETRY / NO_RULE_MATCH, None when matched.
    """

    target_key: str
    matched_zone_keys: Tuple[str, ...] = ()
    match_count: int = 0
    had_bounds: bool = True
    was_sampled: bool = False
    candidate_count: int = 0
    contained_count: int = 0
    failure: Optional[FailureKind] = None
    partial_zone_keys: Tuple[str, ...] = ()

    @property
    def is_matched(self) -> bool:
        return self.match_count > 0

    @property
    def has_partial_zone(self) -> bool:
        return bool(self.partial_zone_keys)

    @property
    def is_unmatched(self) -> bool:
        """Had bounds but no zone survived containment and rules."""
        return self.had_bounds and self.match_count == 0

    def as_dict(self) -> Dict[str, Any]:
        return {
            "target_key": self.target_key,
            "matched_zone_keys": list(self.matched_zone_keys),
            "match_count": self.match_count,
            "had_bounds": self.had_bounds,
            "was_sampled": self.was_sampled,
            "candidate_count": self.candidate_count,
            "contained_count": self.contained_count,
            "failure": self.failure.value if self.failure is not None else None,
            "partial_zone_keys": list(self.partial_zone_keys),
        }


def no_geometry_result(target_key: str, sampled: bool = False) -> RunResult:
    return RunResult(
        target_key=target_key,
        had_bounds=False,
        was_sampled=sampled,
        failure=FailureKind.NO_GEOMETRY,
    )


# ═══════════════════════════════════════════════════════════════════════════
# 🧱 ZONE / INDEX DIAGNOSTICS
# ═══════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class ZoneDiagnostic:
    """A zone excluded from the run (missing bounds or degenerate offset)."""

    zone_key: str
    kind: FailureKind
    reason: str = ""

    def as_dict(self) -> Dict[str, Any]:
        return {"zone_key": self.zone_key, "kind": self.kind.value, "reason": self.reason}


@dataclass(frozen=True)
class IndexDiagnostics:
    """How the spatial grid was actually built.

    Attributes:
        requested_cell_size: Cell size derived from settings.
        zone_count: Zones inserted.
        occupied_cells: Distinct (level, cell) keys holding at least one zone.
        level_counts: (level, zones at that level) pairs, level 0 is the base.
        degraded_zone_keys: Zones inserted at a coarser level than 0.
        overflow_zone_keys: Zones too large for every level, scanned linearly.
    """

    requested_cell_size: float
    zone_count: int = 0
    occupied_cells: int = 0
    level_counts: Tuple[Tuple[int, int], ...] = ()
    degraded_zone_keys: Tuple[str, ...] = ()
    overflow_zone_keys: Tuple[str, ...] = ()

    @property
    def degraded(self) -> bool:
        return bool(self.degraded_zone_keys or self.overflow_zone_keys)

    @property
    def coarsest_cell_size(self) -> float:
        if not self.level_counts:
            return self.requested_cell_size
        return self.requested_cell_size * (2 ** max(level for level, _ in self.level_counts))

    def as_dict(self) -> Dict[str, Any]:
        return {
            "requested_cell_size": self.requested_cell_size,
            "coarsest_cell_size": self.coarsest_cell_size,
            "zone_count": self.zone_count,
            "occupied_cells": self.occupied_cells,
            "level_counts": dict(self.level_counts),
            "degraded_zones": len(self.degraded_zone_keys),
            "overflow_zones": len(self.overflow_zone_keys),
        }


# ═══════════════════════════════════════════════════════════════════════════
# 🩺 RUN HEALTH
# ═══════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class RunHealth:
    """Aggregate counters for one run.

    Invariants (see check_invariants):
        targets_with_bounds + targets_without_bounds == targets_total
        targets_unmatched <= targets_with_bounds
        targets_partial_overlap <= targets_matched
        targets_matched + targets_unmatched == targets_with_bounds
        targets_total <= targets_requested
    """

    targets_requested: int = 0
    targets_total: int = 0
    targets_with_bounds: int = 0
    targets_without_bounds: int = 0
    targets_matched: int = 0
    targets_unmatched: int = 0
    targets_multi_zone: int = 0
    targets_partial_overlap: int = 0
    zones_total: int = 0
    zones_indexed: int = 0
    zones_missing_bounds: int = 0
    zones_degenerate: int = 0
    candidate_pairs: int = 0
    cancelled: bool = False
    was_sampled: bool = False
    index: Optional[IndexDiagnostics] = None
    failure_samples: Tuple[Tuple[str, str], ...] = ()
    elapsed_s: float = 0.0

    @property
    def is_partial(self) -> bool:
        return self.cancelled or self.targets_total < self.targets_requested

    @property
    def match_rate(self) -> float:
        if self.targets_with_bounds == 0:
            return 0.0
        return self.targets_matched / self.targets_with_bounds

    def check_invariants(self) -> List[str]:
        """Describe every violated counting invariant (empty when healthy)."""
        problems = []
        if self.targets_with_bounds + self.targets_without_bounds != self.targets_total:
            problems.append(
                f"with_bounds ({self.targets_with_bounds}) + without_bounds "
                f"({self.targets_without_bounds}) != total ({self.targets_total})"
            )
        if self.targets_unmatched > self.targets_with_bounds:
            problems.append(
                f"unmatched ({self.targets_unmatched}) > with_bounds "
                f"({self.targets_with_bounds})"
            )
        if self.targets_matched + self.targets_unmatched != self.targets_with_bounds:
            problems.append(
                f"matched ({self.targets_matched}) + unmatched "
                f"({self.targets_unmatched}) != with_bounds ({self.targets_with_bounds})"
            )
        if self.targets_partial_overlap > self.targets_matched:
            problems.append(
                f"partial_overlap ({self.targets_partial_overlap}) > matched "
                f"({self.targets_matched})"
            )
        if self.targets_total > self.targets_requested:
            problems.append(
                f"total ({self.targets_total}) > requested ({self.targets_requested})"
            )
        if self.zones_indexed + self.zones_missing_bounds + self.zones_degenerate != self.zones_total:
            problems.append(
                f"zones indexed ({self.zones_indexed}) + missing ({self.zones_missing_bounds}) "
                f"+ degenerate ({self.zones_degenerate}) != total ({self.zones_total})"
            )
        return problems

    def as_dict(self) -> Dict[str, Any]:
        return {
            "targets_requested": self.targets_requested,
            "targets_total": self.targets_total,
            "targets_with_bounds": self.targets_with_bounds,
            "targets_without_bounds": self.targets_without_bounds,
            "targets_matched": self.targets_matched,
            "targets_unmatched": self.targets_unmatched,
            "targets_multi_zone": self.targets_multi_zone,
            "targets_partial_overlap": self.targets_partial_overlap,
            "zones_total": self.zones_total,
            "zones_indexed": self.zones_indexed,
            "zones_missing_bounds": self.zones_missing_bounds,
            "zones_degenerate": self.zones_degenerate,
            "candidate_pairs": self.candidate_pairs,
            "cancelled": self.cancelled,
            "is_partial": self.is_partial,
            "was_sampled": self.was_sampled,
            "match_rate": round(self.match_rate, 4),
            "elapsed_s": round(self.elapsed_s, 3),
            "index": self.index.as_dict() if self.index is not None else None,
            "failure_samples": [list(s) for s in self.failure_samples],
        }


# ═══════════════════════════════════════════════════════════════════════════
# 🔍 PREFLIGHT ESTIMATE
# ═══════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class RunEstimate:
    """Projection of a full run extrapolated from a seeded sample.

    Attributes:
        sample_size / population_size: Targets sampled / targets in scope.
        sample_elapsed_s: Wall-clock time of the sample run.
        projected_runtime_s: sample time / sample size × population.
        projected_pair_count: Mean candidates per sampled target × population.
        projected_writeback_s: From calibrated seconds per write.
        projected_match_rate / projected_unmatched / projected_without_bounds:
            Extrapolated target outcome counts.
        margin_of_error: Half-width of the match-rate interval.
        confidence: In [0, 0.99]; grows with the sampled fraction.
        confidence_label: "Low" | "Medium" | "High".
        resolved_preset: Preset AUTO resolves to for this workload.
        sample_health: RunHealth of the sample run only.
    """

    sample_size: int
    population_size: int
    seed: int
    sample_elapsed_s: float = 0.0
    projected_runtime_s: float = 0.0
    projected_writeback_s: float = 0.0
    projected_pair_count: float = 0.0
    candidates_per_target: float = 0.0
    projected_match_rate: float = 0.0
    projected_unmatched: float = 0.0
    projected_without_bounds: float = 0.0
    margin_of_error: float = 1.0
    confidence: float = 0.0
    confidence_label: str = "Low"
    resolved_preset: PerformancePreset = PerformancePreset.NORMAL
    sample_health: Optional[RunHealth] = None

    @property
    def sample_fraction(self) -> float:
        if self.population_size == 0:
            return 0.0
        return self.sample_size / self.population_size

    @property
    def projected_total_s(self) -> float:
        return self.projected_runtime_s + self.projected_writeback_s

    def as_dict(self) -> Dict[str, Any]:
        return {
            "sample_size": self.sample_size,
            "population_size": self.population_size,
            "sample_fraction": round(self.sample_fraction, 4),
            "seed": self.seed,
            "sample_elapsed_s": round(self.sample_elapsed_s, 4),
            "projected_runtime_s": round(self.projected_runtime_s, 3),
            "projected_writeback_s": round(self.projected_writeback_s, 3),
            "projected_total_s": round(self.projected_total_s, 3),
            "projected_pair_count": round(self.projected_pair_count, 1),
            "candidates_per_target": round(self.candidates_per_target, 3),
            "projected_match_rate": round(self.projected_match_rate, 4),
            "projected_unmatched": round(self.projected_unmatched, 1),
            "projected_without_bounds": round(self.projected_without_bounds, 1),
            "margin_of_error": round(self.margin_of_error, 4),
            "confidence": round(self.confidence, 3),
            "confidence_label": self.confidence_label,
            "resolved_preset": self.resolved_preset.value,
        }


# ═══════════════════════════════════════════════════════════════════════════
# ✍️ WRITEBACK SUMMARY
# ═══════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class WriteFailure:
    """One property write that the property service rejected."""

    target_key: str
    category: str
    property_name: str
    reason: str = ""
    kind: FailureKind = FailureKind.WRITE_FAILURE


@dataclass(frozen=True)
class WritebackSummary:
    """What the writeback phase changed.

    written_keys lists targets with at least one successful write, in result
    order. Targets without any matched zone never appear in it.
    """

    written_keys: Tuple[str, ...] = ()
    skipped_unchanged_keys: Tuple[str, ...] = ()
    skipped_unmatched: int = 0
    properties_written: int = 0
    categories_written: Tuple[str, ...] = ()
    failures: Tuple[WriteFailure, ...] = ()
    label_mode: PropertyLabelMode = PropertyLabelMode.DISPLAY
    elapsed_s: float = 0.0

    @property
    def failure_count(self) -> int:
        return len(self.failures)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "targets_written": len(self.written_keys),
            "targets_skipped_unchanged": len(self.skipped_unchanged_keys),
            "targets_skipped_unmatched": self.skipped_unmatched,
            "properties_written": self.properties_written,
            "categories_written": list(self.categories_written),
            "write_failures": self.failure_count,
            "label_mode": self.label_mode.value,
            "elapsed_s": round(self.elapsed_s, 3),
        }


__all__ = [
    "RunResult",
    "no_geometry_result",
    "ZoneDiagnostic",
    "IndexDiagnostics",
    "RunHealth",
    "RunEstimate",
    "WriteFailure",
    "WritebackSummary",
]
