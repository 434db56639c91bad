"""
Run-health aggregation and read-side reports.

ARCHITECTURAL OVERVIEW:
=======================
Responsibility: Reduce per-target results and zone diagnostics to the
committed RunHealth summary, and build the read-only reports a user reviews
after a run: elements missing bounds, unmatched targets, per-zone summary.

Everything here reads results; nothing writes to the model.

Key Functions:
- finalize_run_health(): RunResult list → RunHealth
- sample_failures(): Small seeded sample of failed elements
- build_results_frame(): Results as a pandas DataFrame
- build_missing_bounds_report(): Targets and zones without usable geometry
- build_unmatched_report(): GeoDataFrame of unmatched target footprints
- build_zone_summary(): Targets mapped per zone

For Navigation: Use VS Code outline (Ctrl+Shift+O)
"""

import logging
from typing import Callable, List, Mapping, Optional, Sequence, Tuple

import geopandas as gpd
import numpy as np
import pandas as pd
from shapely.geometry import box

from space_mapper.errors import FailureKind
from space_mapper.geometry.extractor import Extraction
from space_mapper.models.data_models import Element
from space_mapper.models.geometry import NoGeometry
from space_mapper.models.run_stats import (
    IndexDiagnostics,
    RunHealth,
    RunResult,
    ZoneDiagnostic,
)

logger = logging.getLogger("SpaceMapper.Reporting.RunHealth")


# ═══════════════════════════════════════════════════════════════════════════
# 🎲 FAILURE SAMPLING
# ═══════════════════════════════════════════════════════════════════════════


def sample_failures(
    results: Sequence[RunResult],
    zone_diagnostics: Sequence[ZoneDiagnostic] = (),
    limit: int = 20,
    seed: int = 1234,
) -> Tuple[Tuple[str, str], ...]:
    """
    Seeded sample of (element_key, failure_kind) pairs, in original order.

    Zone diagnostics come first, then target failures in result order.
    """
    failures: List[Tuple[str, str]] = [(d.zone_key, d.kind.value) for d in zone_diagnostics]
    failures.extend((r.target_key, r.failure.value) for r in results if r.failure is not None)
    if limit <= 0 or not failures:
        return ()
    if len(failures) <= limit:
        return tuple(failures)
    rng = np.random.default_rng(seed)
    picked = np.sort(rng.choice(len(failures), size=limit, replace=False))
    return tuple(failures[int(i)] for i in picked)


# ═══════════════════════════════════════════════════════════════════════════
# 🩺 RUN HEALTH
# ═══════════════════════════════════════════════════════════════════════════


def finalize_run_health(
    results: Sequence[RunResult],
    targets_requested: int,
    zone_diagnostics: Sequence[ZoneDiagnostic] = (),
    zones_total: int = 0,
    zones_indexed: int = 0,
    index_diagnostics: Optional[IndexDiagnostics] = None,
    cancelled: bool = False,
    was_sampled: bool = False,
    elapsed_s: float = 0.0,
    failure_sample_limit: int = 20,
    seed: int = 1234,
) -> RunHealth:
    """
    Aggregate results into RunHealth.

    Args:
        results: Per-target results actually produced (partial if cancelled).
        targets_requested: Targets in scope when the run started.
        zone_diagnostics: Zones excluded before indexing.
        zones_total / zones_indexed: Zone counts.
        index_diagnostics: Grid build diagnostics.
        cancelled: Whether the run was cancelled.
        was_sampled: True for preflight sample health.
        elapsed_s: Wall-clock matching time.
        failure_sample_limit / seed: Failure sampling.
    """
    with_bounds = sum(1 for r in results if r.had_bounds)
    matched = sum(1 for r in results if r.had_bounds and r.is_matched)
    zones_missing = sum(1 for d in zone_diagnostics if d.kind is FailureKind.NO_GEOMETRY)
    zones_degenerate = sum(
        1 for d in zone_diagnostics if d.kind is FailureKind.DEGENERATE_VOLUME
    )

    health = RunHealth(
        targets_requested=targets_requested,
        targets_total=len(results),
        targets_with_bounds=with_bounds,
        targets_without_bounds=len(results) - with_bounds,
        targets_matched=matched,
        targets_unmatched=with_bounds - matched,
        targets_multi_zone=sum(1 for r in results if r.match_count > 1),
        targets_partial_overlap=sum(1 for r in results if r.has_partial_zone),
        zones_total=zones_total,
        zones_indexed=zones_indexed,
        zones_missing_bounds=zones_missing,
        zones_degenerate=zones_degenerate,
        candidate_pairs=sum(r.candidate_count for r in results),
        cancelled=cancelled,
        was_sampled=was_sampled,
        index=index_diagnostics,
        failure_samples=sample_failures(
            results, zone_diagnostics, limit=failure_sample_limit, seed=seed
        ),
        elapsed_s=elapsed_s,
    )

    problems = health.check_invariants()
    if problems:
        logger.error(f"❌ Run health invariants violated: {'; '.join(problems)}")
    return health


def log_run_health(health: RunHealth) -> None:
    """Log the run-health summary block."""
    logger.info("=" * 60)
    logger.info("🩺 RUN HEALTH" + (" (partial)" if health.is_partial else ""))
    logger.info(
        f"   Targets: {health.targets_total}/{health.targets_requested} processed, "
        f"{health.targets_with_bounds} with bounds, {health.targets_without_bounds} without"
    )
    logger.info(
        f"   Matched: {health.targets_matched} ({health.match_rate:.1%}), "
        f"unmatched: {health.targets_unmatched}, multi-zone: {health.targets_multi_zone}, "
        f"partial overlap: {health.targets_partial_overlap}"
    )
    logger.info(
        f"   Zones: {health.zones_indexed}/{health.zones_total} indexed, "
        f"{health.zones_missing_bounds} missing bounds, {health.zones_degenerate} degenerate"
    )
    logger.info(f"   Candidate pairs: {health.candidate_pairs}")
    logger.info("=" * 60)


# ═══════════════════════════════════════════════════════════════════════════
# 📊 READ-SIDE REPORTS
# ═══════════════════════════════════════════════════════════════════════════


def build_results_frame(
    results: Sequence[RunResult], zone_separator: str = ";"
) -> pd.DataFrame:
    """One row per target result; matched zone keys joined with the separator."""
    rows = []
    for r in results:
        row = r.as_dict()
        row["matched_zone_keys"] = zone_separator.join(r.matched_zone_keys)
        row["partial_zone_keys"] = zone_separator.join(r.partial_zone_keys)
        rows.append(row)
    columns = [
        "target_key",
        "matched_zone_keys",
        "match_count",
        "had_bounds",
        "was_sampled",
        "candidate_count",
        "contained_count",
        "failure",
        "partial_zone_keys",
    ]
    return pd.DataFrame(rows, columns=columns)


def build_missing_bounds_report(
    results: Sequence[RunResult],
    zone_diagnostics: Sequence[ZoneDiagnostic] = (),
    elements_by_key: Optional[Mapping[str, Element]] = None,
) -> pd.DataFrame:
    """
    Elements the run could not place: targets without bounds, zones without
    bounds and zones whose offset volume was degenerate.

    Columns: element_key, name, category, role, reason.
    """
    elements_by_key = elements_by_key or {}
    rows = []
    for diag in zone_diagnostics:
        element = elements_by_key.get(diag.zone_key)
        rows.append(
            {
                "element_key": diag.zone_key,
                "name": element.label if element else diag.zone_key,
                "category": element.category if element else "",
                "role": "zone",
                "reason": diag.kind.value + (f": {diag.reason}" if diag.reason else ""),
            }
        )
    for r in results:
        if r.had_bounds:
            continue
        element = elements_by_key.get(r.target_key)
        rows.append(
            {
                "element_key": r.target_key,
                "name": element.label if element else r.target_key,
                "category": element.category if element else "",
                "role": "target",
                "reason": FailureKind.NO_GEOMETRY.value,
            }
        )
    return pd.DataFrame(rows, columns=["element_key", "name", "category", "role", "reason"])


def build_unmatched_report(
    results: Sequence[RunResult],
    targets_by_key: Mapping[str, Element],
    volume_of: Callable[[Element], Extraction],
    crs: Optional[str] = None,
) -> gpd.GeoDataFrame:
    """
    Targets that had bounds but no zone, as plan-view boxes.

    Args:
        results: Run results.
        targets_by_key: Target elements by key.
        volume_of: Geometry lookup (the run's extractor, memo hits only).
        crs: Optional CRS for the output layer.
    """
    rows = []
    geometries = []
    for r in results:
        if not r.is_unmatched:
            continue
        element = targets_by_key.get(r.target_key)
        if element is None:
            continue
        volume = volume_of(element)
        if isinstance(volume, NoGeometry):
            continue
        rows.append(
            {
                "target_key": r.target_key,
                "name": element.label,
                "category": element.category,
                "level": element.level,
                "z_min": volume.min_z,
                "z_max": volume.max_z,
                "candidate_count": r.candidate_count,
                "contained_count": r.contained_count,
            }
        )
        geometries.append(box(volume.min_x, volume.min_y, volume.max_x, volume.max_y))

    columns = [
        "target_key",
        "name",
        "category",
        "level",
        "z_min",
        "z_max",
        "candidate_count",
        "contained_count",
    ]
    frame = pd.DataFrame(rows, columns=columns)
    return gpd.GeoDataFrame(frame, geometry=geometries, crs=crs)


def build_zone_summary(
    results: Sequence[RunResult],
    zone_elements: Sequence[Element],
) -> pd.DataFrame:
    """
    Targets mapped to each zone.

    Columns: zone_key, name, category, targets_mapped, shared_targets (targets
    also mapped to another zone). Zones without targets are included with 0.
    """
    mapped = {z.key: 0 for z in zone_elements}
    shared = {z.key: 0 for z in zone_elements}
    for r in results:
        for key in r.matched_zone_keys:
            if key in mapped:
                mapped[key] += 1
                if r.match_count > 1:
                    shared[key] += 1
    rows = [
        {
            "zone_key": z.key,
            "name": z.label,
            "category": z.category,
            "targets_mapped": mapped[z.key],
            "shared_targets": shared[z.key],
        }
        for z in zone_elements
    ]
    return pd.DataFrame(
        rows, columns=["zone_key", "name", "category", "targets_mapped", "shared_targets"]
    )


__all__ = [
    "sample_failures",
    "finalize_run_health",
    "log_run_health",
    "build_results_frame",
    "build_missing_bounds_report",
    "build_unmatched_report",
    "build_zone_summary",
]
