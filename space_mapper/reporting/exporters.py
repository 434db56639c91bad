"""
Report export - CSV, GeoJSON and the Markdown run report.

ARCHITECTURAL OVERVIEW:
=======================
Responsibility: Persist the read-side reports of a finished run so they can
be reviewed outside the host application.

Export Formats:
- CSV: per-target results, missing-bounds report, zone summary
- GeoJSON: unmatched target footprints for GIS software
- JSON: run health and estimate
- Markdown: human-readable run report (overwritten on each run)

Key Entry Points:
- export_run_outputs(): All of the above into one directory
- export_run_report(): Markdown run report only

For Navigation: Use VS Code outline (Ctrl+Shift+O)
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Dict, List, Optional

import geopandas as gpd
import pandas as pd

from space_mapper.models.run_stats import RunEstimate
from space_mapper.reporting.run_health import (
    build_missing_bounds_report,
    build_results_frame,
    build_unmatched_report,
    build_zone_summary,
)

if TYPE_CHECKING:
    from space_mapper.engine import SpaceMapperRun

logger = logging.getLogger("SpaceMapper.Reporting.Exporters")

RUN_REPORT_FILENAME = "space_mapper_run_report.md"


# ═══════════════════════════════════════════════════════════════════════════
# 🔧 HELPER FUNCTIONS
# ═══════════════════════════════════════════════════════════════════════════


def _fmt(value: float) -> str:
    return f"{value:.3f}".rstrip("0").rstrip(".")


def _write_empty_feature_collection(output_path: Path) -> None:
    """Write an empty GeoJSON FeatureCollection so GIS tools always have a file."""
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump({"type": "FeatureCollection", "features": []}, f, indent=2)


def _table(lines: List[str], frame: pd.DataFrame, columns: List[str], limit: int = 50) -> None:
    lines.append("| " + " | ".join(columns) + " |")
    lines.append("|" + "|".join("---" for _ in columns) + "|")
    for _, row in frame.head(limit).iterrows():
        lines.append("| " + " | ".join(str(row[c]) for c in columns) + " |")
    if len(frame) > limit:
        lines.append("")
        lines.append(f"*{len(frame) - limit} more rows in the CSV export*")


# ═══════════════════════════════════════════════════════════════════════════
# 📊 CSV / GEOJSON EXPORT
# ═══════════════════════════════════════════════════════════════════════════


def export_frame_to_csv(frame: pd.DataFrame, csv_path: Path) -> Path:
    """Write a report frame to CSV (headers only when empty)."""
    csv_path = Path(csv_path)
    csv_path.parent.mkdir(parents=True, exist_ok=True)
    frame.to_csv(csv_path, index=False)
    logger.info(f"📄 CSV exported: {csv_path.name} ({len(frame)} rows)")
    return csv_path


def export_unmatched_geojson(report: gpd.GeoDataFrame, output_path: Path) -> Path:
    """Write the unmatched-target layer as GeoJSON."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    if report.empty:
        _write_empty_feature_collection(output_path)
    else:
        with open(output_path, "w", encoding="utf-8") as f:
            f.write(report.to_json())
    logger.info(f"📄 GeoJSON exported: {output_path.name} ({len(report)} features)")
    return output_path


def export_run_outputs(run: "SpaceMapperRun", output_dir: Path) -> Dict[str, Path]:
    """
    Export every report of a run.

    Args:
        run: Finished run (must carry its RunContext).
        output_dir: Destination directory (created if missing).

    Returns:
        Dict mapping report name to file path.
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    context = run.context
    if context is None:
        raise ValueError("run has no context; reports need the run's elements")

    elements = {**context.zones_by_key, **context.targets_by_key}
    exported: Dict[str, Path] = {}

    exported["results"] = export_frame_to_csv(
        build_results_frame(run.results), output_dir / "results.csv"
    )
    exported["missing_bounds"] = export_frame_to_csv(
        build_missing_bounds_report(run.results, run.zone_diagnostics, elements),
        output_dir / "missing_bounds.csv",
    )
    exported["zone_summary"] = export_frame_to_csv(
        build_zone_summary(run.results, context.zones), output_dir / "zone_summary.csv"
    )
    exported["unmatched"] = export_unmatched_geojson(
        build_unmatched_report(
            run.results, context.targets_by_key, context.extractor.extract_volume
        ),
        output_dir / "unmatched.geojson",
    )

    health_path = output_dir / "run_health.json"
    with open(health_path, "w", encoding="utf-8") as f:
        json.dump(run.as_dict(), f, indent=2)
    exported["run_health"] = health_path

    exported["run_report"] = export_run_report(run, output_dir)
    return exported


def export_estimate(estimate: RunEstimate, output_dir: Path) -> Path:
    """Write a preflight estimate as JSON."""
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / "preflight_estimate.json"
    with open(path, "w", encoding="utf-8") as f:
        json.dump(estimate.as_dict(), f, indent=2)
    logger.info(f"📄 Estimate exported: {path.name}")
    return path


# ═══════════════════════════════════════════════════════════════════════════
# 📝 MARKDOWN RUN REPORT
# ═══════════════════════════════════════════════════════════════════════════


def export_run_report(
    run: "SpaceMapperRun",
    output_dir: Path,
    log: Optional[logging.Logger] = None,
) -> Path:
    """
    Export the run report to a Markdown file that overwrites on each run.

    Sections: Setup, Zones & Targets, Processing, Outputs, Results and Zone
    Summaries.

    Args:
        run: Finished run.
        output_dir: Base output directory.
        log: Logger instance (optional).

    Returns:
        Path to the created report.
    """
    if log is None:
        log = logger

    report_path = Path(output_dir) / RUN_REPORT_FILENAME
    health = run.health
    context = run.context
    lines: List[str] = []

    lines.append("# Space Mapper - Run Report")
    lines.append("")
    lines.append(f"**Generated:** {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    lines.append("")

    # =====================================================================
    # SETUP
    # =====================================================================
    lines.append("## Setup")
    lines.append("")
    lines.append(f"- **Template:** {run.template.name} (v{run.template.version})")
    lines.append(f"- **Rules:** {len(run.template.enabled_rules())} enabled / {len(run.template.rules)}")
    lines.append(f"- **Mappings:** {len(run.template.mappings)}")
    lines.append(f"- **Preset:** {run.preset.value}")
    if context is not None:
        cfg = context.config
        offsets = context.base_offsets
        lines.append(f"- **Strictness:** {cfg.containment.strictness.value}")
        lines.append(f"- **Footprint tests:** {'on' if context.matcher.use_hull else 'off'}")
        lines.append(
            f"- **Offsets:** top {offsets.top}, bottom {offsets.bottom}, "
            f"sides {offsets.sides}, uniform {offsets.uniform} ({offsets.mode.value}, "
            f"{cfg.offsets.precedence.value})"
        )
        lines.append(
            f"- **Threads:** {cfg.performance.max_threads} (batch size {cfg.performance.batch_size})"
        )
    lines.append("")

    # =====================================================================
    # ZONES & TARGETS
    # =====================================================================
    lines.append("## Zones & Targets")
    lines.append("")
    lines.append(f"- **Zones:** {health.zones_total}")
    lines.append(f"- **Zones Indexed:** {health.zones_indexed}")
    lines.append(f"- **Zones Missing Bounds:** {health.zones_missing_bounds}")
    lines.append(f"- **Zones Degenerate:** {health.zones_degenerate}")
    lines.append(f"- **Targets Requested:** {health.targets_requested}")
    lines.append(f"- **Targets With Bounds:** {health.targets_with_bounds}")
    lines.append(f"- **Targets Without Bounds:** {health.targets_without_bounds}")
    lines.append("")

    # =====================================================================
    # PROCESSING
    # =====================================================================
    lines.append("## Processing")
    lines.append("")
    index = run.index_diagnostics
    lines.append(f"- **Cell Size:** {_fmt(run.cell_size)}")
    lines.append(f"- **Occupied Cells:** {index.occupied_cells}")
    if index.degraded:
        lines.append(
            f"- **Degraded:** {len(index.degraded_zone_keys)} zones at coarser levels, "
            f"{len(index.overflow_zone_keys)} in overflow (coarsest cell {_fmt(index.coarsest_cell_size)})"
        )
    lines.append(f"- **Candidate Pairs:** {health.candidate_pairs}")
    lines.append(f"- **Matching Time:** {health.elapsed_s:.2f}s")
    if health.is_partial:
        lines.append(f"- **Partial:** {health.targets_total}/{health.targets_requested} targets processed")
    if run.estimate is not None:
        est = run.estimate
        lines.append(
            f"- **Preflight:** {est.sample_size}/{est.population_size} sampled, "
            f"projected {est.projected_total_s:.2f}s, match rate "
            f"{est.projected_match_rate:.1%} ± {est.margin_of_error:.1%} ({est.confidence_label})"
        )
    lines.append("")

    # =====================================================================
    # OUTPUTS
    # =====================================================================
    lines.append("## Outputs")
    lines.append("")
    wb = run.writeback
    if wb is None:
        lines.append("- No writeback performed")
    else:
        lines.append(f"- **Targets Written:** {len(wb.written_keys)}")
        lines.append(f"- **Properties Written:** {wb.properties_written}")
        lines.append(f"- **Skipped Unchanged:** {len(wb.skipped_unchanged_keys)}")
        lines.append(f"- **Skipped Unmatched:** {wb.skipped_unmatched}")
        lines.append(f"- **Write Failures:** {wb.failure_count}")
        if wb.categories_written:
            lines.append(f"- **Categories:** {', '.join(wb.categories_written)}")
        lines.append(f"- **Labels:** {wb.label_mode.value}")
    lines.append("")

    # =====================================================================
    # RESULTS
    # =====================================================================
    lines.append("## Results")
    lines.append("")
    lines.append(f"- **Matched:** {health.targets_matched} ({health.match_rate:.1%})")
    lines.append(f"- **Unmatched:** {health.targets_unmatched}")
    lines.append(f"- **Multi-zone:** {health.targets_multi_zone}")
    if health.failure_samples:
        lines.append("")
        lines.append("| Element | Failure |")
        lines.append("|---------|---------|")
        for key, kind in health.failure_samples:
            lines.append(f"| {key} | {kind} |")
    lines.append("")

    # =====================================================================
    # ZONE SUMMARIES
    # =====================================================================
    if context is not None and context.zones:
        lines.append("## Zone Summaries")
        lines.append("")
        summary = build_zone_summary(run.results, context.zones)
        _table(lines, summary, ["zone_key", "name", "category", "targets_mapped", "shared_targets"])
        lines.append("")

    report_path.parent.mkdir(parents=True, exist_ok=True)
    with open(report_path, "w", encoding="utf-8") as f:
        f.write("\n".join(lines))
    log.info(f"📝 Run report written: {report_path}")
    return report_path


__all__ = [
    "RUN_REPORT_FILENAME",
    "export_frame_to_csv",
    "export_unmatched_geojson",
    "export_run_outputs",
    "export_estimate",
    "export_run_report",
]
