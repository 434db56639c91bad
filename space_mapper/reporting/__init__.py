"""
Run-health aggregation and report export.

Modules:
- run_health: RunHealth finalization and read-side report frames
- exporters: CSV / GeoJSON / Markdown export
"""

from .run_health import (
    build_missing_bounds_report,
    build_results_frame,
    build_unmatched_report,
    build_zone_summary,
    finalize_run_health,
    log_run_health,
    sample_failures,
)
from .exporters import export_estimate, export_run_outputs, export_run_report

__all__ = [
    "build_missing_bounds_report",
    "build_results_frame",
    "build_unmatched_report",
    "build_zone_summary",
    "finalize_run_health",
    "log_run_health",
    "sample_failures",
    "export_estimate",
    "export_run_outputs",
    "export_run_report",
]
