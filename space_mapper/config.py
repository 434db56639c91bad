#!/usr/bin/env python3
"""
Space Mapper - Configuration

ARCHITECTURAL OVERVIEW:
=======================
Responsibility: Centralized configuration for spatial containment mapping.
Single source of truth for offsets, spatial index sizing, containment
strictness, rule precedence, batching, preflight sampling and writeback.

Configuration Sections (ordered by importance for run tuning):
1. performance: Preset, thread count and batch size
2. containment: Representative point strictness and tolerance
3. offsets: Run-level zone offsets and face precedence
4. index: Spatial grid cell sizing
5. rules: Priority ordering
6. preflight: Sample size and seed
7. writeback: Skip-unchanged / pack / internal-name flags
8. health: Failure sampling
9. file_paths: Template, output and log locations (bottom - rarely changed)

Navigation Guide:
- Use VS Code outline (Ctrl+Shift+O) to jump between sections
"""

import os
from typing import Dict, Any, TypeVar, Callable, Optional

T = TypeVar("T")


def _env_or_default(
    key: str, default: T, type_fn: Optional[Callable[[str], T]] = None
) -> T:
    """
    Get value from environment variable or use default.

    Args:
        key: Environment variable name (e.g., "SPACE_MAPPER_MAX_THREADS")
        default: Default value if env var not set
        type_fn: Optional type conversion function (e.g., float, int)

    Returns:
        Value from environment (converted) or default

    Example:
        >>> _env_or_default("SPACE_MAPPER_BATCH_SIZE", 512, int)
        512  # If env var not set
    """
    val = os.getenv(key)
    if val is not None:
        if type_fn is not None:
            return type_fn(val)
        return val  # type: ignore
    return default


def _env_bool(key: str, default: bool) -> bool:
    """
    Get boolean value from environment variable.

    Treats "true", "1", "yes" as True (case-insensitive).
    Any other value or unset returns default.
    """
    val = os.getenv(key)
    if val is None:
        return default
    return val.lower() in ("true", "1", "yes")


# ═══════════════════════════════════════════════════════════════════════════
# 🔧 ENVIRONMENT VARIABLE OVERRIDES
# ═══════════════════════════════════════════════════════════════════════════
# These settings can be overridden via environment variables:
#
# SPACE_MAPPER_PRESET           - "fast" | "normal" | "accurate" | "auto" (default: "auto")
# SPACE_MAPPER_MAX_THREADS      - int, -1 = auto-detect (default: -1)
# SPACE_MAPPER_BATCH_SIZE       - int, targets per batch (default: 512)
# SPACE_MAPPER_STRICTNESS       - "centroid" | "bottom_center" | "full_volume"
# SPACE_MAPPER_CELL_SIZE        - float, explicit grid cell size (default: auto)
# SPACE_MAPPER_SAMPLE_FRACTION  - float 0-1, preflight sample fraction (default: 0.05)
# SPACE_MAPPER_SEED             - int, preflight / failure sampling seed (default: 1234)
# SPACE_MAPPER_SKIP_UNCHANGED   - "true" or "false" (default: "true")
# SPACE_MAPPER_PACK             - "true" or "false" (default: "false")
#
# Example usage:
#   $env:SPACE_MAPPER_MAX_THREADS = "8"
#   $env:SPACE_MAPPER_STRICTNESS = "full_volume"
#   python -m space_mapper.main --zones zones.geojson --targets targets.geojson
# ═══════════════════════════════════════════════════════════════════════════


def _optional_float(value: str) -> Optional[float]:
    """Parse an optional float; empty string and 'auto' mean unset."""
    if value.strip().lower() in ("", "auto", "none"):
        return None
    return float(value)


# ═══════════════════════════════════════════════════════════════════════════
# ⚙️ MASTER CONFIGURATION
# ═══════════════════════════════════════════════════════════════════════════

CONFIG: Dict[str, Any] = {
    # ═══════════════════════════════════════════════════════════════════════
    # ⚡ PERFORMANCE (Batching and threads)
    # ═══════════════════════════════════════════════════════════════════════
    # preset options:
    #   - "fast": Coarse grid, bounding-box tests only
    #   - "normal": Balanced grid, footprint tests where available
    #   - "accurate": Fine grid, footprint tests where available
    #   - "auto": Resolved from the preflight estimate (falls back to normal)
    "performance": {
        "preset": _env_or_default("SPACE_MAPPER_PRESET", "auto"),
        # -1 = auto-detect (min(cpu_count, optimal_workers_default))
        "max_threads": _env_or_default("SPACE_MAPPER_MAX_THREADS", -1, int),
        "optimal_workers_default": 8,
        "batch_size": _env_or_default("SPACE_MAPPER_BATCH_SIZE", 512, int),
        # Cancellation is polled between batches and every N targets inside one
        "cancel_check_interval": 64,
        "verbose": 0,
    },
    # ═══════════════════════════════════════════════════════════════════════
    # 🎯 CONTAINMENT
    # ═══════════════════════════════════════════════════════════════════════
    # strictness options:
    #   - "centroid": Target centre must lie inside the zone (RECOMMENDED)
    #   - "bottom_center": Centre of the target's base must lie inside
    #   - "full_volume": Whole target bounding box must lie inside
    "containment": {
        "strictness": _env_or_default("SPACE_MAPPER_STRICTNESS", "centroid"),
        # Use zone footprint polygons (when the source supplies them)
        # None = decided by the performance preset
        "use_hull": None,
        # Boundary tolerance in model units (boundaries are inclusive)
        "tolerance": 1e-6,
        # Zones the target overlaps without being contained in
        "treat_partial_as_contained": False,
        "tag_partial_separately": False,
    },
    # ═══════════════════════════════════════════════════════════════════════
    # 📏 ZONE OFFSETS (Run-level, zones may carry their own)
    # ═══════════════════════════════════════════════════════════════════════
    "offsets": {
        "top": None,
        "bottom": None,
        "sides": None,
        "uniform": 0.0,
        # "additive": zone offsets add to these / "override": zone offsets replace these
        "mode": "additive",
        # "face_over_uniform": a set top/bottom/sides value wins over uniform
        "precedence": "face_over_uniform",
        # Negative offsets shrink zones; off by default
        "allow_contraction": False,
    },
    # ═══════════════════════════════════════════════════════════════════════
    # 🔷 SPATIAL INDEX
    # ═══════════════════════════════════════════════════════════════════════
    # Cell size is either explicit or derived from the granularity slider
    # (0 = coarse, 1 = fine) and the median zone dimension.
    "index": {
        "cell_size": _env_or_default("SPACE_MAPPER_CELL_SIZE", None, _optional_float),
        "granularity": None,  # None = decided by the performance preset
        "min_cell_size": 1e-3,
        "max_cells_per_axis": 1024,
        # Zones covering more cells than this are inserted at a coarser level
        "max_cells_per_zone": 4096,
        "max_degrade_levels": 8,
    },
    # ═══════════════════════════════════════════════════════════════════════
    # 🧮 RULES
    # ═══════════════════════════════════════════════════════════════════════
    # "ascending": lower priority number wins (RECOMMENDED)
    # "descending": higher priority number wins
    "rules": {
        "priority_order": "ascending",
        # False = keep only the best zone per target
        "enable_multiple_zones": True,
        "resolution_strategy": "most_specific",
    },
    # ═══════════════════════════════════════════════════════════════════════
    # 🔍 PREFLIGHT
    # ═══════════════════════════════════════════════════════════════════════
    "preflight": {
        "sample_size": None,  # Explicit count wins over fraction
        "sample_fraction": _env_or_default(
            "SPACE_MAPPER_SAMPLE_FRACTION", 0.05, float
        ),
        "min_sample": 50,
        "seed": _env_or_default("SPACE_MAPPER_SEED", 1234, int),
        # z-score for the reported margin of error (95%)
        "confidence_z": 1.96,
    },
    # ═══════════════════════════════════════════════════════════════════════
    # ✍️ WRITEBACK
    # ═══════════════════════════════════════════════════════════════════════
    "writeback": {
        "enabled": True,
        "skip_unchanged": _env_bool("SPACE_MAPPER_SKIP_UNCHANGED", True),
        "pack": _env_bool("SPACE_MAPPER_PACK", False),
        "pack_separator": " | ",
        "show_internal_names": False,
        # Contained / Partial flag per target
        "write_zone_behavior": False,
        "zone_behavior_category": "ME_SpaceInfo",
        "zone_behavior_property": "Zone Behaviour",
        "zone_behavior_contained_value": "Contained",
        "zone_behavior_partial_value": "Partial",
    },
    # ═══════════════════════════════════════════════════════════════════════
    # 🩺 RUN HEALTH
    # ═══════════════════════════════════════════════════════════════════════
    "health": {
        "failure_sample_limit": 20,
        "seed": _env_or_default("SPACE_MAPPER_SEED", 1234, int),
    },
    # ═══════════════════════════════════════════════════════════════════════
    # 📁 FILE PATHS
    # ═══════════════════════════════════════════════════════════════════════
    "file_paths": {
        "template_dir": "templates",
        "output_dir": "Output",
        "log_dir": "logs",
    },
}
