"""
Grid cell sizing utilities.

Architectural Overview:
    Responsibility: Derive the spatial grid's cell size from settings and
        dataset statistics. Pure functions of (settings, zone volumes), so the
        same inputs always give the same cell size.
    Key Interactions:
        - Called by engine.prepare_run() before SpatialGridIndex.build()
        - Config from config_types.IndexConfig
        - Preset granularities from preflight.presets
    Navigation Guide:
        Small module, one section per concern.
    For Navigation: Use Ctrl+Shift+O → resolve_cell_size
"""

import logging
from typing import Optional, Sequence

import numpy as np

from space_mapper.config_types import IndexConfig
from space_mapper.models.geometry import BoundingVolume

logger = logging.getLogger("SpaceMapper.Spatial.CellSizing")

DEFAULT_GRANULARITY = 0.5


# ═══════════════════════════════════════════════════════════════════════════
# 📐 GRANULARITY → CELL SIZE
# ═══════════════════════════════════════════════════════════════════════════


def granularity_factor(granularity: float) -> float:
    """
    Divisor applied to the median zone dimension.

    0.0 → 0.5 (cells twice the median zone), 0.5 → 2.0, 1.0 → 8.0.
    """
    return 0.5 * 16.0 ** float(granularity)


def median_zone_dimension(volumes: Sequence[BoundingVolume]) -> float:
    """Median over zones of each zone's largest extent, 0.0 when empty."""
    if not volumes:
        return 0.0
    sizes = np.array([v.size for v in volumes], dtype=float)
    return float(np.median(sizes.max(axis=1)))


def preset_to_cell_size(
    granularity: float,
    volumes: Sequence[BoundingVolume],
    min_cell_size: float = 1e-3,
    max_cells_per_axis: int = 1024,
) -> float:
    """
    Derive a cell size from the granularity slider and zone statistics.

    cell ≈ median zone dimension / granularity_factor(granularity), bounded
    below by min_cell_size and by world extent / max_cells_per_axis.

    Args:
        granularity: Slider value in [0, 1] (0 = coarse, 1 = fine).
        volumes: Effective zone volumes.
        min_cell_size: Absolute floor.
        max_cells_per_axis: Grid resolution cap along the longest world axis.

    Returns:
        Cell size (> 0).
    """
    if not volumes:
        return max(min_cell_size, 1.0)

    world_extent = BoundingVolume.union(volumes).max_dimension
    median_dim = median_zone_dimension(volumes)
    if median_dim <= 0:
        median_dim = world_extent if world_extent > 0 else 1.0

    raw = median_dim / granularity_factor(granularity)
    axis_floor = world_extent / max_cells_per_axis if max_cells_per_axis > 0 else 0.0
    return float(max(raw, min_cell_size, axis_floor))


def resolve_cell_size(
    index_config: IndexConfig,
    volumes: Sequence[BoundingVolume],
    granularity: Optional[float] = None,
) -> float:
    """
    Explicit cell size when configured, otherwise derived from granularity.

    Args:
        index_config: Index settings.
        volumes: Effective zone volumes.
        granularity: Preset granularity used when the config sets none.
    """
    if index_config.cell_size is not None:
        logger.info(f"   📐 Cell size: {index_config.cell_size:g} (explicit)")
        return float(index_config.cell_size)

    if index_config.granularity is not None:
        g = index_config.granularity
    elif granularity is not None:
        g = granularity
    else:
        g = DEFAULT_GRANULARITY
    cell = preset_to_cell_size(
        g,
        volumes,
        min_cell_size=index_config.min_cell_size,
        max_cells_per_axis=index_config.max_cells_per_axis,
    )
    logger.info(
        f"   📐 Cell size: {cell:.4g} (granularity {g:.2f}, "
        f"median zone {median_zone_dimension(volumes):.4g})"
    )
    return cell


__all__ = [
    "DEFAULT_GRANULARITY",
    "granularity_factor",
    "median_zone_dimension",
    "preset_to_cell_size",
    "resolve_cell_size",
]
