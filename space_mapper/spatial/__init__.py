"""Spatial grid index and cell sizing."""

from .cell_sizing import (
    DEFAULT_GRANULARITY,
    granularity_factor,
    median_zone_dimension,
    preset_to_cell_size,
    resolve_cell_size,
)
from .grid_index import SpatialGridIndex

__all__ = [
    "DEFAULT_GRANULARITY",
    "granularity_factor",
    "median_zone_dimension",
    "preset_to_cell_size",
    "resolve_cell_size",
    "SpatialGridIndex",
]
