"""
Uniform-grid spatial index over zone volumes.

ARCHITECTURAL OVERVIEW:
=======================
Responsibility: Broad-phase lookup from a point (or box) to the zones whose
effective volumes may contain it, so the matcher only runs exact tests on a
handful of candidates instead of every zone.

Structure:
- Level 0 is a uniform grid with the requested cell size, anchored at the
  minimum corner of all zone volumes.
- A zone is inserted into every cell its volume overlaps. When that exceeds
  max_cells_per_zone it is inserted at level k instead, whose cells are
  2^k times larger, for the smallest k that fits.
- Zones that fit no level up to max_degrade_levels go to an overflow list
  that every query returns. All degradation is recorded in IndexDiagnostics.

The index is built once per run and never mutated afterwards, so concurrent
queries from worker threads need no locking.

Key Functions:
- SpatialGridIndex.build(): Construct from ZoneVolume list
- query_point(): Candidate zone positions for a point
- query_volume(): Candidate zone positions for a box

For Navigation: Use VS Code outline (Ctrl+Shift+O)
"""

import itertools
import logging
import math
from typing import Dict, List, Sequence, Tuple

import numpy as np

from space_mapper.models.geometry import BoundingVolume, ZoneVolume
from space_mapper.models.run_stats import IndexDiagnostics

logger = logging.getLogger("SpaceMapper.Spatial.GridIndex")

CellKey = Tuple[int, int, int]


class SpatialGridIndex:
    """
    Read-only multi-level uniform grid.

    Query results are positions into the ``zones`` sequence the index was
    built from, sorted ascending.
    """

    def __init__(
        self,
        zones: Sequence[ZoneVolume],
        cell_size: float,
        origin: Tuple[float, float, float],
        levels: Dict[int, Dict[CellKey, Tuple[int, ...]]],
        overflow: Tuple[int, ...],
        diagnostics: IndexDiagnostics,
    ) -> None:
        self.zones = tuple(zones)
        self.cell_size = cell_size
        self.origin = np.asarray(origin, dtype=float)
        self._levels = levels
        self._overflow = overflow
        self.diagnostics = diagnostics

    # ═══════════════════════════════════════════════════════════════════════
    # 🏗️ BUILD
    # ═══════════════════════════════════════════════════════════════════════

    @classmethod
    def build(
        cls,
        zones: Sequence[ZoneVolume],
        cell_size: float,
        max_cells_per_zone: int = 4096,
        max_degrade_levels: int = 8,
    ) -> "SpatialGridIndex":
        """
        Insert every zone's effective volume into the grid.

        Args:
            zones: Zones to index (positions become query results).
            cell_size: Level-0 cell size (> 0).
            max_cells_per_zone: Cell budget per zone before degrading.
            max_degrade_levels: Coarser levels tried before overflow.

        Raises:
            ValueError: If cell_size is not positive and finite.
        """
        if not math.isfinite(cell_size) or cell_size <= 0:
            raise ValueError(f"cell_size must be positive and finite, got {cell_size}")

        if not zones:
            return cls(
                zones=(),
                cell_size=cell_size,
                origin=(0.0, 0.0, 0.0),
                levels={},
                overflow=(),
                diagnostics=IndexDiagnostics(requested_cell_size=cell_size),
            )

        bounds = np.array([z.effective.as_tuple() for z in zones], dtype=float)
        origin = bounds[:, :3].min(axis=0)

        # Pick the finest level whose cell count fits the per-zone budget
        zone_level = np.full(len(zones), -1, dtype=int)
        for level in range(max_degrade_levels + 1):
            pending = zone_level < 0
            if not pending.any():
                break
            size = cell_size * (2 ** level)
            lo = np.floor((bounds[pending, :3] - origin) / size)
            hi = np.floor((bounds[pending, 3:] - origin) / size)
            counts = np.prod(hi - lo + 1, axis=1)
            fits = counts <= max_cells_per_zone
            idx = np.flatnonzero(pending)[fits]
            zone_level[idx] = level

        levels: Dict[int, Dict[CellKey, List[int]]] = {}
        overflow: List[int] = []
        for pos, level in enumerate(zone_level):
            if level < 0:
                overflow.append(pos)
                continue
            size = cell_size * (2 ** int(level))
            lo = np.floor((bounds[pos, :3] - origin) / size).astype(np.int64)
            hi = np.floor((bounds[pos, 3:] - origin) / size).astype(np.int64)
            grid = levels.setdefault(int(level), {})
            for key in itertools.product(
                range(lo[0], hi[0] + 1), range(lo[1], hi[1] + 1), range(lo[2], hi[2] + 1)
            ):
                grid.setdefault(key, []).append(pos)

        frozen_levels = {
            level: {key: tuple(members) for key, members in grid.items()}
            for level, grid in levels.items()
        }
        level_counts = tuple(
            (int(level), int((zone_level == level).sum()))
            for level in sorted(set(int(v) for v in zone_level if v >= 0))
        )
        diagnostics = IndexDiagnostics(
            requested_cell_size=cell_size,
            zone_count=len(zones),
            occupied_cells=sum(len(grid) for grid in frozen_levels.values()),
            level_counts=level_counts,
            degraded_zone_keys=tuple(
                zones[pos].zone_key for pos, level in enumerate(zone_level) if level > 0
            ),
            overflow_zone_keys=tuple(zones[pos].zone_key for pos in overflow),
        )

        logger.info(
            f"   🔷 Grid index: {len(zones)} zones in {diagnostics.occupied_cells} cells "
            f"(cell size {cell_size:.4g})"
        )
        if diagnostics.degraded:
            logger.warning(
                f"⚠️ Grid index degraded: {len(diagnostics.degraded_zone_keys)} zones at "
                f"coarser levels (up to cell size {diagnostics.coarsest_cell_size:.4g}), "
                f"{len(diagnostics.overflow_zone_keys)} in overflow"
            )

        return cls(
            zones=zones,
            cell_size=cell_size,
            origin=tuple(origin),
            levels=frozen_levels,
            overflow=tuple(overflow),
            diagnostics=diagnostics,
        )

    # ═══════════════════════════════════════════════════════════════════════
    # 🔍 QUERIES
    # ═══════════════════════════════════════════════════════════════════════

    def _cell_of(self, point: np.ndarray, level: int) -> CellKey:
        size = self.cell_size * (2 ** level)
        cell = np.floor((point - self.origin) / size).astype(np.int64)
        return (int(cell[0]), int(cell[1]), int(cell[2]))

    def query_point(self, x: float, y: float, z: float) -> List[int]:
        """Zone positions whose cells contain the point (sorted, unique)."""
        if not self.zones:
            return []
        point = np.array([x, y, z], dtype=float)
        found = set(self._overflow)
        for level, grid in self._levels.items():
            members = grid.get(self._cell_of(point, level))
            if members:
                found.update(members)
        return sorted(found)

    def query_volume(self, volume: BoundingVolume) -> List[int]:
        """Zone positions whose cells overlap the box (sorted, unique)."""
        if not self.zones:
            return []
        lo_pt = np.array(volume.mins, dtype=float)
        hi_pt = np.array(volume.maxs, dtype=float)
        found = set(self._overflow)
        for level, grid in self._levels.items():
            lo = self._cell_of(lo_pt, level)
            hi = self._cell_of(hi_pt, level)
            n_cells = (hi[0] - lo[0] + 1) * (hi[1] - lo[1] + 1) * (hi[2] - lo[2] + 1)
            if n_cells <= len(grid):
                for key in itertools.product(
                    range(lo[0], hi[0] + 1), range(lo[1], hi[1] + 1), range(lo[2], hi[2] + 1)
                ):
                    members = grid.get(key)
                    if members:
                        found.update(members)
            else:
                # Query box spans more cells than are occupied: scan occupied cells
                for key, members in grid.items():
                    if all(lo[i] <= key[i] <= hi[i] for i in range(3)):
                        found.update(members)
        return sorted(found)

    def __len__(self) -> int:
        return len(self.zones)


__all__ = ["SpatialGridIndex"]
