"""
Containment matching.

ARCHITECTURAL OVERVIEW:
=======================
Responsibility: For one target, find the zones whose effective volume
contains the target's representative point(s).

Pipeline per target:
1. NoGeometry → empty outcome, the index is never consulted
2. Representative points from the configured Strictness
3. Broad phase: spatial index lookup around the query point
4. Exact phase: inclusive min/max test against each candidate (and the zone
   footprint polygon when hull tests are enabled)

A zone that contains the whole target box also contains the box centre, so a
single point lookup serves every strictness level.

Partial detection (optional):
- Broad phase switches to a box query over the whole target
- A candidate that fails containment but still overlaps the target box (and
  the footprint, when hull tests are on) is reported as partial

The matcher only answers "which zones contain or touch this target". Choosing
among several zones is the rule resolver's job.

For Navigation: Use VS Code outline (Ctrl+Shift+O)
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import shapely
from shapely.geometry import box
from shapely.geometry.base import BaseGeometry

from space_mapper.geometry.extractor import Extraction
from space_mapper.models.data_models import Strictness
from space_mapper.models.geometry import BoundingVolume, NoGeometry, ZoneVolume
from space_mapper.spatial.grid_index import SpatialGridIndex

logger = logging.getLogger("SpaceMapper.Matching.Containment")

Point3 = Tuple[float, float, float]


def representative_points(volume: BoundingVolume, strictness: Strictness) -> List[Point3]:
    """
    Points of the target that must lie inside a zone.

    CENTROID → box centre; BOTTOM_CENTER → centre of the base;
    FULL_VOLUME → all eight corners.
    """
    if strictness is Strictness.CENTROID:
        return [volume.center]
    if strictness is Strictness.BOTTOM_CENTER:
        return [volume.bottom_center]
    if strictness is Strictness.FULL_VOLUME:
        return volume.corners()
    raise ValueError(f"Unhandled Strictness: {strictness!r}")


@dataclass(frozen=True)
class MatchOutcome:
    """Broad-phase candidates and exact-phase survivors (zone positions).

    ``partial`` never shares a position with ``contained``.
    """

    candidates: Tuple[int, ...] = ()
    contained: Tuple[int, ...] = ()
    partial: Tuple[int, ...] = ()

    @property
    def candidate_count(self) -> int:
        return len(self.candidates)


EMPTY_OUTCOME = MatchOutcome()


class ContainmentMatcher:
    """
    Exact containment tests over a built SpatialGridIndex.

    Args:
        index: Read-only grid index (its zones define result positions).
        strictness: Representative point mode.
        use_hull: Also require containment in zone footprint polygons.
        tolerance: Inclusive boundary tolerance.
        detect_partial: Also report zones that overlap without containing.
    """

    def __init__(
        self,
        index: SpatialGridIndex,
        strictness: Strictness = Strictness.CENTROID,
        use_hull: bool = False,
        tolerance: float = 1e-6,
        detect_partial: bool = False,
    ) -> None:
        self.index = index
        self.zones: Tuple[ZoneVolume, ...] = index.zones
        self.strictness = strictness
        self.tolerance = tolerance
        self.detect_partial = detect_partial
        self._hulls: Dict[int, BaseGeometry] = {}
        if use_hull:
            for pos, zone in enumerate(self.zones):
                if zone.footprint is not None:
                    hull = zone.footprint
                    if tolerance > 0:
                        hull = hull.buffer(tolerance, join_style="mitre")
                    # Prepared up front, read-only afterwards
                    shapely.prepare(hull)
                    self._hulls[pos] = hull
        self.use_hull = bool(self._hulls)

    # ═══════════════════════════════════════════════════════════════════════
    # 🔍 BROAD PHASE
    # ═══════════════════════════════════════════════════════════════════════

    def _query_point(self, volume: BoundingVolume) -> Point3:
        if self.strictness is Strictness.BOTTOM_CENTER:
            return volume.bottom_center
        return volume.center

    def candidates_for(self, volume: BoundingVolume) -> List[int]:
        """Zone positions the index returns for this target."""
        t = self.tolerance
        if self.detect_partial:
            return self.index.query_volume(
                BoundingVolume(
                    volume.min_x - t, volume.min_y - t, volume.min_z - t,
                    volume.max_x + t, volume.max_y + t, volume.max_z + t,
                )
            )
        x, y, z = self._query_point(volume)
        if t > 0:
            return self.index.query_volume(BoundingVolume(x - t, y - t, z - t, x + t, y + t, z + t))
        return self.index.query_point(x, y, z)

    # ═══════════════════════════════════════════════════════════════════════
    # 🎯 EXACT PHASE
    # ═══════════════════════════════════════════════════════════════════════

    def _in_hull(self, pos: int, volume: BoundingVolume, points: List[Point3]) -> bool:
        hull: Optional[BaseGeometry] = self._hulls.get(pos)
        if hull is None:
            return True
        if self.strictness is Strictness.FULL_VOLUME:
            return bool(hull.covers(box(volume.min_x, volume.min_y, volume.max_x, volume.max_y)))
        return all(bool(shapely.intersects_xy(hull, p[0], p[1])) for p in points)

    def zone_contains(self, pos: int, volume: BoundingVolume) -> bool:
        """Exact test of one zone position against a target box."""
        zone = self.zones[pos]
        points = representative_points(volume, self.strictness)
        if self.strictness is Strictness.FULL_VOLUME:
            inside = zone.effective.contains_volume(volume, self.tolerance)
        else:
            inside = all(zone.effective.contains_point(*p, tol=self.tolerance) for p in points)
        return inside and self._in_hull(pos, volume, points)

    def zone_overlaps(self, pos: int, volume: BoundingVolume) -> bool:
        """True when the target box touches the zone (and its footprint)."""
        if not self.zones[pos].effective.intersects(volume, self.tolerance):
            return False
        hull: Optional[BaseGeometry] = self._hulls.get(pos)
        if hull is None:
            return True
        return bool(hull.intersects(box(volume.min_x, volume.min_y, volume.max_x, volume.max_y)))

    def match(self, extraction: Extraction) -> MatchOutcome:
        """
        Zones containing a target.

        Args:
            extraction: Target bounding box or NoGeometry.

        Returns:
            MatchOutcome with candidate, containing and (when enabled)
            partially overlapping zone positions, all in ascending zone
            order. Empty for NoGeometry.
        """
        if isinstance(extraction, NoGeometry):
            return EMPTY_OUTCOME
        candidates = self.candidates_for(extraction)
        contained: List[int] = []
        partial: List[int] = []
        for pos in candidates:
            if self.zone_contains(pos, extraction):
                contained.append(pos)
            elif self.detect_partial and self.zone_overlaps(pos, extraction):
                partial.append(pos)
        return MatchOutcome(
            candidates=tuple(candidates), contained=tuple(contained), partial=tuple(partial)
        )


__all__ = [
    "representative_points",
    "MatchOutcome",
    "EMPTY_OUTCOME",
    "ContainmentMatcher",
]
