"""
Axis-aligned bounding volumes.

Architectural Overview:
=======================
BoundingVolume is the only geometric primitive the containment engine needs:
zones and targets are reduced to their world-space axis-aligned boxes, and
every exact containment test is a componentwise min/max comparison.

NoGeometry is returned (never raised) by the extractor when an element has no
usable bounds, so callers branch on isinstance() instead of try/except.

Key Interactions:
-----------------
- geometry.extractor produces BoundingVolume | NoGeometry
- geometry.offsets grows/shrinks zone volumes
- spatial.grid_index and matching.containment consume them
"""

import math
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

import numpy as np
from shapely.geometry.base import BaseGeometry


# ═══════════════════════════════════════════════════════════════════════════
# 📦 BOUNDING VOLUME
# ═══════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class BoundingVolume:
    """Immutable axis-aligned box in world coordinates.

    Boundaries are inclusive: a point lying exactly on a face is inside.

    Usage Examples:
    ---------------
    ```python
    box = BoundingVolume(0, 0, 0, 10, 10, 10)
    box.center            # (5.0, 5.0, 5.0)
    box.contains_point(10, 10, 10)  # True
    ```
    """

    min_x: float
    min_y: float
    min_z: float
    max_x: float
    max_y: float
    max_z: float

    @classmethod
    def from_bounds(
        cls, mins: Tuple[float, float, float], maxs: Tuple[float, float, float]
    ) -> "BoundingVolume":
        """Create from (min_x, min_y, min_z) and (max_x, max_y, max_z) tuples."""
        return cls(
            float(mins[0]),
            float(mins[1]),
            float(mins[2]),
            float(maxs[0]),
            float(maxs[1]),
            float(maxs[2]),
        )

    @classmethod
    def from_points(cls, points: Iterable[Tuple[float, float, float]]) -> "BoundingVolume":
        """Smallest box enclosing a set of 3D points.

        Raises:
            ValueError: If no points are given
        """
        arr = np.asarray(list(points), dtype=float)
        if arr.size == 0:
            raise ValueError("Cannot build a bounding volume from zero points")
        arr = arr.reshape(-1, 3)
        return cls.from_bounds(tuple(arr.min(axis=0)), tuple(arr.max(axis=0)))

    @classmethod
    def union(cls, volumes: Iterable["BoundingVolume"]) -> "BoundingVolume":
        """Smallest box enclosing all given boxes.

        Raises:
            ValueError: If no volumes are given
        """
        arr = np.array([v.as_array() for v in volumes], dtype=float)
        if arr.size == 0:
            raise ValueError("Cannot union zero bounding volumes")
        return cls.from_bounds(tuple(arr[:, :3].min(axis=0)), tuple(arr[:, 3:].max(axis=0)))

    # ───────────────────────────────────────────────────────────────────────
    # Derived quantities
    # ───────────────────────────────────────────────────────────────────────

    @property
    def mins(self) -> Tuple[float, float, float]:
        return (self.min_x, self.min_y, self.min_z)

    @property
    def maxs(self) -> Tuple[float, float, float]:
        return (self.max_x, self.max_y, self.max_z)

    @property
    def size(self) -> Tuple[float, float, float]:
        """Extent along each axis (negative when inverted)."""
        return (
            self.max_x - self.min_x,
            self.max_y - self.min_y,
            self.max_z - self.min_z,
        )

    @property
    def center(self) -> Tuple[float, float, float]:
        return (
            (self.min_x + self.max_x) / 2.0,
            (self.min_y + self.max_y) / 2.0,
            (self.min_z + self.max_z) / 2.0,
        )

    @property
    def bottom_center(self) -> Tuple[float, float, float]:
        return ((self.min_x + self.max_x) / 2.0, (self.min_y + self.max_y) / 2.0, self.min_z)

    @property
    def volume(self) -> float:
        """Box volume, 0.0 when any extent is negative."""
        sx, sy, sz = self.size
        if sx < 0 or sy < 0 or sz < 0:
            return 0.0
        return sx * sy * sz

    @property
    def max_dimension(self) -> float:
        return max(self.size)

    @property
    def is_finite(self) -> bool:
        return all(math.isfinite(v) for v in self.as_tuple())

    @property
    def is_inverted(self) -> bool:
        """True when min > max on any axis."""
        return any(s < 0 for s in self.size)

    @property
    def is_degenerate(self) -> bool:
        """Inverted, zero-volume or non-finite."""
        if not self.is_finite:
            return True
        return any(s <= 0 for s in self.size)

    def as_tuple(self) -> Tuple[float, float, float, float, float, float]:
        return (self.min_x, self.min_y, self.min_z, self.max_x, self.max_y, self.max_z)

    def as_array(self) -> np.ndarray:
        return np.array(self.as_tuple(), dtype=float)

    def corners(self) -> List[Tuple[float, float, float]]:
        """The eight box corners, min corner first."""
        return [
            (x, y, z)
            for x in (self.min_x, self.max_x)
            for y in (self.min_y, self.max_y)
            for z in (self.min_z, self.max_z)
        ]

    # ───────────────────────────────────────────────────────────────────────
    # Exact tests
    # ───────────────────────────────────────────────────────────────────────

    def contains_point(self, x: float, y: float, z: float, tol: float = 0.0) -> bool:
        """Inclusive point-in-box test with a boundary tolerance."""
        return (
            self.min_x - tol <= x <= self.max_x + tol
            and self.min_y - tol <= y <= self.max_y + tol
            and self.min_z - tol <= z <= self.max_z + tol
        )

    def contains_volume(self, other: "BoundingVolume", tol: float = 0.0) -> bool:
        """True when ``other`` lies entirely inside this box."""
        return (
            other.min_x >= self.min_x - tol
            and other.min_y >= self.min_y - tol
            and other.min_z >= self.min_z - tol
            and other.max_x <= self.max_x + tol
            and other.max_y <= self.max_y + tol
            and other.max_z <= self.max_z + tol
        )

    def intersects(self, other: "BoundingVolume", tol: float = 0.0) -> bool:
        return (
            self.min_x - tol <= other.max_x
            and other.min_x <= self.max_x + tol
            and self.min_y - tol <= other.max_y
            and other.min_y <= self.max_y + tol
            and self.min_z - tol <= other.max_z
            and other.min_z <= self.max_z + tol
        )

    def overlap_volume(self, other: "BoundingVolume") -> float:
        """Volume of the box intersection, 0.0 when the boxes are disjoint."""
        dx = min(self.max_x, other.max_x) - max(self.min_x, other.min_x)
        dy = min(self.max_y, other.max_y) - max(self.min_y, other.min_y)
        dz = min(self.max_z, other.max_z) - max(self.min_z, other.min_z)
        if dx <= 0 or dy <= 0 or dz <= 0:
            return 0.0
        return dx * dy * dz

    def expanded(
        self, sides: float, bottom: float, top: float
    ) -> "BoundingVolume":
        """Move the side faces out by ``sides``, the floor down by ``bottom``
        and the ceiling up by ``top``. Negative values move faces inwards."""
        return BoundingVolume(
            self.min_x - sides,
            self.min_y - sides,
            self.min_z - bottom,
            self.max_x + sides,
            self.max_y + sides,
            self.max_z + top,
        )

    def as_dict(self) -> dict:
        return {
            "min_x": self.min_x,
            "min_y": self.min_y,
            "min_z": self.min_z,
            "max_x": self.max_x,
            "max_y": self.max_y,
            "max_z": self.max_z,
        }


# ═══════════════════════════════════════════════════════════════════════════
# 🚫 NO GEOMETRY
# ═══════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class NoGeometry:
    """Extraction outcome for an element without usable bounds."""

    element_key: str
    reason: str = "no bounding box"


# ═══════════════════════════════════════════════════════════════════════════
# 🧊 ZONE VOLUME
# ═══════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class ZoneVolume:
    """A zone ready for indexing: raw bounds plus offset-adjusted bounds.

    Attributes:
        zone_key: Key of the zone element.
        zone_index: Position of the zone in enumeration order (tie-break).
        raw: Extracted bounds.
        effective: Bounds after offsets, used by index and matcher.
        footprint: Optional plan-view polygon (offset by the side distance)
            for precise containment; None uses the box only.
    """

    zone_key: str
    zone_index: int
    raw: BoundingVolume
    effective: BoundingVolume
    footprint: Optional[BaseGeometry] = field(default=None, compare=False)


__all__ = ["BoundingVolume", "NoGeometry", "ZoneVolume"]
