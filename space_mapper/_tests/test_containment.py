"""
Unit tests for the containment matcher.

Tests:
1. Representative points per strictness
2. Centroid, bottom-centre and full-volume containment
3. Footprint (hull) tests reject targets in the bounding-box corner of an
   L-shaped zone
4. Every reported zone independently contains the target (seeded random check)
5. NoGeometry short-circuits
6. Footprints are prepared once at construction, threads share them without
   locking
7. Partial overlap detection (box and footprint) when enabled

Run with: python -m pytest space_mapper/_tests/test_containment.py -v
"""

from concurrent.futures import ThreadPoolExecutor

import numpy as np
import pytest
import shapely
from shapely.geometry import Polygon

from space_mapper.geometry.offsets import apply_offset
from space_mapper.matching.containment import ContainmentMatcher, representative_points
from space_mapper.models.data_models import OffsetSpec, Strictness
from space_mapper.models.geometry import BoundingVolume, NoGeometry, ZoneVolume
from space_mapper.spatial.grid_index import SpatialGridIndex


# ============================================================================
# FIXTURES
# ============================================================================


def zone(key, index, volume, footprint=None):
    return ZoneVolume(zone_key=key, zone_index=index, raw=volume, effective=volume, footprint=footprint)


@pytest.fixture
def room():
    """One 10 x 10 x 3 room."""
    return [zone("ROOM", 0, BoundingVolume(0, 0, 0, 10, 10, 3))]


def matcher_for(
    zones, strictness=Strictness.CENTROID, use_hull=False, cell_size=2.0, detect_partial=False
):
    index = SpatialGridIndex.build(zones, cell_size=cell_size)
    return ContainmentMatcher(
        index, strictness=strictness, use_hull=use_hull, detect_partial=detect_partial
    )


# ============================================================================
# REPRESENTATIVE POINTS
# ============================================================================


class TestRepresentativePoints:
    def test_centroid(self):
        vol = BoundingVolume(0, 0, 0, 2, 4, 6)
        assert representative_points(vol, Strictness.CENTROID) == [(1.0, 2.0, 3.0)]

    def test_bottom_center(self):
        vol = BoundingVolume(0, 0, 0, 2, 4, 6)
        assert representative_points(vol, Strictness.BOTTOM_CENTER) == [(1.0, 2.0, 0)]

    def test_full_volume_uses_corners(self):
        vol = BoundingVolume(0, 0, 0, 1, 1, 1)
        assert len(representative_points(vol, Strictness.FULL_VOLUME)) == 8


# ============================================================================
# STRICTNESS
# ============================================================================


class TestStrictness:
    """Targets straddling a zone boundary."""

    def test_centroid_inside(self, room):
        outcome = matcher_for(room).match(BoundingVolume(4, 4, 1, 5, 5, 2))
        assert outcome.contained == (0,)
        assert outcome.candidate_count >= 1

    def test_straddling_target_centroid_vs_full_volume(self, room):
        # Centre (9.95, 5, 1.5) is inside, the right part sticks out
        target = BoundingVolume(9, 4, 1, 10.9, 6, 2)
        assert matcher_for(room, Strictness.CENTROID).match(target).contained == (0,)
        assert matcher_for(room, Strictness.FULL_VOLUME).match(target).contained == ()

    def test_bottom_center_uses_base(self, room):
        # Tall column: base inside the room, centroid above the ceiling
        column = BoundingVolume(4, 4, 2, 5, 5, 10)
        assert matcher_for(room, Strictness.CENTROID).match(column).contained == ()
        assert matcher_for(room, Strictness.BOTTOM_CENTER).match(column).contained == (0,)

    def test_boundary_is_inclusive(self, room):
        # Centroid lies exactly on the wall x = 10
        target = BoundingVolume(9, 4, 1, 11, 6, 2)
        assert matcher_for(room).match(target).contained == (0,)

    def test_offset_zone_captures_nearby_target(self, room):
        target = BoundingVolume(10.2, 4, 1, 10.6, 5, 2)
        assert matcher_for(room).match(target).contained == ()
        grown = apply_offset(room[0].raw, OffsetSpec(sides=1.0))
        grown_zone = [ZoneVolume("ROOM", 0, room[0].raw, grown)]
        assert matcher_for(grown_zone).match(target).contained == (0,)

    def test_no_geometry_short_circuits(self, room):
        outcome = matcher_for(room).match(NoGeometry("T"))
        assert outcome.candidates == ()
        assert outcome.contained == ()


# ============================================================================
# FOOTPRINTS
# ============================================================================


class TestFootprint:
    """L-shaped zone: the box covers a corner the footprint does not."""

    @pytest.fixture
    def l_zone(self):
        footprint = Polygon([(0, 0), (10, 0), (10, 4), (4, 4), (4, 10), (0, 10)])
        return [zone("L", 0, BoundingVolume(0, 0, 0, 10, 10, 3), footprint=footprint)]

    def test_box_only_accepts_corner_target(self, l_zone):
        target = BoundingVolume(7, 7, 1, 8, 8, 2)
        assert matcher_for(l_zone, use_hull=False).match(target).contained == (0,)

    def test_hull_rejects_corner_target(self, l_zone):
        target = BoundingVolume(7, 7, 1, 8, 8, 2)
        matcher = matcher_for(l_zone, use_hull=True)
        assert matcher.use_hull
        assert matcher.match(target).contained == ()

    def test_hull_accepts_target_in_leg(self, l_zone):
        target = BoundingVolume(1, 7, 1, 2, 8, 2)
        assert matcher_for(l_zone, use_hull=True).match(target).contained == (0,)

    def test_hull_full_volume(self, l_zone):
        inside = BoundingVolume(1, 1, 1, 3, 3, 2)
        crossing = BoundingVolume(3, 3, 1, 5, 5, 2)
        matcher = matcher_for(l_zone, Strictness.FULL_VOLUME, use_hull=True)
        assert matcher.match(inside).contained == (0,)
        assert matcher.match(crossing).contained == ()

    def test_zones_without_footprint_disable_hull(self, room):
        assert not matcher_for(room, use_hull=True).use_hull

    def test_hulls_prepared_at_construction(self, l_zone):
        matcher = matcher_for(l_zone, use_hull=True)
        assert matcher._hulls
        assert all(shapely.is_prepared(hull) for hull in matcher._hulls.values())

    def test_threads_agree_with_serial_run(self, l_zone):
        rng = np.random.default_rng(7)
        targets = []
        for x, y in rng.uniform(-1, 11, size=(200, 2)):
            targets.append(BoundingVolume(x, y, 1, x + 0.2, y + 0.2, 1.2))
        matcher = matcher_for(l_zone, use_hull=True)
        serial = [matcher.match(t).contained for t in targets]
        with ThreadPoolExecutor(max_workers=4) as pool:
            threaded = list(pool.map(lambda t: matcher.match(t).contained, targets))
        assert threaded == serial


# ============================================================================
# PARTIAL OVERLAP
# ============================================================================


class TestPartialOverlap:
    def test_disabled_by_default(self, room):
        straddling = BoundingVolume(9, 4, 1, 12, 5, 2)
        outcome = matcher_for(room, Strictness.FULL_VOLUME).match(straddling)
        assert outcome.contained == ()
        assert outcome.partial == ()

    def test_straddling_target_is_partial(self, room):
        straddling = BoundingVolume(9, 4, 1, 12, 5, 2)
        matcher = matcher_for(room, Strictness.FULL_VOLUME, detect_partial=True)
        outcome = matcher.match(straddling)
        assert outcome.contained == ()
        assert outcome.partial == (0,)

    def test_centroid_outside_still_partial(self, room):
        # Centroid at x=10.5 lies outside, the box still reaches into the room
        target = BoundingVolume(9.5, 4, 1, 11.5, 5, 2)
        outcome = matcher_for(room, detect_partial=True).match(target)
        assert outcome.partial == (0,)

    def test_contained_is_never_partial(self, room):
        inside = BoundingVolume(1, 1, 1, 2, 2, 2)
        outcome = matcher_for(room, detect_partial=True).match(inside)
        assert outcome.contained == (0,)
        assert outcome.partial == ()

    def test_disjoint_target_is_neither(self, room):
        outside = BoundingVolume(20, 20, 1, 21, 21, 2)
        outcome = matcher_for(room, detect_partial=True).match(outside)
        assert outcome.contained == () and outcome.partial == ()

    def test_footprint_gap_is_not_partial(self):
        footprint = Polygon([(0, 0), (10, 0), (10, 4), (4, 4), (4, 10), (0, 10)])
        l_zone = [zone("L", 0, BoundingVolume(0, 0, 0, 10, 10, 3), footprint=footprint)]
        matcher = matcher_for(l_zone, Strictness.FULL_VOLUME, use_hull=True, detect_partial=True)
        in_notch = BoundingVolume(7, 7, 1, 8, 8, 2)
        across_leg_edge = BoundingVolume(3, 7, 1, 5, 8, 2)
        assert matcher.match(in_notch).partial == ()
        assert matcher.match(across_leg_edge).partial == (0,)


# ============================================================================
# INDEPENDENT CHECK
# ============================================================================


class TestIndependentCheck:
    """Every reported zone must pass a brute-force containment check."""

    @pytest.mark.parametrize(
        "strictness", [Strictness.CENTROID, Strictness.BOTTOM_CENTER, Strictness.FULL_VOLUME]
    )
    def test_random_targets(self, strictness):
        rng = np.random.default_rng(7)
        zones = []
        for i in range(40):
            lo = rng.uniform(0, 50, size=3)
            zones.append(zone(f"Z{i}", i, BoundingVolume(*lo, *(lo + rng.uniform(2, 15, size=3)))))
        matcher = matcher_for(zones, strictness, cell_size=3.0)

        for _ in range(400):
            lo = rng.uniform(-5, 60, size=3)
            target = BoundingVolume(*lo, *(lo + rng.uniform(0.1, 3, size=3)))
            points = representative_points(target, strictness)
            expected = tuple(
                pos
                for pos, z in enumerate(zones)
                if all(z.effective.contains_point(*p, tol=1e-6) for p in points)
            )
            assert matcher.match(target).contained == expected
