"""
Unit tests for zone offset resolution.

Tests:
1. Face / uniform precedence (both directions)
2. Additive and override zone offsets
3. Uniform expansion of a 10-unit cube to 12 units
4. Contraction that inverts a zone yields a DEGENERATE_VOLUME diagnostic
5. Negative offsets without allow_contraction are configuration errors
6. Footprint offsets use mitred corners

Run with: python -m pytest space_mapper/_tests/test_offsets.py -v
"""

import pytest
from shapely.geometry import box

from space_mapper.config_types import OffsetConfig
from space_mapper.errors import ConfigurationError, FailureKind
from space_mapper.geometry.offsets import (
    apply_offset,
    combine_face_offsets,
    offset_footprint,
    resolve_face_offsets,
    resolve_zone_volume,
    validate_offset_spec,
)
from space_mapper.models.data_models import Element, OffsetMode, OffsetPrecedence, OffsetSpec
from space_mapper.models.geometry import BoundingVolume, ZoneVolume
from space_mapper.models.run_stats import ZoneDiagnostic


# ============================================================================
# FIXTURES
# ============================================================================


@pytest.fixture
def ten_cube():
    return BoundingVolume(0, 0, 0, 10, 10, 10)


# ============================================================================
# FACE RESOLUTION
# ============================================================================


class TestFaceResolution:
    """Reduce OffsetSpec to (top, bottom, sides)."""

    def test_none_spec_is_zero(self):
        assert resolve_face_offsets(None) == (0.0, 0.0, 0.0)

    def test_face_over_uniform(self):
        spec = OffsetSpec(top=3.0, uniform=1.0)
        assert resolve_face_offsets(spec, OffsetPrecedence.FACE_OVER_UNIFORM) == (3.0, 1.0, 1.0)

    def test_uniform_over_face(self):
        spec = OffsetSpec(top=3.0, uniform=1.0)
        assert resolve_face_offsets(spec, OffsetPrecedence.UNIFORM_OVER_FACE) == (1.0, 1.0, 1.0)

    def test_unset_uniform_leaves_other_faces_at_zero(self):
        assert resolve_face_offsets(OffsetSpec(sides=2.0)) == (0.0, 0.0, 2.0)


class TestCombine:
    """Run-level and zone-level offsets."""

    def test_additive_zone_offset_sums_faces(self):
        base = OffsetSpec(uniform=1.0)
        zone = OffsetSpec(top=2.0, mode=OffsetMode.ADDITIVE)
        assert combine_face_offsets(base, zone) == (3.0, 1.0, 1.0)

    def test_override_zone_offset_replaces_faces(self):
        base = OffsetSpec(uniform=1.0)
        zone = OffsetSpec(top=2.0, mode=OffsetMode.OVERRIDE)
        assert combine_face_offsets(base, zone) == (2.0, 0.0, 0.0)

    def test_empty_zone_offset_keeps_base(self):
        base = OffsetSpec(uniform=0.5)
        assert combine_face_offsets(base, OffsetSpec(mode=OffsetMode.OVERRIDE)) == (0.5, 0.5, 0.5)


# ============================================================================
# VOLUME OFFSETS
# ============================================================================


class TestApplyOffset:
    """Offsets applied to bounding volumes."""

    def test_uniform_one_grows_ten_cube_to_twelve(self, ten_cube):
        grown = apply_offset(ten_cube, OffsetSpec(uniform=1.0))
        assert grown.size == (12.0, 12.0, 12.0)
        assert grown.mins == (-1.0, -1.0, -1.0)
        assert grown.maxs == (11.0, 11.0, 11.0)

    def test_faces_move_independently(self, ten_cube):
        grown = apply_offset(ten_cube, OffsetSpec(top=2.0, bottom=0.5, sides=0.0))
        assert grown.min_z == -0.5
        assert grown.max_z == 12.0
        assert grown.min_x == 0.0

    def test_contraction_that_inverts_is_degenerate(self, ten_cube):
        zone = Element(key="Z")
        result = resolve_zone_volume(zone, 0, ten_cube, OffsetSpec(uniform=-6.0))
        assert isinstance(result, ZoneDiagnostic)
        assert result.kind is FailureKind.DEGENERATE_VOLUME
        assert result.zone_key == "Z"

    def test_contraction_to_zero_thickness_is_degenerate(self, ten_cube):
        result = resolve_zone_volume(Element(key="Z"), 0, ten_cube, OffsetSpec(uniform=-5.0))
        assert isinstance(result, ZoneDiagnostic)

    def test_small_contraction_is_kept(self, ten_cube):
        result = resolve_zone_volume(Element(key="Z"), 3, ten_cube, OffsetSpec(uniform=-1.0))
        assert isinstance(result, ZoneVolume)
        assert result.zone_index == 3
        assert result.effective.size == (8.0, 8.0, 8.0)
        assert result.raw == ten_cube

    def test_zone_offset_applied_on_top_of_base(self, ten_cube):
        zone = Element(key="Z", offset=OffsetSpec(top=4.0))
        result = resolve_zone_volume(zone, 0, ten_cube, OffsetSpec(uniform=1.0))
        assert isinstance(result, ZoneVolume)
        assert result.effective.max_z == 15.0
        assert result.effective.min_z == -1.0


# ============================================================================
# VALIDATION
# ============================================================================


class TestValidation:
    """Configuration-time offset checks."""

    def test_negative_without_contraction_raises(self):
        with pytest.raises(ConfigurationError):
            validate_offset_spec(OffsetSpec(uniform=-1.0), allow_contraction=False)

    def test_negative_with_contraction_is_allowed(self):
        validate_offset_spec(OffsetSpec(uniform=-1.0), allow_contraction=True)

    def test_non_finite_always_raises(self):
        with pytest.raises(ConfigurationError):
            validate_offset_spec(OffsetSpec(top=float("inf")), allow_contraction=True)

    def test_offset_config_validates_on_construction(self):
        with pytest.raises(ConfigurationError):
            OffsetConfig(spec=OffsetSpec(sides=-0.5))

    def test_offset_config_from_dict(self):
        config = OffsetConfig.from_dict(
            {"uniform": -0.5, "allow_contraction": True, "precedence": "uniform_over_face"}
        )
        assert config.spec.uniform == -0.5
        assert config.precedence is OffsetPrecedence.UNIFORM_OVER_FACE


# ============================================================================
# FOOTPRINTS
# ============================================================================


class TestFootprint:
    """Plan footprint offsets."""

    def test_mitred_buffer_keeps_square_corners(self):
        grown = offset_footprint(box(0, 0, 10, 10), 1.0)
        assert grown.bounds == pytest.approx((-1.0, -1.0, 11.0, 11.0))
        assert grown.area == pytest.approx(144.0)

    def test_zero_offset_returns_same_footprint(self):
        footprint = box(0, 0, 5, 5)
        assert offset_footprint(footprint, 0.0) is footprint

    def test_missing_footprint_stays_missing(self):
        assert offset_footprint(None, 2.0) is None
