"""
Zone offset resolution.

ARCHITECTURAL OVERVIEW:
=======================
Responsibility: Turn a zone's extracted bounds into the effective volume used
for containment by moving its faces by the configured offsets.

Offsets are resolved in two steps:
1. Each OffsetSpec is reduced to a (top, bottom, sides) triple. With
   FACE_OVER_UNIFORM a set face value wins over the uniform value; with
   UNIFORM_OVER_FACE the uniform value wins where set.
2. The zone's own spec is combined with the run-level spec: ADDITIVE sums the
   two triples, OVERRIDE uses the zone's triple alone.

Results are never clamped. A zone whose effective volume is inverted or has
zero volume is reported as DEGENERATE_VOLUME and excluded from the index.

Key Functions:
- validate_offset_spec(): Reject non-finite / disallowed negative offsets
- resolve_face_offsets(): OffsetSpec → (top, bottom, sides)
- apply_offset(): BoundingVolume + OffsetSpec → BoundingVolume
- resolve_zone_volume(): Zone → ZoneVolume | ZoneDiagnostic

For Navigation: Use VS Code outline (Ctrl+Shift+O)
"""

import logging
import math
from typing import Optional, Tuple, Union

from shapely.geometry.base import BaseGeometry

from space_mapper.errors import ConfigurationError, FailureKind
from space_mapper.models.data_models import (
    Element,
    OffsetMode,
    OffsetPrecedence,
    OffsetSpec,
)
from space_mapper.models.geometry import BoundingVolume, ZoneVolume
from space_mapper.models.run_stats import ZoneDiagnostic

logger = logging.getLogger("SpaceMapper.Geometry.Offsets")

FaceOffsets = Tuple[float, float, float]


# ═══════════════════════════════════════════════════════════════════════════
# ✅ VALIDATION
# ═══════════════════════════════════════════════════════════════════════════


def validate_offset_spec(
    spec: OffsetSpec, allow_contraction: bool, label: str = "offset"
) -> None:
    """
    Validate an offset spec before any run starts.

    Args:
        spec: Offsets to check.
        allow_contraction: Whether negative (shrinking) values are permitted.
        label: Prefix for error messages (e.g. "offsets" or a zone key).

    Raises:
        ConfigurationError: On non-finite values, or negative values when
            contraction is not allowed.
    """
    names = ("top", "bottom", "sides", "uniform")
    for name, value in zip(names, spec.values()):
        if value is None:
            continue
        if not math.isfinite(value):
            raise ConfigurationError(f"{label}.{name} must be finite, got {value}")
        if value < 0 and not allow_contraction:
            raise ConfigurationError(
                f"{label}.{name} is negative ({value}) but allow_contraction is off"
            )


# ═══════════════════════════════════════════════════════════════════════════
# 📐 FACE OFFSET RESOLUTION
# ═══════════════════════════════════════════════════════════════════════════


def _pick(face: Optional[float], uniform: Optional[float], precedence: OffsetPrecedence) -> float:
    if precedence is OffsetPrecedence.FACE_OVER_UNIFORM:
        chosen = face if face is not None else uniform
    elif precedence is OffsetPrecedence.UNIFORM_OVER_FACE:
        chosen = uniform if uniform is not None else face
    else:
        raise ValueError(f"Unhandled OffsetPrecedence: {precedence!r}")
    return float(chosen) if chosen is not None else 0.0


def resolve_face_offsets(
    spec: Optional[OffsetSpec],
    precedence: OffsetPrecedence = OffsetPrecedence.FACE_OVER_UNIFORM,
) -> FaceOffsets:
    """
    Reduce an OffsetSpec to the distance each face moves.

    Returns:
        (top, bottom, sides); positive grows the zone.
    """
    if spec is None:
        return (0.0, 0.0, 0.0)
    return (
        _pick(spec.top, spec.uniform, precedence),
        _pick(spec.bottom, spec.uniform, precedence),
        _pick(spec.sides, spec.uniform, precedence),
    )


def combine_face_offsets(
    base: Optional[OffsetSpec],
    zone_spec: Optional[OffsetSpec],
    precedence: OffsetPrecedence = OffsetPrecedence.FACE_OVER_UNIFORM,
) -> FaceOffsets:
    """
    Combine run-level and zone-level offsets into one face triple.

    The zone spec's mode decides: ADDITIVE adds it to the run-level triple,
    OVERRIDE replaces the run-level triple.
    """
    base_faces = resolve_face_offsets(base, precedence)
    if zone_spec is None or zone_spec.is_empty:
        return base_faces
    zone_faces = resolve_face_offsets(zone_spec, precedence)
    if zone_spec.mode is OffsetMode.OVERRIDE:
        return zone_faces
    if zone_spec.mode is OffsetMode.ADDITIVE:
        return (
            base_faces[0] + zone_faces[0],
            base_faces[1] + zone_faces[1],
            base_faces[2] + zone_faces[2],
        )
    raise ValueError(f"Unhandled OffsetMode: {zone_spec.mode!r}")


def apply_offset(
    volume: BoundingVolume,
    spec: Optional[OffsetSpec],
    precedence: OffsetPrecedence = OffsetPrecedence.FACE_OVER_UNIFORM,
) -> BoundingVolume:
    """
    Move the faces of ``volume`` by ``spec``. Never clamps.

    Example:
        >>> box = BoundingVolume(0, 0, 0, 10, 10, 10)
        >>> apply_offset(box, OffsetSpec(top=1, bottom=1, sides=1)).size
        (12.0, 12.0, 12.0)
    """
    top, bottom, sides = resolve_face_offsets(spec, precedence)
    return volume.expanded(sides=sides, bottom=bottom, top=top)


def offset_footprint(footprint: Optional[BaseGeometry], sides: float) -> Optional[BaseGeometry]:
    """Grow (or shrink) a plan footprint by the side offset with mitred corners."""
    if footprint is None or footprint.is_empty:
        return None
    if sides == 0:
        return footprint
    grown = footprint.buffer(sides, join_style="mitre")
    if grown.is_empty:
        return None
    return grown


# ═══════════════════════════════════════════════════════════════════════════
# 🧊 ZONE VOLUME RESOLUTION
# ═══════════════════════════════════════════════════════════════════════════


def resolve_zone_volume(
    zone: Element,
    zone_index: int,
    raw: BoundingVolume,
    base: Optional[OffsetSpec],
    precedence: OffsetPrecedence = OffsetPrecedence.FACE_OVER_UNIFORM,
    footprint: Optional[BaseGeometry] = None,
) -> Union[ZoneVolume, ZoneDiagnostic]:
    """
    Build the effective ZoneVolume for one zone.

    Args:
        zone: Zone element (its ``offset`` is the zone-level spec).
        zone_index: Enumeration position of the zone.
        raw: Extracted bounds.
        base: Run-level offsets.
        precedence: Face/uniform precedence.
        footprint: Optional plan polygon from the model source.

    Returns:
        ZoneVolume, or a DEGENERATE_VOLUME ZoneDiagnostic when the offset
        bounds are inverted or have zero volume.
    """
    top, bottom, sides = combine_face_offsets(base, zone.offset, precedence)
    effective = raw.expanded(sides=sides, bottom=bottom, top=top)

    if effective.is_degenerate:
        sx, sy, sz = effective.size
        reason = (
            f"offset bounds degenerate (size {sx:.6g} x {sy:.6g} x {sz:.6g}; "
            f"top={top:g}, bottom={bottom:g}, sides={sides:g})"
        )
        logger.debug(f"   Zone {zone.key}: {reason}")
        return ZoneDiagnostic(zone.key, FailureKind.DEGENERATE_VOLUME, reason)

    return ZoneVolume(
        zone_key=zone.key,
        zone_index=zone_index,
        raw=raw,
        effective=effective,
        footprint=offset_footprint(footprint, sides),
    )


__all__ = [
    "validate_offset_spec",
    "resolve_face_offsets",
    "combine_face_offsets",
    "apply_offset",
    "offset_footprint",
    "resolve_zone_volume",
]
