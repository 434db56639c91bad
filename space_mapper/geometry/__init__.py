"""Geometry extraction and zone offset resolution."""

from .extractor import Extraction, ExtractionStats, GeometryExtractor
from .offsets import (
    apply_offset,
    combine_face_offsets,
    offset_footprint,
    resolve_face_offsets,
    resolve_zone_volume,
    validate_offset_spec,
)

__all__ = [
    "Extraction",
    "ExtractionStats",
    "GeometryExtractor",
    "apply_offset",
    "combine_face_offsets",
    "offset_footprint",
    "resolve_face_offsets",
    "resolve_zone_volume",
    "validate_offset_spec",
]
