"""
GeoDataFrame-backed collaborators.

ARCHITECTURAL OVERVIEW:
=======================
Responsibility: Run the mapping engine over zones and targets held as
geopandas layers (GeoJSON, GeoPackage, shapefile), where each row's geometry
is its plan footprint and two columns give its vertical extent.

Expected columns (names configurable):
- key: Element identity (falls back to "zone:<index>" / "target:<index>"
  so the two layers never share a key; an explicit target key that repeats
  a zone key becomes "target:<key>")
- name, category, level: Optional descriptive columns
- definitions: Target set names, ";"-separated string or list
- z_min, z_max: Vertical extent
- offset_top / offset_bottom / offset_sides / offset_uniform / offset_mode:
  Optional per-zone offsets

Property values are stored in the layer itself, one column per
"<category>.<property>" pair, so writeback results can be exported directly.

For Navigation: Use VS Code outline (Ctrl+Shift+O)
"""

import logging
import math
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import geopandas as gpd
import pandas as pd
from shapely.geometry import MultiPolygon, Polygon
from shapely.geometry.base import BaseGeometry

from space_mapper.models.data_models import Element, OffsetSpec
from space_mapper.models.geometry import BoundingVolume
from space_mapper.sources.base import ModelSource, PropertyService

logger = logging.getLogger("SpaceMapper.Sources.GeoData")

_OFFSET_COLUMNS = ("offset_top", "offset_bottom", "offset_sides", "offset_uniform")


# ═══════════════════════════════════════════════════════════════════════════
# 📂 LOADING
# ═══════════════════════════════════════════════════════════════════════════


def load_model_layers(
    zones_path: Union[str, Path],
    targets_path: Union[str, Path],
) -> Tuple[gpd.GeoDataFrame, gpd.GeoDataFrame]:
    """
    Read zone and target layers from any file format geopandas supports.

    Returns:
        (zones_gdf, targets_gdf)
    """
    zones_gdf = gpd.read_file(zones_path)
    targets_gdf = gpd.read_file(targets_path)
    logger.info(f"📂 Loaded {len(zones_gdf)} zones from {zones_path}")
    logger.info(f"📂 Loaded {len(targets_gdf)} targets from {targets_path}")
    return zones_gdf, targets_gdf


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def _parse_definitions(value: Any) -> Tuple[str, ...]:
    if isinstance(value, (list, tuple)):
        return tuple(str(v).strip() for v in value if str(v).strip())
    if _is_missing(value):
        return ()
    return tuple(part.strip() for part in str(value).split(";") if part.strip())


def _row_offset(row: pd.Series) -> Optional[OffsetSpec]:
    present = {c: row[c] for c in _OFFSET_COLUMNS if c in row.index and not _is_missing(row[c])}
    if not present:
        return None
    mode = row.get("offset_mode")
    return OffsetSpec.from_dict(
        {
            "top": present.get("offset_top"),
            "bottom": present.get("offset_bottom"),
            "sides": present.get("offset_sides"),
            "uniform": present.get("offset_uniform"),
            "mode": "additive" if _is_missing(mode) else mode,
        }
    )


# ═══════════════════════════════════════════════════════════════════════════
# 🗺️ MODEL SOURCE
# ═══════════════════════════════════════════════════════════════════════════


class GeoDataFrameModelSource(ModelSource):
    """
    ModelSource over a zones layer and a targets layer.

    Args:
        zones_gdf: Zone footprints with z columns.
        targets_gdf: Target footprints with z columns.
        key_column / name_column / category_column / level_column /
        definitions_column / z_min_column / z_max_column: Column names.
    """

    def __init__(
        self,
        zones_gdf: gpd.GeoDataFrame,
        targets_gdf: gpd.GeoDataFrame,
        key_column: str = "key",
        name_column: str = "name",
        category_column: str = "category",
        level_column: str = "level",
        definitions_column: str = "definitions",
        z_min_column: str = "z_min",
        z_max_column: str = "z_max",
    ) -> None:
        self.zones_gdf = zones_gdf
        self.targets_gdf = targets_gdf
        self.key_column = key_column
        self.name_column = name_column
        self.category_column = category_column
        self.level_column = level_column
        self.definitions_column = definitions_column
        self.z_min_column = z_min_column
        self.z_max_column = z_max_column

        # element key -> (layer, index label); keys are unique across both layers
        self._rows: Dict[str, Tuple[gpd.GeoDataFrame, Any]] = {}
        self._zones = self._build_elements(zones_gdf, is_zone=True)
        self._targets = self._build_elements(targets_gdf, is_zone=False)

    def _element_key(self, idx: Any, row: pd.Series, role: str) -> str:
        if self.key_column in row.index and not _is_missing(row[self.key_column]):
            return str(row[self.key_column])
        return f"{role}:{idx}"

    def _build_elements(self, gdf: gpd.GeoDataFrame, is_zone: bool) -> List[Element]:
        role = "zone" if is_zone else "target"
        layer_keys = set()
        elements = []
        for idx, row in gdf.iterrows():
            key = self._element_key(idx, row, role)
            if key in layer_keys:
                logger.warning(f"⚠️ Duplicate {role} key {key!r}; keeping the first row")
                continue
            layer_keys.add(key)
            if key in self._rows:
                renamed = f"{role}:{key}"
                logger.warning(f"⚠️ Target key {key!r} already used by a zone; using {renamed!r}")
                key = renamed
            if key in self._rows:
                logger.warning(f"⚠️ Duplicate element key {key!r}; keeping the first row")
                continue
            self._rows[key] = (gdf, idx)

            level = row.get(self.level_column)
            category = row.get(self.category_column)
            name = row.get(self.name_column)
            elements.append(
                Element(
                    key=key,
                    display_name="" if _is_missing(name) else str(name),
                    category="" if _is_missing(category) else str(category),
                    level=None if _is_missing(level) else int(level),
                    definitions=_parse_definitions(row.get(self.definitions_column)),
                    offset=_row_offset(row) if is_zone else None,
                )
            )
        return elements

    def zones(self) -> List[Element]:
        return list(self._zones)

    def targets(self) -> List[Element]:
        return list(self._targets)

    def row_for(self, element: Element) -> Tuple[gpd.GeoDataFrame, Any]:
        """(layer, index label) holding ``element``."""
        return self._rows[element.key]

    def bounding_volume(self, element: Element) -> Optional[BoundingVolume]:
        gdf, idx = self._rows[element.key]
        geom = gdf.geometry.loc[idx]
        if geom is None or geom.is_empty:
            return None
        z_min = gdf.at[idx, self.z_min_column] if self.z_min_column in gdf.columns else None
        z_max = gdf.at[idx, self.z_max_column] if self.z_max_column in gdf.columns else None
        if _is_missing(z_min) or _is_missing(z_max):
            return None
        minx, miny, maxx, maxy = geom.bounds
        values = (minx, miny, float(z_min), maxx, maxy, float(z_max))
        if not all(math.isfinite(v) for v in values):
            return None
        return BoundingVolume(*values)

    def footprint(self, element: Element) -> Optional[BaseGeometry]:
        gdf, idx = self._rows[element.key]
        geom = gdf.geometry.loc[idx]
        if isinstance(geom, (Polygon, MultiPolygon)) and not geom.is_empty:
            return geom
        return None


# ═══════════════════════════════════════════════════════════════════════════
# 🏷️ PROPERTY SERVICE
# ═══════════════════════════════════════════════════════════════════════════


def property_column(category: str, property_name: str) -> str:
    """Column name used for a (category, property) pair."""
    return f"{category}.{property_name}"


class DataFramePropertyService(PropertyService):
    """Reads and writes "<category>.<property>" columns of the source layers."""

    def __init__(self, source: GeoDataFrameModelSource) -> None:
        self.source = source

    def read(self, element: Element, category: str, property_name: str) -> Optional[str]:
        gdf, idx = self.source.row_for(element)
        for column in (property_column(category, property_name), property_name):
            if column in gdf.columns:
                value = gdf.at[idx, column]
                return None if _is_missing(value) else str(value)
        return None

    def write(self, element: Element, category: str, property_name: str, value: str) -> bool:
        gdf, idx = self.source.row_for(element)
        column = property_column(category, property_name)
        if column not in gdf.columns:
            gdf[column] = pd.Series([None] * len(gdf), index=gdf.index, dtype=object)
        gdf.at[idx, column] = value
        return True


__all__ = [
    "load_model_layers",
    "property_column",
    "GeoDataFrameModelSource",
    "DataFramePropertyService",
]
