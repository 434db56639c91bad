"""
Shared fixtures for space_mapper tests.

Builds small in-memory models: a row of zone boxes and targets placed inside,
between or outside them.
"""

from typing import Dict, List, Optional, Tuple

import pytest

from space_mapper.config_types import AppConfig, PerformanceConfig
from space_mapper.models.data_models import (
    Element,
    MappingDefinition,
    MappingRule,
    MappingTemplate,
    MembershipMode,
    PerformancePreset,
)
from space_mapper.models.geometry import BoundingVolume
from space_mapper.sources.memory import InMemoryModelSource, InMemoryPropertyService


# ═══════════════════════════════════════════════════════════════════════════
# HELPERS
# ═══════════════════════════════════════════════════════════════════════════


def cube(x: float, y: float, z: float, size: float = 1.0) -> BoundingVolume:
    """Axis-aligned cube with its minimum corner at (x, y, z)."""
    return BoundingVolume(x, y, z, x + size, y + size, z + size)


def build_row_model(
    n_zones: int = 3,
    zone_size: float = 10.0,
    targets_per_zone: int = 4,
    outside_targets: int = 2,
    missing_targets: int = 1,
) -> Tuple[List[Element], List[Element], Dict[str, Optional[BoundingVolume]]]:
    """
    Zones Z0..Zn-1 side by side along x; targets inside each zone, some far
    outside every zone and some without geometry.
    """
    zones: List[Element] = []
    targets: List[Element] = []
    volumes: Dict[str, Optional[BoundingVolume]] = {}

    for i in range(n_zones):
        key = f"Z{i}"
        zones.append(Element(key=key, display_name=f"Zone {i}", category="Room"))
        volumes[key] = BoundingVolume(i * zone_size, 0, 0, (i + 1) * zone_size, zone_size, zone_size)
        for j in range(targets_per_zone):
            t_key = f"T{i}_{j}"
            targets.append(Element(key=t_key, category="Equipment", level=1))
            volumes[t_key] = cube(i * zone_size + 1 + 2 * j, 2, 2)

    for k in range(outside_targets):
        t_key = f"OUT{k}"
        targets.append(Element(key=t_key, category="Equipment", level=1))
        volumes[t_key] = cube(1000 + 10 * k, 1000, 1000)

    for k in range(missing_targets):
        t_key = f"NOGEO{k}"
        targets.append(Element(key=t_key, category="Equipment", level=1))
        volumes[t_key] = None

    return zones, targets, volumes


def single_thread_config(**performance) -> AppConfig:
    """Deterministic config: one thread, NORMAL preset unless overridden."""
    settings = {"preset": PerformancePreset.NORMAL, "max_threads": 1, "batch_size": 4}
    settings.update(performance)
    return AppConfig(performance=PerformanceConfig(**settings))


# ═══════════════════════════════════════════════════════════════════════════
# FIXTURES
# ═══════════════════════════════════════════════════════════════════════════


@pytest.fixture
def row_model():
    """(zones, targets, volumes) for three side-by-side 10-unit zones."""
    return build_row_model()


@pytest.fixture
def row_source(row_model):
    zones, targets, volumes = row_model
    return InMemoryModelSource(zones, targets, volumes)


@pytest.fixture
def property_service():
    return InMemoryPropertyService()


@pytest.fixture
def zone_key_template():
    """Every zone accepted, zone key written to SpaceMapper.Zone."""
    return MappingTemplate(
        name="Test",
        rules=(MappingRule(name="All zones", membership=MembershipMode.FIRST_MATCH),),
        mappings=(MappingDefinition(name="Zone"),),
    )


@pytest.fixture
def app_config():
    return single_thread_config()
