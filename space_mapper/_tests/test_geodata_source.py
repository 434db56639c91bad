"""
Tests for the GeoDataFrame-backed collaborators and the command line.

Tests:
1. Layer rows become Elements (category, level, definitions, zone offsets)
2. Bounding volumes from plan bounds and z columns; missing z is NoGeometry
3. Property columns are read and written in place
4. Footprint containment depends on the preset (NORMAL uses hulls, FAST not)
5. Command line run and preflight-only run over GeoJSON files
6. Layers without a key column get per-layer fallback keys, so no target is
   lost to a zone with the same row index
7. Command-line performance flags win over template performance settings

Run with: python -m pytest space_mapper/_tests/test_geodata_source.py -v
"""

import json

import geopandas as gpd
import numpy as np
import pytest
from shapely.geometry import Polygon, box

import space_mapper.main as main_module
from space_mapper.engine import run_space_mapping
from space_mapper.config import CONFIG
from space_mapper.config_types import AppConfig
from space_mapper.models.data_models import (
    MappingTemplate,
    OffsetMode,
    PerformancePreset,
    PerformanceSettings,
)
from space_mapper.sources.geodata import (
    DataFramePropertyService,
    GeoDataFrameModelSource,
    property_column,
)

from conftest import single_thread_config


# ============================================================================
# FIXTURES
# ============================================================================


L_SHAPE = Polygon([(0, 0), (10, 0), (10, 4), (4, 4), (4, 10), (0, 10)])


@pytest.fixture
def zones_gdf():
    return gpd.GeoDataFrame(
        {
            "key": ["L", "R2"],
            "name": ["L-shaped hall", "Room 2"],
            "category": ["Room", "Room"],
            "z_min": [0.0, 0.0],
            "z_max": [3.0, 3.0],
            "offset_top": [np.nan, 0.5],
            "offset_mode": [None, "override"],
            "Room.Number": ["100", "200"],
        },
        geometry=[L_SHAPE, box(20, 0, 30, 10)],
    )


@pytest.fixture
def targets_gdf():
    return gpd.GeoDataFrame(
        {
            "key": ["LEG", "NOTCH", "IN_R2", "NO_Z"],
            "category": ["Equipment"] * 4,
            "level": [1, 1, 2, 2],
            "definitions": ["HVAC;Level 1", "HVAC", "", None],
            "z_min": [1.0, 1.0, 1.0, np.nan],
            "z_max": [2.0, 2.0, 2.0, np.nan],
        },
        geometry=[box(1, 7, 2, 8), box(7, 7, 8, 8), box(24, 4, 25, 5), box(40, 40, 41, 41)],
    )


@pytest.fixture
def source(zones_gdf, targets_gdf):
    return GeoDataFrameModelSource(zones_gdf, targets_gdf)


def matched(run):
    return {r.target_key: r.matched_zone_keys for r in run.results}


# ============================================================================
# MODEL SOURCE
# ============================================================================


class TestModelSource:
    def test_elements(self, source):
        zones = source.zones()
        targets = source.targets()
        assert [z.key for z in zones] == ["L", "R2"]
        assert zones[0].label == "L-shaped hall"
        assert targets[0].definitions == ("HVAC", "Level 1")
        assert targets[3].definitions == ()
        assert targets[2].level == 2

    def test_zone_offsets_from_columns(self, source):
        first, second = source.zones()
        assert first.offset is None
        assert second.offset.top == 0.5
        assert second.offset.mode is OffsetMode.OVERRIDE

    def test_bounding_volume(self, source):
        target = source.targets()[0]
        volume = source.bounding_volume(target)
        assert volume.mins == (1.0, 7.0, 1.0)
        assert volume.maxs == (2.0, 8.0, 2.0)

    def test_missing_z_is_no_geometry(self, source):
        assert source.bounding_volume(source.targets()[3]) is None

    def test_footprint(self, source):
        assert source.footprint(source.zones()[0]).equals(L_SHAPE)


class TestFallbackKeys:
    """Layers without a key column share row index labels 0, 1, ..."""

    @pytest.fixture
    def keyless_source(self, zones_gdf, targets_gdf):
        zones = zones_gdf.drop(columns=["key"])
        targets = targets_gdf.drop(columns=["key"]).iloc[:3]
        return GeoDataFrameModelSource(zones, targets)

    def test_keys_are_namespaced_per_layer(self, keyless_source):
        assert [z.key for z in keyless_source.zones()] == ["zone:0", "zone:1"]
        assert [t.key for t in keyless_source.targets()] == ["target:0", "target:1", "target:2"]

    def test_targets_sharing_row_index_with_zones_are_mapped(
        self, keyless_source, zone_key_template
    ):
        run = run_space_mapping(
            keyless_source, None, zone_key_template, single_thread_config(), write=False
        )
        assert run.health.targets_total == 3
        assert matched(run) == {
            "target:0": ("zone:0",),
            "target:1": (),
            "target:2": ("zone:1",),
        }

    def test_target_key_repeating_zone_key_is_renamed(self, zones_gdf, targets_gdf):
        targets = targets_gdf.copy()
        targets.loc[0, "key"] = "L"
        source = GeoDataFrameModelSource(zones_gdf, targets)
        renamed = source.targets()[0]
        assert renamed.key == "target:L"
        assert source.bounding_volume(renamed).mins == (1.0, 7.0, 1.0)
        assert source.bounding_volume(source.zones()[0]).mins == (0.0, 0.0, 0.0)

    def test_duplicate_key_within_layer_keeps_first_row(self, zones_gdf, targets_gdf):
        targets = targets_gdf.copy()
        targets.loc[1, "key"] = "LEG"
        source = GeoDataFrameModelSource(zones_gdf, targets)
        assert [t.key for t in source.targets()] == ["LEG", "IN_R2", "NO_Z"]


class TestPropertyService:
    def test_read_prefixed_column(self, source):
        properties = DataFramePropertyService(source)
        assert properties.read(source.zones()[1], "Room", "Number") == "200"
        assert properties.read(source.zones()[1], "Room", "Missing") is None

    def test_write_creates_column(self, source, targets_gdf):
        properties = DataFramePropertyService(source)
        target = source.targets()[0]
        assert properties.write(target, "SpaceMapper", "Zone", "L")
        assert targets_gdf.loc[0, property_column("SpaceMapper", "Zone")] == "L"
        assert properties.read(target, "SpaceMapper", "Zone") == "L"


# ============================================================================
# RUNS
# ============================================================================


class TestRuns:
    def test_normal_preset_uses_footprints(self, source, zone_key_template):
        run = run_space_mapping(
            source, None, zone_key_template, single_thread_config(), write=False
        )
        assert matched(run) == {"LEG": ("L",), "NOTCH": (), "IN_R2": ("R2",), "NO_Z": ()}
        assert run.health.targets_without_bounds == 1

    def test_fast_preset_uses_boxes(self, source, zone_key_template):
        config = single_thread_config(preset=PerformancePreset.FAST)
        run = run_space_mapping(source, None, zone_key_template, config, write=False)
        assert matched(run)["NOTCH"] == ("L",)

    def test_writeback_into_layer(self, source, targets_gdf, zone_key_template):
        properties = DataFramePropertyService(source)
        run_space_mapping(source, properties, zone_key_template, single_thread_config())
        column = targets_gdf[property_column("SpaceMapper", "Zone")]
        assert list(column) == ["L", None, "R2", None]


# ============================================================================
# COMMAND LINE
# ============================================================================


class TestCommandLine:
    @pytest.fixture
    def layer_files(self, tmp_path, zones_gdf, targets_gdf, monkeypatch):
        monkeypatch.setattr(main_module, "WORKSPACE_ROOT", tmp_path)
        zones_path = tmp_path / "zones.geojson"
        targets_path = tmp_path / "targets.geojson"
        zones_gdf.to_file(zones_path, driver="GeoJSON")
        targets_gdf.to_file(targets_path, driver="GeoJSON")
        return zones_path, targets_path

    def _args(self, tmp_path, layer_files, *extra):
        zones_path, targets_path = layer_files
        return [
            "--zones", str(zones_path),
            "--targets", str(targets_path),
            "--template-dir", str(tmp_path / "templates"),
            "--output-dir", str(tmp_path / "out"),
            "--preset", "normal",
            "--threads", "1",
            *extra,
        ]

    def test_full_run(self, tmp_path, layer_files):
        assert main_module.main(self._args(tmp_path, layer_files)) == 0
        out = tmp_path / "out"
        assert (out / "results.csv").exists()
        assert (out / "run_health.json").exists()

        mapped = gpd.read_file(out / "targets_mapped.geojson")
        zones = dict(zip(mapped["key"], mapped[property_column("SpaceMapper", "Zone")]))
        assert zones["LEG"] == "L"
        assert zones["IN_R2"] == "R2"

    def test_preflight_only_writes_nothing(self, tmp_path, layer_files):
        assert main_module.main(self._args(tmp_path, layer_files, "--preflight-only")) == 0
        out = tmp_path / "out"
        estimate = json.loads((out / "preflight_estimate.json").read_text(encoding="utf-8"))
        assert estimate["population_size"] == 4
        assert not (out / "targets_mapped.geojson").exists()

    def test_unknown_template(self, tmp_path, layer_files):
        args = self._args(tmp_path, layer_files, "--template", "Nope")
        assert main_module.main(args) == 2


class TestPerformancePrecedence:
    """--preset / --threads / --batch-size beat the template's settings."""

    @pytest.fixture
    def tuned_template(self):
        return MappingTemplate(
            name="Tuned",
            version=3,
            performance=PerformanceSettings(
                preset=PerformancePreset.ACCURATE, max_threads=6, batch_size=50
            ),
        )

    def _effective(self, template, argv):
        args = main_module.build_parser().parse_args(
            ["--zones", "z.geojson", "--targets", "t.geojson", *argv]
        )
        app_config = main_module._apply_overrides(AppConfig.from_dict(CONFIG), args)
        template = main_module._apply_template_overrides(template, args)
        return template, app_config.performance.with_template(template.performance)

    def test_command_line_wins(self, tuned_template):
        template, performance = self._effective(
            tuned_template, ["--preset", "fast", "--threads", "1", "--batch-size", "7"]
        )
        assert performance.preset is PerformancePreset.FAST
        assert performance.max_threads == 1
        assert performance.batch_size == 7
        assert template.version == 3

    def test_template_wins_without_flags(self, tuned_template):
        template, performance = self._effective(tuned_template, [])
        assert template is tuned_template
        assert performance.preset is PerformancePreset.ACCURATE
        assert performance.max_threads == 6
        assert performance.batch_size == 50

    def test_only_given_flags_override(self, tuned_template):
        _, performance = self._effective(tuned_template, ["--threads", "2"])
        assert performance.max_threads == 2
        assert performance.preset is PerformancePreset.ACCURATE
        assert performance.batch_size == 50
