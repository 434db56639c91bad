"""
Unit tests for writeback.

Tests:
1. Number formatting and multi-zone value combination
2. Write modes: OVERWRITE, ONLY_IF_BLANK, APPEND
3. skip_unchanged, pack and internal-name strategy flags
4. Failed writes are isolated per (target, property): a mapping that raises
   does not discard the target's other writes
5. Unmatched targets and targets without bounds are never written
6. A second writeback of the same results writes nothing
7. Zone behaviour (Contained / Partial) written per matched target

Run with: python -m pytest space_mapper/_tests/test_writeback.py -v
"""

import pytest

from space_mapper.config_types import WritebackConfig
from space_mapper.errors import ConfigurationError, FailureKind
from space_mapper.models.data_models import (
    CombineMode,
    Element,
    MappingDefinition,
    PropertyLabelMode,
    WriteMode,
)
from space_mapper.models.run_stats import RunResult, no_geometry_result
from space_mapper.sources.memory import InMemoryPropertyService
from space_mapper.writeback.writeback import (
    WritebackService,
    apply_write_mode,
    combine_values,
    format_number,
)


# ============================================================================
# FIXTURES
# ============================================================================


ZONE_KEY = MappingDefinition(name="Zone")
ROOM_NUMBER = MappingDefinition(
    name="Room number",
    target_property="RoomNumber",
    zone_category="Room",
    zone_property="Number",
    combine=CombineMode.MAX,
)


@pytest.fixture
def zones_by_key():
    return {key: Element(key=key, category="Room") for key in ("Z0", "Z1")}


@pytest.fixture
def targets_by_key():
    return {key: Element(key=key) for key in ("T1", "T2", "T3", "T4")}


@pytest.fixture
def results():
    """T1 in Z0, T2 in Z0 and Z1, T3 unmatched, T4 without geometry."""
    return [
        RunResult("T1", ("Z0",), match_count=1),
        RunResult("T2", ("Z0", "Z1"), match_count=2),
        RunResult("T3", (), failure=FailureKind.NO_RULE_MATCH),
        no_geometry_result("T4"),
    ]


def zone_numbers(**kwargs):
    values = {("Z0", "Room", "Number"): "101", ("Z1", "Room", "Number"): "102.5"}
    return InMemoryPropertyService(values=values, **kwargs)


class ZoneReadFailure(InMemoryPropertyService):
    """Zone property reads raise; target reads and writes succeed."""

    def read(self, element, category, property_name):
        if element.key.startswith("Z"):
            raise RuntimeError(f"read failed for {element.key}")
        return super().read(element, category, property_name)


def write(properties, results, targets_by_key, zones_by_key, mappings=(ZONE_KEY,), **config):
    service = WritebackService(properties, WritebackConfig(**config))
    return service.writeback(results, targets_by_key, zones_by_key, mappings)


# ============================================================================
# VALUE COMBINATION
# ============================================================================


class TestFormatting:
    @pytest.mark.parametrize(
        "value,expected", [(12.5, "12.5"), (3.0, "3"), (1 / 3, "0.333"), (-0.0001, "0")]
    )
    def test_format_number(self, value, expected):
        assert format_number(value) == expected


class TestCombine:
    def test_first(self):
        assert combine_values(["a", "b"], CombineMode.FIRST) == "a"

    def test_concatenate_with_separator(self):
        assert combine_values(["a", "b"], CombineMode.CONCATENATE, " / ") == "a / b"

    def test_concatenate_blank_separator_uses_default(self):
        assert combine_values(["a", "b"], CombineMode.CONCATENATE, "") == "a, b"

    def test_numeric_modes(self):
        values = ["1", "2", "4"]
        assert combine_values(values, CombineMode.MIN) == "1"
        assert combine_values(values, CombineMode.MAX) == "4"
        assert combine_values(values, CombineMode.AVERAGE) == "2.333"

    def test_numeric_modes_ignore_text(self):
        assert combine_values(["n/a", "3", "7"], CombineMode.MIN) == "3"

    def test_no_numbers_falls_back_to_first(self):
        assert combine_values(["north", "south"], CombineMode.AVERAGE) == "north"

    def test_empty(self):
        assert combine_values([], CombineMode.FIRST) == ""


class TestWriteMode:
    def test_overwrite(self):
        assert apply_write_mode("old", "new", WriteMode.OVERWRITE, ",") == "new"

    def test_only_if_blank(self):
        assert apply_write_mode("old", "new", WriteMode.ONLY_IF_BLANK, ",") is None
        assert apply_write_mode("  ", "new", WriteMode.ONLY_IF_BLANK, ",") == "new"
        assert apply_write_mode(None, "new", WriteMode.ONLY_IF_BLANK, ",") == "new"

    def test_append(self):
        assert apply_write_mode("a", "b", WriteMode.APPEND, "; ") == "a; b"
        assert apply_write_mode("a", "b", WriteMode.APPEND, "") == "a,b"
        assert apply_write_mode(None, "b", WriteMode.APPEND, "; ") == "b"


# ============================================================================
# WRITEBACK SERVICE
# ============================================================================


class TestWriteback:
    def test_zone_key_written_for_matched_targets(
        self, results, targets_by_key, zones_by_key, property_service
    ):
        summary = write(property_service, results, targets_by_key, zones_by_key)

        assert summary.written_keys == ("T1", "T2")
        assert summary.properties_written == 2
        assert summary.skipped_unmatched == 2
        assert summary.categories_written == ("SpaceMapper",)
        assert summary.failures == ()
        assert property_service.values[("T1", "SpaceMapper", "Zone")] == "Z0"
        assert property_service.values[("T2", "SpaceMapper", "Zone")] == "Z0"

    def test_unmatched_and_missing_bounds_never_written(
        self, results, targets_by_key, zones_by_key, property_service
    ):
        write(property_service, results, targets_by_key, zones_by_key)
        assert property_service.written_keys() == {"T1", "T2"}

    def test_zone_property_combined(self, results, targets_by_key, zones_by_key):
        properties = zone_numbers()
        write(properties, results, targets_by_key, zones_by_key, mappings=(ROOM_NUMBER,))
        assert properties.values[("T1", "SpaceMapper", "RoomNumber")] == "101"
        assert properties.values[("T2", "SpaceMapper", "RoomNumber")] == "102.5"

    def test_pack_joins_all_zone_values(self, results, targets_by_key, zones_by_key, property_service):
        write(property_service, results, targets_by_key, zones_by_key, pack=True, pack_separator=" | ")
        assert property_service.values[("T2", "SpaceMapper", "Zone")] == "Z0 | Z1"
        assert property_service.values[("T1", "SpaceMapper", "Zone")] == "Z0"

    def test_internal_names(self, results, targets_by_key, zones_by_key, property_service):
        mapping = MappingDefinition(
            name="Zone", target_category_internal="sm_internal", target_property_internal="zone_id"
        )
        summary = write(
            property_service, results, targets_by_key, zones_by_key,
            mappings=(mapping,), show_internal_names=True,
        )
        assert summary.label_mode is PropertyLabelMode.INTERNAL
        assert property_service.values[("T1", "sm_internal", "zone_id")] == "Z0"
        assert ("T1", "SpaceMapper", "Zone") not in property_service.values

    def test_skip_unchanged(self, results, targets_by_key, zones_by_key):
        properties = InMemoryPropertyService(values={("T1", "SpaceMapper", "Zone"): "Z0"})
        summary = write(properties, results, targets_by_key, zones_by_key)
        assert summary.written_keys == ("T2",)
        assert summary.skipped_unchanged_keys == ("T1",)
        assert properties.written_keys() == {"T2"}

    def test_skip_unchanged_disabled_rewrites(self, results, targets_by_key, zones_by_key):
        properties = InMemoryPropertyService(values={("T1", "SpaceMapper", "Zone"): "Z0"})
        summary = write(properties, results, targets_by_key, zones_by_key, skip_unchanged=False)
        assert summary.written_keys == ("T1", "T2")

    def test_only_if_blank_keeps_existing(self, results, targets_by_key, zones_by_key):
        properties = InMemoryPropertyService(values={("T1", "SpaceMapper", "Zone"): "manual"})
        mapping = MappingDefinition(name="Zone", write_mode=WriteMode.ONLY_IF_BLANK)
        summary = write(properties, results, targets_by_key, zones_by_key, mappings=(mapping,))
        assert properties.values[("T1", "SpaceMapper", "Zone")] == "manual"
        assert summary.skipped_unchanged_keys == ("T1",)

    def test_append_to_existing(self, results, targets_by_key, zones_by_key):
        properties = InMemoryPropertyService(values={("T1", "SpaceMapper", "Zone"): "A"})
        mapping = MappingDefinition(name="Zone", write_mode=WriteMode.APPEND)
        write(properties, results, targets_by_key, zones_by_key, mappings=(mapping,))
        assert properties.values[("T1", "SpaceMapper", "Zone")] == "A, Z0"

    def test_disabled(self, results, targets_by_key, zones_by_key, property_service):
        summary = write(property_service, results, targets_by_key, zones_by_key, enabled=False)
        assert summary.written_keys == ()
        assert property_service.writes == []

    def test_second_writeback_writes_nothing(
        self, results, targets_by_key, zones_by_key, property_service
    ):
        write(property_service, results, targets_by_key, zones_by_key)
        before = dict(property_service.values)
        n_writes = len(property_service.writes)

        summary = write(property_service, results, targets_by_key, zones_by_key)
        assert summary.written_keys == ()
        assert summary.skipped_unchanged_keys == ("T1", "T2")
        assert len(property_service.writes) == n_writes
        assert property_service.values == before


class TestWriteFailures:
    def test_rejected_write_recorded(self, results, targets_by_key, zones_by_key):
        properties = InMemoryPropertyService(rejected_keys={"T1"})
        summary = write(properties, results, targets_by_key, zones_by_key)

        assert summary.written_keys == ("T2",)
        assert summary.failure_count == 1
        failure = summary.failures[0]
        assert failure.target_key == "T1"
        assert failure.kind is FailureKind.WRITE_FAILURE
        assert failure.reason == "property service rejected the write"

    def test_raising_target_does_not_stop_others(self, results, targets_by_key, zones_by_key):
        properties = InMemoryPropertyService(raising_keys={"T1"})
        summary = write(properties, results, targets_by_key, zones_by_key)

        assert summary.written_keys == ("T2",)
        assert summary.failures[0].target_key == "T1"
        assert "RuntimeError" in summary.failures[0].reason
        assert summary.failures[0].category == "SpaceMapper"
        assert summary.failures[0].property_name == "Zone"

    def test_raising_mapping_keeps_other_writes(self, results, targets_by_key, zones_by_key):
        properties = ZoneReadFailure()
        summary = write(
            properties, results, targets_by_key, zones_by_key, mappings=(ZONE_KEY, ROOM_NUMBER)
        )

        assert summary.written_keys == ("T1", "T2")
        assert summary.properties_written == 2
        assert properties.values[("T1", "SpaceMapper", "Zone")] == "Z0"
        assert [(f.target_key, f.category, f.property_name) for f in summary.failures] == [
            ("T1", "SpaceMapper", "RoomNumber"),
            ("T2", "SpaceMapper", "RoomNumber"),
        ]
        assert all("RuntimeError" in f.reason for f in summary.failures)

    def test_unknown_target_key(self, zones_by_key, property_service):
        summary = write(
            property_service, [RunResult("GONE", ("Z0",), match_count=1)], {}, zones_by_key
        )
        assert summary.failures[0].reason == "target not found"


# ============================================================================
# ZONE BEHAVIOUR
# ============================================================================


BEHAVIOUR = ("ME_SpaceInfo", "Zone Behaviour")


class TestZoneBehaviour:
    @pytest.fixture
    def partial_results(self):
        """T1 contained in Z0; T2 contained in Z0 and partially in Z1."""
        return [
            RunResult("T1", ("Z0",), match_count=1),
            RunResult("T2", ("Z0", "Z1"), match_count=2, partial_zone_keys=("Z1",)),
            RunResult("T3", (), failure=FailureKind.NO_RULE_MATCH),
        ]

    def test_off_by_default(self, partial_results, targets_by_key, zones_by_key, property_service):
        write(property_service, partial_results, targets_by_key, zones_by_key)
        assert ("T1",) + BEHAVIOUR not in property_service.values

    def test_contained_and_partial_values(
        self, partial_results, targets_by_key, zones_by_key, property_service
    ):
        summary = write(
            property_service, partial_results, targets_by_key, zones_by_key,
            write_zone_behavior=True,
        )
        assert property_service.values[("T1",) + BEHAVIOUR] == "Contained"
        assert property_service.values[("T2",) + BEHAVIOUR] == "Partial"
        assert ("T3",) + BEHAVIOUR not in property_service.values
        assert summary.properties_written == 4
        assert summary.categories_written == ("SpaceMapper", "ME_SpaceInfo")

    def test_custom_labels(self, partial_results, targets_by_key, zones_by_key, property_service):
        write(
            property_service, partial_results, targets_by_key, zones_by_key,
            mappings=(),
            write_zone_behavior=True,
            zone_behavior_category="Info",
            zone_behavior_property="Fit",
            zone_behavior_contained_value="IN",
            zone_behavior_partial_value="EDGE",
        )
        assert property_service.values[("T1", "Info", "Fit")] == "IN"
        assert property_service.values[("T2", "Info", "Fit")] == "EDGE"
        assert ("T1", "SpaceMapper", "Zone") not in property_service.values

    def test_behaviour_overwrites_stale_value(self, partial_results, targets_by_key, zones_by_key):
        properties = InMemoryPropertyService(values={("T2",) + BEHAVIOUR: "Contained"})
        write(properties, partial_results, targets_by_key, zones_by_key, write_zone_behavior=True)
        assert properties.values[("T2",) + BEHAVIOUR] == "Partial"

    def test_second_writeback_unchanged(
        self, partial_results, targets_by_key, zones_by_key, property_service
    ):
        write(property_service, partial_results, targets_by_key, zones_by_key, write_zone_behavior=True)
        summary = write(
            property_service, partial_results, targets_by_key, zones_by_key, write_zone_behavior=True
        )
        assert summary.properties_written == 0
        assert summary.skipped_unchanged_keys == ("T1", "T2")

    def test_missing_location_rejected(self):
        with pytest.raises(ConfigurationError):
            WritebackConfig(write_zone_behavior=True, zone_behavior_property="")
