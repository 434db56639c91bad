"""
Unit tests for preflight estimation, presets and runtime calibration.

Tests:
1. Sample sizing (count, fraction, config defaults, clamping)
2. Seeded sampling is reproducible
3. Margin of error shrinks to 0 for a full sample; confidence never reaches 1
4. A full-population estimate reproduces the real run's candidate-pair count
5. Preflight never writes
6. AUTO preset thresholds
7. Calibration EMA and JSON persistence

Run with: python -m pytest space_mapper/_tests/test_preflight.py -v
"""

import json

import numpy as np
import pytest

from space_mapper.config_types import PreflightConfig
from space_mapper.engine import run_preflight, run_space_mapping
from space_mapper.models.data_models import PerformancePreset
from space_mapper.preflight.calibration import (
    CALIBRATION_FILENAME,
    RuntimeCalibration,
    confidence_label,
    load_calibration,
    save_calibration,
    update_calibration,
)
from space_mapper.preflight.estimator import (
    MAX_CONFIDENCE,
    draw_sample,
    estimate_confidence,
    margin_of_error,
    resolve_sample_size,
)
from space_mapper.preflight.presets import preset_settings, resolve_preset
from space_mapper.sources.memory import InMemoryModelSource

from conftest import build_row_model, single_thread_config


# ============================================================================
# FIXTURES
# ============================================================================


@pytest.fixture
def large_source():
    """5 zones x 40 targets, plus targets outside and without geometry."""
    zones, targets, volumes = build_row_model(
        n_zones=5, zone_size=100.0, targets_per_zone=40, outside_targets=20, missing_targets=5
    )
    return InMemoryModelSource(zones, targets, volumes)


# ============================================================================
# SAMPLE SIZING
# ============================================================================


class TestSampleSize:
    def test_explicit_count(self):
        assert resolve_sample_size(100, sample=10) == 10

    def test_fraction_rounds_up(self):
        assert resolve_sample_size(100, sample=0.25) == 25
        assert resolve_sample_size(10, sample=0.01) == 1

    def test_clamped_to_population(self):
        assert resolve_sample_size(100, sample=500) == 100

    def test_empty_population(self):
        assert resolve_sample_size(0, sample=10) == 0

    def test_config_defaults(self):
        config = PreflightConfig(sample_fraction=0.05, min_sample=50)
        assert resolve_sample_size(2000, config) == 100
        assert resolve_sample_size(200, config) == 50
        assert resolve_sample_size(10, config) == 10

    def test_config_sample_size_wins_over_fraction(self):
        assert resolve_sample_size(2000, PreflightConfig(sample_size=7)) == 7

    @pytest.mark.parametrize("bad", [True, 0.0, 1.5, -0.2])
    def test_invalid_requests(self, bad):
        with pytest.raises(ValueError):
            resolve_sample_size(100, sample=bad)


class TestSampling:
    def test_same_seed_same_positions(self):
        first = draw_sample(1000, 100, seed=99)
        second = draw_sample(1000, 100, seed=99)
        np.testing.assert_array_equal(first, second)

    def test_positions_sorted_and_unique(self):
        positions = draw_sample(1000, 100, seed=3)
        assert len(set(positions.tolist())) == 100
        assert list(positions) == sorted(positions)

    def test_different_seed_differs(self):
        assert not np.array_equal(draw_sample(1000, 100, 1), draw_sample(1000, 100, 2))

    def test_full_sample_is_everything(self):
        np.testing.assert_array_equal(draw_sample(5, 5, seed=1), np.arange(5))


# ============================================================================
# CONFIDENCE
# ============================================================================


class TestConfidence:
    def test_full_sample_has_zero_margin(self):
        assert margin_of_error(40, 100, 100) == 0.0

    def test_margin_shrinks_with_sample_size(self):
        small = margin_of_error(5, 10, 1000)
        large = margin_of_error(50, 100, 1000)
        assert 0 < large < small

    def test_all_match_sample_still_uncertain(self):
        assert margin_of_error(50, 50, 1000) > 0

    def test_confidence_capped_below_one(self):
        assert estimate_confidence(0.0) == pytest.approx(MAX_CONFIDENCE)
        assert estimate_confidence(0.0) < 1.0
        assert estimate_confidence(0.5) == 0.0

    def test_confidence_labels(self):
        assert confidence_label(0.2) == "Low"
        assert confidence_label(0.6) == "Medium"
        assert confidence_label(0.9) == "High"


# ============================================================================
# ESTIMATES
# ============================================================================


class TestEstimate:
    def test_full_sample_matches_real_run(self, row_source, zone_key_template, app_config):
        estimate = run_preflight(row_source, zone_key_template, app_config, sample=1.0)
        run = run_space_mapping(row_source, None, zone_key_template, app_config, write=False)

        assert estimate.sample_size == estimate.population_size == 15
        assert estimate.projected_pair_count == pytest.approx(run.health.candidate_pairs)
        assert estimate.margin_of_error == 0.0
        assert estimate.confidence == pytest.approx(MAX_CONFIDENCE)
        assert estimate.projected_without_bounds == pytest.approx(1.0)

    def test_seeded_estimate_is_reproducible(self, large_source, zone_key_template, app_config):
        first = run_preflight(large_source, zone_key_template, app_config, sample=30)
        second = run_preflight(large_source, zone_key_template, app_config, sample=30)
        assert first.sample_size == second.sample_size == 30
        assert first.projected_pair_count == second.projected_pair_count
        assert first.projected_match_rate == second.projected_match_rate
        assert first.sample_health.failure_samples == second.sample_health.failure_samples

    def test_sample_results_are_flagged(self, large_source, zone_key_template, app_config):
        estimate = run_preflight(large_source, zone_key_template, app_config, sample=0.2)
        health = estimate.sample_health
        assert health.was_sampled
        assert health.targets_total == estimate.sample_size
        assert health.check_invariants() == []
        assert estimate.margin_of_error > 0

    def test_preflight_never_writes(self, row_source, zone_key_template, property_service):
        # run_preflight has no property service; a write-less run leaves it untouched too
        run_preflight(row_source, zone_key_template, single_thread_config(), sample=1.0)
        run_space_mapping(
            row_source, property_service, zone_key_template, single_thread_config(), write=False
        )
        assert property_service.writes == []

    def test_empty_model(self, zone_key_template, app_config):
        source = InMemoryModelSource([], [], {})
        estimate = run_preflight(source, zone_key_template, app_config)
        assert estimate.sample_size == 0
        assert estimate.projected_pair_count == 0.0


# ============================================================================
# PRESETS
# ============================================================================


class TestPresets:
    def test_concrete_presets_pass_through(self):
        assert resolve_preset(PerformancePreset.FAST, 1.0, 1, 1) is PerformancePreset.FAST

    def test_many_pairs_is_fast(self):
        assert resolve_preset(PerformancePreset.AUTO, 30_000_000, 1000, 10) is PerformancePreset.FAST

    def test_many_targets_is_fast(self):
        assert resolve_preset(PerformancePreset.AUTO, None, 300_000, 10) is PerformancePreset.FAST

    def test_small_workload_is_accurate(self):
        assert resolve_preset(PerformancePreset.AUTO, 1_000_000, 1000, 100) is PerformancePreset.ACCURATE

    def test_many_zones_stays_normal(self):
        assert resolve_preset(PerformancePreset.AUTO, 1_000_000, 1000, 10_000) is PerformancePreset.NORMAL

    def test_middle_workload_is_normal(self):
        assert resolve_preset(PerformancePreset.AUTO, 5_000_000, 1000, 10) is PerformancePreset.NORMAL

    def test_no_projection_is_normal(self):
        assert resolve_preset(PerformancePreset.AUTO, None, 1000, 10) is PerformancePreset.NORMAL

    def test_preset_settings(self):
        assert not preset_settings(PerformancePreset.FAST).use_hull
        assert preset_settings(PerformancePreset.ACCURATE).granularity > preset_settings(
            PerformancePreset.NORMAL
        ).granularity
        assert preset_settings(PerformancePreset.AUTO) == preset_settings(PerformancePreset.NORMAL)


# ============================================================================
# CALIBRATION
# ============================================================================


class TestCalibration:
    def test_early_runs_use_fast_smoothing(self):
        updated = update_calibration(RuntimeCalibration(), match_seconds=1.0, candidate_pairs=10_000_000)
        assert updated.seconds_per_candidate_pair == pytest.approx(8.7e-8)
        assert updated.samples == 1

    def test_later_runs_use_slow_smoothing(self):
        calibration = RuntimeCalibration(samples=5)
        updated = update_calibration(calibration, match_seconds=1.0, candidate_pairs=10_000_000)
        assert updated.seconds_per_candidate_pair == pytest.approx(8.3e-8)

    def test_zero_pairs_leaves_coefficients(self):
        calibration = RuntimeCalibration()
        updated = update_calibration(calibration, match_seconds=0.5, candidate_pairs=0)
        assert updated.seconds_per_candidate_pair == calibration.seconds_per_candidate_pair
        assert updated.samples == 1

    def test_write_coefficient(self):
        updated = update_calibration(
            RuntimeCalibration(), 0.0, 0, write_seconds=1.0, writes=10_000
        )
        assert updated.seconds_per_write == pytest.approx(2e-5 * 0.65 + 1e-4 * 0.35)

    def test_confidence_grows_with_samples(self):
        assert RuntimeCalibration(samples=0).confidence < RuntimeCalibration(samples=4).confidence
        assert RuntimeCalibration(samples=100).confidence == 1.0

    def test_save_and_load(self, tmp_path):
        calibration = RuntimeCalibration(seconds_per_candidate_pair=1e-7, samples=3)
        path = save_calibration(calibration, tmp_path)
        assert path.name == CALIBRATION_FILENAME
        assert load_calibration(tmp_path) == calibration

    def test_missing_file_gives_defaults(self, tmp_path):
        assert load_calibration(tmp_path / "nowhere") == RuntimeCalibration()

    def test_corrupt_file_gives_defaults(self, tmp_path):
        (tmp_path / CALIBRATION_FILENAME).write_text("{not json", encoding="utf-8")
        assert load_calibration(tmp_path) == RuntimeCalibration()

    def test_run_refines_stored_calibration(self, row_source, zone_key_template, tmp_path):
        run_space_mapping(
            row_source, None, zone_key_template, single_thread_config(), write=False,
            calibration_dir=tmp_path,
        )
        stored = json.loads((tmp_path / CALIBRATION_FILENAME).read_text(encoding="utf-8"))
        assert stored["samples"] == 1
