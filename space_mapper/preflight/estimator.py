"""
Preflight runtime and outcome estimation.

ARCHITECTURAL OVERVIEW:
=======================
Responsibility: Run the real matching pipeline on a seeded random sample of
targets and extrapolate runtime, candidate-pair count, match rate and
writeback cost to the full population, with a margin of error that shrinks
as the sampled fraction grows.

Key Interactions:
- BatchScheduler.run(sampled=True) does the sample matching, so preflight
  exercises exactly the code path a full run uses
- finalize_run_health() summarizes the sample
- resolve_preset() turns AUTO into a concrete preset from the projections

Preflight never writes: it has no PropertyService.

For Navigation: Use VS Code outline (Ctrl+Shift+O)
"""

import logging
import math
from typing import Optional, Sequence, Union

import numpy as np

from space_mapper.config_types import PerformanceConfig, PreflightConfig
from space_mapper.models.data_models import Element
from space_mapper.models.run_stats import RunEstimate
from space_mapper.parallel.batch_scheduler import BatchScheduler
from space_mapper.parallel.batch_worker import TargetPipeline
from space_mapper.parallel.cancellation import CancellationToken
from space_mapper.preflight.calibration import RuntimeCalibration, confidence_label
from space_mapper.preflight.presets import resolve_preset
from space_mapper.reporting.run_health import finalize_run_health

logger = logging.getLogger("SpaceMapper.Preflight.Estimator")

MAX_CONFIDENCE = 0.99

SampleRequest = Union[int, float, None]


# ═══════════════════════════════════════════════════════════════════════════
# 🎲 SAMPLING
# ═══════════════════════════════════════════════════════════════════════════


def resolve_sample_size(
    population: int,
    config: Optional[PreflightConfig] = None,
    sample: SampleRequest = None,
) -> int:
    """
    Number of targets to sample.

    An int ``sample`` is a count, a float is a fraction of the population.
    Otherwise config.sample_size wins, else max(min_sample, ceil(fraction·N)).
    The result is clamped to [1, population] (0 for an empty population).
    """
    if population <= 0:
        return 0
    config = config or PreflightConfig()

    if isinstance(sample, bool):
        raise ValueError("sample must be a count or a fraction")
    if isinstance(sample, int):
        size = sample
    elif isinstance(sample, float):
        if not 0.0 < sample <= 1.0:
            raise ValueError(f"sample fraction must be in (0, 1], got {sample}")
        size = math.ceil(sample * population)
    elif config.sample_size is not None:
        size = config.sample_size
    else:
        size = max(config.min_sample, math.ceil(config.sample_fraction * population))

    return max(1, min(int(size), population))


def draw_sample(population: int, size: int, seed: int) -> np.ndarray:
    """Sorted target positions drawn without replacement, reproducible per seed."""
    if size >= population:
        return np.arange(population)
    rng = np.random.default_rng(seed)
    return np.sort(rng.choice(population, size=size, replace=False))


# ═══════════════════════════════════════════════════════════════════════════
# 📐 CONFIDENCE
# ═══════════════════════════════════════════════════════════════════════════


def margin_of_error(successes: int, n: int, population: int, z: float = 1.96) -> float:
    """
    Half-width of the match-rate interval for a sample of n from population.

    Uses the adjusted proportion (x + 0.5) / (n + 1) so an all-match or
    no-match sample still has a non-zero margin, and the finite population
    correction so a full sample has margin 0.
    """
    if n <= 0 or population <= 0:
        return 1.0
    p = (successes + 0.5) / (n + 1)
    margin = z * math.sqrt(p * (1.0 - p) / n)
    if population > 1:
        margin *= math.sqrt(max(0.0, (population - n) / (population - 1)))
    else:
        margin = 0.0
    return min(1.0, margin)


def estimate_confidence(margin: float) -> float:
    """Confidence in [0, 0.99] from a margin of error."""
    return min(MAX_CONFIDENCE, MAX_CONFIDENCE * max(0.0, 1.0 - 2.0 * margin))


# ═══════════════════════════════════════════════════════════════════════════
# 🔍 ESTIMATOR
# ═══════════════════════════════════════════════════════════════════════════


class PreflightEstimator:
    """
    Estimates a full run from a sample run.

    Args:
        pipeline: Run-scoped extractor / matcher / resolver (same as the run).
        performance: Thread / batch defaults.
        preflight_config: Sample sizing and seed.
        calibration: Seconds-per-write coefficients for writeback projection.
    """

    def __init__(
        self,
        pipeline: TargetPipeline,
        performance: Optional[PerformanceConfig] = None,
        preflight_config: Optional[PreflightConfig] = None,
        calibration: Optional[RuntimeCalibration] = None,
    ) -> None:
        self.pipeline = pipeline
        self.performance = performance or PerformanceConfig()
        self.config = preflight_config or PreflightConfig()
        self.calibration = calibration or RuntimeCalibration()

    def estimate(
        self,
        targets: Sequence[Element],
        sample: SampleRequest = None,
        zone_count: Optional[int] = None,
        mapping_count: int = 1,
        max_threads: Optional[int] = None,
        batch_size: Optional[int] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> RunEstimate:
        """
        Sample, match and extrapolate.

        Args:
            targets: Full target population in enumeration order.
            sample: Count (int) or fraction (float) override.
            zone_count: Indexed zones, used to resolve AUTO.
            mapping_count: Property mappings a full run would write per target.
            max_threads / batch_size: Scheduler overrides.
            cancel_token: Optional cooperative cancellation.

        Returns:
            RunEstimate; projections are 0 for an empty population.
        """
        population = len(targets)
        seed = self.config.seed
        size = resolve_sample_size(population, self.config, sample)
        if size == 0:
            logger.warning("⚠️ Preflight: no targets in scope")
            return RunEstimate(
                sample_size=0,
                population_size=0,
                seed=seed,
                margin_of_error=0.0,
                resolved_preset=resolve_preset(
                    self.performance.preset, 0.0, 0, zone_count
                ),
            )

        positions = draw_sample(population, size, seed)
        sampled_targets = [targets[int(i)] for i in positions]
        logger.info(
            f"🔍 Preflight: sampling {size}/{population} targets "
            f"({size / population:.1%}, seed={seed})"
        )

        scheduler = BatchScheduler(self.pipeline, self.performance)
        outcome = scheduler.run(
            sampled_targets,
            batch_size=batch_size,
            max_threads=max_threads,
            cancel_token=cancel_token,
            sampled=True,
        )
        results = outcome.results
        k = len(results)

        health = finalize_run_health(
            results,
            targets_requested=size,
            cancelled=outcome.cancelled,
            was_sampled=True,
            elapsed_s=outcome.elapsed_s,
        )
        if k == 0:
            return RunEstimate(
                sample_size=0,
                population_size=population,
                seed=seed,
                sample_elapsed_s=outcome.elapsed_s,
                resolved_preset=resolve_preset(
                    self.performance.preset, None, population, zone_count
                ),
                sample_health=health,
            )

        scale = population / k
        candidates_per_target = float(np.mean([r.candidate_count for r in results]))
        projected_pairs = candidates_per_target * population
        projected_matched = health.targets_matched * scale
        match_rate = health.targets_matched / k

        margin = margin_of_error(health.targets_matched, k, population, self.config.confidence_z)
        confidence = estimate_confidence(margin)

        estimate = RunEstimate(
            sample_size=k,
            population_size=population,
            seed=seed,
            sample_elapsed_s=outcome.elapsed_s,
            projected_runtime_s=outcome.elapsed_s * scale,
            projected_writeback_s=(
                projected_matched * max(0, mapping_count) * self.calibration.seconds_per_write
            ),
            projected_pair_count=projected_pairs,
            candidates_per_target=candidates_per_target,
            projected_match_rate=match_rate,
            projected_unmatched=health.targets_unmatched * scale,
            projected_without_bounds=health.targets_without_bounds * scale,
            margin_of_error=margin,
            confidence=confidence,
            confidence_label=confidence_label(confidence),
            resolved_preset=resolve_preset(
                self.performance.preset, projected_pairs, population, zone_count
            ),
            sample_health=health,
        )
        log_estimate(estimate)
        return estimate


def log_estimate(estimate: RunEstimate) -> None:
    logger.info("=" * 60)
    logger.info("🔍 PREFLIGHT ESTIMATE")
    logger.info(
        f"   Sample: {estimate.sample_size}/{estimate.population_size} "
        f"targets in {estimate.sample_elapsed_s:.3f}s"
    )
    logger.info(
        f"   Projected: {estimate.projected_runtime_s:.2f}s matching + "
        f"{estimate.projected_writeback_s:.2f}s writeback, "
        f"{estimate.projected_pair_count:,.0f} candidate pairs"
    )
    logger.info(
        f"   Match rate: {estimate.projected_match_rate:.1%} "
        f"± {estimate.margin_of_error:.1%} ({estimate.confidence_label} confidence)"
    )
    logger.info(f"   Preset: {estimate.resolved_preset.value}")
    logger.info("=" * 60)


__all__ = [
    "MAX_CONFIDENCE",
    "resolve_sample_size",
    "draw_sample",
    "margin_of_error",
    "estimate_confidence",
    "PreflightEstimator",
    "log_estimate",
]
