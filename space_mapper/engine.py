"""
Space mapping run orchestration.

ARCHITECTURAL OVERVIEW:
=======================
Responsibility: Drive one mapping run end to end:

    validate → extract zones → offset → index → (preflight) → match → health → writeback

Every phase receives its inputs explicitly. All run-scoped state (geometry
memo, grid index, matcher, resolver) lives on a RunContext created at run
start and discarded when the run returns, so two runs never share state.

Key Functions:
- prepare_run(): Validation, zone extraction, offsets, cell size, index
- run_preflight(): Sample-based estimate only, never writes
- run_space_mapping(): Full run including writeback

Error Policy:
- ConfigurationError: raised before any work starts
- Per-target failures: recorded on RunResult / WritebackSummary
- Collaborator failures: RunAbortedError with the failing phase

For Navigation: Use VS Code outline (Ctrl+Shift+O)
"""

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from space_mapper.config_types import AppConfig, PerformanceConfig, _normalize_config
from space_mapper.errors import CollaboratorError, ConfigurationError, FailureKind, RunAbortedError
from space_mapper.geometry.extractor import GeometryExtractor
from space_mapper.geometry.offsets import resolve_zone_volume, validate_offset_spec
from space_mapper.matching.containment import ContainmentMatcher
from space_mapper.matching.rules import RuleResolver, validate_rules
from space_mapper.models.data_models import (
    Element,
    MappingTemplate,
    OffsetSpec,
    PerformancePreset,
)
from space_mapper.models.geometry import NoGeometry, ZoneVolume
from space_mapper.models.run_stats import (
    IndexDiagnostics,
    RunEstimate,
    RunHealth,
    RunResult,
    WritebackSummary,
    ZoneDiagnostic,
)
from space_mapper.parallel.batch_scheduler import BatchScheduler
from space_mapper.parallel.batch_worker import TargetPipeline
from space_mapper.parallel.cancellation import CancellationToken
from space_mapper.preflight.calibration import (
    RuntimeCalibration,
    load_calibration,
    save_calibration,
    update_calibration,
)
from space_mapper.preflight.estimator import PreflightEstimator, SampleRequest
from space_mapper.preflight.presets import preset_settings
from space_mapper.reporting.run_health import finalize_run_health, log_run_health
from space_mapper.sources.base import ModelSource, PropertyService
from space_mapper.spatial.cell_sizing import resolve_cell_size
from space_mapper.spatial.grid_index import SpatialGridIndex
from space_mapper.writeback.writeback import WritebackService

logger = logging.getLogger("SpaceMapper.Engine")

ProgressCallback = Callable[[int, int], None]


# ═══════════════════════════════════════════════════════════════════════════
# 📦 RUN CONTEXT
# ═══════════════════════════════════════════════════════════════════════════


@dataclass
class RunContext:
    """
    Run-scoped state shared by every phase of one run.

    Attributes:
        config: Effective configuration (template performance applied).
        template: Mapping template being run.
        zones / targets: Elements in enumeration order.
        extractor: Geometry memo for this run.
        zone_volumes: Indexed zones (positions match index results).
        zone_diagnostics: Zones excluded before indexing.
        index / matcher / resolver: Matching components.
        preset: Concrete preset the components were built for.
        cell_size: Level-0 grid cell size.
        base_offsets: Run-level offsets applied to every zone.
    """

    config: AppConfig
    template: MappingTemplate
    zones: List[Element]
    targets: List[Element]
    extractor: GeometryExtractor
    zone_volumes: List[ZoneVolume]
    zone_diagnostics: List[ZoneDiagnostic]
    index: SpatialGridIndex
    matcher: ContainmentMatcher
    resolver: RuleResolver
    preset: PerformancePreset
    cell_size: float
    base_offsets: OffsetSpec
    zones_by_key: Dict[str, Element] = field(default_factory=dict)
    targets_by_key: Dict[str, Element] = field(default_factory=dict)

    @property
    def pipeline(self) -> TargetPipeline:
        return TargetPipeline(self.extractor, self.matcher, self.resolver)

    @property
    def index_diagnostics(self) -> IndexDiagnostics:
        return self.index.diagnostics


@dataclass(frozen=True)
class SpaceMapperRun:
    """Everything a run reports back."""

    template: MappingTemplate
    results: Tuple[RunResult, ...]
    health: RunHealth
    index_diagnostics: IndexDiagnostics
    preset: PerformancePreset
    cell_size: float
    zone_diagnostics: Tuple[ZoneDiagnostic, ...] = ()
    writeback: Optional[WritebackSummary] = None
    estimate: Optional[RunEstimate] = None
    context: Optional[RunContext] = field(default=None, compare=False, repr=False)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "template": self.template.name,
            "template_version": self.template.version,
            "preset": self.preset.value,
            "cell_size": self.cell_size,
            "health": self.health.as_dict(),
            "index": self.index_diagnostics.as_dict(),
            "zone_diagnostics": [d.as_dict() for d in self.zone_diagnostics],
            "writeback": self.writeback.as_dict() if self.writeback is not None else None,
            "estimate": self.estimate.as_dict() if self.estimate is not None else None,
        }


# ═══════════════════════════════════════════════════════════════════════════
# 🔧 HELPERS
# ═══════════════════════════════════════════════════════════════════════════


def effective_performance(config: AppConfig, template: MappingTemplate) -> PerformanceConfig:
    """Run config performance with the template's performance settings applied."""
    return config.performance.with_template(template.performance)


def _run_offsets(config: AppConfig, template: MappingTemplate) -> OffsetSpec:
    """Template offsets when it defines any, otherwise the configured offsets."""
    if template.offsets is not None and not template.offsets.is_empty:
        return template.offsets
    return config.offsets.spec


def validate_run(config: AppConfig, template: MappingTemplate, zones: List[Element]) -> None:
    """
    Configuration-time checks. Nothing has been extracted yet.

    Raises:
        ConfigurationError: Invalid rules or offsets.
    """
    validate_rules(template.rules)
    allow = config.offsets.allow_contraction
    validate_offset_spec(_run_offsets(config, template), allow, label=f"template {template.name!r} offsets")
    for zone in zones:
        if zone.offset is not None:
            validate_offset_spec(zone.offset, allow, label=f"zone {zone.key!r} offsets")


def _enumerate(source: ModelSource) -> Tuple[List[Element], List[Element]]:
    try:
        zones = list(source.zones())
    except CollaboratorError as e:
        raise RunAbortedError(f"zone enumeration failed: {e}", phase="zones") from e
    try:
        targets = list(source.targets())
    except CollaboratorError as e:
        raise RunAbortedError(f"target enumeration failed: {e}", phase="targets") from e
    return zones, targets


# ═══════════════════════════════════════════════════════════════════════════
# 🏗️ RUN PREPARATION
# ═══════════════════════════════════════════════════════════════════════════


def prepare_run(
    source: ModelSource,
    template: MappingTemplate,
    config: Union[AppConfig, Dict[str, Any], None] = None,
    preset: Optional[PerformancePreset] = None,
    extractor: Optional[GeometryExtractor] = None,
    elements: Optional[Tuple[List[Element], List[Element]]] = None,
) -> RunContext:
    """
    Validate settings, extract and offset zones, and build the index.

    Args:
        source: Model source.
        template: Mapping template.
        config: AppConfig, raw CONFIG dict or None.
        preset: Concrete preset to build for (default: configured; AUTO → NORMAL).
        extractor: Reuse a run's geometry memo when rebuilding.
        elements: Already enumerated (zones, targets).

    Returns:
        RunContext ready for matching.

    Raises:
        ConfigurationError: Invalid rules or offsets.
        RunAbortedError: The model source failed while reading zones.
    """
    config = _normalize_config(config)
    performance = effective_performance(config, template)
    config = config.replace(performance=performance)

    zones, targets = elements if elements is not None else _enumerate(source)
    validate_run(config, template, zones)

    preset = preset or performance.preset
    settings = preset_settings(preset)
    use_hull = (
        config.containment.use_hull if config.containment.use_hull is not None else settings.use_hull
    )
    base_offsets = _run_offsets(config, template)
    extractor = extractor or GeometryExtractor(source)

    logger.info(f"🧱 Preparing {len(zones)} zones (preset {preset.value}, hull={use_hull})")
    zone_volumes: List[ZoneVolume] = []
    diagnostics: List[ZoneDiagnostic] = []
    try:
        for position, zone in enumerate(zones):
            extraction = extractor.extract_volume(zone)
            if isinstance(extraction, NoGeometry):
                diagnostics.append(
                    ZoneDiagnostic(zone.key, FailureKind.NO_GEOMETRY, extraction.reason)
                )
                continue
            footprint = extractor.extract_footprint(zone) if use_hull else None
            resolved = resolve_zone_volume(
                zone,
                position,
                extraction,
                base_offsets,
                config.offsets.precedence,
                footprint,
            )
            if isinstance(resolved, ZoneDiagnostic):
                diagnostics.append(resolved)
            else:
                zone_volumes.append(resolved)
    except CollaboratorError as e:
        raise RunAbortedError(f"zone extraction failed: {e}", phase="zones") from e

    if diagnostics:
        logger.warning(f"⚠️ {len(diagnostics)} zones excluded (missing bounds or degenerate)")

    cell_size = resolve_cell_size(
        config.index, [z.effective for z in zone_volumes], granularity=settings.granularity
    )
    index = SpatialGridIndex.build(
        zone_volumes,
        cell_size,
        max_cells_per_zone=config.index.max_cells_per_zone,
        max_degrade_levels=config.index.max_degrade_levels,
    )
    zones_by_key = {z.key: z for z in zones}
    resolver = RuleResolver(
        template.rules,
        [zones_by_key[zv.zone_key] for zv in zone_volumes],
        priority_order=config.rules.priority_order,
        zone_volumes=[zv.effective for zv in zone_volumes],
        enable_multiple_zones=config.rules.enable_multiple_zones,
        resolution_strategy=config.rules.resolution_strategy,
        treat_partial_as_contained=config.containment.treat_partial_as_contained,
    )
    # Box query per target, so only when something reads partial overlaps
    detect_partial = (
        resolver.needs_partial
        or config.containment.tag_partial_separately
        or config.writeback.write_zone_behavior
    )
    matcher = ContainmentMatcher(
        index,
        strictness=config.containment.strictness,
        use_hull=use_hull,
        tolerance=config.containment.tolerance,
        detect_partial=detect_partial,
    )
    if detect_partial:
        logger.info("🧩 Partial overlap detection enabled")

    return RunContext(
        config=config,
        template=template,
        zones=zones,
        targets=targets,
        extractor=extractor,
        zone_volumes=zone_volumes,
        zone_diagnostics=diagnostics,
        index=index,
        matcher=matcher,
        resolver=resolver,
        preset=preset if preset is not PerformancePreset.AUTO else PerformancePreset.NORMAL,
        cell_size=cell_size,
        base_offsets=base_offsets,
        zones_by_key=zones_by_key,
        targets_by_key={t.key: t for t in targets},
    )


# ═══════════════════════════════════════════════════════════════════════════
# 🔍 PREFLIGHT
# ═══════════════════════════════════════════════════════════════════════════


def _estimate(
    context: RunContext,
    sample: SampleRequest,
    calibration: Optional[RuntimeCalibration],
    cancel_token: Optional[CancellationToken],
) -> RunEstimate:
    estimator = PreflightEstimator(
        context.pipeline,
        context.config.performance,
        context.config.preflight,
        calibration,
    )
    return estimator.estimate(
        context.targets,
        sample=sample,
        zone_count=len(context.zone_volumes),
        mapping_count=len(context.template.mappings),
        cancel_token=cancel_token,
    )


def run_preflight(
    source: ModelSource,
    template: MappingTemplate,
    config: Union[AppConfig, Dict[str, Any], None] = None,
    sample: SampleRequest = None,
    calibration: Optional[RuntimeCalibration] = None,
    cancel_token: Optional[CancellationToken] = None,
) -> RunEstimate:
    """
    Estimate a full run from a seeded sample. Never writes.

    Raises:
        ConfigurationError: Invalid rules or offsets.
        RunAbortedError: The model source failed.
    """
    context = prepare_run(source, template, config)
    return _estimate(context, sample, calibration, cancel_token)


# ═══════════════════════════════════════════════════════════════════════════
# 🚀 FULL RUN
# ═══════════════════════════════════════════════════════════════════════════


def run_space_mapping(
    source: ModelSource,
    properties: Optional[PropertyService],
    template: MappingTemplate,
    config: Union[AppConfig, Dict[str, Any], None] = None,
    cancel_token: Optional[CancellationToken] = None,
    write: bool = True,
    progress: Optional[ProgressCallback] = None,
    calibration_dir: Optional[Union[str, Path]] = None,
) -> SpaceMapperRun:
    """
    Run a complete mapping.

    Args:
        source: Model source (zones, targets, geometry).
        properties: Property service (required when writing).
        template: Mapping template.
        config: AppConfig, raw CONFIG dict or None.
        cancel_token: Cooperative cancellation; a cancelled run returns
            partial results and skips writeback.
        write: False runs matching only.
        progress: Called as progress(batches_done, batches_total).
        calibration_dir: Load and refine runtime calibration here.

    Returns:
        SpaceMapperRun.

    Raises:
        ConfigurationError: Invalid settings, raised before any work starts.
        RunAbortedError: A collaborator failed; carries phase and last batch.
    """
    run_start = time.perf_counter()
    config = _normalize_config(config)
    cancel_token = cancel_token or CancellationToken()
    if write and config.writeback.enabled and properties is None:
        raise ConfigurationError("a PropertyService is required when writeback is enabled")

    calibration = load_calibration(calibration_dir) if calibration_dir is not None else None

    logger.info("=" * 60)
    logger.info(f"🚀 SPACE MAPPER RUN: template {template.name!r} v{template.version}")
    logger.info("=" * 60)

    context = prepare_run(source, template, config)
    estimate: Optional[RunEstimate] = None

    if context.config.performance.preset is PerformancePreset.AUTO and context.targets:
        estimate = _estimate(context, None, calibration, cancel_token)
        if estimate.resolved_preset is not context.preset:
            logger.info(f"   🔁 AUTO resolved to {estimate.resolved_preset.value}, rebuilding index")
            context = prepare_run(
                source,
                template,
                context.config,
                preset=estimate.resolved_preset,
                extractor=context.extractor,
                elements=(context.zones, context.targets),
            )

    scheduler = BatchScheduler(context.pipeline, context.config.performance)
    outcome = scheduler.run(context.targets, cancel_token=cancel_token, progress=progress)

    health = finalize_run_health(
        outcome.results,
        targets_requested=outcome.targets_requested,
        zone_diagnostics=context.zone_diagnostics,
        zones_total=len(context.zones),
        zones_indexed=len(context.zone_volumes),
        index_diagnostics=context.index_diagnostics,
        cancelled=outcome.cancelled,
        elapsed_s=outcome.elapsed_s,
        failure_sample_limit=context.config.health.failure_sample_limit,
        seed=context.config.health.seed,
    )
    log_run_health(health)
    context.extractor.log_summary(logging.DEBUG)

    writeback: Optional[WritebackSummary] = None
    if outcome.cancelled:
        logger.warning("⚠️ Run cancelled, writeback skipped")
    elif write and context.config.writeback.enabled:
        service = WritebackService(properties, context.config.writeback)
        writeback = service.writeback(
            outcome.results,
            context.targets_by_key,
            context.zones_by_key,
            template.mappings,
        )

    if calibration is not None and not outcome.cancelled:
        updated = update_calibration(
            calibration,
            match_seconds=outcome.elapsed_s,
            candidate_pairs=health.candidate_pairs,
            write_seconds=writeback.elapsed_s if writeback is not None else 0.0,
            writes=writeback.properties_written if writeback is not None else 0,
        )
        save_calibration(updated, calibration_dir)

    logger.info(f"✅ Run finished in {time.perf_counter() - run_start:.2f}s")
    return SpaceMapperRun(
        template=template,
        results=outcome.results,
        health=health,
        index_diagnostics=context.index_diagnostics,
        preset=context.preset,
        cell_size=context.cell_size,
        zone_diagnostics=tuple(context.zone_diagnostics),
        writeback=writeback,
        estimate=estimate,
        context=context,
    )


__all__ = [
    "RunContext",
    "SpaceMapperRun",
    "effective_performance",
    "validate_run",
    "prepare_run",
    "run_preflight",
    "run_space_mapping",
]
