"""
═══════════════════════════════════════════════════════════════════════════════
📋 UNIFIED CONFIGURATION TYPES
═══════════════════════════════════════════════════════════════════════════════

ARCHITECTURAL OVERVIEW
----------------------
Responsibility: Define all configuration dataclasses for the space mapper.
Wraps the CONFIG dictionary in typed, validated, immutable config objects.

Every dataclass validates itself in __post_init__ and raises
ConfigurationError synchronously, so an invalid setting is rejected before
any zone is extracted or any batch is dispatched.

Usage:
    from space_mapper.config import CONFIG
    from space_mapper.config_types import AppConfig

    # Create once at application startup
    app_config = AppConfig.from_dict(CONFIG)

    # Use throughout the application
    batch_size = app_config.performance.batch_size

For Navigation: Use VS Code outline (Ctrl+Shift+O)

NAVIGATION GUIDE
----------------
# ═════ 1. FILE PATHS CONFIGURATION
# ═════ 2. PERFORMANCE CONFIGURATION
# ═════ 3. CONTAINMENT CONFIGURATION
# ═════ 4. OFFSET CONFIGURATION
# ═════ 5. SPATIAL INDEX CONFIGURATION
# ═════ 6. RULES CONFIGURATION
# ═════ 7. PREFLIGHT CONFIGURATION
# ═════ 8. WRITEBACK CONFIGURATION
# ═════ 9. RUN HEALTH CONFIGURATION
# ═════ 10. APP CONFIG (MASTER FACADE)

═══════════════════════════════════════════════════════════════════════════════
"""

import dataclasses
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Any, Optional

from space_mapper.errors import ConfigurationError
from space_mapper.geometry.offsets import validate_offset_spec
from space_mapper.models.data_models import (
    OffsetMode,
    OffsetPrecedence,
    OffsetSpec,
    PerformancePreset,
    PerformanceSettings,
    PriorityOrder,
    PropertyLabelMode,
    Strictness,
    ZoneResolutionStrategy,
)


def _parse_enum(enum_cls: Any, value: Any, setting: str) -> Any:
    """Parse an enum setting, re-raising unknown values as ConfigurationError."""
    try:
        return enum_cls.from_string(value)
    except ValueError as e:
        raise ConfigurationError(f"{setting}: {e}") from e


# ═══════════════════════════════════════════════════════════════════════════════
# 📁 1. FILE PATHS CONFIGURATION
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class FilePathsConfig:
    """
    File path configuration for templates and outputs.

    Attributes:
        template_dir: Directory holding space_mapper_templates.json.
        output_dir: Directory for reports.
        log_dir: Directory for log files.
    """

    template_dir: str = "templates"
    output_dir: str = "Output"
    log_dir: str = "logs"

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "FilePathsConfig":
        """Create FilePathsConfig from CONFIG['file_paths'] dictionary."""
        return cls(
            template_dir=d.get("template_dir", "templates"),
            output_dir=d.get("output_dir", "Output"),
            log_dir=d.get("log_dir", "logs"),
        )

    def template_dir_path(self, workspace_root: Path) -> Path:
        """Get template directory resolved against workspace root."""
        return workspace_root / self.template_dir

    def output_dir_path(self, workspace_root: Path) -> Path:
        """Get output directory resolved against workspace root."""
        return workspace_root / self.output_dir

    def log_dir_path(self, workspace_root: Path) -> Path:
        """Get log directory resolved against workspace root."""
        return workspace_root / self.log_dir


# ═══════════════════════════════════════════════════════════════════════════════
# ⚡ 2. PERFORMANCE CONFIGURATION
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class PerformanceConfig:
    """
    Configuration for batching and the bounded worker pool.

    Attributes:
        preset: Speed/precision preset (AUTO resolves from preflight).
        max_threads: Worker thread ceiling (-1 = auto).
        optimal_workers_default: Worker count used when auto-detecting.
        batch_size: Targets per batch (>= 1).
        cancel_check_interval: Targets processed between cancellation polls.
        verbose: joblib verbosity level (0-10).
    """

    preset: PerformancePreset = PerformancePreset.AUTO
    max_threads: int = -1
    optimal_workers_default: int = 8
    batch_size: int = 512
    cancel_check_interval: int = 64
    verbose: int = 0

    def __post_init__(self) -> None:
        if self.max_threads != -1 and self.max_threads < 1:
            raise ConfigurationError(
                f"performance.max_threads must be -1 (auto) or >= 1, got {self.max_threads}"
            )
        if self.batch_size < 1:
            raise ConfigurationError(
                f"performance.batch_size must be >= 1, got {self.batch_size}"
            )
        if self.optimal_workers_default < 1:
            raise ConfigurationError(
                "performance.optimal_workers_default must be >= 1, "
                f"got {self.optimal_workers_default}"
            )
        if self.cancel_check_interval < 1:
            raise ConfigurationError(
                "performance.cancel_check_interval must be >= 1, "
                f"got {self.cancel_check_interval}"
            )

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "PerformanceConfig":
        """Create PerformanceConfig from CONFIG['performance'] dictionary."""
        return cls(
            preset=_parse_enum(PerformancePreset, d.get("preset", "auto"), "performance.preset"),
            max_threads=int(d.get("max_threads", -1)),
            optimal_workers_default=int(d.get("optimal_workers_default", 8)),
            batch_size=int(d.get("batch_size", 512)),
            cancel_check_interval=int(d.get("cancel_check_interval", 64)),
            verbose=int(d.get("verbose", 0)),
        )

    def with_template(self, settings: Optional[PerformanceSettings]) -> "PerformanceConfig":
        """Apply a template's performance settings on top of this config."""
        if settings is None:
            return self
        changes: Dict[str, Any] = {}
        if settings.preset is not None:
            changes["preset"] = settings.preset
        if settings.max_threads is not None:
            changes["max_threads"] = int(settings.max_threads)
        if settings.batch_size is not None:
            changes["batch_size"] = int(settings.batch_size)
        return dataclasses.replace(self, **changes) if changes else self


# ═══════════════════════════════════════════════════════════════════════════════
# 🎯 3. CONTAINMENT CONFIGURATION
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class ContainmentConfig:
    """
    Configuration for the exact containment test.

    Attributes:
        strictness: Which part of the target must be inside a zone.
        use_hull: Test zone footprint polygons too (None = preset decides).
        tolerance: Inclusive boundary tolerance in model units.
        treat_partial_as_contained: Count partially overlapping zones as
            containing zones.
        tag_partial_separately: Keep partially overlapping zones apart so
            rules can accept or reject them.
    """

    strictness: Strictness = Strictness.CENTROID
    use_hull: Optional[bool] = None
    tolerance: float = 1e-6
    treat_partial_as_contained: bool = False
    tag_partial_separately: bool = False

    def __post_init__(self) -> None:
        if not math.isfinite(self.tolerance) or self.tolerance < 0:
            raise ConfigurationError(
                f"containment.tolerance must be finite and >= 0, got {self.tolerance}"
            )

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ContainmentConfig":
        """Create ContainmentConfig from CONFIG['containment'] dictionary."""
        return cls(
            strictness=_parse_enum(
                Strictness, d.get("strictness", "centroid"), "containment.strictness"
            ),
            use_hull=d.get("use_hull"),
            tolerance=float(d.get("tolerance", 1e-6)),
            treat_partial_as_contained=bool(d.get("treat_partial_as_contained", False)),
            tag_partial_separately=bool(d.get("tag_partial_separately", False)),
        )


# ═══════════════════════════════════════════════════════════════════════════════
# 📏 4. OFFSET CONFIGURATION
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class OffsetConfig:
    """
    Run-level zone offsets.

    Attributes:
        spec: Offsets applied to every zone (zones may add or override).
        precedence: Whether a face value or the uniform value is authoritative.
        allow_contraction: Permit negative (shrinking) offsets.
    """

    spec: OffsetSpec = field(default_factory=lambda: OffsetSpec(uniform=0.0))
    precedence: OffsetPrecedence = OffsetPrecedence.FACE_OVER_UNIFORM
    allow_contraction: bool = False

    def __post_init__(self) -> None:
        validate_offset_spec(self.spec, self.allow_contraction, label="offsets")

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "OffsetConfig":
        """Create OffsetConfig from CONFIG['offsets'] dictionary."""
        try:
            spec = OffsetSpec.from_dict(d)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"offsets: {e}") from e
        return cls(
            spec=spec,
            precedence=_parse_enum(
                OffsetPrecedence,
                d.get("precedence", "face_over_uniform"),
                "offsets.precedence",
            ),
            allow_contraction=bool(d.get("allow_contraction", False)),
        )

    @property
    def mode(self) -> OffsetMode:
        return self.spec.mode


# ═══════════════════════════════════════════════════════════════════════════════
# 🔷 5. SPATIAL INDEX CONFIGURATION
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class IndexConfig:
    """
    Configuration for the uniform spatial grid.

    Attributes:
        cell_size: Explicit cell size; None derives it from granularity.
        granularity: Slider 0 (coarse) .. 1 (fine); None = preset decides.
        min_cell_size: Lower bound on the derived cell size.
        max_cells_per_axis: Derived cell size never splits the world finer.
        max_cells_per_zone: Cap on cells one zone may occupy per level.
        max_degrade_levels: Coarser levels tried before overflow.
    """

    cell_size: Optional[float] = None
    granularity: Optional[float] = None
    min_cell_size: float = 1e-3
    max_cells_per_axis: int = 1024
    max_cells_per_zone: int = 4096
    max_degrade_levels: int = 8

    def __post_init__(self) -> None:
        if self.cell_size is not None and (
            not math.isfinite(self.cell_size) or self.cell_size <= 0
        ):
            raise ConfigurationError(f"index.cell_size must be > 0, got {self.cell_size}")
        if self.granularity is not None and not 0.0 <= self.granularity <= 1.0:
            raise ConfigurationError(
                f"index.granularity must be within [0, 1], got {self.granularity}"
            )
        if self.min_cell_size <= 0:
            raise ConfigurationError(
                f"index.min_cell_size must be > 0, got {self.min_cell_size}"
            )
        if self.max_cells_per_axis < 1 or self.max_cells_per_zone < 1:
            raise ConfigurationError("index cell caps must be >= 1")
        if self.max_degrade_levels < 0:
            raise ConfigurationError(
                f"index.max_degrade_levels must be >= 0, got {self.max_degrade_levels}"
            )

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "IndexConfig":
        """Create IndexConfig from CONFIG['index'] dictionary."""
        cell_size = d.get("cell_size")
        granularity = d.get("granularity")
        return cls(
            cell_size=float(cell_size) if cell_size is not None else None,
            granularity=float(granularity) if granularity is not None else None,
            min_cell_size=float(d.get("min_cell_size", 1e-3)),
            max_cells_per_axis=int(d.get("max_cells_per_axis", 1024)),
            max_cells_per_zone=int(d.get("max_cells_per_zone", 4096)),
            max_degrade_levels=int(d.get("max_degrade_levels", 8)),
        )


# ═══════════════════════════════════════════════════════════════════════════════
# 🧮 6. RULES CONFIGURATION
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class RulesConfig:
    """
    Rule precedence and zone cardinality.

    Attributes:
        priority_order: Priority direction (ASCENDING: lower number wins).
        enable_multiple_zones: Keep every resolved zone (False = best one).
        resolution_strategy: How the best zone is picked in single-zone mode.
    """

    priority_order: PriorityOrder = PriorityOrder.ASCENDING
    enable_multiple_zones: bool = True
    resolution_strategy: ZoneResolutionStrategy = ZoneResolutionStrategy.MOST_SPECIFIC

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "RulesConfig":
        """Create RulesConfig from CONFIG['rules'] dictionary."""
        return cls(
            priority_order=_parse_enum(
                PriorityOrder, d.get("priority_order", "ascending"), "rules.priority_order"
            ),
            enable_multiple_zones=bool(d.get("enable_multiple_zones", True)),
            resolution_strategy=_parse_enum(
                ZoneResolutionStrategy,
                d.get("resolution_strategy", "most_specific"),
                "rules.resolution_strategy",
            ),
        )


# ═══════════════════════════════════════════════════════════════════════════════
# 🔍 7. PREFLIGHT CONFIGURATION
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class PreflightConfig:
    """
    Configuration for the sampled preflight estimate.

    Attributes:
        sample_size: Explicit sample count (wins over sample_fraction).
        sample_fraction: Fraction of targets to sample, in (0, 1].
        min_sample: Lower bound on the derived sample count.
        seed: Random seed for reproducible sampling.
        confidence_z: z-score of the reported margin of error.
    """

    sample_size: Optional[int] = None
    sample_fraction: float = 0.05
    min_sample: int = 50
    seed: int = 1234
    confidence_z: float = 1.96

    def __post_init__(self) -> None:
        if self.sample_size is not None and self.sample_size < 1:
            raise ConfigurationError(
                f"preflight.sample_size must be >= 1, got {self.sample_size}"
            )
        if not 0.0 < self.sample_fraction <= 1.0:
            raise ConfigurationError(
                f"preflight.sample_fraction must be within (0, 1], got {self.sample_fraction}"
            )
        if self.min_sample < 1:
            raise ConfigurationError(
                f"preflight.min_sample must be >= 1, got {self.min_sample}"
            )
        if self.confidence_z <= 0:
            raise ConfigurationError(
                f"preflight.confidence_z must be > 0, got {self.confidence_z}"
            )

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "PreflightConfig":
        """Create PreflightConfig from CONFIG['preflight'] dictionary."""
        sample_size = d.get("sample_size")
        return cls(
            sample_size=int(sample_size) if sample_size is not None else None,
            sample_fraction=float(d.get("sample_fraction", 0.05)),
            min_sample=int(d.get("min_sample", 50)),
            seed=int(d.get("seed", 1234)),
            confidence_z=float(d.get("confidence_z", 1.96)),
        )


# ═══════════════════════════════════════════════════════════════════════════════
# ✍️ 8. WRITEBACK CONFIGURATION
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class WritebackConfig:
    """
    Writeback strategy flags.

    Attributes:
        enabled: Master toggle (False = match only, nothing is written).
        skip_unchanged: Do not write values equal to the current value.
        pack: Concatenate multi-zone values with pack_separator.
        pack_separator: Separator used when packing.
        show_internal_names: Address properties by internal names.
        write_zone_behavior: Write whether each target is contained in or
            only partially overlaps its zones.
        zone_behavior_category / zone_behavior_property: Where it goes.
        zone_behavior_contained_value / zone_behavior_partial_value: What
            is written.
    """

    enabled: bool = True
    skip_unchanged: bool = True
    pack: bool = False
    pack_separator: str = " | "
    show_internal_names: bool = False
    write_zone_behavior: bool = False
    zone_behavior_category: str = "ME_SpaceInfo"
    zone_behavior_property: str = "Zone Behaviour"
    zone_behavior_contained_value: str = "Contained"
    zone_behavior_partial_value: str = "Partial"

    def __post_init__(self) -> None:
        if self.pack and not self.pack_separator:
            raise ConfigurationError("writeback.pack_separator must not be empty when pack=True")
        if self.write_zone_behavior and not (
            self.zone_behavior_category and self.zone_behavior_property
        ):
            raise ConfigurationError(
                "writeback.zone_behavior_category and zone_behavior_property must be set"
            )

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "WritebackConfig":
        """Create WritebackConfig from CONFIG['writeback'] dictionary."""
        return cls(
            enabled=bool(d.get("enabled", True)),
            skip_unchanged=bool(d.get("skip_unchanged", True)),
            pack=bool(d.get("pack", False)),
            pack_separator=d.get("pack_separator", " | "),
            show_internal_names=bool(d.get("show_internal_names", False)),
            write_zone_behavior=bool(d.get("write_zone_behavior", False)),
            zone_behavior_category=d.get("zone_behavior_category", "ME_SpaceInfo"),
            zone_behavior_property=d.get("zone_behavior_property", "Zone Behaviour"),
            zone_behavior_contained_value=d.get("zone_behavior_contained_value", "Contained"),
            zone_behavior_partial_value=d.get("zone_behavior_partial_value", "Partial"),
        )

    @property
    def label_mode(self) -> PropertyLabelMode:
        if self.show_internal_names:
            return PropertyLabelMode.INTERNAL
        return PropertyLabelMode.DISPLAY


# ═══════════════════════════════════════════════════════════════════════════════
# 🩺 9. RUN HEALTH CONFIGURATION
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class HealthConfig:
    """Failure sampling for the run-health summary."""

    failure_sample_limit: int = 20
    seed: int = 1234

    def __post_init__(self) -> None:
        if self.failure_sample_limit < 0:
            raise ConfigurationError(
                f"health.failure_sample_limit must be >= 0, got {self.failure_sample_limit}"
            )

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "HealthConfig":
        """Create HealthConfig from CONFIG['health'] dictionary."""
        return cls(
            failure_sample_limit=int(d.get("failure_sample_limit", 20)),
            seed=int(d.get("seed", 1234)),
        )


# ═══════════════════════════════════════════════════════════════════════════════
# 🏛️ 10. APP CONFIG (MASTER FACADE)
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class AppConfig:
    """
    Master configuration object for the space mapper.

    This is the single source of truth for all typed configuration. Create it
    once using AppConfig.from_dict(CONFIG) and pass it to the engine.

    Attributes:
        file_paths: File path configuration.
        performance: Batching / worker pool configuration.
        containment: Containment test configuration.
        offsets: Run-level offset configuration.
        index: Spatial grid configuration.
        rules: Rule precedence configuration.
        preflight: Preflight sampling configuration.
        writeback: Writeback strategy flags.
        health: Run-health failure sampling.

    Example:
        from space_mapper.config import CONFIG
        from space_mapper.config_types import AppConfig

        app_config = AppConfig.from_dict(CONFIG)
    """

    file_paths: FilePathsConfig = field(default_factory=FilePathsConfig)
    performance: PerformanceConfig = field(default_factory=PerformanceConfig)
    containment: ContainmentConfig = field(default_factory=ContainmentConfig)
    offsets: OffsetConfig = field(default_factory=OffsetConfig)
    index: IndexConfig = field(default_factory=IndexConfig)
    rules: RulesConfig = field(default_factory=RulesConfig)
    preflight: PreflightConfig = field(default_factory=PreflightConfig)
    writeback: WritebackConfig = field(default_factory=WritebackConfig)
    health: HealthConfig = field(default_factory=HealthConfig)

    # Raw config dict, kept for reports
    _raw_config: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> "AppConfig":
        """
        Create AppConfig from the CONFIG dictionary.

        Missing sections fall back to defaults, so partial dicts are valid.

        Args:
            config_dict: The CONFIG dictionary from config.py.

        Returns:
            AppConfig instance with all settings populated.

        Raises:
            ConfigurationError: If any setting is invalid.
        """
        return cls(
            file_paths=FilePathsConfig.from_dict(config_dict.get("file_paths", {})),
            performance=PerformanceConfig.from_dict(config_dict.get("performance", {})),
            containment=ContainmentConfig.from_dict(config_dict.get("containment", {})),
            offsets=OffsetConfig.from_dict(config_dict.get("offsets", {})),
            index=IndexConfig.from_dict(config_dict.get("index", {})),
            rules=RulesConfig.from_dict(config_dict.get("rules", {})),
            preflight=PreflightConfig.from_dict(config_dict.get("preflight", {})),
            writeback=WritebackConfig.from_dict(config_dict.get("writeback", {})),
            health=HealthConfig.from_dict(config_dict.get("health", {})),
            _raw_config=config_dict,
        )

    def replace(self, **sections: Any) -> "AppConfig":
        """Copy with whole sections replaced (e.g. performance=...)."""
        return dataclasses.replace(self, **sections)


def _normalize_config(config: Any) -> AppConfig:
    """
    Normalize config to AppConfig for internal use.

    Accepts a raw CONFIG dictionary, an AppConfig, or None (defaults).
    """
    if isinstance(config, AppConfig):
        return config
    if config is None:
        return AppConfig()
    return AppConfig.from_dict(config)


__all__ = [
    "FilePathsConfig",
    "PerformanceConfig",
    "ContainmentConfig",
    "OffsetConfig",
    "IndexConfig",
    "RulesConfig",
    "PreflightConfig",
    "WritebackConfig",
    "HealthConfig",
    "AppConfig",
]
