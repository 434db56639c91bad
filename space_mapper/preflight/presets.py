"""
Performance presets.

Architectural Overview:
    Responsibility: Map a PerformancePreset to concrete settings (grid
        granularity, footprint tests) and resolve AUTO from workload size.
        Pure functions: same inputs, same preset.
    Key Interactions:
        - engine.prepare_run() applies preset_settings()
        - preflight.estimator resolves AUTO from its projections
    For Navigation: Use Ctrl+Shift+O → resolve_preset
"""

from dataclasses import dataclass
from typing import Dict, Optional

from space_mapper.models.data_models import PerformancePreset

# AUTO thresholds
FAST_PAIR_THRESHOLD = 20_000_000
FAST_TARGET_THRESHOLD = 250_000
ACCURATE_PAIR_THRESHOLD = 2_000_000
ACCURATE_ZONE_THRESHOLD = 5_000


@dataclass(frozen=True)
class PresetSettings:
    """Concrete settings a preset stands for."""

    granularity: float
    use_hull: bool
    description: str


PRESET_SETTINGS: Dict[PerformancePreset, PresetSettings] = {
    PerformancePreset.FAST: PresetSettings(
        granularity=0.25,
        use_hull=False,
        description="Fast: coarse grid, bounding-box containment only.",
    ),
    PerformancePreset.NORMAL: PresetSettings(
        granularity=0.5,
        use_hull=True,
        description="Normal: balanced grid, footprint containment where available.",
    ),
    PerformancePreset.ACCURATE: PresetSettings(
        granularity=0.75,
        use_hull=True,
        description="Accurate: fine grid, footprint containment where available.",
    ),
}


def resolve_preset(
    preset: PerformancePreset,
    projected_pairs: Optional[float] = None,
    target_count: Optional[int] = None,
    zone_count: Optional[int] = None,
) -> PerformancePreset:
    """
    Resolve AUTO to a concrete preset; other presets pass through.

    AUTO → FAST when projected pairs ≥ 20M or targets ≥ 250k,
    ACCURATE when projected pairs ≤ 2M and zones ≤ 5000, otherwise NORMAL.
    Without a pair projection only the target threshold is applied.
    """
    if preset is not PerformancePreset.AUTO:
        return preset

    targets = target_count or 0
    if targets >= FAST_TARGET_THRESHOLD:
        return PerformancePreset.FAST
    if projected_pairs is None:
        return PerformancePreset.NORMAL
    if projected_pairs >= FAST_PAIR_THRESHOLD:
        return PerformancePreset.FAST
    if projected_pairs <= ACCURATE_PAIR_THRESHOLD and (zone_count or 0) <= ACCURATE_ZONE_THRESHOLD:
        return PerformancePreset.ACCURATE
    return PerformancePreset.NORMAL


def preset_settings(preset: PerformancePreset) -> PresetSettings:
    """Settings for a concrete preset (unresolved AUTO behaves as NORMAL)."""
    if preset is PerformancePreset.AUTO:
        return PRESET_SETTINGS[PerformancePreset.NORMAL]
    return PRESET_SETTINGS[preset]


__all__ = [
    "FAST_PAIR_THRESHOLD",
    "FAST_TARGET_THRESHOLD",
    "ACCURATE_PAIR_THRESHOLD",
    "ACCURATE_ZONE_THRESHOLD",
    "PresetSettings",
    "PRESET_SETTINGS",
    "resolve_preset",
    "preset_settings",
]
