"""
Preflight estimation, performance presets and runtime calibration.

Modules:
- presets: PerformancePreset → settings, AUTO resolution
- calibration: Per-host timing coefficients (EMA, file-locked JSON)
- estimator: Seeded sample run and extrapolation
"""

from .presets import PRESET_SETTINGS, PresetSettings, preset_settings, resolve_preset
from .calibration import (
    RuntimeCalibration,
    confidence_label,
    load_calibration,
    save_calibration,
    update_calibration,
)
from .estimator import (
    PreflightEstimator,
    draw_sample,
    estimate_confidence,
    margin_of_error,
    resolve_sample_size,
)

__all__ = [
    "PRESET_SETTINGS",
    "PresetSettings",
    "preset_settings",
    "resolve_preset",
    "RuntimeCalibration",
    "confidence_label",
    "load_calibration",
    "save_calibration",
    "update_calibration",
    "PreflightEstimator",
    "draw_sample",
    "estimate_confidence",
    "margin_of_error",
    "resolve_sample_size",
]
