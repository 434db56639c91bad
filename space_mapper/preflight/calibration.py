"""
Runtime calibration.

ARCHITECTURAL OVERVIEW:
=======================
Responsibility: Keep per-host timing coefficients (seconds per candidate
pair, seconds per property write, fixed overhead) that turn workload counts
into a runtime estimate, and refine them from observed runs with an
exponential moving average.

RuntimeCalibration is an immutable value passed explicitly to whoever needs
it; update_calibration() returns a new instance. Persistence is opt-in via
load_calibration() / save_calibration() (JSON guarded by a file lock, since
several runs may finish at once).

For Navigation: Use VS Code outline (Ctrl+Shift+O)
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Union

import filelock

logger = logging.getLogger("SpaceMapper.Preflight.Calibration")

CALIBRATION_FILENAME = "space_mapper_calibration.json"


# ═══════════════════════════════════════════════════════════════════════════
# 📏 CALIBRATION VALUE
# ═══════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class RuntimeCalibration:
    """Timing coefficients for runtime estimates."""

    seconds_per_candidate_pair: float = 8e-8
    seconds_per_write: float = 2e-5
    fixed_seconds: float = 1.0
    samples: int = 0

    def estimate_seconds(self, candidate_pairs: float, writes: float) -> float:
        return (
            self.fixed_seconds
            + candidate_pairs * self.seconds_per_candidate_pair
            + writes * self.seconds_per_write
        )

    @property
    def confidence(self) -> float:
        """Grows with the number of observed runs, capped at 1.0."""
        return min(1.0, 0.2 + 0.15 * self.samples)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "seconds_per_candidate_pair": self.seconds_per_candidate_pair,
            "seconds_per_write": self.seconds_per_write,
            "fixed_seconds": self.fixed_seconds,
            "samples": self.samples,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "RuntimeCalibration":
        return cls(
            seconds_per_candidate_pair=float(d.get("seconds_per_candidate_pair", 8e-8)),
            seconds_per_write=float(d.get("seconds_per_write", 2e-5)),
            fixed_seconds=float(d.get("fixed_seconds", 1.0)),
            samples=int(d.get("samples", 0)),
        )


def confidence_label(confidence: float) -> str:
    """Low (< 0.45), Medium (< 0.75) or High."""
    if confidence < 0.45:
        return "Low"
    if confidence < 0.75:
        return "Medium"
    return "High"


def _ema(previous: float, observed: float, alpha: float) -> float:
    return previous * (1.0 - alpha) + observed * alpha


def update_calibration(
    calibration: RuntimeCalibration,
    match_seconds: float,
    candidate_pairs: int,
    write_seconds: float = 0.0,
    writes: int = 0,
) -> RuntimeCalibration:
    """
    Blend one observed run into the calibration.

    The smoothing factor is 0.35 for the first five observations and 0.15
    afterwards, so early runs move the estimate quickly.
    """
    alpha = 0.35 if calibration.samples < 5 else 0.15
    per_pair = calibration.seconds_per_candidate_pair
    per_write = calibration.seconds_per_write

    if candidate_pairs > 0 and match_seconds > 0:
        per_pair = _ema(per_pair, match_seconds / candidate_pairs, alpha)
    if writes > 0 and write_seconds > 0:
        per_write = _ema(per_write, write_seconds / writes, alpha)

    return RuntimeCalibration(
        seconds_per_candidate_pair=per_pair,
        seconds_per_write=per_write,
        fixed_seconds=calibration.fixed_seconds,
        samples=calibration.samples + 1,
    )


# ═══════════════════════════════════════════════════════════════════════════
# 💾 PERSISTENCE
# ═══════════════════════════════════════════════════════════════════════════


def load_calibration(directory: Union[str, Path]) -> RuntimeCalibration:
    """Load calibration from ``directory``, defaults when missing or unreadable."""
    path = Path(directory) / CALIBRATION_FILENAME
    if not path.exists():
        return RuntimeCalibration()
    try:
        with open(path, "r", encoding="utf-8") as f:
            return RuntimeCalibration.from_dict(json.load(f))
    except (OSError, ValueError, TypeError) as e:
        logger.warning(f"⚠️ Ignoring unreadable calibration file {path}: {e}")
        return RuntimeCalibration()


def save_calibration(
    calibration: RuntimeCalibration,
    directory: Union[str, Path],
    lock_timeout_s: float = 30.0,
) -> Path:
    """Write calibration atomically under a file lock. Returns the file path."""
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / CALIBRATION_FILENAME
    lock = filelock.FileLock(str(path) + ".lock", timeout=lock_timeout_s)
    with lock:
        tmp_path = path.with_suffix(".json.tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(calibration.to_dict(), f, indent=2)
        tmp_path.replace(path)
    return path


__all__ = [
    "CALIBRATION_FILENAME",
    "RuntimeCalibration",
    "confidence_label",
    "update_calibration",
    "load_calibration",
    "save_calibration",
]
