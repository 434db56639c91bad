"""
Space Mapper

Spatial containment mapping: assigns each target element to the zones whose
(offset) volume contains it and writes zone values back onto the targets.
"""

from space_mapper.config import CONFIG
from space_mapper.engine import prepare_run, run_preflight, run_space_mapping

__all__ = ["run_space_mapping", "run_preflight", "prepare_run", "CONFIG"]
