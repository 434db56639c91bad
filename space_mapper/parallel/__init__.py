"""
Parallel batch matching.

Modules:
- cancellation: CancellationToken for cooperative cancellation
- batch_worker: Per-batch extract → match → resolve worker
- batch_scheduler: Deterministic partitioning and joblib thread dispatch
"""

from .cancellation import CancellationToken
from .batch_worker import Batch, BatchOutcome, TargetPipeline, process_batch, process_target
from .batch_scheduler import (
    BatchScheduler,
    ScheduleOutcome,
    get_effective_worker_count,
    partition_targets,
)

__all__ = [
    "CancellationToken",
    "Batch",
    "BatchOutcome",
    "TargetPipeline",
    "process_batch",
    "process_target",
    "BatchScheduler",
    "ScheduleOutcome",
    "get_effective_worker_count",
    "partition_targets",
]
