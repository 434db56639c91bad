"""
Scheduler for batched, multi-threaded target matching.

ARCHITECTURAL OVERVIEW:
=======================
Responsibility: Partition targets into deterministic batches, dispatch them
to a bounded pool of worker threads and assemble the per-target results in
the original target order.

Follows the orchestrator/worker split:
- get_effective_worker_count() bounds the pool by config, host and job count
- joblib Parallel with delayed, threading backend (the extractor memo, grid
  index and matcher are shared in-process, read-only)
- Always uses the parallel infrastructure (n_jobs=1 for sequential execution)
- Result collection with error aggregation

Determinism:
- Batches are contiguous slices in input order, so the same inputs and batch
  size always give the same batches
- Each result is written to its target's original position, so thread count
  and completion order never change the output

Cancellation:
- CancellationToken is polled by workers; a cancelled run returns the results
  gathered so far, still in original order, flagged cancelled
- A collaborator failure in any batch stops the others and raises
  RunAbortedError carrying the last contiguous successful batch index

Key Functions:
- partition_targets(): Deterministic batch slicing
- get_effective_worker_count(): Pool size
- BatchScheduler.run(): Main entry point

For Navigation: Use VS Code outline (Ctrl+Shift+O)
"""

import logging
import os
import threading
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from joblib import Parallel, delayed

from space_mapper.config_types import PerformanceConfig
from space_mapper.errors import RunAbortedError
from space_mapper.models.data_models import Element
from space_mapper.models.run_stats import RunResult
from space_mapper.parallel.batch_worker import (
    Batch,
    BatchOutcome,
    TargetPipeline,
    process_batch,
)
from space_mapper.parallel.cancellation import CancellationToken

logger = logging.getLogger("SpaceMapper.Parallel.Scheduler")

ProgressCallback = Callable[[int, int], None]


# ═══════════════════════════════════════════════════════════════════════════
# 🧮 BATCH PARTITIONING
# ═══════════════════════════════════════════════════════════════════════════


def partition_targets(targets: Sequence[Element], batch_size: int) -> List[Batch]:
    """
    Split targets into contiguous batches of at most ``batch_size``.

    Example:
        >>> [len(b.targets) for b in partition_targets(list_of_10, 4)]
        [4, 4, 2]

    Raises:
        ValueError: If batch_size < 1.
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be >= 1, got {batch_size}")
    return [
        Batch(index=i, start=start, targets=targets[start : start + batch_size])
        for i, start in enumerate(range(0, len(targets), batch_size))
    ]


# ═══════════════════════════════════════════════════════════════════════════
# 🔍 WORKER COUNT
# ═══════════════════════════════════════════════════════════════════════════


def get_effective_worker_count(
    n_batches: int,
    max_threads: int = -1,
    optimal_workers_default: int = 8,
) -> int:
    """
    Calculate the worker thread count.

    Args:
        n_batches: Number of batches to process.
        max_threads: Configured ceiling (-1 = auto-detect).
        optimal_workers_default: Auto-detect ceiling.

    Returns:
        Number of workers, at least 1, at most the host CPU count and at
        most n_batches (when > 0).
    """
    cpu_count = os.cpu_count() or 4
    if max_threads == -1:
        # Auto-detect based on CPU cores
        max_threads = optimal_workers_default

    workers = max(1, min(max_threads, cpu_count))
    if n_batches > 0:
        # Don't use more workers than batches
        workers = min(workers, n_batches)
    return workers


# ═══════════════════════════════════════════════════════════════════════════
# 📦 SCHEDULE OUTCOME
# ═══════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class ScheduleOutcome:
    """Ordered results of one scheduling pass."""

    results: Tuple[RunResult, ...]
    targets_requested: int
    batches_total: int
    batches_completed: int
    last_successful_batch: Optional[int]
    cancelled: bool
    n_workers: int
    elapsed_s: float


def _last_contiguous(completed: Sequence[bool]) -> Optional[int]:
    """Highest i such that batches 0..i all completed, None if batch 0 did not."""
    last = None
    for i, done in enumerate(completed):
        if not done:
            break
        last = i
    return last


# ═══════════════════════════════════════════════════════════════════════════
# 🚀 SCHEDULER
# ═══════════════════════════════════════════════════════════════════════════


class BatchScheduler:
    """
    Dispatches target batches to worker threads.

    Args:
        pipeline: Run-scoped extractor / matcher / resolver.
        performance: Thread and batch settings (defaults for run()).
    """

    def __init__(
        self,
        pipeline: TargetPipeline,
        performance: Optional[PerformanceConfig] = None,
    ) -> None:
        self.pipeline = pipeline
        self.performance = performance or PerformanceConfig()

    def run(
        self,
        targets: Sequence[Element],
        batch_size: Optional[int] = None,
        max_threads: Optional[int] = None,
        cancel_token: Optional[CancellationToken] = None,
        sampled: bool = False,
        progress: Optional[ProgressCallback] = None,
    ) -> ScheduleOutcome:
        """
        Match every target, in batches, on a bounded thread pool.

        Args:
            targets: Targets in enumeration order.
            batch_size: Targets per batch (default from config).
            max_threads: Thread ceiling, -1 = auto (default from config).
            cancel_token: Optional cooperative cancellation.
            sampled: Mark results as preflight samples.
            progress: Called as progress(batches_done, batches_total).

        Returns:
            ScheduleOutcome with results in original target order.

        Raises:
            RunAbortedError: If a collaborator failed in any batch.
        """
        batch_size = batch_size if batch_size is not None else self.performance.batch_size
        max_threads = max_threads if max_threads is not None else self.performance.max_threads
        cancel_token = cancel_token or CancellationToken()

        batches = partition_targets(targets, batch_size)
        n_workers = get_effective_worker_count(
            len(batches), max_threads, self.performance.optimal_workers_default
        )
        slots: List[Optional[RunResult]] = [None] * len(targets)
        completed = [False] * len(batches)
        abort_event = threading.Event()
        lock = threading.Lock()
        done_count = [0]

        def run_one(batch: Batch) -> BatchOutcome:
            outcome = process_batch(
                batch,
                self.pipeline,
                cancel_token,
                abort_event,
                sampled=sampled,
                cancel_check_interval=self.performance.cancel_check_interval,
            )
            for offset, result in enumerate(outcome.results):
                slots[batch.start + offset] = result
            with lock:
                completed[batch.index] = outcome.completed
                done_count[0] += 1
                if progress is not None:
                    progress(done_count[0], len(batches))
            return outcome

        logger.info(
            f"🚀 Dispatching {len(targets)} targets in {len(batches)} batches "
            f"to {n_workers} worker threads..."
        )
        start = time.perf_counter()
        outcomes: List[BatchOutcome] = list(
            Parallel(
                n_jobs=n_workers,
                backend="threading",
                verbose=self.performance.verbose,
            )(delayed(run_one)(batch) for batch in batches)
        )
        elapsed = time.perf_counter() - start

        failures = self._collect_results(outcomes)
        if failures:
            last_ok = _last_contiguous(completed)
            raise RunAbortedError(
                f"{len(failures)} batch(es) failed; first: {failures[0]}",
                phase="matching",
                last_successful_batch=last_ok,
            )

        results = tuple(r for r in slots if r is not None)
        cancelled = cancel_token.is_cancelled and len(results) < len(targets)
        if cancelled:
            logger.warning(
                f"⚠️ Run cancelled: {len(results)}/{len(targets)} targets processed"
            )
        logger.info(f"   ⏱️ Matching completed in {elapsed:.2f}s")

        return ScheduleOutcome(
            results=results,
            targets_requested=len(targets),
            batches_total=len(batches),
            batches_completed=sum(completed),
            last_successful_batch=_last_contiguous(completed),
            cancelled=cancelled,
            n_workers=n_workers,
            elapsed_s=elapsed,
        )

    # ═══════════════════════════════════════════════════════════════════════
    # 📦 RESULT COLLECTION
    # ═══════════════════════════════════════════════════════════════════════

    @staticmethod
    def _collect_results(outcomes: Sequence[BatchOutcome]) -> List[str]:
        """Count batch outcomes and return the error messages of failed ones."""
        errors = []
        success_count = 0
        cancelled_count = 0
        for outcome in outcomes:
            if outcome.error is not None:
                errors.append(f"batch {outcome.batch_index}: {outcome.error}")
                logger.warning(f"⚠️ Batch {outcome.batch_index}: {outcome.error}")
            elif outcome.cancelled:
                cancelled_count += 1
            else:
                success_count += 1
        logger.info(
            f"📦 Collected {success_count} batches, {cancelled_count} cancelled, "
            f"{len(errors)} errors"
        )
        return errors


__all__ = [
    "partition_targets",
    "get_effective_worker_count",
    "ScheduleOutcome",
    "BatchScheduler",
]
