"""
Worker function for processing one batch of targets.

ARCHITECTURAL OVERVIEW:
=======================
Responsibility: Run extract → match → resolve for every target of a batch.
THIN WRAPPER pattern - calls existing components from:
- geometry.extractor: GeometryExtractor.extract_volume()
- matching.containment: ContainmentMatcher.match()
- matching.rules: RuleResolver.resolve()

Follows the orchestrator/worker split:
- Return a BatchOutcome with success/error status instead of raising
- No business logic duplication
- Per-target recoverable failures (no geometry, no rule match) are recorded
  on the RunResult and never stop the batch
- Unrecoverable collaborator failures end the batch and are reported back
  to the scheduler, which aborts the run

For Navigation: Use VS Code outline (Ctrl+Shift+O)
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from space_mapper.errors import CollaboratorError, FailureKind
from space_mapper.geometry.extractor import GeometryExtractor
from space_mapper.matching.containment import ContainmentMatcher
from space_mapper.matching.rules import RuleResolver
from space_mapper.models.data_models import Element
from space_mapper.models.geometry import NoGeometry
from space_mapper.models.run_stats import RunResult, no_geometry_result
from space_mapper.parallel.cancellation import CancellationToken


# ═══════════════════════════════════════════════════════════════════════════
# 📦 BATCH TYPES
# ═══════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class Batch:
    """Contiguous slice of the target list."""

    index: int
    start: int
    targets: Sequence[Element]

    @property
    def stop(self) -> int:
        return self.start + len(self.targets)


@dataclass(frozen=True)
class TargetPipeline:
    """Run-scoped components shared read-only by all workers."""

    extractor: GeometryExtractor
    matcher: ContainmentMatcher
    resolver: RuleResolver


@dataclass
class BatchOutcome:
    """What a worker returns for one batch."""

    batch_index: int
    start: int
    results: List[RunResult] = field(default_factory=list)
    completed: bool = False
    cancelled: bool = False
    error: Optional[str] = None
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return self.error is None


# ═══════════════════════════════════════════════════════════════════════════
# 🔧 WORKER LOGGING SETUP
# ═══════════════════════════════════════════════════════════════════════════


def _setup_worker_logging(batch_index: int) -> logging.Logger:
    """Named logger per batch so interleaved thread output stays attributable."""
    return logging.getLogger(f"SpaceMapper.Worker.batch{batch_index:05d}")


# ═══════════════════════════════════════════════════════════════════════════
# 🎯 PER-TARGET PROCESSING
# ═══════════════════════════════════════════════════════════════════════════


def process_target(target: Element, pipeline: TargetPipeline, sampled: bool = False) -> RunResult:
    """
    Match one target to its zones.

    Raises:
        CollaboratorError: If the model source fails unrecoverably.
    """
    extraction = pipeline.extractor.extract_volume(target)
    if isinstance(extraction, NoGeometry):
        return no_geometry_result(target.key, sampled)

    outcome = pipeline.matcher.match(extraction)
    resolved = pipeline.resolver.resolve(target, outcome.contained, outcome.partial, extraction)
    return RunResult(
        target_key=target.key,
        matched_zone_keys=resolved.zone_keys,
        match_count=len(resolved.zone_keys),
        had_bounds=True,
        was_sampled=sampled,
        candidate_count=outcome.candidate_count,
        contained_count=len(outcome.contained),
        failure=None if resolved.zone_keys else FailureKind.NO_RULE_MATCH,
        partial_zone_keys=resolved.partial_zone_keys,
    )


# ═══════════════════════════════════════════════════════════════════════════
# 🚀 MAIN WORKER FUNCTION
# ═══════════════════════════════════════════════════════════════════════════


def process_batch(
    batch: Batch,
    pipeline: TargetPipeline,
    cancel_token: CancellationToken,
    abort_event: threading.Event,
    sampled: bool = False,
    cancel_check_interval: int = 64,
) -> BatchOutcome:
    """
    Process every target of one batch.

    Cancellation (user token or run abort) is checked before the batch starts
    and every ``cancel_check_interval`` targets; a cancelled batch returns
    the results it already has.

    Args:
        batch: Targets to process.
        pipeline: Shared extractor / matcher / resolver.
        cancel_token: User cancellation.
        abort_event: Set by any worker whose collaborator failed.
        sampled: Mark results as preflight samples.
        cancel_check_interval: Targets between cancellation polls.

    Returns:
        BatchOutcome, never raises for collaborator failures.
    """
    worker_log = _setup_worker_logging(batch.index)
    outcome = BatchOutcome(batch_index=batch.index, start=batch.start)
    start_time = time.perf_counter()

    def should_stop() -> bool:
        return cancel_token.is_cancelled or abort_event.is_set()

    if should_stop():
        outcome.cancelled = True
        return outcome

    try:
        for i, target in enumerate(batch.targets):
            if i and i % cancel_check_interval == 0 and should_stop():
                outcome.cancelled = True
                worker_log.debug(f"Cancelled after {i}/{len(batch.targets)} targets")
                break
            outcome.results.append(process_target(target, pipeline, sampled))
        else:
            outcome.completed = True
    except CollaboratorError as e:
        abort_event.set()
        outcome.error = f"{type(e).__name__}: {e}"
        worker_log.error(f"❌ Batch {batch.index} failed: {outcome.error}")

    outcome.duration_seconds = time.perf_counter() - start_time
    return outcome


__all__ = [
    "Batch",
    "TargetPipeline",
    "BatchOutcome",
    "process_target",
    "process_batch",
]
