"""
Exception hierarchy and per-element failure kinds.

Per-element outcomes (missing geometry, degenerate zones, unmatched targets,
failed writes) are recorded as FailureKind values on results and summaries.
Only configuration problems and unrecoverable collaborator failures are
raised.
"""

from enum import Enum
from typing import Optional


class FailureKind(Enum):
    """Recoverable per-element failure, recorded and counted, never raised."""

    NO_GEOMETRY = "no_geometry"
    DEGENERATE_VOLUME = "degenerate_volume"
    NO_RULE_MATCH = "no_rule_match"
    WRITE_FAILURE = "write_failure"

    @classmethod
    def from_string(cls, s: str) -> "FailureKind":
        """Convert string to FailureKind.

        Raises:
            ValueError: If the string names no failure kind
        """
        for member in cls:
            if member.value == s:
                return member
        raise ValueError(f"Unknown failure kind: {s!r}")


class SpaceMapperError(Exception):
    """Base class for all space mapper errors."""


class ConfigurationError(SpaceMapperError, ValueError):
    """Invalid settings, rules or offsets. Raised before any work starts."""


class CollaboratorError(SpaceMapperError):
    """Unrecoverable failure inside a model source or property service."""


class RunAbortedError(SpaceMapperError):
    """A run stopped because a collaborator failed.

    Attributes:
        phase: Run phase that failed ("zones", "matching", "writeback").
        last_successful_batch: Highest batch index such that every batch up to
            and including it completed, or None if none did.
    """

    def __init__(
        self,
        message: str,
        phase: str,
        last_successful_batch: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.phase = phase
        self.last_successful_batch = last_successful_batch

    def __str__(self) -> str:
        base = super().__str__()
        return (
            f"{base} (phase={self.phase}, "
            f"last_successful_batch={self.last_successful_batch})"
        )


__all__ = [
    "FailureKind",
    "SpaceMapperError",
    "ConfigurationError",
    "CollaboratorError",
    "RunAbortedError",
]
