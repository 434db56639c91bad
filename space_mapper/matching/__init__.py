"""Containment matching and rule resolution."""

from .containment import EMPTY_OUTCOME, ContainmentMatcher, MatchOutcome, representative_points
from .rules import ResolvedZones, RuleResolver, order_rules, validate_rules

__all__ = [
    "EMPTY_OUTCOME",
    "ContainmentMatcher",
    "MatchOutcome",
    "representative_points",
    "ResolvedZones",
    "RuleResolver",
    "order_rules",
    "validate_rules",
]
