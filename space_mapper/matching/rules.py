"""
Rule resolution.

ARCHITECTURAL OVERVIEW:
=======================
Responsibility: Decide which of a target's containing zones it is finally
mapped to, by evaluating the template's rules in priority order.

Evaluation:
- Disabled rules are skipped.
- Enabled rules are walked in priority order (ASCENDING: lower number first,
  DESCENDING: higher number first); equal priorities keep declaration order.
- A rule "accepts" when it accepts the target (definition / level filters)
  and at least one containing zone (category filter).
- The accepting rule's membership mode decides what happens:
    FIRST_MATCH       its zones are kept and evaluation stops
    ALL_MATCHES       its zones are kept and evaluation continues
    HIGHEST_PRIORITY  exclusive group: after all rules are evaluated only the
                      best-priority accepting HIGHEST_PRIORITY rule's zones
                      are kept
- Each rule sees only the zones its zone_membership admits: contained,
  partially overlapping, or both. With treat_partial_as_contained every
  overlapping zone counts as contained.
- Kept zones are returned in rule order, then zone enumeration order, without
  duplicates. No accepting rule means an empty result, which is an
  unmatched target, not an error.
- In single-zone mode the kept zones collapse to the best one: contained
  beats partial, then the resolution strategy decides (first match by zone
  order, largest box overlap, or most specific by smallest zone volume),
  ties falling through to smaller zone volume, closer zone centre, and zone
  order.

For Navigation: Use VS Code outline (Ctrl+Shift+O)
"""

import logging
from dataclasses import dataclass
import math
from typing import Iterable, List, Optional, Sequence, Set, Tuple

from space_mapper.errors import ConfigurationError
from space_mapper.models.data_models import (
    Element,
    MappingRule,
    MembershipMode,
    PriorityOrder,
    ZoneMembership,
    ZoneResolutionStrategy,
)
from space_mapper.models.geometry import BoundingVolume

logger = logging.getLogger("SpaceMapper.Matching.Rules")


# ═══════════════════════════════════════════════════════════════════════════
# ✅ VALIDATION & ORDERING
# ═══════════════════════════════════════════════════════════════════════════


def validate_rules(rules: Iterable[MappingRule]) -> None:
    """
    Reject malformed rules before a run starts.

    Raises:
        ConfigurationError: On an empty name or min_level > max_level.
    """
    rules = list(rules)
    for i, rule in enumerate(rules):
        if not rule.name or not rule.name.strip():
            raise ConfigurationError(f"rules[{i}] has an empty name")
        if (
            rule.min_level is not None
            and rule.max_level is not None
            and rule.min_level > rule.max_level
        ):
            raise ConfigurationError(
                f"rule {rule.name!r}: min_level ({rule.min_level}) > max_level ({rule.max_level})"
            )
    if not any(rule.enabled for rule in rules):
        logger.warning("⚠️ No enabled mapping rules: every target will be unmatched")


def order_rules(
    rules: Iterable[MappingRule],
    priority_order: PriorityOrder = PriorityOrder.ASCENDING,
) -> List[MappingRule]:
    """Enabled rules in evaluation order (stable for equal priorities)."""
    indexed = [(i, rule) for i, rule in enumerate(rules) if rule.enabled]
    if priority_order is PriorityOrder.ASCENDING:
        indexed.sort(key=lambda item: (item[1].priority, item[0]))
    elif priority_order is PriorityOrder.DESCENDING:
        indexed.sort(key=lambda item: (-item[1].priority, item[0]))
    else:
        raise ValueError(f"Unhandled PriorityOrder: {priority_order!r}")
    return [rule for _, rule in indexed]


# ═══════════════════════════════════════════════════════════════════════════
# 🧮 RESOLUTION
# ═══════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class ResolvedZones:
    """Rule resolution outcome for one target."""

    zone_positions: Tuple[int, ...] = ()
    zone_keys: Tuple[str, ...] = ()
    rules_evaluated: int = 0
    accepting_rules: Tuple[str, ...] = ()
    partial_zone_keys: Tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.zone_keys


class RuleResolver:
    """
    Applies ordered rules to a target's containing and overlapping zones.

    Args:
        rules: Template rules (disabled ones are ignored).
        zone_elements: Zone elements aligned with index positions.
        priority_order: Priority comparison direction.
        zone_volumes: Effective zone boxes aligned with index positions, used
            to pick the best zone in single-zone mode.
        enable_multiple_zones: False keeps only the best zone per target.
        resolution_strategy: Best-zone strategy in single-zone mode.
        treat_partial_as_contained: Merge overlapping zones into contained.
    """

    def __init__(
        self,
        rules: Iterable[MappingRule],
        zone_elements: Sequence[Element],
        priority_order: PriorityOrder = PriorityOrder.ASCENDING,
        zone_volumes: Optional[Sequence[BoundingVolume]] = None,
        enable_multiple_zones: bool = True,
        resolution_strategy: ZoneResolutionStrategy = ZoneResolutionStrategy.MOST_SPECIFIC,
        treat_partial_as_contained: bool = False,
    ) -> None:
        self.rules = order_rules(rules, priority_order)
        self.zone_elements = tuple(zone_elements)
        self.priority_order = priority_order
        self.zone_volumes = tuple(zone_volumes) if zone_volumes is not None else None
        if self.zone_volumes is not None and len(self.zone_volumes) != len(self.zone_elements):
            raise ConfigurationError(
                f"{len(self.zone_volumes)} zone volumes for {len(self.zone_elements)} zones"
            )
        self.enable_multiple_zones = enable_multiple_zones
        self.resolution_strategy = resolution_strategy
        self.treat_partial_as_contained = treat_partial_as_contained

    @property
    def needs_partial(self) -> bool:
        """True when some rule or setting looks at partially overlapping zones."""
        return self.treat_partial_as_contained or any(
            rule.zone_membership is ZoneMembership.PARTIAL_ONLY for rule in self.rules
        )

    # ═══════════════════════════════════════════════════════════════════════
    # 🧩 MEMBERSHIP
    # ═══════════════════════════════════════════════════════════════════════

    @staticmethod
    def _eligible(
        membership: ZoneMembership, inside: Sequence[int], touching: Sequence[int]
    ) -> List[int]:
        if membership is ZoneMembership.CONTAINED_ONLY:
            return list(inside)
        if membership is ZoneMembership.PARTIAL_ONLY:
            return list(touching)
        if membership is ZoneMembership.CONTAINED_AND_PARTIAL:
            return sorted(set(inside) | set(touching))
        raise ValueError(f"Unhandled ZoneMembership: {membership!r}")

    # ═══════════════════════════════════════════════════════════════════════
    # 🏆 BEST ZONE
    # ═══════════════════════════════════════════════════════════════════════

    def _best_zone(
        self,
        positions: Sequence[int],
        inside: Set[int],
        target_volume: Optional[BoundingVolume],
    ) -> int:
        def rank(pos: int) -> Tuple[float, ...]:
            not_inside = 0.0 if pos in inside else 1.0
            if self.resolution_strategy is ZoneResolutionStrategy.FIRST_MATCH:
                return (not_inside, pos)

            zone_box = self.zone_volumes[pos] if self.zone_volumes is not None else None
            zone_size = zone_box.volume if zone_box is not None else math.inf
            if zone_box is not None and target_volume is not None:
                cx, cy, cz = target_volume.center
                zx, zy, zz = zone_box.center
                distance = (cx - zx) ** 2 + (cy - zy) ** 2 + (cz - zz) ** 2
            else:
                distance = math.inf

            if self.resolution_strategy is ZoneResolutionStrategy.LARGEST_OVERLAP:
                overlap = (
                    zone_box.overlap_volume(target_volume)
                    if zone_box is not None and target_volume is not None
                    else 0.0
                )
                return (not_inside, -overlap, zone_size, distance, pos)
            if self.resolution_strategy is ZoneResolutionStrategy.MOST_SPECIFIC:
                return (not_inside, zone_size, distance, pos)
            raise ValueError(f"Unhandled ZoneResolutionStrategy: {self.resolution_strategy!r}")

        return min(positions, key=rank)

    # ═══════════════════════════════════════════════════════════════════════
    # 🧮 RESOLVE
    # ═══════════════════════════════════════════════════════════════════════

    def resolve(
        self,
        target: Element,
        contained: Sequence[int],
        partial: Sequence[int] = (),
        target_volume: Optional[BoundingVolume] = None,
    ) -> ResolvedZones:
        """
        Resolve a target's containing and overlapping zones to its final set.

        Args:
            target: Target element.
            contained: Containing zone positions in ascending order.
            partial: Partially overlapping zone positions in ascending order.
            target_volume: Target box (NoGeometry is ignored), used for the best-zone
                choice in single-zone mode.
        """
        if not contained and not partial:
            return ResolvedZones()

        partial_set = set(partial)
        if self.treat_partial_as_contained:
            inside: List[int] = sorted(set(contained) | partial_set)
            touching: List[int] = []
        else:
            inside = list(contained)
            touching = list(partial)

        contributions: List[Tuple[int, List[int]]] = []
        exclusive: Optional[Tuple[int, List[int]]] = None
        accepting: List[str] = []
        evaluated = 0

        for order, rule in enumerate(self.rules):
            evaluated += 1
            if not rule.accepts_target(target):
                continue
            eligible = self._eligible(rule.zone_membership, inside, touching)
            zones = [pos for pos in eligible if rule.accepts_zone(self.zone_elements[pos])]
            if not zones:
                continue
            accepting.append(rule.name)

            if rule.membership is MembershipMode.FIRST_MATCH:
                contributions.append((order, zones))
                break
            elif rule.membership is MembershipMode.ALL_MATCHES:
                contributions.append((order, zones))
            elif rule.membership is MembershipMode.HIGHEST_PRIORITY:
                if exclusive is None:
                    exclusive = (order, zones)
            else:
                raise ValueError(f"Unhandled MembershipMode: {rule.membership!r}")

        if exclusive is not None:
            contributions.append(exclusive)
        contributions.sort(key=lambda item: item[0])

        positions: List[int] = []
        seen = set()
        for _, zones in contributions:
            for pos in zones:
                if pos not in seen:
                    seen.add(pos)
                    positions.append(pos)

        if not self.enable_multiple_zones and len(positions) > 1:
            volume = target_volume if isinstance(target_volume, BoundingVolume) else None
            positions = [self._best_zone(positions, set(inside), volume)]

        return ResolvedZones(
            zone_positions=tuple(positions),
            zone_keys=tuple(self.zone_elements[pos].key for pos in positions),
            rules_evaluated=evaluated,
            accepting_rules=tuple(accepting),
            partial_zone_keys=tuple(
                self.zone_elements[pos].key for pos in positions if pos in partial_set
            ),
        )


__all__ = ["validate_rules", "order_rules", "ResolvedZones", "RuleResolver"]
