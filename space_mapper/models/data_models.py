"""
Typed data models for spatial containment mapping.

Architectural Overview:
=======================
Immutable dataclasses describing the inputs of a mapping run: model elements,
zone offsets, mapping rules, property mapping definitions and the reusable
template that bundles them.

Every mode that changes behaviour is a closed Enum. Code branching on a mode
handles every member and raises ValueError on anything else, so adding a
member without handling it fails loudly.

Key Interactions:
-----------------
- Input: sources.* produce Element instances; templates.TemplateStore loads
  MappingTemplate instances from JSON via from_dict()
- Output: as_dict() feeds the template store and run reports
- Navigation: Use VS Code outline (Ctrl+Shift+O) for quick navigation

MODIFICATION POINT: Add new membership or write modes here, then handle them
in matching.rules / writeback.writeback.
"""

import dataclasses
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Tuple


# ═══════════════════════════════════════════════════════════════════════════
# 🏷️ ENUMS SECTION
# ═══════════════════════════════════════════════════════════════════════════


class _LookupEnum(Enum):
    """Enum with case-insensitive lookup by value or member name."""

    @classmethod
    def from_string(cls, s: Any) -> "_LookupEnum":
        """Convert string (or member) to an enum member.

        Args:
            s: Member, value string, or member name (any case)

        Returns:
            Matching enum member

        Raises:
            ValueError: If nothing matches
        """
        if isinstance(s, cls):
            return s
        text = str(s).strip().lower()
        for member in cls:
            if member.value == text or member.name.lower() == text:
                return member
        valid = ", ".join(m.value for m in cls)
        raise ValueError(f"Unknown {cls.__name__} {s!r} (expected one of: {valid})")


class OffsetMode(_LookupEnum):
    """How a zone's own offsets combine with the run-level offsets."""

    ADDITIVE = "additive"  # Per-face distances are summed
    OVERRIDE = "override"  # Zone offsets replace the run-level offsets


class OffsetPrecedence(_LookupEnum):
    """Which of a face value and the uniform value is authoritative."""

    FACE_OVER_UNIFORM = "face_over_uniform"
    UNIFORM_OVER_FACE = "uniform_over_face"


class MembershipMode(_LookupEnum):
    """How an accepting rule contributes zones to a target."""

    FIRST_MATCH = "first_match"
    ALL_MATCHES = "all_matches"
    HIGHEST_PRIORITY = "highest_priority"


class ZoneMembership(_LookupEnum):
    """Which geometric relation a rule accepts between target and zone."""

    CONTAINED_ONLY = "contained_only"
    PARTIAL_ONLY = "partial_only"
    CONTAINED_AND_PARTIAL = "contained_and_partial"


class ZoneResolutionStrategy(_LookupEnum):
    """How a single zone is picked when a target may map to one zone only."""

    MOST_SPECIFIC = "most_specific"  # Smallest zone volume
    LARGEST_OVERLAP = "largest_overlap"
    FIRST_MATCH = "first_match"  # Zone enumeration order


class PriorityOrder(_LookupEnum):
    """Direction in which rule priority numbers are compared."""

    ASCENDING = "ascending"  # Lower number wins
    DESCENDING = "descending"  # Higher number wins


class Strictness(_LookupEnum):
    """Which part of the target must lie inside a zone."""

    CENTROID = "centroid"
    BOTTOM_CENTER = "bottom_center"
    FULL_VOLUME = "full_volume"


class WriteMode(_LookupEnum):
    """How a new value interacts with an existing target property value."""

    OVERWRITE = "overwrite"
    ONLY_IF_BLANK = "only_if_blank"
    APPEND = "append"


class CombineMode(_LookupEnum):
    """How the values of several matched zones become one property value."""

    FIRST = "first"
    CONCATENATE = "concatenate"
    MIN = "min"
    MAX = "max"
    AVERAGE = "average"


class PerformancePreset(_LookupEnum):
    """Speed/precision trade-off for index granularity and footprint tests."""

    FAST = "fast"
    NORMAL = "normal"
    ACCURATE = "accurate"
    AUTO = "auto"


class PropertyLabelMode(_LookupEnum):
    """Whether writes address properties by display or internal names."""

    DISPLAY = "display"
    INTERNAL = "internal"


# ═══════════════════════════════════════════════════════════════════════════
# 📏 OFFSET SPEC
# ═══════════════════════════════════════════════════════════════════════════


def _optional_float(value: Any) -> Optional[float]:
    return None if value is None else float(value)


@dataclass(frozen=True)
class OffsetSpec:
    """Distances by which a zone's faces are moved before containment tests.

    ``top`` raises the ceiling, ``bottom`` lowers the floor and ``sides``
    pushes the four vertical faces outwards. ``uniform`` applies to every
    face that has no value of its own (see OffsetPrecedence). Unset means
    "not specified", which is different from 0.0 when combining specs.
    """

    top: Optional[float] = None
    bottom: Optional[float] = None
    sides: Optional[float] = None
    uniform: Optional[float] = None
    mode: OffsetMode = OffsetMode.ADDITIVE

    @property
    def is_empty(self) -> bool:
        return all(v is None for v in (self.top, self.bottom, self.sides, self.uniform))

    def values(self) -> Tuple[Optional[float], ...]:
        return (self.top, self.bottom, self.sides, self.uniform)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "top": self.top,
            "bottom": self.bottom,
            "sides": self.sides,
            "uniform": self.uniform,
            "mode": self.mode.value,
        }

    @classmethod
    def from_dict(cls, d: Optional[Dict[str, Any]]) -> "OffsetSpec":
        """Create OffsetSpec from dict, missing keys are unset."""
        d = d or {}
        return cls(
            top=_optional_float(d.get("top")),
            bottom=_optional_float(d.get("bottom")),
            sides=_optional_float(d.get("sides")),
            uniform=_optional_float(d.get("uniform")),
            mode=OffsetMode.from_string(d.get("mode", "additive")),
        )


# ═══════════════════════════════════════════════════════════════════════════
# 🧱 ELEMENT
# ═══════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class Element:
    """A model element acting as a zone or a target.

    Geometry is not stored here: it is fetched lazily through the model
    source by the run-scoped GeometryExtractor.

    Attributes:
        key: Stable identity key, unique within one model.
        display_name: Human readable name used in reports.
        category: Zone category (zones) or element category (targets).
        level: Depth in the model's selection tree, None when unknown.
        definitions: Names of the target definitions/sets containing it.
        offset: Zone-specific offsets (zones only).
    """

    key: str
    display_name: str = ""
    category: str = ""
    level: Optional[int] = None
    definitions: Tuple[str, ...] = ()
    offset: Optional[OffsetSpec] = None

    @property
    def label(self) -> str:
        return self.display_name or self.key

    def in_definition(self, name: str) -> bool:
        wanted = name.strip().lower()
        return any(d.strip().lower() == wanted for d in self.definitions)


# ═══════════════════════════════════════════════════════════════════════════
# 🧮 MAPPING RULE
# ═══════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class MappingRule:
    """Filter deciding which (target, zone) candidate pairs are accepted.

    A None filter accepts everything. Level bounds are inclusive and are
    checked against the target's level; a target without a level fails any
    rule that sets a bound. ``zone_membership`` limits the rule to contained
    zones, partially overlapping zones, or both.
    """

    name: str
    target_definition_filter: Optional[str] = None
    zone_category_filter: Optional[str] = None
    min_level: Optional[int] = None
    max_level: Optional[int] = None
    membership: MembershipMode = MembershipMode.FIRST_MATCH
    zone_membership: ZoneMembership = ZoneMembership.CONTAINED_AND_PARTIAL
    priority: int = 0
    enabled: bool = True

    def accepts_target(self, target: Element) -> bool:
        if self.target_definition_filter:
            if not target.in_definition(self.target_definition_filter):
                return False
        if self.min_level is not None or self.max_level is not None:
            if target.level is None:
                return False
            if self.min_level is not None and target.level < self.min_level:
                return False
            if self.max_level is not None and target.level > self.max_level:
                return False
        return True

    def accepts_zone(self, zone: Element) -> bool:
        if not self.zone_category_filter:
            return True
        return zone.category.strip().lower() == self.zone_category_filter.strip().lower()

    def as_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "target_definition_filter": self.target_definition_filter,
            "zone_category_filter": self.zone_category_filter,
            "min_level": self.min_level,
            "max_level": self.max_level,
            "membership": self.membership.value,
            "zone_membership": self.zone_membership.value,
            "priority": self.priority,
            "enabled": self.enabled,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "MappingRule":
        """Create MappingRule from dict.

        Raises:
            KeyError: If name is missing
        """
        return cls(
            name=d["name"],
            target_definition_filter=d.get("target_definition_filter") or None,
            zone_category_filter=d.get("zone_category_filter") or None,
            min_level=d.get("min_level"),
            max_level=d.get("max_level"),
            membership=MembershipMode.from_string(d.get("membership", "first_match")),
            zone_membership=ZoneMembership.from_string(
                d.get("zone_membership", "contained_and_partial")
            ),
            priority=int(d.get("priority", 0)),
            enabled=bool(d.get("enabled", True)),
        )


# ═══════════════════════════════════════════════════════════════════════════
# ✍️ MAPPING DEFINITION
# ═══════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class MappingDefinition:
    """Copies one zone property onto one target property.

    ``zone_property=None`` copies the zone's key instead of a property value.
    Internal names are used instead of the display names when the run asks
    for PropertyLabelMode.INTERNAL and they are set.
    """

    name: str
    target_category: str = "SpaceMapper"
    target_property: str = "Zone"
    zone_category: Optional[str] = None
    zone_property: Optional[str] = None
    target_category_internal: Optional[str] = None
    target_property_internal: Optional[str] = None
    write_mode: WriteMode = WriteMode.OVERWRITE
    append_separator: str = ", "
    combine: CombineMode = CombineMode.FIRST

    @property
    def copies_zone_key(self) -> bool:
        return self.zone_property is None

    def target_labels(self, mode: PropertyLabelMode) -> Tuple[str, str]:
        """(category, property) labels to write with under ``mode``."""
        if mode is PropertyLabelMode.DISPLAY:
            return self.target_category, self.target_property
        if mode is PropertyLabelMode.INTERNAL:
            return (
                self.target_category_internal or self.target_category,
                self.target_property_internal or self.target_property,
            )
        raise ValueError(f"Unhandled PropertyLabelMode: {mode!r}")

    def as_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "target_category": self.target_category,
            "target_property": self.target_property,
            "zone_category": self.zone_category,
            "zone_property": self.zone_property,
            "target_category_internal": self.target_category_internal,
            "target_property_internal": self.target_property_internal,
            "write_mode": self.write_mode.value,
            "append_separator": self.append_separator,
            "combine": self.combine.value,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "MappingDefinition":
        return cls(
            name=d["name"],
            target_category=d.get("target_category", "SpaceMapper"),
            target_property=d.get("target_property", "Zone"),
            zone_category=d.get("zone_category") or None,
            zone_property=d.get("zone_property") or None,
            target_category_internal=d.get("target_category_internal") or None,
            target_property_internal=d.get("target_property_internal") or None,
            write_mode=WriteMode.from_string(d.get("write_mode", "overwrite")),
            append_separator=d.get("append_separator", ", "),
            combine=CombineMode.from_string(d.get("combine", "first")),
        )


# ═══════════════════════════════════════════════════════════════════════════
# 📋 MAPPING TEMPLATE
# ═══════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class PerformanceSettings:
    """Per-template performance choices; None defers to the run config."""

    preset: Optional[PerformancePreset] = None
    max_threads: Optional[int] = None
    batch_size: Optional[int] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "preset": self.preset.value if self.preset is not None else None,
            "max_threads": self.max_threads,
            "batch_size": self.batch_size,
        }

    @classmethod
    def from_dict(cls, d: Optional[Dict[str, Any]]) -> "PerformanceSettings":
        d = d or {}
        preset = d.get("preset")
        return cls(
            preset=PerformancePreset.from_string(preset) if preset else None,
            max_threads=d.get("max_threads"),
            batch_size=d.get("batch_size"),
        )


@dataclass(frozen=True)
class MappingTemplate:
    """Named, versioned bundle of rules, mappings, offsets and performance.

    Templates are immutable: with_changes() returns the next version.

    Usage:
    ------
    ```python
    template = MappingTemplate(name="Default", rules=(MappingRule("All"),))
    v2 = template.with_changes(rules=template.rules + (extra_rule,))
    assert v2.version == template.version + 1
    ```
    """

    name: str
    version: int = 1
    rules: Tuple[MappingRule, ...] = ()
    mappings: Tuple[MappingDefinition, ...] = ()
    offsets: OffsetSpec = field(default_factory=OffsetSpec)
    performance: PerformanceSettings = field(default_factory=PerformanceSettings)

    def with_changes(self, **changes: Any) -> "MappingTemplate":
        """New template version with the given fields replaced."""
        for key in ("rules", "mappings"):
            if key in changes:
                changes[key] = tuple(changes[key])
        return dataclasses.replace(self, version=self.version + 1, **changes)

    def enabled_rules(self) -> Tuple[MappingRule, ...]:
        return tuple(r for r in self.rules if r.enabled)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "rules": [r.as_dict() for r in self.rules],
            "mappings": [m.as_dict() for m in self.mappings],
            "offsets": self.offsets.as_dict(),
            "performance": self.performance.as_dict(),
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "MappingTemplate":
        return cls(
            name=d["name"],
            version=int(d.get("version", 1)),
            rules=tuple(MappingRule.from_dict(r) for r in d.get("rules", [])),
            mappings=tuple(MappingDefinition.from_dict(m) for m in d.get("mappings", [])),
            offsets=OffsetSpec.from_dict(d.get("offsets")),
            performance=PerformanceSettings.from_dict(d.get("performance")),
        )


def create_default_template(name: str = "Default") -> MappingTemplate:
    """Template accepting every zone for every target, writing the zone key."""
    return MappingTemplate(
        name=name,
        rules=(MappingRule(name="All zones", membership=MembershipMode.FIRST_MATCH),),
        mappings=(
            MappingDefinition(
                name="Zone",
                target_category="SpaceMapper",
                target_property="Zone",
                zone_property=None,
            ),
        ),
    )


def templates_by_name(templates: Iterable[MappingTemplate]) -> Dict[str, MappingTemplate]:
    """Index templates by case-insensitive name, later entries win."""
    return {t.name.strip().lower(): t for t in templates}


__all__ = [
    "OffsetMode",
    "OffsetPrecedence",
    "MembershipMode",
    "PriorityOrder",
    "ZoneMembership",
    "ZoneResolutionStrategy",
    "Strictness",
    "WriteMode",
    "CombineMode",
    "PerformancePreset",
    "PropertyLabelMode",
    "OffsetSpec",
    "Element",
    "MappingRule",
    "MappingDefinition",
    "PerformanceSettings",
    "MappingTemplate",
    "create_default_template",
    "templates_by_name",
]
