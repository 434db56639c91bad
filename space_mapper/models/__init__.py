"""Data models package for elements, rules, templates and run outcomes."""

from .geometry import BoundingVolume, NoGeometry, ZoneVolume

from .data_models import (
    CombineMode,
    Element,
    MappingDefinition,
    MappingRule,
    MappingTemplate,
    MembershipMode,
    OffsetMode,
    OffsetPrecedence,
    OffsetSpec,
    PerformancePreset,
    PerformanceSettings,
    PriorityOrder,
    PropertyLabelMode,
    Strictness,
    WriteMode,
    create_default_template,
    templates_by_name,
)

from .run_stats import (
    IndexDiagnostics,
    RunEstimate,
    RunHealth,
    RunResult,
    WriteFailure,
    WritebackSummary,
    ZoneDiagnostic,
    no_geometry_result,
)

__all__ = [
    # Geometry
    "BoundingVolume",
    "NoGeometry",
    "ZoneVolume",
    # Enums
    "CombineMode",
    "MembershipMode",
    "OffsetMode",
    "OffsetPrecedence",
    "PerformancePreset",
    "PriorityOrder",
    "PropertyLabelMode",
    "Strictness",
    "WriteMode",
    # Inputs
    "Element",
    "MappingDefinition",
    "MappingRule",
    "MappingTemplate",
    "OffsetSpec",
    "PerformanceSettings",
    "create_default_template",
    "templates_by_name",
    # Outcomes
    "IndexDiagnostics",
    "RunEstimate",
    "RunHealth",
    "RunResult",
    "WriteFailure",
    "WritebackSummary",
    "ZoneDiagnostic",
    "no_geometry_result",
]
