"""
Collaborator interfaces consumed by the mapping engine.

ARCHITECTURAL OVERVIEW:
=======================
Responsibility: Define what the engine needs from the host model, without
depending on any particular host.

- ModelSource: enumerates zones and targets in scope and hands out their
  bounding boxes (and optional plan footprints) on demand.
- PropertyService: reads zone / target property values and writes target
  properties, reporting per-call success instead of raising.

Implementations live next to this module (in-memory, GeoDataFrame-backed).

For Navigation: Use VS Code outline (Ctrl+Shift+O)
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from shapely.geometry.base import BaseGeometry

from space_mapper.models.data_models import Element
from space_mapper.models.geometry import BoundingVolume


class ModelSource(ABC):
    """Read-only access to the model's zones, targets and geometry.

    Implementations must be safe for concurrent bounding_volume() and
    footprint() calls. Unrecoverable failures (model unreachable) raise
    CollaboratorError; an element that simply has no geometry returns None.
    """

    @abstractmethod
    def zones(self) -> List[Element]:
        """Zone elements in scope, in stable enumeration order."""
        ...

    @abstractmethod
    def targets(self) -> List[Element]:
        """Target elements in scope, in stable enumeration order."""
        ...

    @abstractmethod
    def bounding_volume(self, element: Element) -> Optional[BoundingVolume]:
        """World-space bounding box of ``element``, None when it has none."""
        ...

    def footprint(self, element: Element) -> Optional[BaseGeometry]:
        """Optional plan-view polygon of a zone for precise containment."""
        return None


class PropertyService(ABC):
    """Property reads and writes against the host model.

    write() returns False (or raises, which the writeback phase records) for
    a failed write; it never aborts the whole writeback.
    """

    @abstractmethod
    def read(self, element: Element, category: str, property_name: str) -> Optional[str]:
        """Current value of a property, None when absent."""
        ...

    @abstractmethod
    def write(self, element: Element, category: str, property_name: str, value: str) -> bool:
        """Write one property value. Returns True on success."""
        ...


__all__ = ["ModelSource", "PropertyService"]
