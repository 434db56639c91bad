"""
In-memory collaborators.

Dictionary-backed ModelSource and PropertyService used by tests, demos and
any host that already holds its elements in Python structures.
"""

import threading
from collections import Counter
from typing import Dict, Iterable, List, Mapping, Optional, Set, Tuple

from shapely.geometry.base import BaseGeometry

from space_mapper.errors import CollaboratorError
from space_mapper.models.data_models import Element
from space_mapper.models.geometry import BoundingVolume
from space_mapper.sources.base import ModelSource, PropertyService

PropertyKey = Tuple[str, str, str]


class InMemoryModelSource(ModelSource):
    """ModelSource over plain lists and dicts.

    Args:
        zones: Zone elements in enumeration order.
        targets: Target elements in enumeration order.
        volumes: Element key -> bounding box (missing or None = no geometry).
        footprints: Optional zone key -> plan polygon.
        failing_keys: Keys whose geometry lookup raises CollaboratorError.
    """

    def __init__(
        self,
        zones: Iterable[Element],
        targets: Iterable[Element],
        volumes: Mapping[str, Optional[BoundingVolume]],
        footprints: Optional[Mapping[str, BaseGeometry]] = None,
        failing_keys: Optional[Iterable[str]] = None,
    ) -> None:
        self._zones = list(zones)
        self._targets = list(targets)
        self._volumes = dict(volumes)
        self._footprints = dict(footprints or {})
        self._failing = set(failing_keys or ())
        self._lock = threading.Lock()
        self.volume_calls: Counter = Counter()

    def zones(self) -> List[Element]:
        return list(self._zones)

    def targets(self) -> List[Element]:
        return list(self._targets)

    def bounding_volume(self, element: Element) -> Optional[BoundingVolume]:
        with self._lock:
            self.volume_calls[element.key] += 1
        if element.key in self._failing:
            raise CollaboratorError(f"Model source unavailable while reading {element.key}")
        return self._volumes.get(element.key)

    def footprint(self, element: Element) -> Optional[BaseGeometry]:
        return self._footprints.get(element.key)


class InMemoryPropertyService(PropertyService):
    """PropertyService storing values in a dict keyed by (key, category, property).

    Args:
        values: Initial property values.
        rejected_keys: Element keys whose writes return False.
        raising_keys: Element keys whose writes raise RuntimeError.
    """

    def __init__(
        self,
        values: Optional[Mapping[PropertyKey, str]] = None,
        rejected_keys: Optional[Iterable[str]] = None,
        raising_keys: Optional[Iterable[str]] = None,
    ) -> None:
        self.values: Dict[PropertyKey, str] = dict(values or {})
        self.rejected_keys: Set[str] = set(rejected_keys or ())
        self.raising_keys: Set[str] = set(raising_keys or ())
        self.writes: List[Tuple[str, str, str, str]] = []
        self._lock = threading.Lock()

    def read(self, element: Element, category: str, property_name: str) -> Optional[str]:
        return self.values.get((element.key, category, property_name))

    def write(self, element: Element, category: str, property_name: str, value: str) -> bool:
        if element.key in self.raising_keys:
            raise RuntimeError(f"Property service crashed writing {element.key}")
        if element.key in self.rejected_keys:
            return False
        with self._lock:
            self.values[(element.key, category, property_name)] = value
            self.writes.append((element.key, category, property_name, value))
        return True

    def written_keys(self) -> Set[str]:
        return {w[0] for w in self.writes}


__all__ = ["InMemoryModelSource", "InMemoryPropertyService"]
