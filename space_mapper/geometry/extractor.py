"""
Run-scoped geometry extraction.

ARCHITECTURAL OVERVIEW:
=======================
Responsibility: Obtain each element's world-space bounding box from the model
source at most once per run, and classify elements without usable bounds as
NoGeometry instead of raising.

Key Insight: Within a single run the model is read-only, so a bounding box
fetched once stays valid until the run ends. The memo lives on the extractor
instance, which is created per run and dropped afterwards. Nothing is shared
between runs.

Concurrency Model:
- Worker threads call extract_volume() concurrently
- A short global lock guards the memo dicts
- A per-key lock makes concurrent requests for the same element wait for one
  computation instead of racing
- CollaboratorError from the source propagates unchanged (run-terminal)

For Navigation: Use VS Code outline (Ctrl+Shift+O)
"""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Union

from shapely.geometry.base import BaseGeometry

from space_mapper.models.data_models import Element
from space_mapper.models.geometry import BoundingVolume, NoGeometry
from space_mapper.sources.base import ModelSource

logger = logging.getLogger("SpaceMapper.Geometry.Extractor")

Extraction = Union[BoundingVolume, NoGeometry]


# ═══════════════════════════════════════════════════════════════════════════
# 📊 EXTRACTION STATISTICS
# ═══════════════════════════════════════════════════════════════════════════


@dataclass
class ExtractionStats:
    """Memo statistics for one run."""

    hits: int = 0
    misses: int = 0
    no_geometry: int = 0

    def hit_rate(self) -> float:
        """Calculate memo hit rate (0.0 to 1.0)."""
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "no_geometry": self.no_geometry,
            "hit_rate": f"{self.hit_rate():.1%}",
        }


# ═══════════════════════════════════════════════════════════════════════════
# 📦 EXTRACTOR
# ═══════════════════════════════════════════════════════════════════════════


class GeometryExtractor:
    """
    Memoizing bounding-box extractor bound to one run.

    Usage:
        extractor = GeometryExtractor(source)
        vol = extractor.extract_volume(element)
        if isinstance(vol, NoGeometry):
            ...
    """

    def __init__(self, source: ModelSource) -> None:
        self.source = source
        self.stats = ExtractionStats()
        self._volumes: Dict[str, Extraction] = {}
        self._footprints: Dict[str, Optional[BaseGeometry]] = {}
        self._key_locks: Dict[str, threading.Lock] = {}
        self._lock = threading.Lock()

    def _memoized(self, memo: Dict[str, Any], key: str, compute: Callable[[], Any]) -> Any:
        """Atomic check → compute → store, computing each key once."""
        with self._lock:
            if key in memo:
                self.stats.hits += 1
                return memo[key]
            key_lock = self._key_locks.setdefault(f"{id(memo)}:{key}", threading.Lock())

        with key_lock:
            with self._lock:
                if key in memo:
                    self.stats.hits += 1
                    return memo[key]
            value = compute()
            with self._lock:
                memo[key] = value
                self.stats.misses += 1
                self._key_locks.pop(f"{id(memo)}:{key}", None)
        return value

    def _compute_volume(self, element: Element) -> Extraction:
        volume = self.source.bounding_volume(element)
        if volume is None:
            result: Extraction = NoGeometry(element.key, "no bounding box")
        elif not volume.is_finite:
            result = NoGeometry(element.key, "non-finite bounds")
        elif volume.is_inverted:
            result = NoGeometry(element.key, "inverted bounds")
        else:
            return volume

        with self._lock:
            self.stats.no_geometry += 1
        logger.debug(f"   No geometry for {element.key}: {result.reason}")
        return result

    def extract_volume(self, element: Element) -> Extraction:
        """
        Bounding box of ``element``, or NoGeometry when it has none.

        Raises:
            CollaboratorError: If the model source fails unrecoverably.
        """
        return self._memoized(self._volumes, element.key, lambda: self._compute_volume(element))

    def extract_footprint(self, element: Element) -> Optional[BaseGeometry]:
        """Plan footprint of a zone from the source, None when unavailable."""

        def compute() -> Optional[BaseGeometry]:
            geom = self.source.footprint(element)
            if geom is None or geom.is_empty:
                return None
            return geom

        return self._memoized(self._footprints, element.key, compute)

    @property
    def cached_count(self) -> int:
        with self._lock:
            return len(self._volumes)

    def log_summary(self, level: int = logging.INFO) -> None:
        """Log memo statistics at the given level."""
        stats = self.stats.to_dict()
        logger.log(
            level,
            f"   🗂️ Geometry memo: {stats['misses']} extracted, {stats['hits']} reused, "
            f"{stats['no_geometry']} without geometry",
        )


__all__ = ["Extraction", "ExtractionStats", "GeometryExtractor"]
