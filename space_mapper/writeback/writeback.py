"""
Writeback of resolved zone values onto target properties.

ARCHITECTURAL OVERVIEW:
=======================
Responsibility: After matching has finished, turn each target's resolved
zones into property values and write them through the PropertyService. This
is the only phase that mutates the model, and it runs strictly after
matching so no worker ever observes a partially written target.

Strategy flags (WritebackConfig):
- skip_unchanged: read the current value, write only when it differs
- pack: several zone values become one value joined by pack_separator
- show_internal_names: address properties by internal names when defined
- write_zone_behavior: also write Contained / Partial per matched target

Per-mapping behavior (MappingDefinition):
- write_mode OVERWRITE / ONLY_IF_BLANK / APPEND
- combine FIRST / CONCATENATE / MIN / MAX / AVERAGE when not packing

Failure handling:
- Each (target, property) write is isolated: a rejected or raising write is
  recorded as a WriteFailure and the remaining writes proceed
- Targets without a matched zone (including targets without bounds) are
  never written

For Navigation: Use VS Code outline (Ctrl+Shift+O)
"""

import logging
import time
from functools import partial
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from space_mapper.config_types import WritebackConfig
from space_mapper.models.data_models import (
    CombineMode,
    Element,
    MappingDefinition,
    WriteMode,
)
from space_mapper.models.run_stats import RunResult, WriteFailure, WritebackSummary
from space_mapper.sources.base import PropertyService

logger = logging.getLogger("SpaceMapper.Writeback")

DEFAULT_CONCAT_SEPARATOR = ", "


# ═══════════════════════════════════════════════════════════════════════════
# 🔢 VALUE COMBINATION
# ═══════════════════════════════════════════════════════════════════════════


def _try_float(value: str) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def format_number(value: float) -> str:
    """Up to three decimals, trailing zeros dropped (12.5, 3, 0.333)."""
    text = f"{value:.3f}".rstrip("0").rstrip(".")
    return "0" if text in ("", "-0") else text


def combine_values(values: Sequence[str], mode: CombineMode, separator: str = "") -> str:
    """
    Reduce several zone values to one.

    MIN / MAX / AVERAGE use the values that parse as numbers and fall back
    to the first value when none do.
    """
    if not values:
        return ""
    if mode is CombineMode.FIRST:
        return values[0]
    if mode is CombineMode.CONCATENATE:
        if not separator.strip():
            separator = DEFAULT_CONCAT_SEPARATOR
        return separator.join(values)

    numbers = [n for n in (_try_float(v) for v in values) if n is not None]
    if not numbers:
        return values[0]
    if mode is CombineMode.MIN:
        return format_number(min(numbers))
    if mode is CombineMode.MAX:
        return format_number(max(numbers))
    if mode is CombineMode.AVERAGE:
        return format_number(sum(numbers) / len(numbers))
    raise ValueError(f"Unhandled CombineMode: {mode!r}")


def apply_write_mode(
    current: Optional[str], value: str, mode: WriteMode, separator: str
) -> Optional[str]:
    """
    Final value to write given the current one, None when nothing is written.
    """
    has_current = current is not None and current.strip() != ""
    if mode is WriteMode.OVERWRITE:
        return value
    if mode is WriteMode.ONLY_IF_BLANK:
        return None if has_current else value
    if mode is WriteMode.APPEND:
        if not has_current:
            return value
        return f"{current}{separator or ','}{value}"
    raise ValueError(f"Unhandled WriteMode: {mode!r}")


# ═══════════════════════════════════════════════════════════════════════════
# ✍️ WRITEBACK SERVICE
# ═══════════════════════════════════════════════════════════════════════════


class WritebackService:
    """
    Applies run results to the model through a PropertyService.

    Args:
        property_service: Property read/write collaborator.
        config: Writeback strategy flags.
    """

    def __init__(
        self,
        property_service: PropertyService,
        config: Optional[WritebackConfig] = None,
    ) -> None:
        self.properties = property_service
        self.config = config or WritebackConfig()

    def zone_values(
        self, zones: Sequence[Element], mapping: MappingDefinition
    ) -> List[str]:
        """Non-blank source values of ``mapping`` for each zone, in zone order."""
        values = []
        for zone in zones:
            if mapping.copies_zone_key:
                value = zone.key
            else:
                category = mapping.zone_category or mapping.target_category
                value = self.properties.read(zone, category, mapping.zone_property)
            if value is not None and str(value).strip():
                values.append(str(value))
        return values

    def value_for(self, zones: Sequence[Element], mapping: MappingDefinition) -> Optional[str]:
        values = self.zone_values(zones, mapping)
        if not values:
            return None
        if self.config.pack and len(values) > 1:
            return self.config.pack_separator.join(values)
        return combine_values(values, mapping.combine, mapping.append_separator)

    def behavior_value(self, result: RunResult) -> str:
        """Zone behaviour flag: partial when any resolved zone only overlaps."""
        if result.has_partial_zone:
            return self.config.zone_behavior_partial_value
        return self.config.zone_behavior_contained_value

    def _write_property(
        self,
        target: Element,
        category: str,
        prop: str,
        value: str,
        write_mode: WriteMode,
        separator: str,
    ) -> Optional[bool]:
        """One property write. True written, False unchanged, None rejected."""
        needs_current = self.config.skip_unchanged or write_mode is not WriteMode.OVERWRITE
        current = self.properties.read(target, category, prop) if needs_current else None
        final = apply_write_mode(current, value, write_mode, separator)
        if final is None or (self.config.skip_unchanged and final == current):
            return False
        if self.properties.write(target, category, prop, final):
            return True
        return None

    def _write_target(
        self,
        target: Element,
        zones: Sequence[Element],
        mappings: Sequence[MappingDefinition],
        categories: Dict[str, None],
        result: Optional[RunResult] = None,
    ) -> Tuple[int, int, List[WriteFailure]]:
        """
        Write all mappings for one target. Returns (written, unchanged, failures).

        Each mapping is isolated: one that raises becomes a WriteFailure for
        its (category, property) and the remaining mappings still run.
        """
        written = 0
        unchanged = 0
        failures: List[WriteFailure] = []
        label_mode = self.config.label_mode

        # (category, property, value source, write mode, separator)
        writes: List[Tuple[str, str, Callable[[], Optional[str]], WriteMode, str]] = []
        for mapping in mappings:
            category, prop = mapping.target_labels(label_mode)
            writes.append(
                (
                    category,
                    prop,
                    partial(self.value_for, zones, mapping),
                    mapping.write_mode,
                    mapping.append_separator,
                )
            )
        if self.config.write_zone_behavior and result is not None:
            writes.append(
                (
                    self.config.zone_behavior_category,
                    self.config.zone_behavior_property,
                    partial(self.behavior_value, result),
                    WriteMode.OVERWRITE,
                    "",
                )
            )

        for category, prop, source, write_mode, separator in writes:
            try:
                value = source()
                if value is None:
                    continue
                outcome = self._write_property(target, category, prop, value, write_mode, separator)
            except Exception as e:
                logger.warning(f"⚠️ Writeback failed for {target.key} [{category}/{prop}]: {e}")
                failures.append(
                    WriteFailure(target.key, category, prop, reason=f"{type(e).__name__}: {e}")
                )
                continue

            if outcome is True:
                written += 1
                categories.setdefault(category, None)
            elif outcome is False:
                unchanged += 1
            else:
                failures.append(
                    WriteFailure(
                        target_key=target.key,
                        category=category,
                        property_name=prop,
                        reason="property service rejected the write",
                    )
                )
        return written, unchanged, failures

    def writeback(
        self,
        results: Sequence[RunResult],
        targets_by_key: Mapping[str, Element],
        zones_by_key: Mapping[str, Element],
        mappings: Sequence[MappingDefinition],
    ) -> WritebackSummary:
        """
        Write mapped values for every matched target.

        Args:
            results: Run results in target order.
            targets_by_key: Target elements by key.
            zones_by_key: Zone elements by key.
            mappings: Property mappings to apply.

        Returns:
            WritebackSummary.
        """
        label_mode = self.config.label_mode
        if not self.config.enabled:
            logger.info("✍️ Writeback disabled, nothing written")
            return WritebackSummary(label_mode=label_mode)

        start = time.perf_counter()
        written_keys: List[str] = []
        unchanged_keys: List[str] = []
        failures: List[WriteFailure] = []
        categories: Dict[str, None] = {}
        skipped_unmatched = 0
        properties_written = 0

        logger.info(
            f"✍️ Writing {len(mappings)} mapping(s) for "
            f"{sum(1 for r in results if r.is_matched)} matched targets..."
        )

        for result in results:
            if not result.is_matched:
                skipped_unmatched += 1
                continue
            target = targets_by_key.get(result.target_key)
            if target is None:
                failures.append(
                    WriteFailure(result.target_key, "", "", reason="target not found")
                )
                continue
            zones = [zones_by_key[k] for k in result.matched_zone_keys if k in zones_by_key]

            written, unchanged, target_failures = self._write_target(
                target, zones, mappings, categories, result
            )
            failures.extend(target_failures)
            properties_written += written
            if written:
                written_keys.append(target.key)
            elif unchanged and not target_failures:
                unchanged_keys.append(target.key)

        summary = WritebackSummary(
            written_keys=tuple(written_keys),
            skipped_unchanged_keys=tuple(unchanged_keys),
            skipped_unmatched=skipped_unmatched,
            properties_written=properties_written,
            categories_written=tuple(categories),
            failures=tuple(failures),
            label_mode=label_mode,
            elapsed_s=time.perf_counter() - start,
        )
        logger.info(
            f"   ✅ {len(written_keys)} targets written ({properties_written} properties), "
            f"{len(unchanged_keys)} unchanged, {skipped_unmatched} unmatched, "
            f"{summary.failure_count} failures"
        )
        return summary


__all__ = [
    "format_number",
    "combine_values",
    "apply_write_mode",
    "WritebackService",
]
