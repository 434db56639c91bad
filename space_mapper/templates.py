"""
Mapping template persistence.

ARCHITECTURAL OVERVIEW:
=======================
Responsibility: Load and save named MappingTemplates as one JSON document in
a template directory. Saving is guarded by a file lock so two processes
saving at once cannot interleave their writes.

A missing or unreadable store never blocks a run: load() falls back to the
built-in default template and logs a warning.

For Navigation: Use VS Code outline (Ctrl+Shift+O)
"""

import json
import logging
from pathlib import Path
from typing import List, Optional, Sequence, Union

import filelock

from space_mapper.models.data_models import (
    MappingTemplate,
    create_default_template,
    templates_by_name,
)

logger = logging.getLogger("SpaceMapper.Templates")

TEMPLATE_FILENAME = "space_mapper_templates.json"


class TemplateStore:
    """
    JSON-backed template store.

    Args:
        directory: Directory holding space_mapper_templates.json.
        lock_timeout_s: Seconds to wait for the file lock.
    """

    def __init__(self, directory: Union[str, Path], lock_timeout_s: float = 30.0) -> None:
        self.directory = Path(directory)
        self.path = self.directory / TEMPLATE_FILENAME
        self._lock = filelock.FileLock(str(self.path) + ".lock", timeout=lock_timeout_s)

    def load(self) -> List[MappingTemplate]:
        """All stored templates, or [default] when the store is missing or corrupt."""
        if not self.path.exists():
            return [create_default_template()]
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            templates = [MappingTemplate.from_dict(t) for t in data.get("templates", [])]
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning(f"⚠️ Template store {self.path} unreadable, using default: {e}")
            return [create_default_template()]
        return templates or [create_default_template()]

    def get(self, name: str) -> Optional[MappingTemplate]:
        """Template by case-insensitive name, None if absent."""
        return templates_by_name(self.load()).get(name.strip().lower())

    def save(self, templates: Sequence[MappingTemplate]) -> Path:
        """Replace the stored templates."""
        self.directory.mkdir(parents=True, exist_ok=True)
        payload = {"templates": [t.as_dict() for t in templates]}
        with self._lock:
            tmp_path = self.path.with_suffix(".json.tmp")
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2)
            tmp_path.replace(self.path)
        logger.info(f"💾 Saved {len(templates)} template(s) to {self.path}")
        return self.path

    def upsert(self, template: MappingTemplate) -> Path:
        """Insert or replace one template by name, keeping the others in order.

        The read-modify-write runs under the store lock (re-entered by save).
        """
        wanted = template.name.strip().lower()
        self.directory.mkdir(parents=True, exist_ok=True)
        with self._lock:
            templates = self.load()
            replaced = False
            for i, existing in enumerate(templates):
                if existing.name.strip().lower() == wanted:
                    templates[i] = template
                    replaced = True
            if not replaced:
                templates.append(template)
            return self.save(templates)


__all__ = ["TEMPLATE_FILENAME", "TemplateStore"]
