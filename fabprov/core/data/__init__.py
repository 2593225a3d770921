"""
Central data registry for static catalogs.

Loads catalogs from ``fabprov/core/data/catalogs/`` once at first
access and caches them for the process lifetime.

Usage::

    from fabprov.core.data import DataRegistry

    registry = DataRegistry()
    requirements = registry.tool_requirements   # list[ToolRequirement]
"""

from __future__ import annotations

import json
import logging
from functools import cached_property
from pathlib import Path

from fabprov.core.models.requirement import ToolRequirement

logger = logging.getLogger(__name__)

_DATA_DIR = Path(__file__).parent


def _load_json(relative_path: str) -> list | dict:
    """Load a JSON file relative to the data directory."""
    path = _DATA_DIR / relative_path
    if not path.exists():
        logger.warning("Data file not found: %s", path)
        return [] if relative_path.endswith("s.json") else {}
    with open(path, encoding="utf-8") as f:
        return json.load(f)


class DataRegistry:
    """Central registry for all static data catalogs."""

    @cached_property
    def tool_requirements(self) -> list[ToolRequirement]:
        """Host prerequisites, in the order they are checked."""
        data = _load_json("catalogs/tool_requirements.json")
        requirements = [ToolRequirement.model_validate(item) for item in data]
        logger.debug("Loaded %d tool requirements", len(requirements))
        return requirements

    def requirement(self, name: str) -> ToolRequirement | None:
        for req in self.tool_requirements:
            if req.name == name:
                return req
        return None


_registry: DataRegistry | None = None


def get_registry() -> DataRegistry:
    """Return the process-wide DataRegistry."""
    global _registry
    if _registry is None:
        _registry = DataRegistry()
    return _registry
