"""Skills: reusable, human-written procedures stored as ``skills/*.md`` with YAML front matter."""

import logging
from pathlib import PurePosixPath
from typing import (
    Any,
    Dict,
    List,
    Optional,
)

import yaml

from console_agent.memory.storage import Storage
from console_agent.tools.memory_tools import parse_front_matter

logger = logging.getLogger(__name__)

SKILLS_PATTERN = "skills/*.md"


class SkillTools:
    """``load_skill`` plus the summaries listed in the system prompt."""

    def __init__(self, storage: Storage):
        self.storage = storage

    def _front_matter(self, key: str) -> tuple[Dict[str, Any], str] | None:
        content = self.storage.read(key)
        if content is None:
            return None
        try:
            parsed = parse_front_matter(content)
        except yaml.YAMLError as exc:
            logger.warning("Bad front matter in skill %s: %s", key, exc)
            return {}, content.strip()
        return parsed if parsed is not None else ({}, content.strip())

    def _name(self, key: str) -> Optional[str]:
        parsed = self._front_matter(key)
        if not parsed:
            return None
        name = parsed[0].get("name")
        return str(name) if name else None

    def _find(self, keys: List[str], name: str) -> Optional[str]:
        wanted = name.lower().strip()
        for key in keys:
            if (self._name(key) or "").lower() == wanted:
                return key
        for key in keys:
            if PurePosixPath(key).stem.lower() == "-".join(wanted.split()):
                return key
        for key in keys:
            if wanted in (self._name(key) or "").lower():
                return key
        return None

    def load_skill(self, name: str | None) -> str:
        """Return the body of the skill called *name* (exact, file-name, then partial match)."""
        if not name or not name.strip():
            return "Error: name is required."
        keys = self.storage.list(SKILLS_PATTERN)
        if not keys:
            return "No skills available."

        key = self._find(keys, name)
        if key is None:
            available = [self._name(k) or PurePosixPath(k).stem for k in keys]
            return f"Skill '{name}' not found. Available: {', '.join(available)}"

        parsed = self._front_matter(key)
        if parsed is None:
            return "Could not read skill file."
        front, body = parsed
        return f"## Skill: {front.get('name') or name}\n\n{body}"

    def skill_summaries(self) -> List[str]:
        """``- name: description`` for every skill that declares a name."""
        lines = []
        for key in self.storage.list(SKILLS_PATTERN):
            parsed = self._front_matter(key)
            if not parsed or not parsed[0].get("name"):
                continue
            front = parsed[0]
            lines.append(f"- {front['name']}: {front.get('description') or '(no description)'}")
        return lines
