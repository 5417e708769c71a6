"""
Persistent memories: facts the agent learns about a codebase, kept across sessions.

Each memory is a markdown file ``memories/<slug>.md`` in the configured storage, with YAML front
matter (``name``, ``tags``, ``created_at``, ``updated_at``) and the description as the body.
"""

import hashlib
import logging
import re
from typing import (
    Any,
    Dict,
    Iterable,
    List,
    Optional,
)

import yaml

from console_agent.core.schema import utcnow
from console_agent.memory.storage import (
    Storage,
    StorageError,
)

logger = logging.getLogger(__name__)

MEMORIES_DIR = "memories"

_FRONT_MATTER_RE = re.compile(r"\A---\s*\n(.*?\n)---\s*\n(.*)", re.DOTALL)


def slugify(name: str) -> str:
    """
    ``"Sharding architecture"`` -> ``"sharding-architecture"``.

    Names with nothing left after cleaning get a stable hash of the original name instead.
    """
    slug = re.sub(r"[^a-z0-9\s-]", "", name.lower().strip())
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    slug = slug.strip("-")
    if not slug:
        slug = "memory-" + hashlib.sha1(name.encode("utf-8")).hexdigest()[:10]
    return slug


def parse_front_matter(content: str) -> tuple[Dict[str, Any], str] | None:
    """Split ``---`` delimited YAML front matter from the body; ``None`` if there is none."""
    match = _FRONT_MATTER_RE.match(content)
    if not match:
        return None
    data = yaml.safe_load(match.group(1)) or {}
    if not isinstance(data, dict):
        return None
    return data, match.group(2).strip()


def render_front_matter(data: Dict[str, Any], body: str) -> str:
    """Inverse of :func:`parse_front_matter`."""
    header = yaml.safe_dump(data, sort_keys=False, allow_unicode=True).strip()
    return f"---\n{header}\n---\n\n{body}\n"


class MemoryTools:
    """``save_memory`` / ``delete_memory`` / ``recall_memories`` over a :class:`Storage`."""

    def __init__(self, storage: Storage):
        self.storage = storage

    @staticmethod
    def _key(name: str) -> str:
        return f"{MEMORIES_DIR}/{slugify(name)}.md"

    def save_memory(self, name: str, description: str, tags: Iterable[str] | None = None) -> str:
        """Create or update the memory called *name*."""
        if not name or not str(name).strip():
            return "Error: name is required."
        key = self._key(name)
        existing = self._load(key)
        tags = [str(t) for t in (tags or [])]

        now = utcnow().isoformat(timespec="seconds")
        front: Dict[str, Any] = {
            "name": name,
            "tags": tags if tags or not existing else list(existing.get("tags") or []),
            "created_at": str(existing.get("created_at", now)) if existing else now,
        }
        if existing:
            front["updated_at"] = now

        try:
            self.storage.write(key, render_front_matter(front, description))
        except StorageError as exc:
            return (
                f"FAILED to save ({exc}). Add this manually to {key}:\n"
                f"---\nname: {name}\ntags: {tags}\n---\n\n{description}"
            )

        location = self.storage.describe(key)
        verb = "updated" if existing else "saved"
        return f'Memory {verb}: "{name}" ({location})'

    def delete_memory(self, name: str) -> str:
        """Delete by slug, falling back to a case-insensitive match on the stored name."""
        key: Optional[str] = self._key(name)
        if not self.storage.exists(key):
            key = self._find_key_by_name(name)
            if key is None:
                return f'No memory found: "{name}"'

        memory = self._load(key)
        try:
            self.storage.delete(key)
        except StorageError as exc:
            return f"FAILED to delete memory ({exc})."
        return f'Memory deleted: "{memory["name"] if memory else name}"'

    def recall_memories(self, query: str | None = None, tag: str | None = None) -> str:
        """All memories, optionally filtered by *tag* and a substring *query*."""
        memories = self.load_all()
        if not memories:
            return "No memories stored yet."

        results = memories
        if tag:
            needle = tag.lower()
            results = [m for m in results if any(needle in t.lower() for t in _tags(m))]
        if query:
            q = query.lower()
            results = [
                m
                for m in results
                if q in str(m.get("name", "")).lower()
                or q in str(m.get("description", "")).lower()
                or any(q in t.lower() for t in _tags(m))
            ]
        if not results:
            return "No memories matching your search."

        blocks = []
        for memory in results:
            block = f"**{memory.get('name')}**\n{memory.get('description', '')}"
            if _tags(memory):
                block += f"\nTags: {', '.join(_tags(memory))}"
            blocks.append(block)
        return "\n\n".join(blocks)

    def memory_summaries(self) -> List[str]:
        """One ``- name [tags]`` line per memory, for the system prompt."""
        lines = []
        for memory in self.load_all():
            tags = _tags(memory)
            tag_str = f" [{', '.join(tags)}]" if tags else ""
            lines.append(f"- {memory.get('name')}{tag_str}")
        return lines

    # ------------------------------------------------------------------ #
    # Loading
    # ------------------------------------------------------------------ #
    def _load(self, key: str) -> Dict[str, Any] | None:
        try:
            content = self.storage.read(key)
            if not content or not content.strip():
                return None
            parsed = parse_front_matter(content)
        except (OSError, StorageError, yaml.YAMLError) as exc:
            logger.warning("Failed to load memory %s: %s", key, exc)
            return None
        if parsed is None:
            return None
        data, body = parsed
        return {**data, "description": body}

    def load_all(self) -> List[Dict[str, Any]]:
        """Every parsable memory in storage."""
        try:
            keys = self.storage.list(f"{MEMORIES_DIR}/*.md")
        except (OSError, StorageError) as exc:
            logger.warning("Failed to list memories: %s", exc)
            return []
        return [m for m in (self._load(key) for key in keys) if m is not None]

    def _find_key_by_name(self, name: str) -> Optional[str]:
        for key in self.storage.list(f"{MEMORIES_DIR}/*.md"):
            memory = self._load(key)
            if memory and str(memory.get("name", "")).lower() == name.lower():
                return key
        return None


def _tags(memory: Dict[str, Any]) -> List[str]:
    return [str(t) for t in (memory.get("tags") or [])]
