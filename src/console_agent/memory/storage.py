"""
Key/value text storage used for memories, skills and session records.

Keys are relative POSIX paths such as ``memories/sharding.md``.  Two back-ends are provided:
:class:`FileStorage` (a directory on disk, default ``.console_agent/``) and :class:`MemoryStorage`
(process-local, handy for tests and throw-away sessions).
"""

import fnmatch
import logging
import re
from abc import (
    ABC,
    abstractmethod,
)
from pathlib import Path
from typing import (
    Dict,
    List,
)

logger = logging.getLogger(__name__)


class StorageError(RuntimeError):
    """Raised when a storage back-end cannot complete a write or delete."""


def sanitize_key(key: str) -> str:
    """Strip parent-directory segments and leading slashes from *key*."""
    key = key.replace("\\", "/").replace("..", "")
    key = re.sub(r"/{2,}", "/", key)
    return key.lstrip("/")


class Storage(ABC):
    """Storage capability interface."""

    @abstractmethod
    def read(self, key: str) -> str | None:
        """Return the content stored under *key*, or ``None`` when absent."""

    @abstractmethod
    def write(self, key: str, content: str) -> None:
        """Store *content* under *key*, creating or replacing it."""

    @abstractmethod
    def list(self, pattern: str) -> List[str]:
        """Return the sorted keys matching the glob *pattern*."""

    @abstractmethod
    def exists(self, key: str) -> bool:
        """Return ``True`` if *key* is stored."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove *key*; return ``False`` if it did not exist."""

    def describe(self, key: str) -> str:
        """Human-readable location of *key*, used in tool messages."""
        return key


class FileStorage(Storage):
    """Stores each key as a file below *root_path*."""

    def __init__(self, root_path: str | Path = ".console_agent"):
        self.root_path = Path(root_path)

    def _path(self, key: str) -> Path:
        return self.root_path / sanitize_key(key)

    def read(self, key: str) -> str | None:
        path = self._path(key)
        if not path.is_file():
            return None
        return path.read_text(encoding="utf-8")

    def write(self, key: str, content: str) -> None:
        path = self._path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        except OSError as exc:
            raise StorageError(f"Cannot write {key}: {exc}") from exc

    def list(self, pattern: str) -> List[str]:
        if not self.root_path.is_dir():
            return []
        return sorted(
            path.relative_to(self.root_path).as_posix()
            for path in self.root_path.glob(sanitize_key(pattern))
            if path.is_file()
        )

    def exists(self, key: str) -> bool:
        return self._path(key).is_file()

    def delete(self, key: str) -> bool:
        path = self._path(key)
        if not path.is_file():
            return False
        try:
            path.unlink()
        except OSError as exc:
            raise StorageError(f"Cannot delete {key}: {exc}") from exc
        return True

    def describe(self, key: str) -> str:
        return str(self._path(key))


class MemoryStorage(Storage):
    """Keeps every key in a dict; nothing survives the process."""

    def __init__(self, initial: Dict[str, str] | None = None):
        self._data: Dict[str, str] = {sanitize_key(k): v for k, v in (initial or {}).items()}

    def read(self, key: str) -> str | None:
        return self._data.get(sanitize_key(key))

    def write(self, key: str, content: str) -> None:
        self._data[sanitize_key(key)] = content

    def list(self, pattern: str) -> List[str]:
        pattern = sanitize_key(pattern)
        return sorted(key for key in self._data if fnmatch.fnmatchcase(key, pattern))

    def exists(self, key: str) -> bool:
        return sanitize_key(key) in self._data

    def delete(self, key: str) -> bool:
        return self._data.pop(sanitize_key(key), None) is not None
