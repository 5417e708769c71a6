"""Read-only access to the project's Python sources."""

import logging
import re
from pathlib import Path
from typing import List

logger = logging.getLogger(__name__)

MAX_FILE_LINES = 500
MAX_LIST_ENTRIES = 100
MAX_SEARCH_RESULTS = 50

_SKIP_DIRS = {".git", ".venv", "venv", "__pycache__", "node_modules", ".tox", ".mypy_cache"}


def _sanitize(path: str) -> str:
    path = path.strip().replace("\\", "/")
    path = re.sub(r"(^|/)\.\.(?=/|$)", "", path)
    return path.lstrip("/")


class CodeTools:
    """``list_files`` / ``read_file`` / ``search_code`` rooted at the project directory."""

    def __init__(self, project_root: str | Path):
        self.root = Path(project_root).resolve()

    def _inside(self, path: Path) -> bool:
        try:
            path.resolve().relative_to(self.root)
        except ValueError:
            return False
        return True

    def _python_files(self, directory: Path) -> List[Path]:
        return sorted(
            path
            for path in directory.rglob("*.py")
            if not _SKIP_DIRS.intersection(path.relative_to(directory).parts)
        )

    def _directory(self, directory: str | None) -> tuple[str, Path]:
        relative = _sanitize(directory or ".") or "."
        return relative, self.root / relative

    def list_files(self, directory: str | None = None) -> str:
        """Python files below *directory* (relative to the project root)."""
        relative, full_path = self._directory(directory)
        if not full_path.is_dir() or not self._inside(full_path):
            return f"Directory '{relative}' not found."

        files = [p.relative_to(self.root).as_posix() for p in self._python_files(full_path)]
        if not files:
            return f"No Python files found in '{relative}'."
        if len(files) > MAX_LIST_ENTRIES:
            more = len(files) - MAX_LIST_ENTRIES
            return "\n".join(files[:MAX_LIST_ENTRIES]) + f"\n... and {more} more files"
        return "\n".join(files)

    def read_file(
        self, path: str | None, start_line: int | None = None, end_line: int | None = None
    ) -> str:
        """Numbered lines of *path*, capped at ``MAX_FILE_LINES`` unless a range is given."""
        if not path or not path.strip():
            return "Error: path is required."
        relative = _sanitize(path)
        full_path = self.root / relative

        if not self._inside(full_path):
            return "Error: path must be within the project."
        if not full_path.exists():
            return f"File '{relative}' not found."
        if full_path.is_dir():
            return f"Error: '{relative}' is a directory, not a file."

        try:
            all_lines = full_path.read_text(encoding="utf-8", errors="replace").splitlines()
        except OSError as exc:
            return f"Error reading file '{relative}': {exc}"
        total = len(all_lines)

        if start_line is not None or end_line is not None:
            start = max(int(start_line or 1), 1)
            end = min(int(end_line or total), total)
            if start > total:
                return f"Error: start_line ({start}) is beyond end of file ({total} lines)."
            selected = all_lines[start - 1 : end]
            numbered = [f"{start + i}: {line}" for i, line in enumerate(selected)]
            header = f"Lines {start}-{start + len(selected) - 1} of {total}:"
            return "\n".join([header, *numbered])

        numbered = [f"{i}: {line}" for i, line in enumerate(all_lines[:MAX_FILE_LINES], start=1)]
        text = "\n".join(numbered)
        if total > MAX_FILE_LINES:
            text += (
                f"\n... truncated ({total} total lines, showing first {MAX_FILE_LINES}). "
                "Use start_line/end_line to read specific sections."
            )
        return text

    def search_code(self, query: str | None, directory: str | None = None) -> str:
        """Substring search across Python files; at most ``MAX_SEARCH_RESULTS`` matches."""
        if not query or not query.strip():
            return "Error: query is required."
        relative, full_path = self._directory(directory)
        if not full_path.is_dir() or not self._inside(full_path):
            return f"Directory '{relative}' not found."

        results: List[str] = []
        for file in self._python_files(full_path):
            try:
                lines = file.read_text(encoding="utf-8", errors="replace").splitlines()
            except OSError as exc:
                logger.debug("Skipping unreadable file %s: %s", file, exc)
                continue
            name = file.relative_to(self.root).as_posix()
            for number, line in enumerate(lines, start=1):
                if query in line:
                    results.append(f"{name}:{number}: {line.strip()}")
                    if len(results) >= MAX_SEARCH_RESULTS:
                        break
            if len(results) >= MAX_SEARCH_RESULTS:
                break

        if not results:
            return f"No matches found for '{query}' in {relative}/."
        plural = "es" if len(results) != 1 else ""
        return f"Found {len(results)} match{plural}:\n" + "\n".join(results)
