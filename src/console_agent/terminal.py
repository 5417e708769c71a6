"""
Line-based human I/O for prompts, confirmations and console output.

Every interaction with the person at the keyboard goes through :class:`ConsoleIO` so tests (and
embedding applications) can swap the streams for ``io.StringIO``.  A blank answer or end-of-file is
always reported as ``None`` / "no", which callers treat as decline or abort.
"""

import logging
import os
import shlex
import subprocess
import sys
import tempfile
from typing import (
    Iterable,
    TextIO,
)

from console_agent.common import (
    AnsiColors,
    colorize,
)

logger = logging.getLogger(__name__)


class ConsoleIO:
    """Prompts and messages on a pair of text streams."""

    def __init__(
        self,
        stdin: TextIO | None = None,
        stdout: TextIO | None = None,
        stderr: TextIO | None = None,
    ):
        self.stdin = stdin if stdin is not None else sys.stdin
        self.stdout = stdout if stdout is not None else sys.stdout
        self.stderr = stderr if stderr is not None else sys.stderr

    # ------------------------------------------------------------------ #
    # Output
    # ------------------------------------------------------------------ #
    def say(self, text: str = "", color: AnsiColors | None = None, end: str = "\n") -> None:
        """Write *text* to stdout, coloured when stdout is a terminal."""
        if color is not None:
            text = colorize(text, color, self.stdout)
        self.stdout.write(text + end)
        self.stdout.flush()

    def warn(self, text: str) -> None:
        """Write a yellow warning to stderr."""
        self.stderr.write(colorize(text, AnsiColors.YELLOW, self.stderr) + "\n")
        self.stderr.flush()

    def error(self, text: str) -> None:
        """Write a red error to stderr."""
        self.stderr.write(colorize(text, AnsiColors.RED, self.stderr) + "\n")
        self.stderr.flush()

    # ------------------------------------------------------------------ #
    # Input
    # ------------------------------------------------------------------ #
    def ask(self, prompt: str, color: AnsiColors = AnsiColors.YELLOW) -> str | None:
        """
        Show *prompt* and read one line.

        Returns the stripped answer, or ``None`` on end-of-file.
        """
        self.say(prompt, color, end="")
        line = self.stdin.readline()
        if not line:
            return None
        return line.strip()

    def confirm(self, prompt: str, accept: Iterable[str] = ("y", "yes")) -> bool:
        """Ask a yes/no question; anything but an accepted answer means no."""
        answer = self.ask(prompt)
        return answer is not None and answer.lower() in set(accept)

    def ask_feedback(self, prompt: str = "What would you like changed?") -> str:
        """Collect free-text feedback after a decline."""
        answer = self.ask(f"  {prompt} > ", AnsiColors.CYAN)
        return answer or "(no feedback provided)"


def open_in_editor(code: str, suffix: str = ".py") -> str:
    """
    Open *code* in ``$EDITOR`` (default ``vi``) and return the edited text.

    Editor failures are logged and the original code is returned unchanged.
    """
    editor = os.environ.get("EDITOR") or "vi"
    path = None
    try:
        with tempfile.NamedTemporaryFile(
            "w", suffix=suffix, prefix="console_agent_", delete=False, encoding="utf-8"
        ) as handle:
            handle.write(code)
            path = handle.name
        subprocess.run([*shlex.split(editor), path], check=False)
        with open(path, encoding="utf-8") as handle:
            return handle.read().strip()
    except (OSError, subprocess.SubprocessError) as exc:
        logger.warning("Editor error: %s", exc)
        return code
    finally:
        if path is not None:
            try:
                os.unlink(path)
            except OSError:
                pass
