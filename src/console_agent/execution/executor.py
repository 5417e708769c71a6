"""
Runs generated code against the user's live namespace.

The executor never owns the namespace: it is handed the dict the user is already working in
(``__main__.__dict__`` for the interactive interpreter) wrapped in a :class:`NamespaceContext`.
Anything the code prints is fanned out by :class:`TeeWriter` to the real stdout *and* a capture
buffer, so the user sees it live and the agent can report it back to the model.
"""

import ast
import contextlib
import io
import logging
import re
import sys
import traceback
from typing import (
    Any,
    Dict,
    List,
    Optional,
    Protocol,
    TextIO,
)

from console_agent.common import AnsiColors
from console_agent.terminal import (
    ConsoleIO,
    open_in_editor,
)

logger = logging.getLogger(__name__)

CODE_BLOCK_RE = re.compile(r"```(?:python|py)[ \t]*\n(.*?)```", re.DOTALL)

_FILENAME = "<console_agent>"


class ExecutionContext(Protocol):
    """Anything that can evaluate code strings and hold named values between evaluations."""

    def evaluate(self, code: str) -> Any:
        """Run *code* and return the value of its final expression (or ``None``)."""

    def bind(self, name: str, value: Any) -> None:
        """Make *value* visible to later evaluations as *name*."""


class NamespaceContext:
    """Evaluates code in a plain ``dict`` namespace, the way the interactive interpreter does."""

    def __init__(self, namespace: Dict[str, Any] | None = None):
        self.namespace: Dict[str, Any] = namespace if namespace is not None else {}

    def evaluate(self, code: str) -> Any:
        tree = ast.parse(code, filename=_FILENAME, mode="exec")
        if not tree.body:
            return None

        last = tree.body[-1]
        if isinstance(last, ast.Expr):
            body = ast.Module(body=tree.body[:-1], type_ignores=[])
            exec(compile(body, _FILENAME, "exec"), self.namespace)  # pylint: disable=exec-used
            expr = ast.Expression(body=last.value)
            code_obj = compile(expr, _FILENAME, "eval")
            return eval(code_obj, self.namespace)  # pylint: disable=eval-used

        exec(compile(tree, _FILENAME, "exec"), self.namespace)  # pylint: disable=exec-used
        return None

    def bind(self, name: str, value: Any) -> None:
        self.namespace[name] = value


class TeeWriter(io.TextIOBase):
    """A text sink that forwards every write to each of its *sinks*."""

    def __init__(self, *sinks: TextIO):
        super().__init__()
        self.sinks: List[TextIO] = list(sinks)

    def writable(self) -> bool:
        return True

    def write(self, text: str) -> int:  # type: ignore[override]
        for sink in self.sinks:
            sink.write(text)
        return len(text)

    def flush(self) -> None:
        for sink in self.sinks:
            sink.flush()

    def isatty(self) -> bool:
        return any(getattr(sink, "isatty", lambda: False)() for sink in self.sinks)


def format_value(value: Any, limit: int | None = None) -> str:
    """``repr`` of *value*, shortened to *limit* characters when given."""
    try:
        text = repr(value)
    except Exception as exc:  # pylint: disable=broad-except
        text = f"<unrepresentable {type(value).__name__}: {exc}>"
    if limit is not None and len(text) > limit:
        text = text[:limit] + "..."
    return text


class CodeExecutor:
    """
    Displays, confirms and executes code produced by the model.

    After every attempt the outcome is available as :attr:`last_output` (captured text),
    :attr:`last_result` (return value), :attr:`last_error` (diagnostic or ``None``),
    :attr:`executed` (the code actually ran) and :attr:`last_cancelled` (the user said no).
    """

    def __init__(
        self,
        context: ExecutionContext,
        console: ConsoleIO | None = None,
        stdout: TextIO | None = None,
    ):
        self.context = context
        self.console = console or ConsoleIO()
        self._stdout = stdout
        self.last_output = ""
        self.last_result: Any = None
        self.last_error: Optional[str] = None
        self.last_cancelled = False
        self.executed = False
        self.last_code: Optional[str] = None

    # ------------------------------------------------------------------ #
    # Response handling
    # ------------------------------------------------------------------ #
    @staticmethod
    def extract_code(response: str) -> str:
        """Join every ```python fenced block found in *response*."""
        return "\n\n".join(block.strip("\n") for block in CODE_BLOCK_RE.findall(response or ""))

    def display_response(self, response: str) -> str:
        """Print the explanation and the generated code; return the code (maybe empty)."""
        code = self.extract_code(response)
        explanation = CODE_BLOCK_RE.sub("", response or "").strip()

        self.console.say()
        if explanation:
            self.console.say(explanation, AnsiColors.CYAN)
        if code:
            self.console.say()
            self.console.say("# Generated code:", AnsiColors.YELLOW)
            self.console.say(code, AnsiColors.WHITE)
            self.console.say()
        return code

    # ------------------------------------------------------------------ #
    # Execution
    # ------------------------------------------------------------------ #
    def _reset(self) -> None:
        self.last_output = ""
        self.last_result = None
        self.last_error = None
        self.last_cancelled = False
        self.executed = False

    def execute(self, code: str | None) -> Any:
        """
        Run *code* in the execution context and return its value.

        Syntax and runtime errors are reported on the console and ``None`` is returned; there is
        no retry.  Output printed by the code is captured in :attr:`last_output`.
        """
        self._reset()
        if code is None or not code.strip():
            return None

        self.last_code = code
        buffer = io.StringIO()
        tee = TeeWriter(self._stdout or sys.stdout, buffer)
        try:
            with contextlib.redirect_stdout(tee):
                result = self.context.evaluate(code)
        except SyntaxError as exc:
            self.last_output = buffer.getvalue()
            self.last_error = f"SyntaxError: {exc}"
            self.console.error(self.last_error)
            return None
        except Exception as exc:  # pylint: disable=broad-except
            self.last_output = buffer.getvalue()
            self.executed = True
            self.last_error = f"Error: {type(exc).__name__}: {exc}"
            self.console.error(self.last_error)
            frames = traceback.format_tb(exc.__traceback__)[-3:]
            for frame in frames:
                self.console.error("  " + frame.strip().replace("\n", "\n  "))
            return None

        self.executed = True
        self.last_output = buffer.getvalue()
        self.last_result = result
        self.console.say(f"=> {format_value(result)}", AnsiColors.GREEN)
        return result

    def confirm_and_execute(self, code: str | None) -> Any:
        """Ask ``[y/N/edit]`` before running *code*; a refusal sets :attr:`last_cancelled`."""
        self._reset()
        if code is None or not code.strip():
            return None

        answer = (self.console.ask("Execute? [y/N/edit] ") or "").lower()
        if answer in ("y", "yes"):
            return self.execute(code)

        if answer in ("e", "edit"):
            edited = open_in_editor(code)
            if edited and edited != code.strip():
                self.console.say("# Edited code:", AnsiColors.YELLOW)
                self.console.say(edited, AnsiColors.WHITE)
                if self.console.confirm("Execute edited code? [y/N] "):
                    return self.execute(edited)
                return self._cancel()
            return self.execute(code)

        return self._cancel()

    def _cancel(self) -> None:
        self.console.say("Cancelled.", AnsiColors.YELLOW)
        self.last_cancelled = True
        return None
