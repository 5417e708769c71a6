"""
Console driver: one-shot questions, explanations, interactive chat and resumed sessions.

:class:`ConsoleAgent` wires the pieces for one live namespace: it builds a tool registry per
conversation, runs the :class:`~console_agent.agent.agent_loop.AgentLoop`, hands the answer to the
:class:`~console_agent.execution.executor.CodeExecutor` and records progress through the
:class:`~console_agent.memory.session_recorder.SessionRecorder`.
"""

from __future__ import annotations

import io
import logging
import time
from typing import (
    Any,
    Dict,
    List,
    Optional,
)

from console_agent.agent.agent_loop import AgentLoop
from console_agent.agent.context_builder import ContextBuilder
from console_agent.agent.interrupts import (
    AgentInterrupted,
    InterruptMonitor,
)
from console_agent.agent.providers import (
    BaseProvider,
    ProviderError,
    load_provider,
)
from console_agent.agent.tool_executor import ToolRegistry
from console_agent.common import (
    AnsiColors,
    strip_ansi,
)
from console_agent.config import (
    ConfigurationError,
    Settings,
)
from console_agent.core.schema import (
    ChatResult,
    Message,
)
from console_agent.execution.executor import (
    CodeExecutor,
    NamespaceContext,
    TeeWriter,
    format_value,
)
from console_agent.memory.session_recorder import SessionRecorder
from console_agent.memory.storage import (
    FileStorage,
    Storage,
)
from console_agent.terminal import ConsoleIO
from console_agent.tools import register_builtin_tools

logger = logging.getLogger(__name__)

RESULT_PREVIEW_CHARS = 500
EXIT_COMMANDS = {"exit", "quit"}


class ConsoleAgent:
    """The assistant bound to one live namespace."""

    def __init__(
        self,
        namespace: Dict[str, Any],
        settings: Settings | None = None,
        console: ConsoleIO | None = None,
        provider: BaseProvider | None = None,
        storage: Storage | None = None,
        monitor: InterruptMonitor | None = None,
    ):
        self.settings = settings or Settings()
        base = console or ConsoleIO()
        # Everything shown on the console is also kept as the session transcript.
        self.transcript = io.StringIO()
        self.console = ConsoleIO(base.stdin, TeeWriter(base.stdout, self.transcript), base.stderr)

        self.namespace = namespace
        self.storage = storage or FileStorage(self.settings.DATA_DIR)
        self.executor = CodeExecutor(
            NamespaceContext(namespace), self.console, stdout=self.console.stdout
        )
        self.recorder = SessionRecorder(self.storage, self.settings)
        self.monitor = monitor or InterruptMonitor(base.stdin)
        self._provider = provider

        self.history: List[Message] = []
        self._redirects: List[Message] = []
        self.total_input_tokens = 0
        self.total_output_tokens = 0
        self.session_id: Optional[str] = None

    # ------------------------------------------------------------------ #
    # Wiring
    # ------------------------------------------------------------------ #
    @property
    def provider(self) -> BaseProvider:
        """The configured provider, created on first use."""
        if self._provider is None:
            self._provider = load_provider(self.settings)
        return self._provider

    def build_registry(self) -> ToolRegistry:
        """A fresh registry (and therefore a fresh result cache) for one conversation."""
        return register_builtin_tools(
            ToolRegistry(),
            self.settings,
            self.console,
            self.storage,
            namespace=self.namespace,
            executor=self.executor,
        )

    def _send_query(
        self,
        registry: ToolRegistry,
        query: str | None = None,
        conversation: List[Message] | None = None,
    ) -> ChatResult:
        self.settings.validate_for_requests()
        loop = AgentLoop(
            self.provider,
            registry,
            console=self.console,
            max_rounds=self.settings.MAX_TOOL_ROUNDS,
            monitor=self.monitor,
            verbose=self.settings.DEBUG,
        )
        system_prompt = ContextBuilder(self.settings, self.storage).build()
        self._redirects = []
        result = loop.run(query=query, conversation=conversation, system_prompt=system_prompt)
        self._redirects = list(loop.redirects)
        return result

    # ------------------------------------------------------------------ #
    # Modes
    # ------------------------------------------------------------------ #
    def one_shot(self, query: str) -> Any:
        """Answer *query*, then run the generated code (after confirmation unless auto)."""
        self._reset_transcript()
        started = time.monotonic()
        result = self._guarded_query(self.build_registry(), query=query)
        if result is None:
            return None

        self._track_usage(result)
        code = self.executor.display_response(result.text)
        self._display_usage(result)

        session_id = self.recorder.log(
            {
                "query": query,
                "conversation": [
                    {"role": "user", "content": query},
                    *self._redirects,
                    {"role": "assistant", "content": result.text},
                ],
                "input_tokens": result.input_tokens or 0,
                "output_tokens": result.output_tokens or 0,
                "mode": "one_shot",
                "duration_ms": _elapsed_ms(started),
                "console_output": self._transcript(),
            }
        )
        if not code.strip():
            return None

        value = self._run_code(code)
        self.recorder.update(session_id, self._execution_attrs(started))
        return value

    def explain(self, query: str) -> None:
        """Answer *query* without executing anything."""
        self._reset_transcript()
        started = time.monotonic()
        result = self._guarded_query(self.build_registry(), query=query)
        if result is None:
            return None

        self._track_usage(result)
        self.executor.display_response(result.text)
        self._display_usage(result)
        self.recorder.log(
            {
                "query": query,
                "conversation": [
                    {"role": "user", "content": query},
                    *self._redirects,
                    {"role": "assistant", "content": result.text},
                ],
                "input_tokens": result.input_tokens or 0,
                "output_tokens": result.output_tokens or 0,
                "mode": "explain",
                "duration_ms": _elapsed_ms(started),
                "console_output": self._transcript(),
            }
        )
        return None

    def interactive(self, first_query: str | None = None) -> None:
        """Chat until ``exit``/``quit``/EOF; execution results are fed back to the model."""
        self._reset_transcript()
        self.console.say(
            "console-agent interactive mode. Type 'exit' or 'quit' to leave.", AnsiColors.CYAN
        )
        self.history = []
        self.total_input_tokens = 0
        self.total_output_tokens = 0
        self.session_id = None
        self._chat_loop(first_query)

    def resume(self, session_id: str) -> None:
        """Restore a recorded session verbatim, replay its transcript and keep chatting."""
        record = self.recorder.load(session_id)
        if record is None:
            self.console.error(f"No session found with id {session_id}.")
            return

        self._reset_transcript()
        self.history = [dict(m) for m in record.conversation]
        self.total_input_tokens = record.input_tokens
        self.total_output_tokens = record.output_tokens
        self.session_id = record.id

        previous = record.console_output or ""
        if previous:
            self.console.say(previous, end="" if previous.endswith("\n") else "\n")
        self.console.say(
            f"Resumed session {record.id} ({len(self.history)} messages).", AnsiColors.CYAN
        )
        self._chat_loop(None, mode_query=record.query)

    # ------------------------------------------------------------------ #
    # Interactive loop
    # ------------------------------------------------------------------ #
    def _chat_loop(self, first_query: str | None, mode_query: str | None = None) -> None:
        registry = self.build_registry()
        started = time.monotonic()
        pending = first_query
        try:
            while True:
                if pending is not None:
                    text, pending = pending, None
                else:
                    text = self.console.ask("ai> ")
                if text is None or text.lower() in EXIT_COMMANDS:
                    break
                text = text.strip()
                if not text:
                    continue
                self._chat_turn(registry, text, started, mode_query)
        except KeyboardInterrupt:
            self.console.say()

        self._display_session_summary()
        self.recorder.update(
            self.session_id,
            {"console_output": self._transcript(), "duration_ms": _elapsed_ms(started)},
        )
        self.console.say("Left console-agent interactive mode.", AnsiColors.CYAN)

    def _chat_turn(
        self, registry: ToolRegistry, text: str, started: float, mode_query: str | None
    ) -> None:
        self.history.append({"role": "user", "content": text})
        if self.session_id is None:
            self.session_id = self.recorder.log(
                {
                    "query": mode_query or text,
                    "conversation": self.history,
                    "mode": "interactive",
                }
            )
        else:
            self.recorder.update(self.session_id, {"conversation": self.history})

        result = self._guarded_query(registry, conversation=self.history)
        if result is None:
            # Aborted turn: the question never got an answer, so drop it from the history.
            self.history.pop()
            self.recorder.update(self.session_id, {"conversation": self.history})
            return

        self._track_usage(result)
        code = self.executor.display_response(result.text)
        self._display_usage(result, show_session=True)

        # Redirects typed during the turn stay part of the conversation.
        self.history.extend(self._redirects)
        self.history.append({"role": "assistant", "content": result.text})
        self.recorder.update(
            self.session_id,
            {
                "conversation": self.history,
                "input_tokens": self.total_input_tokens,
                "output_tokens": self.total_output_tokens,
                "console_output": self._transcript(),
            },
        )

        if not code.strip():
            return

        self._run_code(code)
        feedback = self._execution_feedback()
        if feedback:
            self.history.append({"role": "user", "content": feedback})
        attrs = self._execution_attrs(started)
        attrs["conversation"] = self.history
        self.recorder.update(self.session_id, attrs)

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #
    def _guarded_query(self, registry: ToolRegistry, **kwargs: Any) -> Optional[ChatResult]:
        """Run the loop; report infrastructure failures and aborts, returning ``None`` for them."""
        try:
            return self._send_query(registry, **kwargs)
        except AgentInterrupted:
            self.console.say("Request cancelled.", AnsiColors.YELLOW)
        except (ProviderError, ConfigurationError) as exc:
            logger.debug("Query failed: %s", exc)
            self.console.error(f"console-agent error: {exc}")
        return None

    def _run_code(self, code: str) -> Any:
        if self.settings.AUTO_EXECUTE:
            return self.executor.execute(code)
        return self.executor.confirm_and_execute(code)

    def _execution_feedback(self) -> Optional[str]:
        """Message telling the model what its code did, or ``None`` if it never ran."""
        if self.executor.last_cancelled:
            return None
        if self.executor.last_error:
            return f"Execution failed: {self.executor.last_error}"
        if not self.executor.executed:
            return None
        parts = []
        output = self.executor.last_output.strip()
        if output:
            parts.append(f"Output:\n{_truncate(output)}")
        result = format_value(self.executor.last_result, RESULT_PREVIEW_CHARS)
        parts.append(f"Execution result: {result}")
        return "\n".join(parts)

    def _execution_attrs(self, started: float) -> Dict[str, Any]:
        executed = self.executor.executed
        return {
            "code_executed": self.executor.last_code if executed else None,
            "code_output": self.executor.last_output or None,
            "code_result": (
                self.executor.last_error
                if self.executor.last_error
                else format_value(self.executor.last_result) if executed else None
            ),
            "executed": executed,
            "console_output": self._transcript(),
            "duration_ms": _elapsed_ms(started),
        }

    def _transcript(self) -> str:
        return strip_ansi(self.transcript.getvalue())

    def _reset_transcript(self) -> None:
        self.transcript.seek(0)
        self.transcript.truncate()

    def _track_usage(self, result: ChatResult) -> None:
        self.total_input_tokens += result.input_tokens or 0
        self.total_output_tokens += result.output_tokens or 0

    def _display_usage(self, result: ChatResult, show_session: bool = False) -> None:
        if result.input_tokens is None and result.output_tokens is None:
            return
        parts = []
        if result.input_tokens is not None:
            parts.append(f"in: {result.input_tokens}")
        if result.output_tokens is not None:
            parts.append(f"out: {result.output_tokens}")
        parts.append(f"total: {result.total_tokens}")
        line = f"[tokens {' | '.join(parts)}]"

        session_total = self.total_input_tokens + self.total_output_tokens
        if show_session and session_total > result.total_tokens:
            line += (
                f" [session: in: {self.total_input_tokens} | out: {self.total_output_tokens}"
                f" | total: {session_total}]"
            )
        self.console.say(line, AnsiColors.DIM)

    def _display_session_summary(self) -> None:
        if self.total_input_tokens == 0 and self.total_output_tokens == 0:
            return
        total = self.total_input_tokens + self.total_output_tokens
        self.console.say(
            f"[session totals: in: {self.total_input_tokens} | out: {self.total_output_tokens}"
            f" | total: {total}]",
            AnsiColors.DIM,
        )


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


def _truncate(text: str, limit: int = RESULT_PREVIEW_CHARS) -> str:
    return text if len(text) <= limit else text[:limit] + "..."
