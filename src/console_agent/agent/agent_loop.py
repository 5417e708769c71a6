"""Main conversation loop for console-agent: drives the model through tool rounds to an answer."""

from __future__ import annotations

import json
import logging
from typing import (
    List,
    Optional,
    Sequence,
)

from console_agent.agent.interrupts import (
    AgentInterrupted,
    InterruptMonitor,
)
from console_agent.agent.providers import BaseProvider
from console_agent.agent.tool_executor import ToolRegistry
from console_agent.common import AnsiColors
from console_agent.core.schema import (
    ChatResult,
    Message,
    ToolCall,
)
from console_agent.terminal import ConsoleIO

logger = logging.getLogger(__name__)

DEFAULT_MAX_ROUNDS = 100

EXHAUSTED_PROMPT = (
    "You have used all available tool rounds. Answer now with the information gathered so far, "
    "without calling any more tools."
)

REDIRECT_PROMPT = "  What should the agent do differently? > "

_PREVIEW_CHARS = 200


# ---------------------------------------------------------------------------
# Agent Loop
# ---------------------------------------------------------------------------
class AgentLoop:
    """
    Repeatedly calls the provider with the growing message list until it stops asking for tools.

    State per :meth:`run`:

    * **Round**: ``chat_with_tools``; tokens are accumulated.  A tool-use answer is appended as an
      assistant message, every requested call is dispatched through the registry in the order the
      model issued it, and each result is appended as a tool-result message.
    * **Done**: the first answer without tool use is returned with the summed token counts.
    * **Exhausted**: after ``max_rounds`` tool rounds a synthetic user message asks for an answer
      and one final ``chat`` call without tools is made.

    An interrupt while waiting on ``chat_with_tools`` asks the human for redirect text.  Non-empty
    text becomes one new user message and the loop continues (also kept in
    :attr:`redirects` for the caller's history); anything else re-raises
    :class:`AgentInterrupted` with the history untouched.
    """

    def __init__(
        self,
        provider: BaseProvider,
        registry: ToolRegistry,
        console: ConsoleIO | None = None,
        max_rounds: int = DEFAULT_MAX_ROUNDS,
        monitor: InterruptMonitor | None = None,
        verbose: bool = False,
    ):
        self.provider = provider
        self.registry = registry
        self.console = console or ConsoleIO()
        self.max_rounds = max(1, max_rounds)
        self.monitor = monitor or InterruptMonitor()
        self.verbose = verbose
        self.messages: List[Message] = []
        self.redirects: List[Message] = []
        self.rounds = 0

    def run(
        self,
        query: str | None = None,
        conversation: Sequence[Message] | None = None,
        system_prompt: str | None = None,
        allow_redirect: bool = True,
    ) -> ChatResult:
        """
        Drive one query to a final answer.

        Parameters
        ----------
        query:
            The user's question; starts a new conversation.
        conversation:
            An existing history to continue instead (its last message is the user's turn).  The
            sequence itself is not modified; the working copy is :attr:`messages`.
        system_prompt:
            Passed to every provider call.
        allow_redirect:
            When ``False`` an interrupt always propagates.

        Returns
        -------
        ChatResult
            The final answer, with input/output tokens summed over every call made.
        """
        if conversation is not None:
            self.messages = [dict(m) for m in conversation]
        elif query is not None:
            self.messages = [{"role": "user", "content": query}]
        else:
            raise ValueError("either query or conversation is required")
        if not self.messages:
            raise ValueError("conversation must not be empty")

        self.rounds = 0
        self.redirects = []
        input_tokens = 0
        output_tokens = 0

        while self.rounds < self.max_rounds:
            try:
                result = self.monitor.guard(
                    lambda: self.provider.chat_with_tools(
                        self.messages, tools=self.registry, system_prompt=system_prompt
                    )
                )
            except AgentInterrupted:
                if not allow_redirect or not self._redirect():
                    raise
                continue

            self.rounds += 1
            input_tokens += result.input_tokens or 0
            output_tokens += result.output_tokens or 0

            if not result.is_tool_use:
                return result.model_copy(
                    update={"input_tokens": input_tokens, "output_tokens": output_tokens}
                )

            self.messages.append(self.provider.format_assistant_message(result))
            for call in result.tool_calls:
                self.messages.append(self._dispatch(call))

        logger.info("Tool round limit (%d) reached; forcing a final answer", self.max_rounds)
        self.console.say(
            f"  Reached the tool round limit ({self.max_rounds}); asking for a final answer.",
            AnsiColors.YELLOW,
        )
        self.messages.append({"role": "user", "content": EXHAUSTED_PROMPT})
        final = self.monitor.guard(
            lambda: self.provider.chat(self.messages, system_prompt=system_prompt)
        )
        return ChatResult(
            text=final.text,
            input_tokens=input_tokens + (final.input_tokens or 0),
            output_tokens=output_tokens + (final.output_tokens or 0),
            tool_calls=[],
            stop_reason="end_turn",
        )

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #
    def _redirect(self) -> bool:
        """Ask the human how to steer; append their text as a user message if they gave any."""
        self.console.say()
        self.console.say("  Interrupted.", AnsiColors.YELLOW)
        try:
            text = self.console.ask(REDIRECT_PROMPT, AnsiColors.CYAN)
        except KeyboardInterrupt:
            text = None
        if not text:
            return False
        logger.info("Redirecting agent: %s", text)
        message = {"role": "user", "content": text}
        self.messages.append(message)
        self.redirects.append(dict(message))
        return True

    def _dispatch(self, call: ToolCall) -> Message:
        self.console.say(f"  -> {call.name}({_summarize_args(call)})", AnsiColors.DIM)
        result = self.registry.execute(call.name, call.arguments)
        if self.registry.last_cached:
            self.console.say("     (cached)", AnsiColors.DIM)
        if self.verbose:
            preview = result if len(result) <= _PREVIEW_CHARS else result[:_PREVIEW_CHARS] + "..."
            self.console.say(f"     {preview}", AnsiColors.DIM)
        logger.debug("Tool '%s' returned %d chars", call.name, len(result))
        return self.provider.format_tool_result(call.id, result)


def _summarize_args(call: ToolCall) -> str:
    if not call.arguments:
        return ""
    if call.name == "execute_plan":
        steps: Optional[list] = call.arguments.get("steps")
        return f"{len(steps or [])} steps"
    text = ", ".join(f"{k}={json.dumps(v, default=str)}" for k, v in call.arguments.items())
    return text if len(text) <= 80 else text[:77] + "..."
