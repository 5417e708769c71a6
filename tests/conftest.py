"""
Shared fixtures and fakes for the console-agent test-suite.

Run with:
$ pytest -q
"""

import io
from typing import (
    Any,
    Dict,
    List,
    Sequence,
)

import pytest

from console_agent.agent.interrupts import InterruptMonitor
from console_agent.agent.providers import BaseProvider
from console_agent.config import Settings
from console_agent.core.schema import (
    ChatResult,
    Message,
    ToolCall,
)
from console_agent.memory.storage import MemoryStorage
from console_agent.terminal import ConsoleIO


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def answer(text: str, input_tokens: int = 10, output_tokens: int = 5) -> ChatResult:
    """A final (non tool-use) provider response."""

    return ChatResult(text=text, input_tokens=input_tokens, output_tokens=output_tokens)


def tool_use(*calls: ToolCall, input_tokens: int = 10, output_tokens: int = 5) -> ChatResult:
    """A provider response asking for *calls*."""

    return ChatResult(
        text="",
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        tool_calls=list(calls),
        stop_reason="tool_use",
    )


def make_console(*lines: str) -> ConsoleIO:
    """Console whose stdin yields *lines* and whose output is captured in StringIO."""

    stdin = io.StringIO("".join(f"{line}\n" for line in lines))
    return ConsoleIO(stdin, io.StringIO(), io.StringIO())


class ScriptedProvider(BaseProvider):
    """Provider that replays canned responses and records every request."""

    name = "anthropic"

    def __init__(self, responses: Sequence[Any], settings: Settings | None = None):
        super().__init__(settings or Settings(API_KEY="test-key"), client=object())
        self.responses: List[Any] = list(responses)
        self.calls: List[Dict[str, Any]] = []

    def _build_client(self) -> Any:
        return object()

    def _next(self, kind: str, messages: Sequence[Message], **extra: Any) -> ChatResult:
        self.calls.append({"kind": kind, "messages": [dict(m) for m in messages], **extra})
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        return response

    def chat(self, messages, system_prompt=None):
        return self._next("chat", messages, system_prompt=system_prompt)

    def chat_with_tools(self, messages, tools, system_prompt=None):
        return self._next(
            "chat_with_tools",
            messages,
            system_prompt=system_prompt,
            tools=tools.to_provider_format(self.name),
        )

    def format_assistant_message(self, result: ChatResult) -> Message:
        return {
            "role": "assistant",
            "content": result.text,
            "tool_calls": [call.model_dump() for call in result.tool_calls],
        }

    def format_tool_result(self, call_id: str, result_text: str) -> Message:
        return {"role": "tool", "tool_call_id": call_id, "content": result_text}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------
@pytest.fixture()
def settings(tmp_path) -> Settings:
    """Settings isolated from the developer's environment."""

    return Settings(
        API_KEY="test-key",
        PROVIDER="anthropic",
        DATA_DIR=str(tmp_path / "data"),
        PROJECT_ROOT=str(tmp_path),
        USER_NAME="tester",
        AUTO_EXECUTE=False,
        MEMORIES_ENABLED=True,
        SESSION_LOGGING=True,
        MAX_TOOL_ROUNDS=100,
        DATABASE_PATH=None,
    )


@pytest.fixture()
def storage() -> MemoryStorage:
    """Empty in-process storage."""

    return MemoryStorage()


@pytest.fixture()
def monitor() -> InterruptMonitor:
    """Interrupt monitor without the terminal watcher."""

    return InterruptMonitor(enabled=False)
