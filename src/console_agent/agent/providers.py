"""
Provider interface for console-agent.

This module is the only place that *directly* calls an LLM.  Everything else (agent loop, tools,
executors) stays vendor-agnostic and only sees :class:`~console_agent.core.schema.ChatResult`.

We support two back-ends out of the box:

1. **Anthropic** Messages API (``anthropic`` SDK).
2. **OpenAI** Chat Completions API (``openai`` SDK).

Each call is exactly one request: the SDK clients are built with ``max_retries=0`` and an
``httpx.Timeout`` taken from the settings.  Additional providers can be added by subclassing
:class:`BaseProvider` and registering via :func:`register_provider`.
"""

import json
import logging
from abc import (
    ABC,
    abstractmethod,
)
from typing import (
    Any,
    Callable,
    ClassVar,
    Dict,
    List,
    Optional,
    Protocol,
    Sequence,
    Type,
)

import httpx

from console_agent.config import (
    ConfigurationError,
    Settings,
)
from console_agent.core.schema import (
    ChatResult,
    Message,
    ToolCall,
)

logger = logging.getLogger(__name__)


class ProviderError(RuntimeError):
    """Raised when a provider request fails or its response cannot be understood."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ToolSource(Protocol):  # pylint: disable=too-few-public-methods
    """Anything that can render tool definitions in a provider's dialect."""

    def to_provider_format(self, provider_name: str) -> List[Dict[str, Any]]:
        """Return the tool definitions for *provider_name*."""


# ---------------------------------------------------------------------------
# Registry helpers
# ---------------------------------------------------------------------------
_PROVIDER_REGISTRY: dict[str, Type["BaseProvider"]] = {}


def register_provider(name: str) -> Callable:
    """Decorator to register a provider class under *name*."""

    def wrapper(cls: Type["BaseProvider"]) -> Type["BaseProvider"]:
        cls.name = name
        _PROVIDER_REGISTRY[name] = cls
        return cls

    return wrapper


def load_provider(settings: Settings, client: Any = None) -> "BaseProvider":
    """
    Factory that returns an instantiated provider for ``settings.PROVIDER``.

    Raises
    ------
    ConfigurationError
        If no provider is registered under that name.
    """
    cls = _PROVIDER_REGISTRY.get(settings.PROVIDER.lower())
    if cls is None:
        raise ConfigurationError(f"Unknown provider: {settings.PROVIDER}")
    return cls(settings, client=client)


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------
class BaseProvider(ABC):
    """Abstract provider that converts a message list -> :class:`ChatResult`."""

    name: ClassVar[str] = "base"

    def __init__(self, settings: Settings, client: Any = None):
        self.settings = settings
        self._client = client

    @property
    def client(self) -> Any:
        """The vendor SDK client, created on first use."""
        if self._client is None:
            self._client = self._build_client()
        return self._client

    def _timeout(self) -> httpx.Timeout:
        return httpx.Timeout(self.settings.TIMEOUT, connect=self.settings.TIMEOUT)

    @abstractmethod
    def _build_client(self) -> Any:
        """Create the vendor SDK client."""

    @abstractmethod
    def chat(self, messages: Sequence[Message], system_prompt: str | None = None) -> ChatResult:
        """Send *messages* without tools and return the canonical result."""

    @abstractmethod
    def chat_with_tools(
        self,
        messages: Sequence[Message],
        tools: ToolSource,
        system_prompt: str | None = None,
    ) -> ChatResult:
        """Send *messages* with tool definitions and return the canonical result."""

    @abstractmethod
    def format_assistant_message(self, result: ChatResult) -> Message:
        """Re-serialize a tool-using assistant turn so it can be replayed in the next request."""

    @abstractmethod
    def format_tool_result(self, call_id: str, result_text: str) -> Message:
        """Wrap a tool's text result in the vendor's tool-result message shape."""

    def _debug(self, label: str, payload: Any) -> None:
        if not logger.isEnabledFor(logging.DEBUG):
            return
        try:
            rendered = json.dumps(payload, indent=2, default=str)
        except (TypeError, ValueError):
            rendered = repr(payload)
        logger.debug("%s %s:\n%s", self.name, label, rendered)

    def _raise_for_sdk_error(self, exc: Exception) -> None:
        """Translate an SDK exception into :class:`ProviderError`."""
        status = getattr(exc, "status_code", None)
        if status is not None:
            message = _error_message(getattr(exc, "body", None)) or str(exc)
            raise ProviderError(f"API error ({status}): {message}", status_code=status) from exc
        if isinstance(exc, httpx.TimeoutException) or "timed out" in str(exc).lower():
            raise ProviderError(
                f"Request timed out after {self.settings.TIMEOUT:g}s: {exc}"
            ) from exc
        raise ProviderError(f"Request failed: {exc}") from exc


def _error_message(body: Any) -> str | None:
    """Dig the human-readable message out of a vendor error body."""
    if isinstance(body, dict):
        error = body.get("error", body)
        if isinstance(error, dict):
            return error.get("message") or json.dumps(error)
        if error:
            return str(error)
    elif isinstance(body, str) and body:
        return body
    return None


def _usage_value(usage: Any, name: str) -> Optional[int]:
    if usage is None:
        return None
    value = getattr(usage, name, None)
    if value is None and isinstance(usage, dict):
        value = usage.get(name)
    return value


def _block_text(block: Any) -> str:
    if not isinstance(block, dict):
        return str(block)
    kind = block.get("type")
    if kind == "text":
        return block.get("text", "")
    if kind == "tool_use":
        return f"[called {block.get('name')}({json.dumps(block.get('input') or {})})]"
    if kind == "tool_result":
        return f"[tool result: {block.get('content', '')}]"
    return json.dumps(block, default=str)


def _plain_messages(messages: Sequence[Message]) -> List[Message]:
    """
    Flatten content blocks to text and merge adjacent turns of the same role.

    Used for requests without tools, where earlier ``tool_use`` and ``tool_result`` blocks
    would otherwise be rejected.
    """
    plain: List[Message] = []
    for msg in messages:
        content = msg.get("content") or ""
        if isinstance(content, list):
            content = "\n".join(text for text in (_block_text(b) for b in content) if text)
        if plain and plain[-1]["role"] == msg["role"]:
            plain[-1]["content"] = "\n\n".join(p for p in (plain[-1]["content"], content) if p)
        else:
            plain.append({"role": msg["role"], "content": content})
    return plain


# ---------------------------------------------------------------------------
# Concrete providers
# ---------------------------------------------------------------------------
@register_provider("anthropic")
class AnthropicProvider(BaseProvider):
    """Anthropic Claude provider (Messages API)."""

    def _build_client(self) -> Any:
        import anthropic  # pylint: disable=import-outside-toplevel

        return anthropic.Anthropic(
            api_key=self.settings.resolved_api_key(),
            timeout=self._timeout(),
            max_retries=0,
        )

    def chat(self, messages: Sequence[Message], system_prompt: str | None = None) -> ChatResult:
        # Tool blocks are rejected when the request declares no tools.
        return self._call_api(_plain_messages(messages), system_prompt=system_prompt)

    def chat_with_tools(
        self,
        messages: Sequence[Message],
        tools: ToolSource,
        system_prompt: str | None = None,
    ) -> ChatResult:
        return self._call_api(
            messages, system_prompt=system_prompt, tools=tools.to_provider_format(self.name)
        )

    def format_assistant_message(self, result: ChatResult) -> Message:
        content: List[Dict[str, Any]] = []
        if result.text:
            content.append({"type": "text", "text": result.text})
        for call in result.tool_calls:
            content.append(
                {"type": "tool_use", "id": call.id, "name": call.name, "input": call.arguments}
            )
        return {"role": "assistant", "content": content}

    def format_tool_result(self, call_id: str, result_text: str) -> Message:
        return {
            "role": "user",
            "content": [
                {"type": "tool_result", "tool_use_id": call_id, "content": str(result_text)}
            ],
        }

    def _call_api(
        self,
        messages: Sequence[Message],
        system_prompt: str | None = None,
        tools: List[Dict[str, Any]] | None = None,
    ) -> ChatResult:
        body: Dict[str, Any] = {
            "model": self.settings.resolved_model(),
            "max_tokens": self.settings.MAX_TOKENS,
            "temperature": self.settings.TEMPERATURE,
            "messages": [{"role": m["role"], "content": m.get("content") or ""} for m in messages],
        }
        if system_prompt:
            body["system"] = system_prompt
        if tools:
            body["tools"] = tools

        self._debug("request", body)
        try:
            response = self.client.messages.create(**body)
        except Exception as exc:  # pylint: disable=broad-except
            self._raise_for_sdk_error(exc)
        self._debug("response", response)

        try:
            return self._to_chat_result(response)
        except (AttributeError, TypeError, ValueError) as exc:
            raise ProviderError(f"Failed to parse response: {exc}") from exc

    @staticmethod
    def _to_chat_result(response: Any) -> ChatResult:
        texts: List[str] = []
        tool_calls: List[ToolCall] = []
        for block in response.content or []:
            if block.type == "text":
                texts.append(block.text)
            elif block.type == "tool_use":
                tool_calls.append(
                    ToolCall(id=block.id, name=block.name, arguments=dict(block.input or {}))
                )

        usage = response.usage
        return ChatResult(
            text="\n".join(texts),
            input_tokens=_usage_value(usage, "input_tokens"),
            output_tokens=_usage_value(usage, "output_tokens"),
            tool_calls=tool_calls,
            stop_reason="tool_use" if response.stop_reason == "tool_use" else "end_turn",
        )


@register_provider("openai")
class OpenAIProvider(BaseProvider):
    """OpenAI provider (Chat Completions API)."""

    def _build_client(self) -> Any:
        import openai  # pylint: disable=import-outside-toplevel

        return openai.OpenAI(
            api_key=self.settings.resolved_api_key(),
            timeout=self._timeout(),
            max_retries=0,
        )

    def chat(self, messages: Sequence[Message], system_prompt: str | None = None) -> ChatResult:
        return self._call_api(messages, system_prompt=system_prompt)

    def chat_with_tools(
        self,
        messages: Sequence[Message],
        tools: ToolSource,
        system_prompt: str | None = None,
    ) -> ChatResult:
        return self._call_api(
            messages, system_prompt=system_prompt, tools=tools.to_provider_format(self.name)
        )

    def format_assistant_message(self, result: ChatResult) -> Message:
        msg: Message = {"role": "assistant"}
        if result.text:
            msg["content"] = result.text
        if result.tool_calls:
            msg["tool_calls"] = [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {"name": call.name, "arguments": json.dumps(call.arguments)},
                }
                for call in result.tool_calls
            ]
        return msg

    def format_tool_result(self, call_id: str, result_text: str) -> Message:
        return {"role": "tool", "tool_call_id": call_id, "content": str(result_text)}

    def _call_api(
        self,
        messages: Sequence[Message],
        system_prompt: str | None = None,
        tools: List[Dict[str, Any]] | None = None,
    ) -> ChatResult:
        formatted: List[Message] = []
        if system_prompt:
            formatted.append({"role": "system", "content": system_prompt})
        formatted.extend(self._format_messages(messages))

        body: Dict[str, Any] = {
            "model": self.settings.resolved_model(),
            "max_tokens": self.settings.MAX_TOKENS,
            "temperature": self.settings.TEMPERATURE,
            "messages": formatted,
        }
        if tools:
            body["tools"] = tools

        self._debug("request", body)
        try:
            response = self.client.chat.completions.create(**body)
        except Exception as exc:  # pylint: disable=broad-except
            self._raise_for_sdk_error(exc)
        self._debug("response", response)

        try:
            return self._to_chat_result(response)
        except (AttributeError, IndexError, TypeError, ValueError) as exc:
            raise ProviderError(f"Failed to parse response: {exc}") from exc

    @staticmethod
    def _format_messages(messages: Sequence[Message]) -> List[Message]:
        formatted = []
        for msg in messages:
            base: Message = {"role": msg["role"]}
            content = msg.get("content")
            if content is not None:
                base["content"] = json.dumps(content) if isinstance(content, list) else str(content)
            if msg.get("tool_calls"):
                base["tool_calls"] = msg["tool_calls"]
            if msg.get("tool_call_id"):
                base["tool_call_id"] = msg["tool_call_id"]
            formatted.append(base)
        return formatted

    @staticmethod
    def _parse_arguments(raw: Any) -> Dict[str, Any]:
        if isinstance(raw, dict):
            return raw
        try:
            parsed = json.loads(raw or "{}")
        except (TypeError, ValueError):
            logger.warning("Discarding unparsable tool arguments: %r", raw)
            return {}
        return parsed if isinstance(parsed, dict) else {}

    @classmethod
    def _to_chat_result(cls, response: Any) -> ChatResult:
        choices = response.choices or []
        if not choices:
            raise ValueError("response has no choices")
        choice = choices[0]
        message = choice.message

        tool_calls = [
            ToolCall(
                id=call.id,
                name=call.function.name,
                arguments=cls._parse_arguments(call.function.arguments),
            )
            for call in (message.tool_calls or [])
        ]

        usage = response.usage
        return ChatResult(
            text=message.content or "",
            input_tokens=_usage_value(usage, "prompt_tokens"),
            output_tokens=_usage_value(usage, "completion_tokens"),
            tool_calls=tool_calls,
            stop_reason="tool_use" if choice.finish_reason == "tool_calls" else "end_turn",
        )
