"""Registers the tools of one conversation, dispatches calls to them, caches and wraps errors."""

import json
import logging
from typing import (
    Any,
    Dict,
    FrozenSet,
    List,
    Mapping,
    Tuple,
)

from console_agent.core.schema import (
    ToolDefinition,
    ToolHandler,
)

logger = logging.getLogger(__name__)

NO_CACHE_TOOLS: FrozenSet[str] = frozenset(
    {"ask_user", "save_memory", "delete_memory", "execute_plan"}
)
"""Tools whose results are single-use or whose side effects must recur on every call."""


class ToolExecutionError(RuntimeError):
    """Raised by tool helpers when a requested tool cannot run; reported back to the model."""


def normalize_arguments(arguments: Mapping[str, Any] | str | None) -> Dict[str, Any]:
    """
    Turn whatever the provider handed us into a plain argument mapping.

    JSON strings are decoded; malformed JSON, non-object JSON and ``None`` all become ``{}``.
    """
    if arguments is None:
        return {}
    if isinstance(arguments, str):
        try:
            decoded = json.loads(arguments) if arguments.strip() else {}
        except ValueError:
            logger.debug("Malformed tool arguments %r, using {}", arguments)
            return {}
        return decoded if isinstance(decoded, dict) else {}
    return dict(arguments)


class ToolRegistry:
    """
    Tool definitions and handlers for one conversation.

    The registry owns a result cache keyed by ``(tool name, arguments)``.  A repeated call to a
    cacheable tool returns the stored text without running the handler again; :attr:`last_cached`
    tells the caller whether the most recent :meth:`execute` was served that way.
    """

    def __init__(self) -> None:
        self._definitions: Dict[str, ToolDefinition] = {}
        self._handlers: Dict[str, ToolHandler] = {}
        self._cache: Dict[Tuple[str, str], str] = {}
        self._last_cached = False

    # ------------------------------------------------------------------ #
    # Registration
    # ------------------------------------------------------------------ #
    def register(
        self,
        name: str,
        description: str,
        parameters: Mapping[str, Any] | None,
        handler: ToolHandler,
    ) -> None:
        """
        Register *handler* under *name*.

        Registering an existing name replaces its definition and handler (last registration wins)
        while keeping its original position in :attr:`definitions`.
        """
        if name in self._definitions:
            logger.debug("Replacing tool '%s'", name)
        else:
            logger.debug("Registering tool '%s'", name)
        self._definitions[name] = ToolDefinition(
            name=name,
            description=description,
            parameters=dict(parameters or {"type": "object", "properties": {}}),
        )
        self._handlers[name] = handler

    @property
    def definitions(self) -> List[ToolDefinition]:
        """Registered tool definitions in registration order."""
        return list(self._definitions.values())

    @property
    def names(self) -> List[str]:
        """Registered tool names in registration order."""
        return list(self._definitions)

    def __contains__(self, name: object) -> bool:
        return name in self._definitions

    @property
    def last_cached(self) -> bool:
        """``True`` if the last :meth:`execute` call was answered from the cache."""
        return self._last_cached

    # ------------------------------------------------------------------ #
    # Dispatch
    # ------------------------------------------------------------------ #
    def execute(self, name: str, arguments: Mapping[str, Any] | str | None = None) -> str:
        """
        Look up *name* and invoke its handler with *arguments*.

        Parameters
        ----------
        name:
            The registered tool name.
        arguments:
            Mapping or JSON-encoded string of arguments.  Malformed JSON degrades to ``{}``.

        Returns
        -------
        str
            The handler's text result, or an ``Error ...`` string.  This method never raises for
            tool failures so the conversation can continue and the model can adapt.
        """
        handler = self._handlers.get(name)
        if handler is None:
            self._last_cached = False
            return f"Error: unknown tool '{name}'"

        args = normalize_arguments(arguments)
        cacheable = name not in NO_CACHE_TOOLS
        key = (name, _cache_key(args))

        if cacheable and key in self._cache:
            self._last_cached = True
            logger.debug("Tool '%s' served from cache", name)
            return self._cache[key]

        self._last_cached = False
        try:
            logger.debug("Executing tool '%s' with args=%s", name, args)
            result = handler(args)
        except TypeError as exc:
            # Argument mismatch: give the model a clean message.
            logger.exception("Argument error while executing tool '%s'", name)
            return f"Error executing {name}: invalid arguments ({exc})"
        except Exception as exc:  # noqa: BLE001  pylint: disable=broad-except
            logger.exception("Unhandled error in tool '%s'", name)
            return f"Error executing {name}: {exc}"

        text = "" if result is None else str(result)
        if cacheable:
            self._cache[key] = text
        return text

    def clear_cache(self) -> None:
        """Forget every cached result."""
        self._cache.clear()

    # ------------------------------------------------------------------ #
    # Provider dialects
    # ------------------------------------------------------------------ #
    def to_anthropic_format(self) -> List[Dict[str, Any]]:
        """Definitions as Anthropic ``tools`` entries."""
        return [
            {"name": d.name, "description": d.description, "input_schema": d.parameters}
            for d in self._definitions.values()
        ]

    def to_openai_format(self) -> List[Dict[str, Any]]:
        """Definitions as OpenAI ``function`` tools."""
        return [
            {
                "type": "function",
                "function": {
                    "name": d.name,
                    "description": d.description,
                    "parameters": d.parameters,
                },
            }
            for d in self._definitions.values()
        ]

    def to_provider_format(self, provider_name: str) -> List[Dict[str, Any]]:
        """Render every definition in the schema dialect of *provider_name*."""
        if provider_name == "anthropic":
            return self.to_anthropic_format()
        if provider_name == "openai":
            return self.to_openai_format()
        raise ValueError(f"No tool format for provider '{provider_name}'")


def _cache_key(args: Mapping[str, Any]) -> str:
    return json.dumps(args, sort_keys=True, default=repr)
