"""
Helpers installed into an interactive Python session.

``install()`` binds ``ai``, ``ai_chat``, ``ai_explain``, ``ai_resume``, ``ai_status`` and
``ai_sessions`` into a namespace (``__main__`` by default), so the assistant can be used from any
REPL attached to the application::

    >>> from console_agent.console import install
    >>> install(globals())
    >>> ai("how many users signed up this week?")
"""

from __future__ import annotations

import logging
from typing import (
    Any,
    Callable,
    Dict,
    Optional,
)

from console_agent.agent.repl import ConsoleAgent
from console_agent.common import (
    AnsiColors,
    colored_print,
)
from console_agent.config import Settings

logger = logging.getLogger(__name__)

AGENT_KEY = "__console_agent__"


def _default_namespace() -> Dict[str, Any]:
    import __main__  # pylint: disable=import-outside-toplevel

    return __main__.__dict__


def get_agent(
    namespace: Dict[str, Any] | None = None, settings: Settings | None = None
) -> ConsoleAgent:
    """
    The agent bound to *namespace*, created on first use.

    The agent is kept in the namespace itself under :data:`AGENT_KEY`, so it lives exactly as long
    as the session it serves.
    """
    namespace = namespace if namespace is not None else _default_namespace()
    agent = namespace.get(AGENT_KEY)
    if not isinstance(agent, ConsoleAgent) or (
        settings is not None and agent.settings is not settings
    ):
        agent = ConsoleAgent(namespace, settings=settings)
        namespace[AGENT_KEY] = agent
    return agent


def ai(query: str, namespace: Dict[str, Any] | None = None) -> Any:
    """Ask a question; the generated code runs after confirmation and its value is returned."""
    return get_agent(namespace).one_shot(query)


def ai_chat(query: str | None = None, namespace: Dict[str, Any] | None = None) -> None:
    """Start an interactive conversation, optionally opening with *query*."""
    get_agent(namespace).interactive(query)


def ai_explain(query: str, namespace: Dict[str, Any] | None = None) -> None:
    """Answer without executing any code."""
    get_agent(namespace).explain(query)


def ai_resume(session_id: str, namespace: Dict[str, Any] | None = None) -> None:
    """Continue a recorded conversation."""
    get_agent(namespace).resume(session_id)


def ai_sessions(limit: int = 20, namespace: Dict[str, Any] | None = None) -> None:
    """List the most recent recorded sessions."""
    agent = get_agent(namespace)
    records = agent.recorder.list_sessions(limit)
    if not records:
        colored_print("No sessions recorded.", AnsiColors.YELLOW)
        return
    for record in records:
        query = record.query if len(record.query) <= 60 else record.query[:57] + "..."
        colored_print(
            f"  {record.id}  {record.created_at:%Y-%m-%d %H:%M}  {record.mode:<11}  {query}",
            AnsiColors.WHITE,
        )


def ai_status(namespace: Dict[str, Any] | None = None) -> None:
    """Print the active configuration."""
    agent = get_agent(namespace)
    colored_print("console-agent configuration:", AnsiColors.CYAN)
    for line in agent.settings.status_lines():
        colored_print(line, AnsiColors.WHITE)


HELPERS: Dict[str, Callable[..., Any]] = {
    "ai": ai,
    "ai_chat": ai_chat,
    "ai_explain": ai_explain,
    "ai_resume": ai_resume,
    "ai_sessions": ai_sessions,
    "ai_status": ai_status,
}


def install(
    namespace: Dict[str, Any] | None = None, settings: Optional[Settings] = None
) -> ConsoleAgent:
    """
    Bind the helpers into *namespace* and return the agent that serves them.

    The helpers installed this way always act on *namespace*, whichever module calls them.
    """
    namespace = namespace if namespace is not None else _default_namespace()
    agent = get_agent(namespace, settings)
    for name, helper in HELPERS.items():
        namespace[name] = _bound(helper, namespace)
    logger.debug("Installed console helpers: %s", ", ".join(HELPERS))
    return agent


def _bound(helper: Callable[..., Any], namespace: Dict[str, Any]) -> Callable[..., Any]:
    def call(*args: Any, **kwargs: Any) -> Any:
        kwargs.setdefault("namespace", namespace)
        return helper(*args, **kwargs)

    call.__name__ = helper.__name__
    call.__doc__ = helper.__doc__
    return call
