"""
Tests for the console helpers and the command-line entry point.

Run with:
$ pytest -q
"""

import pytest

from console_agent import main as entry
from console_agent.agent.repl import ConsoleAgent
from console_agent.console import (
    AGENT_KEY,
    HELPERS,
    get_agent,
    install,
)


def test_install_binds_helpers(settings, capsys) -> None:
    """Every helper is bound into the namespace and acts on it."""

    namespace = {}
    agent = install(namespace, settings)

    assert set(HELPERS) <= set(namespace)
    assert get_agent(namespace) is agent
    assert agent.namespace is namespace

    namespace["ai_status"]()
    out = capsys.readouterr().out
    assert "Provider:        anthropic" in out
    assert "test-key" not in out


def test_agent_lives_in_its_namespace(settings) -> None:
    """Each namespace keeps its own agent, stored alongside its variables."""

    first, second = {}, {}
    agent = get_agent(first, settings)

    assert first[AGENT_KEY] is agent
    assert get_agent(first) is agent
    assert get_agent(second, settings) is not agent
    assert second[AGENT_KEY].namespace is second


def test_foreign_value_under_agent_key_is_replaced(settings) -> None:
    """A stray value under the agent key never stands in for an agent."""

    namespace = {AGENT_KEY: "not an agent"}

    agent = get_agent(namespace, settings)

    assert isinstance(agent, ConsoleAgent)
    assert namespace[AGENT_KEY] is agent

def test_ai_sessions_empty(settings, capsys) -> None:
    """With nothing recorded the helper says so."""

    namespace = {}
    install(namespace, settings)

    namespace["ai_sessions"]()

    assert "No sessions recorded." in capsys.readouterr().out


def test_helpers_delegate_to_agent(settings, monkeypatch) -> None:
    """``ai`` forwards the query to the bound agent's one-shot mode."""

    seen = []
    monkeypatch.setattr(ConsoleAgent, "one_shot", lambda self, query: seen.append((self, query)) or 7)
    namespace = {}
    agent = install(namespace, settings)

    assert namespace["ai"]("how many users?") == 7
    assert seen == [(agent, "how many users?")]


def test_main_one_shot(monkeypatch, tmp_path) -> None:
    """A positional query runs one-shot mode."""

    seen = []
    monkeypatch.setenv("CONSOLE_AGENT_DATA_DIR", str(tmp_path))
    monkeypatch.setattr(ConsoleAgent, "one_shot", lambda self, query: seen.append(query))

    assert entry.main(["what tables exist"]) == 0
    assert seen == ["what tables exist"]


def test_main_explain(monkeypatch, tmp_path) -> None:
    """--explain with a query runs explain mode."""

    seen = []
    monkeypatch.setenv("CONSOLE_AGENT_DATA_DIR", str(tmp_path))
    monkeypatch.setattr(ConsoleAgent, "explain", lambda self, query: seen.append(query))

    entry.main(["--explain", "why is this slow"])
    assert seen == ["why is this slow"]


def test_main_explain_needs_query() -> None:
    """--explain on its own is a usage error."""

    with pytest.raises(SystemExit):
        entry.main(["--explain"])


def test_main_rejects_conflicting_modes() -> None:
    """Only one of --explain, --chat and --resume may be given."""

    with pytest.raises(SystemExit):
        entry.main(["--chat", "--resume", "abc"])
