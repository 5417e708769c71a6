"""
End-to-end tests for the console driver with a scripted provider.

Run with:
$ pytest -q
"""

import pytest

from conftest import (
    ScriptedProvider,
    answer,
    make_console,
)
from console_agent.agent.providers import ProviderError
from console_agent.agent.repl import ConsoleAgent

CODE_ANSWER = "Counting users.\n```python\nlen(users)\n```"


def _agent(settings, storage, monitor, responses, *inputs, namespace=None):
    provider = ScriptedProvider(responses, settings)
    console = make_console(*inputs)
    namespace = namespace if namespace is not None else {"users": ["ann", "bob", "cy"]}
    agent = ConsoleAgent(
        namespace,
        settings=settings,
        console=console,
        provider=provider,
        storage=storage,
        monitor=monitor,
    )
    return agent, provider, console


def _only_session(agent, storage):
    keys = storage.list("sessions/*.json")
    assert len(keys) == 1
    session_id = keys[0].split("/")[-1][: -len(".json")]
    return agent.recorder.load(session_id)


# ---------------------------------------------------------------------------
# One-shot and explain
# ---------------------------------------------------------------------------
def test_one_shot_confirmed(settings, storage, monitor) -> None:
    """The answer is shown, confirmed code runs, and the session records the outcome."""

    agent, provider, console = _agent(settings, storage, monitor, [answer(CODE_ANSWER)], "y")

    assert agent.one_shot("how many users?") == 3

    out = console.stdout.getvalue()
    assert "Counting users." in out
    assert "[tokens in: 10 | out: 5 | total: 15]" in out
    assert "## Environment" in provider.calls[0]["system_prompt"]

    record = _only_session(agent, storage)
    assert record.mode == "one_shot"
    assert record.executed is True
    assert record.code_executed == "len(users)"
    assert record.code_result == "3"
    assert [m["role"] for m in record.conversation] == ["user", "assistant"]
    assert "Counting users." in record.console_output


def test_one_shot_declined(settings, storage, monitor) -> None:
    """Declined code is not run and the session says so."""

    namespace = {}
    agent, _, _ = _agent(
        settings, storage, monitor, [answer("```python\nx = 1\n```")], "n", namespace=namespace
    )

    assert agent.one_shot("set x") is None
    assert "x" not in namespace
    record = _only_session(agent, storage)
    assert record.executed is False
    assert record.code_executed is None


def test_one_shot_auto_execute(settings, storage, monitor) -> None:
    """With auto-execute on no confirmation is asked."""

    settings.AUTO_EXECUTE = True
    agent, _, console = _agent(settings, storage, monitor, [answer(CODE_ANSWER)])

    assert agent.one_shot("how many users?") == 3
    assert "Execute?" not in console.stdout.getvalue()


def test_explain_never_executes(settings, storage, monitor) -> None:
    """Explain mode shows the answer and records it without running anything."""

    namespace = {}
    agent, _, console = _agent(
        settings, storage, monitor, [answer("```python\nx = 1\n```")], namespace=namespace
    )

    agent.explain("what would set x?")

    assert "x" not in namespace
    assert "Execute?" not in console.stdout.getvalue()
    assert _only_session(agent, storage).mode == "explain"


def test_provider_error_is_reported(settings, storage, monitor) -> None:
    """Provider failures are shown to the user and nothing is recorded."""

    agent, _, console = _agent(
        settings, storage, monitor, [ProviderError("API error (500): down", status_code=500)]
    )

    assert agent.one_shot("anything") is None
    assert "console-agent error: API error (500): down" in console.stderr.getvalue()
    assert storage.list("sessions/*.json") == []


def test_missing_api_key(settings, storage, monitor, monkeypatch) -> None:
    """Without a key the request is refused before reaching the provider."""

    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    settings.API_KEY = None
    agent, provider, console = _agent(settings, storage, monitor, [answer("unused")])

    assert agent.one_shot("anything") is None
    assert "No API key" in console.stderr.getvalue()
    assert provider.calls == []


def test_one_shot_cancelled(settings, storage, monitor) -> None:
    """An aborted request returns nothing and is not recorded."""

    agent, _, console = _agent(settings, storage, monitor, [KeyboardInterrupt()], "")

    assert agent.one_shot("anything") is None
    assert "Request cancelled." in console.stdout.getvalue()
    assert storage.list("sessions/*.json") == []


# ---------------------------------------------------------------------------
# Interactive
# ---------------------------------------------------------------------------
def test_interactive_feeds_execution_result_back(settings, storage, monitor) -> None:
    """Executed code's value becomes the next user message."""

    agent, _, console = _agent(
        settings, storage, monitor, [answer(CODE_ANSWER)], "how many users?", "y", "exit"
    )

    agent.interactive()

    assert [m["role"] for m in agent.history] == ["user", "assistant", "user"]
    assert agent.history[2]["content"] == "Execution result: 3"
    assert "[session totals: in: 10 | out: 5 | total: 15]" in console.stdout.getvalue()

    record = _only_session(agent, storage)
    assert record.mode == "interactive"
    assert record.query == "how many users?"
    assert len(record.conversation) == 3
    assert record.executed is True


def test_interactive_second_turn_sees_history(settings, storage, monitor) -> None:
    """Each turn sends the whole conversation and shows session totals."""

    agent, provider, console = _agent(
        settings,
        storage,
        monitor,
        [answer(CODE_ANSWER), answer("They are ann, bob and cy.")],
        "how many users?",
        "n",
        "who are they?",
        "quit",
    )

    agent.interactive()

    second = provider.calls[1]["messages"]
    assert [m["content"] for m in second] == ["how many users?", CODE_ANSWER, "who are they?"]
    assert "[session: in: 20 | out: 10 | total: 30]" in console.stdout.getvalue()


def test_interactive_interrupt_drops_turn(settings, storage, monitor) -> None:
    """An aborted turn is removed from the history and the loop continues."""

    agent, _, console = _agent(
        settings, storage, monitor, [KeyboardInterrupt()], "list users", "", "exit"
    )

    agent.interactive()

    assert agent.history == []
    assert "Request cancelled." in console.stdout.getvalue()
    assert _only_session(agent, storage).conversation == []


def test_interactive_provider_error_keeps_session(settings, storage, monitor) -> None:
    """A failed turn is dropped and the next question still works."""

    agent, _, _ = _agent(
        settings,
        storage,
        monitor,
        [ProviderError("Request failed: reset"), answer("fine now")],
        "first",
        "second",
        "exit",
    )

    agent.interactive()

    assert agent.history == [
        {"role": "user", "content": "second"},
        {"role": "assistant", "content": "fine now"},
    ]


def test_interactive_redirect_is_kept_in_history(settings, storage, monitor) -> None:
    """Text typed after an interrupt stays in the conversation and the recorded session."""

    agent, provider, _ = _agent(
        settings,
        storage,
        monitor,
        [KeyboardInterrupt(), answer("ok")],
        "count users",
        "use the orders table instead",
        "exit",
    )

    agent.interactive()

    expected = ["count users", "use the orders table instead", "ok"]
    assert [m["content"] for m in provider.calls[1]["messages"]] == expected[:2]
    assert [m["content"] for m in agent.history] == expected
    assert [m["content"] for m in _only_session(agent, storage).conversation] == expected


def test_one_shot_records_redirect(settings, storage, monitor) -> None:
    """A one-shot redirect is part of the logged conversation."""

    agent, _, _ = _agent(
        settings, storage, monitor, [KeyboardInterrupt(), answer("ok")], "only admins"
    )

    agent.one_shot("list users")

    assert [m["content"] for m in _only_session(agent, storage).conversation] == [
        "list users",
        "only admins",
        "ok",
    ]

def test_resume_restores_conversation(settings, storage, monitor) -> None:
    """A resumed session continues from the recorded history and totals."""

    first, _, _ = _agent(settings, storage, monitor, [answer("Hello!")], "hi", "exit")
    first.interactive()
    session_id = first.session_id

    agent, provider, console = _agent(
        settings, storage, monitor, [answer("Still here.")], "are you there?", "exit"
    )
    agent.resume(session_id)

    assert [m["content"] for m in provider.calls[0]["messages"]] == [
        "hi",
        "Hello!",
        "are you there?",
    ]
    assert (agent.total_input_tokens, agent.total_output_tokens) == (20, 10)
    out = console.stdout.getvalue()
    assert out.index("console-agent interactive mode") < out.index(f"Resumed session {session_id}")

    record = agent.recorder.load(session_id)
    assert len(record.conversation) == 4
    assert record.input_tokens == 20


def test_resume_unknown_session(settings, storage, monitor) -> None:
    """Resuming an unknown id reports it."""

    agent, provider, console = _agent(settings, storage, monitor, [])

    agent.resume("nope")

    assert "No session found with id nope." in console.stderr.getvalue()
    assert provider.calls == []


@pytest.mark.parametrize("command", ["exit", "quit", "EXIT"])
def test_exit_commands(settings, storage, monitor, command) -> None:
    """Any exit command leaves without calling the provider."""

    agent, provider, _ = _agent(settings, storage, monitor, [], command)
    agent.interactive()
    assert provider.calls == []
