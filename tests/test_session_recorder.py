"""
Tests for storage back-ends and the session recorder.

Run with:
$ pytest -q
"""

import pytest

from console_agent.memory.session_recorder import SessionRecorder
from console_agent.memory.storage import (
    FileStorage,
    MemoryStorage,
    sanitize_key,
)


@pytest.fixture(params=["memory", "file"])
def any_storage(request, tmp_path):
    """Each storage back-end in turn."""

    if request.param == "memory":
        return MemoryStorage()
    return FileStorage(tmp_path / "store")


def test_storage_basics(any_storage) -> None:
    """Both back-ends read, write, list, check and delete the same way."""

    assert any_storage.read("memories/a.md") is None
    any_storage.write("memories/a.md", "alpha")
    any_storage.write("memories/b.md", "beta")
    any_storage.write("skills/c.md", "gamma")

    assert any_storage.read("memories/a.md") == "alpha"
    assert any_storage.list("memories/*.md") == ["memories/a.md", "memories/b.md"]
    assert any_storage.exists("skills/c.md")
    assert any_storage.delete("skills/c.md") is True
    assert any_storage.delete("skills/c.md") is False
    assert not any_storage.exists("skills/c.md")


def test_sanitize_key_blocks_traversal() -> None:
    """Parent-directory segments and absolute prefixes are removed."""

    assert sanitize_key("../../etc/passwd") == "etc/passwd"
    assert sanitize_key("/memories//a.md") == "memories/a.md"


def test_file_storage_stays_inside_root(tmp_path) -> None:
    """Writes with hostile keys land below the root directory."""

    storage = FileStorage(tmp_path / "root")
    storage.write("../escape.txt", "x")
    assert (tmp_path / "root" / "escape.txt").read_text() == "x"
    assert not (tmp_path / "escape.txt").exists()


def test_log_and_load(settings, storage) -> None:
    """A logged session can be read back with the settings' metadata."""

    recorder = SessionRecorder(storage, settings)
    session_id = recorder.log(
        {
            "query": "what tables exist",
            "conversation": [{"role": "user", "content": "what tables exist"}],
            "input_tokens": 10,
            "output_tokens": 4,
            "mode": "one_shot",
        }
    )

    record = recorder.load(session_id)
    assert record.query == "what tables exist"
    assert record.user_name == "tester"
    assert record.provider == "anthropic"
    assert record.model == "claude-sonnet-4-20250514"
    assert (record.input_tokens, record.output_tokens) == (10, 4)
    assert record.updated_at is None


def test_update_round_trips_conversation(settings, storage) -> None:
    """Updating the conversation preserves length, roles and content order."""

    recorder = SessionRecorder(storage, settings)
    session_id = recorder.log({"query": "q", "mode": "interactive"})
    conversation = [
        {"role": "user", "content": "list users"},
        {"role": "assistant", "content": "```python\nUser.all()\n```"},
        {"role": "user", "content": "Execution result: [<User 1>]"},
    ]

    recorder.update(session_id, {"conversation": conversation, "output_tokens": 12})

    record = recorder.load(session_id)
    assert [(m["role"], m["content"]) for m in record.conversation] == [
        (m["role"], m["content"]) for m in conversation
    ]
    assert record.output_tokens == 12
    assert record.mode == "interactive"
    assert record.updated_at is not None


def test_update_ignores_unknown_keys(settings, storage) -> None:
    """Only recognised attributes are patched; identity fields are immutable."""

    recorder = SessionRecorder(storage, settings)
    session_id = recorder.log({"query": "original"})

    recorder.update(session_id, {"query": "rewritten", "executed": True})

    record = recorder.load(session_id)
    assert record.query == "original"
    assert record.executed is True


def test_logging_disabled(settings, storage) -> None:
    """With session logging off nothing is written."""

    settings.SESSION_LOGGING = False
    recorder = SessionRecorder(storage, settings)

    assert recorder.log({"query": "q"}) is None
    recorder.update("abc", {"executed": True})
    assert storage.list("sessions/*") == []


def test_failures_are_swallowed(settings, caplog) -> None:
    """Storage failures are logged as warnings and never raised."""

    class BrokenStorage(MemoryStorage):
        def write(self, key, content):
            raise OSError("disk full")

    recorder = SessionRecorder(BrokenStorage(), settings)

    assert recorder.log({"query": "q"}) is None
    assert "Session logging failed" in caplog.text


def test_update_of_missing_session(settings, storage, caplog) -> None:
    """Updating an unknown id only warns."""

    recorder = SessionRecorder(storage, settings)
    recorder.update("missing", {"executed": True})
    assert "no session missing" in caplog.text


def test_list_sessions_newest_first(settings, storage) -> None:
    """Sessions are listed most recent first and limited."""

    recorder = SessionRecorder(storage, settings)
    ids = [recorder.log({"query": f"q{i}"}) for i in range(3)]

    listed = recorder.list_sessions(limit=2)

    assert len(listed) == 2
    assert {r.id for r in listed} <= set(ids)
    assert listed[0].created_at >= listed[1].created_at
