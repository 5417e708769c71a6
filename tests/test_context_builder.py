"""
Tests for system prompt assembly.

Run with:
$ pytest -q
"""

from console_agent.agent.context_builder import (
    INSTRUCTIONS,
    ContextBuilder,
)
from console_agent.memory.storage import MemoryStorage
from console_agent.tools.memory_tools import MemoryTools


def test_prompt_sections(settings) -> None:
    """Instructions, environment, memories and skills all appear."""

    storage = MemoryStorage(
        {"skills/refunds.md": "---\nname: Refunds\ndescription: Refund an order\n---\n\nSteps."}
    )
    MemoryTools(storage).save_memory("Sharding", "By org_id.", ["db"])
    settings.DATABASE_PATH = "app.db"

    prompt = ContextBuilder(settings, storage).build()

    assert prompt.startswith(INSTRUCTIONS)
    assert "## Environment" in prompt
    assert "- Database: SQLite at app.db" in prompt
    assert "## Memories\n- Sharding [db]" in prompt
    assert "## Skills\n- Refunds: Refund an order" in prompt


def test_optional_sections_omitted(settings) -> None:
    """Empty storage and disabled memories leave only instructions and environment."""

    settings.MEMORIES_ENABLED = False
    storage = MemoryStorage()
    MemoryTools(storage).save_memory("Hidden", "x")

    prompt = ContextBuilder(settings, storage).build()

    assert "## Memories" not in prompt
    assert "## Skills" not in prompt


def test_broken_storage_falls_back(settings, caplog) -> None:
    """A failing optional section is dropped with a warning."""

    class BrokenStorage(MemoryStorage):
        def list(self, pattern):
            raise RuntimeError("bucket unavailable")

    prompt = ContextBuilder(settings, BrokenStorage()).build()

    assert prompt.startswith(INSTRUCTIONS)
    assert "## Environment" in prompt
    assert "Context build error" in caplog.text
