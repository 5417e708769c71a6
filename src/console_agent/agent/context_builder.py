"""Builds the system prompt: instructions, environment facts, memory and skill summaries."""

import logging
import platform
import sys
from importlib import metadata
from typing import (
    List,
    Optional,
)

from console_agent.config import Settings
from console_agent.memory.storage import Storage
from console_agent.tools.memory_tools import MemoryTools
from console_agent.tools.skill_tools import SkillTools

logger = logging.getLogger(__name__)

NOTABLE_PACKAGES = (
    "django",
    "flask",
    "fastapi",
    "sqlalchemy",
    "alembic",
    "pydantic",
    "celery",
    "redis",
    "psycopg2",
    "psycopg",
    "pymysql",
    "pandas",
    "numpy",
    "requests",
    "httpx",
    "boto3",
)

INSTRUCTIONS = """\
You are a Python console assistant. The user is in a live Python session (an interactive
interpreter attached to their application). You help them query data, debug issues, and
understand their application.

You have tools to introspect the application's database schema, the objects defined in the live
session, and the project's source code. Use them as needed to write accurate code. For example,
call list_tables to see what tables exist, then describe_table to get column details for the
ones you need; call list_objects and describe_object to see the classes and helpers the session
already has imported.

You also have an ask_user tool to ask the console user clarifying questions. Use it when you
need specific information to write accurate code, such as which user they are, which record to
target, or what value to use.

You have memory tools to persist what you learn across sessions:
- save_memory: persist facts or procedures you learn about this codebase.
  If a memory with the same name already exists, it will be updated in place.
- delete_memory: remove a memory by name
- recall_memories: search your saved memories for details

IMPORTANT: Check the Memories section below BEFORE answering. If a memory is relevant, use
recall_memories to get full details and apply that knowledge to your answer. When you discover
important patterns about this application, save them as memories.

You have an execute_plan tool to run multi-step code. When a task requires multiple sequential
operations, use execute_plan with an array of steps (each with a description and Python code).
The plan is shown to the user for review before execution begins. After each step runs, its
return value is stored as step1, step2, etc.; use these variables in later steps to reference
earlier results (e.g. `client = ApiClient(step1)`). For simple single-expression answers, you may
respond with a ```python code block instead.

RULES:
- Give ONE concise answer. Do not offer multiple alternatives or variations.
- For multi-step tasks, use execute_plan to break the work into small, clear steps.
- For simple queries, respond with a single ```python code block. The value of its last
  expression is shown to the user.
- Include a brief one-line explanation before any code block.
- Use the application's actual class names, attributes and schema.
- For destructive operations, add a comment warning.
- NEVER use placeholder values like YOUR_USER_ID or YOUR_EMAIL in code. If you need a specific
  value from the user, call the ask_user tool to get it first.
- Keep code concise and idiomatic.
- Use tools to look up schema and object details rather than guessing names."""


class ContextBuilder:
    """Assembles the system prompt for one conversation."""

    def __init__(self, settings: Settings, storage: Storage):
        self.settings = settings
        self.storage = storage

    def build(self) -> str:
        """Full prompt; optional sections that fail are dropped with a warning."""
        try:
            parts = [INSTRUCTIONS, self.environment_context()]
            parts.append(self.memory_context())
            parts.append(self.skill_context())
            return "\n\n".join(p for p in parts if p)
        except Exception as exc:  # pylint: disable=broad-except
            logger.warning("Context build error: %s", exc)
            return INSTRUCTIONS + "\n\n" + self.environment_context()

    def environment_context(self) -> str:
        """Python version, platform and notable installed packages."""
        lines = ["## Environment"]
        lines.append(f"- Python {platform.python_version()} ({sys.implementation.name})")
        lines.append(f"- Platform: {platform.system()} {platform.release()}")
        packages = self._installed(NOTABLE_PACKAGES)
        if packages:
            lines.append(f"- Key packages: {', '.join(packages)}")
        if self.settings.DATABASE_PATH:
            lines.append(f"- Database: SQLite at {self.settings.DATABASE_PATH}")
        return "\n".join(lines)

    @staticmethod
    def _installed(names: tuple) -> List[str]:
        found = []
        for name in names:
            try:
                found.append(f"{name} {metadata.version(name)}")
            except metadata.PackageNotFoundError:
                continue
        return found

    def memory_context(self) -> Optional[str]:
        """Names of stored memories, so the model knows what to recall."""
        if not self.settings.MEMORIES_ENABLED:
            return None
        summaries = MemoryTools(self.storage).memory_summaries()
        if not summaries:
            return None
        return "\n".join(
            [
                "## Memories",
                *summaries,
                "",
                "Call recall_memories to get details before answering. Do NOT guess from the name "
                "alone.",
            ]
        )

    def skill_context(self) -> Optional[str]:
        """Names and descriptions of available skills."""
        summaries = SkillTools(self.storage).skill_summaries()
        if not summaries:
            return None
        return "\n".join(
            ["## Skills", *summaries, "", "Call load_skill to get a skill's full instructions."]
        )
