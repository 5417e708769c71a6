"""
Built-in tools for console-agent.

The tool set is fixed: :func:`register_builtin_tools` fills a conversation's
:class:`~console_agent.agent.tool_executor.ToolRegistry` with schema, namespace, source-code, memory,
skill, user-question and plan tools.  Every handler takes the argument mapping decoded from the
model's call and returns text; expected failures ("not found", bad input) are part of that text.
"""

import logging
from typing import (
    Any,
    Dict,
    Mapping,
)

from console_agent.agent.tool_executor import (
    ToolExecutionError,
    ToolRegistry,
)
from console_agent.common import AnsiColors
from console_agent.config import Settings
from console_agent.execution.executor import CodeExecutor
from console_agent.execution.plan import PlanExecutor
from console_agent.memory.storage import Storage
from console_agent.terminal import ConsoleIO
from console_agent.tools.code_tools import CodeTools
from console_agent.tools.memory_tools import MemoryTools
from console_agent.tools.namespace_tools import NamespaceTools
from console_agent.tools.schema_tools import SchemaTools
from console_agent.tools.skill_tools import SkillTools

logger = logging.getLogger(__name__)

_NO_PARAMS: Dict[str, Any] = {"type": "object", "properties": {}}


def _string(description: str) -> Dict[str, str]:
    return {"type": "string", "description": description}


def _required(args: Mapping[str, Any], name: str) -> Any:
    value = args.get(name)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ToolExecutionError(f"'{name}' is required")
    return value


def ask_user(console: ConsoleIO, question: str) -> str:
    """Put *question* to the person at the console and return the answer."""
    console.say(f"  ? {question}", AnsiColors.CYAN)
    answer = console.ask("  > ", AnsiColors.CYAN)
    return answer or "(no answer provided)"


def register_builtin_tools(
    registry: ToolRegistry,
    settings: Settings,
    console: ConsoleIO,
    storage: Storage,
    namespace: Dict[str, Any] | None = None,
    executor: CodeExecutor | None = None,
) -> ToolRegistry:
    """
    Register the fixed tool set on *registry* and return it.

    Memory tools are only registered when ``settings.MEMORIES_ENABLED`` is set, and
    ``execute_plan`` only when an *executor* is supplied.
    """
    schema = SchemaTools(settings.DATABASE_PATH)
    objects = NamespaceTools(namespace if namespace is not None else {})
    code = CodeTools(settings.PROJECT_ROOT)
    skills = SkillTools(storage)

    registry.register(
        "list_tables",
        "List all table names in the application's SQLite database.",
        _NO_PARAMS,
        lambda _args: schema.list_tables(),
    )
    registry.register(
        "describe_table",
        "Get column names, types and indexes for a specific database table.",
        {
            "type": "object",
            "properties": {"table_name": _string('The database table name (e.g. "users")')},
            "required": ["table_name"],
        },
        lambda args: schema.describe_table(args.get("table_name")),
    )
    registry.register(
        "list_objects",
        "List the public names (classes, functions, modules, values) defined in the user's "
        "live Python session.",
        _NO_PARAMS,
        lambda _args: objects.list_objects(),
    )
    registry.register(
        "describe_object",
        "Get details about a name in the live session: kind, signature, docstring, fields and "
        "public members. Dotted paths such as \"app.models.User\" are allowed.",
        {
            "type": "object",
            "properties": {"name": _string('The name to describe (e.g. "User" or "db.session")')},
            "required": ["name"],
        },
        lambda args: objects.describe_object(args.get("name")),
    )
    registry.register(
        "list_files",
        "List Python files in a directory of this project. Defaults to the project root.",
        {
            "type": "object",
            "properties": {
                "directory": _string('Relative directory path (e.g. "app/models"). Defaults to ".".')
            },
        },
        lambda args: code.list_files(args.get("directory")),
    )
    registry.register(
        "read_file",
        "Read a file in this project with line numbers. Capped at 500 lines; use start_line and "
        "end_line to read specific sections of large files.",
        {
            "type": "object",
            "properties": {
                "path": _string('Relative file path (e.g. "app/models/user.py")'),
                "start_line": {"type": "integer", "description": "First line to read (1-based)"},
                "end_line": {"type": "integer", "description": "Last line to read (inclusive)"},
            },
            "required": ["path"],
        },
        lambda args: code.read_file(
            args.get("path"), start_line=args.get("start_line"), end_line=args.get("end_line")
        ),
    )
    registry.register(
        "search_code",
        "Search for a substring in Python files. Returns matching lines with file paths.",
        {
            "type": "object",
            "properties": {
                "query": _string("Search pattern (substring match)"),
                "directory": _string('Relative directory to search in. Defaults to ".".'),
            },
            "required": ["query"],
        },
        lambda args: code.search_code(args.get("query"), args.get("directory")),
    )
    registry.register(
        "ask_user",
        "Ask the console user a clarifying question. Use this when you need specific information "
        "to write accurate code (e.g. which user they are, which record to target, what value to "
        "use). Do NOT generate placeholder values like YOUR_USER_ID; ask instead.",
        {
            "type": "object",
            "properties": {"question": _string("The question to ask the user")},
            "required": ["question"],
        },
        lambda args: ask_user(console, _required(args, "question")),
    )
    registry.register(
        "load_skill",
        "Load the full instructions of a skill listed in the Skills section of the prompt.",
        {
            "type": "object",
            "properties": {"name": _string("The skill name")},
            "required": ["name"],
        },
        lambda args: skills.load_skill(args.get("name")),
    )

    if settings.MEMORIES_ENABLED:
        _register_memory_tools(registry, MemoryTools(storage))

    if executor is not None:
        _register_execute_plan(registry, PlanExecutor(executor, auto_execute=settings.AUTO_EXECUTE))

    return registry


def _register_memory_tools(registry: ToolRegistry, memory: MemoryTools) -> None:
    registry.register(
        "save_memory",
        "Save a fact or pattern you learned about this codebase for future sessions. Use after "
        "discovering how something works (e.g. sharding, auth, custom business logic). Saving "
        "under an existing name updates that memory.",
        {
            "type": "object",
            "properties": {
                "name": _string('Short name for this memory (e.g. "Sharding architecture")'),
                "description": _string("Detailed description of what you learned"),
                "tags": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": 'Optional tags (e.g. ["database", "sharding"])',
                },
            },
            "required": ["name", "description"],
        },
        lambda args: memory.save_memory(
            _required(args, "name"), _required(args, "description"), args.get("tags") or []
        ),
    )
    registry.register(
        "delete_memory",
        "Delete a memory by name.",
        {
            "type": "object",
            "properties": {"name": _string('The memory name to delete (e.g. "Sharding")')},
            "required": ["name"],
        },
        lambda args: memory.delete_memory(_required(args, "name")),
    )
    registry.register(
        "recall_memories",
        "Search your saved memories about this codebase. Call with no args to list all, or pass "
        "a query/tag to filter.",
        {
            "type": "object",
            "properties": {
                "query": _string("Search term to filter by name, description, or tags"),
                "tag": _string("Filter by a specific tag"),
            },
        },
        lambda args: memory.recall_memories(query=args.get("query"), tag=args.get("tag")),
    )


def _register_execute_plan(registry: ToolRegistry, plans: PlanExecutor) -> None:
    registry.register(
        "execute_plan",
        "Execute a multi-step plan. Each step has a description and Python code. The plan is "
        "shown to the user for approval, then each step is executed in order. After each step "
        "executes, its return value is stored as step1, step2, etc. Use these variables in later "
        "steps to reference earlier results (e.g. `token = step1`).",
        {
            "type": "object",
            "properties": {
                "steps": {
                    "type": "array",
                    "description": "Ordered list of steps to execute",
                    "items": {
                        "type": "object",
                        "properties": {
                            "description": _string("What this step does"),
                            "code": _string("Python code to execute"),
                        },
                        "required": ["description", "code"],
                    },
                }
            },
            "required": ["steps"],
        },
        lambda args: plans.run(args.get("steps")),
    )
