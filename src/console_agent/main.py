"""
console-agent entry point.

This file handles startup concerns (arg-parsing, env setup, logging) and either answers a single
question or opens a Python console with the ``ai*`` helpers installed.
"""

import argparse
import code
import logging
import sys

from console_agent.config import Settings
from console_agent.console import (
    HELPERS,
    install,
)

logger = logging.getLogger(__name__)

BANNER = (
    "console-agent: Python console with an AI assistant.\n"
    "Try ai(\"...\"), ai_chat(), ai_explain(\"...\"), ai_resume(id), ai_sessions() or ai_status()."
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _init_logging(level: str) -> None:
    numeric = getattr(logging, level.upper(), logging.WARNING)
    logging.basicConfig(
        level=numeric,
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        stream=sys.stderr,
    )
    # SDK clients log every request at INFO
    for name in ("httpx", "anthropic", "openai"):
        logging.getLogger(name).setLevel(logging.WARNING)


def _build_parser(settings: Settings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="console-agent", description="Ask an LLM about your Python application"
    )
    parser.add_argument("query", nargs="?", help="Question to answer (omit for a console)")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--explain", action="store_true", help="Explain only; never execute generated code"
    )
    mode.add_argument("--chat", action="store_true", help="Start an interactive conversation")
    mode.add_argument("--resume", metavar="SESSION_ID", help="Resume a recorded session")
    parser.add_argument(
        "--auto-execute",
        action="store_true",
        default=settings.AUTO_EXECUTE,
        help="Run generated code without asking for confirmation",
    )
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error", "critical"],
        type=str.lower,
        default=settings.LOG_LEVEL,
        help="Logging level (default from env: %(default)s)",
    )
    return parser


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------
def main(argv: list[str] | None = None) -> int:
    """
    Main entry point for console-agent.

    With a query the question is answered once (``--explain`` skips execution).  ``--chat`` and
    ``--resume`` start a conversation.  Without either, an interactive Python console opens with
    the helpers bound into its namespace.
    """
    if argv is None:
        argv = sys.argv[1:]

    settings = Settings()
    parser = _build_parser(settings)
    args = parser.parse_args(argv)

    # Command-line arguments override environment settings
    settings.LOG_LEVEL = args.log_level
    settings.AUTO_EXECUTE = args.auto_execute

    _init_logging(settings.LOG_LEVEL)
    logger.debug("Settings: %s", settings.model_dump(exclude={"API_KEY"}))

    namespace = {"__name__": "__console__", "__doc__": None}
    agent = install(namespace, settings)

    if args.resume:
        agent.resume(args.resume)
    elif args.chat:
        agent.interactive(args.query)
    elif args.query and args.explain:
        agent.explain(args.query)
    elif args.query:
        agent.one_shot(args.query)
    elif args.explain:
        parser.error("--explain needs a query")
    else:
        logger.info("Opening console with helpers: %s", ", ".join(HELPERS))
        code.InteractiveConsole(namespace).interact(banner=BANNER, exitmsg="")
    return 0


if __name__ == "__main__":
    sys.exit(main())
