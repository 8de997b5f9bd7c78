"""
typedagent entry point.

This file handles startup concerns (arg-parsing, env setup, logging) and either runs the agent
defined in a JSON file once or serves it over HTTP.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from typedagent.agent.orchestrator import OutputSchemaError
from typedagent.common import (
    AnsiColors,
    colored_print,
)
from typedagent.config import settings
from typedagent.core.definition import load_agent
from typedagent.core.schema import (
    ProgressEvent,
    StreamingUpdate,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _init_logging(level: str) -> None:
    numeric = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric,
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        stream=sys.stdout,
    )
    # SDK request logs drown out the pipeline trace
    for name in ("httpx", "openai", "anthropic"):
        logging.getLogger(name).setLevel(logging.WARNING)


def _read_input(raw: str) -> Any:
    """Parse ``--input``: inline JSON, or ``@path`` to a JSON file."""
    if raw.startswith("@"):
        raw = Path(raw[1:]).read_text(encoding="utf-8")
    return json.loads(raw)


def _print_progress(event: ProgressEvent) -> None:
    if isinstance(event, StreamingUpdate):
        colored_print(f"  [{event.field}] {event.value}", AnsiColors.BLUE)
    else:
        colored_print(f"[{event.stage}] {event.message}", AnsiColors.YELLOW)


def _run_once(agent_file: str, raw_input: str) -> int:
    agent = load_agent(agent_file)
    try:
        output = agent.run(_read_input(raw_input), progress=_print_progress)
    except ValidationError as exc:
        colored_print(f"Invalid input: {exc}", AnsiColors.RED)
        return 2
    except OutputSchemaError as exc:
        colored_print(str(exc), AnsiColors.RED)
        return 1
    colored_print(output.model_dump_json(indent=2), AnsiColors.GREEN)
    return 0


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------
def main(argv: list[str] | None = None) -> None:
    """
    Main entry point for the typedagent application.

    This function sets up the command-line interface, initializes logging, and either runs the
    agent once or starts the API server.
    """
    if argv is None:
        argv = sys.argv[1:]

    parser = argparse.ArgumentParser(description="Run a typedagent agent definition")
    parser.add_argument(
        "--agent",
        default=settings.AGENT_FILE,
        help="Path to the agent definition JSON file (default from env: %(default)s)",
    )
    parser.add_argument(
        "--mode",
        choices=["run", "api"],
        type=str.lower,
        default="run",
        help="Run the agent once, or serve it over a REST API (default: run)",
    )
    parser.add_argument(
        "--input",
        help="Agent input as JSON, or @path to a JSON file (required in run mode)",
    )
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error", "critical"],
        type=str.lower,
        default=settings.LOG_LEVEL,
        help="Logging level (default from env: %(default)s)",
    )
    args = parser.parse_args(argv)

    # Override settings with command-line arguments
    settings.LOG_LEVEL = args.log_level
    settings.AGENT_FILE = args.agent

    _init_logging(settings.LOG_LEVEL)

    if not Path(args.agent).is_file():
        logger.error("Agent definition not found: %s", args.agent)
        sys.exit(1)

    logger.info("Starting typedagent [%s mode]", args.mode)
    logger.debug("Settings: %s", settings.model_dump())

    if args.mode == "api":
        # Lazy import to avoid web dependencies if not needed
        from typedagent.api.app import run_api  # pylint: disable=import-outside-toplevel

        run_api(host="0.0.0.0", port=settings.API_PORT, reload=settings.DEBUG)
        return

    if args.input is None:
        parser.error("--input is required in run mode")
    sys.exit(_run_once(args.agent, args.input))


if __name__ == "__main__":
    main()
