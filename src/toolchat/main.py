"""
toolchat entry point.

This file handles startup concerns (arg-parsing, env setup, logging) and launches the appropriate
interface (API or interactive shell).
"""

import argparse
import logging
import sys

from toolchat.config import settings

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
    # Keep client libraries quiet unless they have something important to say
    for noisy in ("httpx", "anthropic", "openai"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------
def main(argv: list[str] | None = None) -> None:
    """
    Main entry point for the toolchat application.

    This function sets up the command-line interface, initializes logging, and starts the
    application in either API or CLI mode.
    """
    if argv is None:
        argv = sys.argv[1:]

    parser = argparse.ArgumentParser(description="Run the toolchat assistant")
    parser.add_argument(
        "--mode",
        choices=["api", "cli"],
        type=str.lower,
        default="cli",
        help="Launch the REST API or the interactive shell (default: %(default)s)",
    )
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error", "critical"],
        type=str.lower,
        default=settings.LOG_LEVEL,
        help="Logging level (default from env: %(default)s)",
    )
    parser.add_argument(
        "--provider",
        choices=["anthropic", "openai", "tgi"],
        type=str.lower,
        default=None,
        help="Model provider (default from env: PROVIDER)",
    )
    parser.add_argument(
        "--force-tools",
        action="store_true",
        help="Start with forced tool use enabled",
    )
    parser.add_argument(
        "--no-memory",
        action="store_true",
        help="Do not load the memory file into the system prompt",
    )
    args = parser.parse_args(argv)

    # Override settings with command-line arguments
    settings.LOG_LEVEL = args.log_level
    if args.provider:
        settings.PROVIDER = args.provider
    if args.force_tools:
        settings.FORCE_TOOL_USE = True
    if args.no_memory:
        settings.USE_MEMORY = False

    _init_logging(settings.LOG_LEVEL)

    logger.info("Starting toolchat [%s mode, provider=%s]", args.mode, settings.PROVIDER)

    if args.mode == "api":
        # Lazy import to avoid web dependencies if not needed
        from toolchat.api.app import run_api  # pylint: disable=import-outside-toplevel

        run_api(host="0.0.0.0", port=settings.API_PORT, reload=settings.DEBUG)
    else:
        from toolchat.client.cli import run_cli  # pylint: disable=import-outside-toplevel

        run_cli()


if __name__ == "__main__":
    main()
