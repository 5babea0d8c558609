"""Command-line entry for slotbot_lite."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import NoReturn, Optional

from . import run_server
from .core.exceptions import ConfigError, FetchError


def _create_parser() -> argparse.ArgumentParser:
    """Create argument parser for the slotbot_lite CLI."""
    parser = argparse.ArgumentParser(
        prog="slotbot",
        description="SlotBot Lite - meeting slot availability and booking server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m slotbot_lite                        # Start server on default port (5000)
  python -m slotbot_lite --port 3000            # Start server on port 3000
  python -m slotbot_lite --config slots.yaml    # Load settings from a YAML file
        """,
    )

    parser.add_argument(
        "--port",
        type=int,
        metavar="PORT",
        help="Port number for the web server (default: 5000, or from SLOTBOT_WEB_PORT env var)",
    )
    parser.add_argument(
        "--config",
        metavar="PATH",
        help="YAML or JSON config file (default: ./slotbot_lite/config.yaml if present)",
    )

    return parser


def main(argv: Optional[list[str]] = None) -> NoReturn:
    """Run the slotbot_lite CLI."""
    args = _create_parser().parse_args(argv)

    try:
        run_server(args)
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        sys.exit(2)
    except FetchError as exc:
        logging.getLogger(__name__).debug("Startup verification failed", exc_info=True)
        print(f"Error accessing calendar: {exc}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        sys.exit(130)
    sys.exit(0)


if __name__ == "__main__":
    main()
