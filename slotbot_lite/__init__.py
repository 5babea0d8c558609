"""slotbot_lite - meeting-slot availability and booking server over CalDAV.

Imports are kept light so the package can be inspected without starting the
server machinery.
"""

__version__ = "0.1.0"

from typing import Optional


def _init_logging(level_name: Optional[str]) -> None:
    """Initialize root logging to stream colorized output to the console.

    Honors SLOTBOT_DEBUG (truthy values: "1", "true", "yes", "on"), which
    forces DEBUG verbosity. Callers may adjust the level later from config.
    """
    import logging
    import os
    import sys

    from colorlog import ColoredFormatter

    debug_env = os.environ.get("SLOTBOT_DEBUG", "")
    if debug_env.strip().lower() in ("1", "true", "yes", "on"):
        level_name = "DEBUG"

    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler(stream=sys.stderr)
        # HH:MM:SS  LEVEL   [request-id] logger.name: message; only the level is colorized
        fmt = (
            "%(asctime)s %(log_color)s%(levelname)-7s%(reset)s "
            "[%(request_id)s] %(name)s: %(message)s"
        )
        log_colors = {
            "DEBUG": "cyan",
            "INFO": "green",
            "WARNING": "yellow",
            "ERROR": "red",
            "CRITICAL": "bold_red",
        }
        handler.setFormatter(ColoredFormatter(fmt, datefmt="%H:%M:%S", log_colors=log_colors))
        root.addHandler(handler)

    from .lite_logging import CorrelationIdFilter

    for existing_handler in root.handlers:
        if not any(isinstance(f, CorrelationIdFilter) for f in existing_handler.filters):
            existing_handler.addFilter(CorrelationIdFilter())

    level = logging.INFO
    if isinstance(level_name, str):
        level = getattr(logging, level_name.upper(), logging.INFO)
    root.setLevel(level)
    logging.getLogger(__name__).debug(
        "Logging initialized at level %s", logging.getLevelName(level)
    )


def run_server(args: Optional[object] = None) -> None:
    """Load configuration and run the slotbot_lite server until stopped.

    Args:
        args: Optional namespace with ``port`` and ``config`` overrides

    Configuration precedence: command line, then environment / .env, then
    the config file, then built-in defaults.
    """
    import logging
    import os

    _init_logging(os.environ.get("SLOTBOT_LOG_LEVEL"))
    logger = logging.getLogger(__name__)

    from .api.server import _build_default_config_from_env, start_server

    config_path = getattr(args, "config", None)
    cfg = _build_default_config_from_env(config_path)

    port = getattr(args, "port", None)
    if port is not None:
        cfg.server_port = int(port)
        logger.debug("Applied command line port override: %d", cfg.server_port)

    logger.info("Applying configured log_level=%s", cfg.log_level)
    logging.getLogger().setLevel(getattr(logging, cfg.log_level, logging.INFO))

    start_server(cfg)
