"""Console logging for the CLI.

Library modules only create loggers; the CLI decides where records go. Log
lines are written through the shared rich console so they render above a
live progress bar instead of tearing it.
"""

from __future__ import annotations

import logging

from rich.logging import RichHandler

from dbdeploy.cli.common.output import console

LOG_TIME_FORMAT = "%H:%M:%S"


def _build_console_handler(level: int) -> logging.Handler:
    handler = RichHandler(
        level=level,
        console=console,
        show_time=True,
        omit_repeated_times=False,
        show_level=True,
        show_path=False,
        rich_tracebacks=False,
        log_time_format=LOG_TIME_FORMAT,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    return handler


def resolve_log_level(level_name: str) -> int:
    """Map a level name such as "info" to its logging constant."""
    level = logging.getLevelName(level_name.strip().upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {level_name}")
    return level


def init_console_logging(level: int = logging.INFO) -> None:
    """Replace the root logger's console handlers with a single RichHandler."""
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in list(root_logger.handlers):
        if isinstance(handler, RichHandler):
            root_logger.removeHandler(handler)
    root_logger.addHandler(_build_console_handler(level))
