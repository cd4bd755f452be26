"""Logging configuration for the texrecon command line.

Usage:
    from texrecon.logging_config import setup_logging

    setup_logging()                              # progress to stdout, problems to stderr
    setup_logging(debug=True)                    # same, with DEBUG messages
    setup_logging(log_file="out/texrecon.log")   # console + rotating file

Library callers (texrecon.app.reconstruct_texture) never call this; they
configure logging in their own application.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

MAX_BYTES = 5 * 1024 * 1024  # 5 MB
BACKUP_COUNT = 3


def setup_logging(
    level: int = logging.INFO,
    log_file: str | Path | None = None,
    fmt: str = DEFAULT_FORMAT,
    *,
    debug: bool = False,
) -> None:
    """Configure the root logger once at the start of the entry point."""
    if debug:
        level = logging.DEBUG

    # Progress and timings go to stdout; warnings and errors to stderr.
    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.addFilter(lambda record: record.levelno < logging.WARNING)
    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(logging.WARNING)

    handlers: list[logging.Handler] = [stdout_handler, stderr_handler]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            RotatingFileHandler(log_file, maxBytes=MAX_BYTES, backupCount=BACKUP_COUNT)
        )
    logging.basicConfig(level=level, format=fmt, handlers=handlers, force=True)

    if log_file:
        logging.getLogger(__name__).info("Writing log to %s", log_file)
