"""Logging setup for readbench.

Trials run on worker threads (one per timed call, plus a pool when
groups run in parallel), so the verbose console format and the log file
both carry the thread name.  The file handler always records DEBUG,
which keeps per-trial failure details out of the terminal but on disk.
"""

from __future__ import annotations

import logging
from pathlib import Path

_LOGGER_NAME = "readbench"
_FILE_FORMAT = "%(asctime)s.%(msecs)03d %(threadName)-18s %(levelname)-8s %(name)s: %(message)s"
_FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"
_CONSOLE_FORMAT = "%(message)s"
_VERBOSE_FORMAT = "%(levelname)-8s [%(threadName)s] %(message)s"


def _console_level(verbose: bool, quiet: bool) -> int:
    if verbose:
        return logging.DEBUG
    if quiet:
        return logging.WARNING
    return logging.INFO


def setup_logging(
    *,
    verbose: bool = False,
    quiet: bool = False,
    log_file: Path | None = None,
) -> logging.Logger:
    """Configure and return the package logger.

    Calling it again replaces the handlers from the previous call.

    Args:
        verbose: Console at DEBUG, with level and thread name on each line.
        quiet: Console at WARNING. Ignored if *verbose* is True.
        log_file: Also log everything (DEBUG) to this file.
    """
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(logging.DEBUG)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler()
    console.setLevel(_console_level(verbose, quiet))
    console.setFormatter(logging.Formatter(_VERBOSE_FORMAT if verbose else _CONSOLE_FORMAT))
    logger.addHandler(console)

    if log_file is not None:
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_FILE_DATEFMT))
        logger.addHandler(fh)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Child logger ``readbench.<name>``."""
    return logging.getLogger(f"{_LOGGER_NAME}.{name}")
