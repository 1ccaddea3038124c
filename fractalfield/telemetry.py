"""Logging setup, operation timing and the uncaught-exception hook."""

from __future__ import annotations

import logging
import sys
import time
from contextlib import contextmanager
from typing import Iterator, Optional

LOGGER_NAME = "fractalfield"

logger = logging.getLogger(__name__)


def setup_logging(level: int = logging.INFO, log_file: Optional[str] = None) -> logging.Logger:
    """
    Configure the ``fractalfield`` logger.

    Args:
        level: Logging level (e.g. logging.DEBUG, logging.INFO)
        log_file: Optional path to also write the log to.
    """
    package_logger = logging.getLogger(LOGGER_NAME)
    package_logger.setLevel(level)

    # Avoid duplicate output when called more than once.
    if package_logger.hasHandlers():
        package_logger.handlers.clear()

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%H:%M:%S'
    )

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    package_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, mode='w', encoding='utf-8')
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        package_logger.addHandler(file_handler)

    package_logger.debug("Logging initialized.")
    return package_logger


@contextmanager
def timed(label: str, log: Optional[logging.Logger] = None) -> Iterator[None]:
    """Log the wall time spent inside the block at DEBUG level."""

    target = log if log is not None else logger
    start = time.perf_counter()
    try:
        yield
    finally:
        target.debug("%s took %.3f ms", label, (time.perf_counter() - start) * 1000.0)


def install_crash_hook() -> None:
    """Route uncaught exceptions through the package logger before exiting."""

    previous = sys.excepthook

    def _hook(exc_type, exc, tb):
        if not issubclass(exc_type, KeyboardInterrupt):
            logging.getLogger(LOGGER_NAME).critical("Uncaught exception", exc_info=(exc_type, exc, tb))
        previous(exc_type, exc, tb)

    sys.excepthook = _hook
