"""
Logging setup.

Every module logs through ``logging.getLogger(__name__)``, so everything
hangs off the "peerlink" logger.  In CLI mode records go to stderr; in the
dashboard they are forwarded into the log pane instead.
"""

import logging

from typing_extensions import Callable

from .config import LOG_DATEFMT, LOG_FORMAT, LOG_LEVEL

ROOT_LOGGER = "peerlink"


def setup_logging(
    level: str | int = LOG_LEVEL,
    handler: logging.Handler | None = None,
) -> logging.Logger:
    """Send peerlink logs to *handler* (default: a stderr StreamHandler)."""
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)

    # Remove existing handlers
    for existing in logger.handlers[:]:
        logger.removeHandler(existing)

    if handler is None:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT))
    handler.setLevel(level)
    logger.addHandler(handler)
    logger.propagate = False
    return logger


class TuiLogHandler(logging.Handler):
    """Forwards log records to a callable running on the UI thread.

    *post* receives (level_name, message) and is expected to hop onto the
    UI thread itself (e.g. via ``App.call_from_thread``).
    """

    def __init__(self, post: Callable[[str, str], None]):
        super().__init__()
        self._post = post

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self._post(record.levelname, record.getMessage())
        except Exception:
            self.handleError(record)
