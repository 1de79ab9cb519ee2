"""Logging setup shared by the viewer and the pipelines."""

import logging

from rich.logging import RichHandler

LOG_FORMAT = "%(name)s: %(message)s"


def configure_logging(level="WARNING"):
    """Route the package loggers through a rich console handler.

    Safe to call more than once; the handler is only installed the first time.
    """
    logger = logging.getLogger("pii_decryptor")
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    logger.setLevel(level)

    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        handler = RichHandler(show_path=False, rich_tracebacks=True)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    return logger
