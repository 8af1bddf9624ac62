"""
Logging setup for storehouse.

Modules log through ``logging.getLogger(__name__)``; the console handler is
installed once by configure_logging().
"""

import logging

from rich.logging import RichHandler

LOGGER_NAME = "storehouse"


def configure_logging(level: str | int = "INFO") -> logging.Logger:
    """
    Attach a rich console handler to the storehouse logger.

    Args:
        level: Logging level name or number

    Returns:
        The configured package logger
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)

    # Avoid duplicate handlers
    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        handler = RichHandler(rich_tracebacks=True, show_path=False)
        handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
        logger.addHandler(handler)

    logger.propagate = False
    return logger
