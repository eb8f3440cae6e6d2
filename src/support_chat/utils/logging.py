"""
Logging setup shared by the CLI and the ASGI application.
"""

import logging
import sys

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Third-party loggers that are noisy at INFO
_QUIET_LOGGERS = ("httpx", "httpcore", "aiosqlite", "sqlalchemy.engine")


def configure_logging(level: str = "INFO") -> logging.Logger:
    """
    Configure the ``support_chat`` logger hierarchy.

    Installs a single stderr handler on the package logger so repeated calls
    (app factory plus CLI) do not duplicate output.

    Args:
        level: Logging level name

    Returns:
        The package logger
    """
    logger = logging.getLogger("support_chat")
    logger.handlers.clear()
    logger.setLevel(level.upper())

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    logger.propagate = False

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logger
