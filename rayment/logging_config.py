"""
Logging setup for applications using rayment.

Library modules only create loggers (logging.getLogger(__name__)); handlers
are the application's choice. setup_logging() is a sensible default.
"""

import logging
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s %(levelname)-7s [%(threadName)s] %(name)s: %(message)s"


def setup_logging(level: Union[int, str] = logging.INFO, fmt: Optional[str] = None) -> logging.Logger:
    """Attach one stream handler to the 'rayment' logger (idempotent)."""
    logger = logging.getLogger("rayment")
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)
    logger.setLevel(level)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(fmt or LOG_FORMAT))
        logger.addHandler(handler)
    return logger
