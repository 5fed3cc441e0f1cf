"""Logging setup for feed_sync.

Log records go to stderr so the STDIO transport keeps stdout for protocol
traffic.
"""

import logging
import sys
from typing import Optional

from feed_sync.config import ServerConfig

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"

logger = logging.getLogger("feed_sync")


def setup_logging(config: Optional[ServerConfig] = None) -> logging.Logger:
    """Attach a stderr handler to the feed_sync logger.

    Args:
        config: Server configuration providing the log level

    Returns:
        The configured package logger
    """
    level = getattr(logging, (config.log_level if config else "INFO").upper(), logging.INFO)
    logger.setLevel(level)

    if not any(getattr(h, "_feed_sync", False) for h in logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._feed_sync = True  # type: ignore[attr-defined]
        logger.addHandler(handler)

    logger.propagate = False
    logger.debug(f"Logging configured at level {logging.getLevelName(level)}")
    return logger
