"""
Loguru sink configuration for hosts embedding tabstate.
"""

from __future__ import annotations

import sys
from typing import Optional

from loguru import logger

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{extra[module]}</cyan> - <level>{message}</level>"
)


def configure_logging(level: str = "INFO", debug: bool = False, log_file: Optional[str] = None) -> None:
    """
    Replace loguru's default handler with a stderr sink (and optional file sink).

    This should be called once at startup.
    """
    logger.remove()  # Remove default handler
    logger.configure(extra={"module": "tabstate"})
    effective = "DEBUG" if debug else level
    logger.add(sink=sys.stderr, level=effective, format=LOG_FORMAT, colorize=True)
    if log_file:
        logger.add(
            sink=log_file,
            level=effective,
            format=LOG_FORMAT,
            rotation="10 MB",
            retention="7 days",
        )
    logger.debug(f"tabstate logging configured: level={effective}, file={log_file}")
