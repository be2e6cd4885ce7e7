"""Loguru sink configuration for host processes."""

import sys
from typing import Optional

from loguru import logger

from .config import Config

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> | "
    "<magenta>{extra[extension_id]}</magenta> | <level>{message}</level>"
)


def configure_logging(level: Optional[str] = None, log_file: Optional[str] = None) -> None:
    """
    Replace loguru's default handler with the host's sinks.

    Args:
        level: Console log level (defaults to Config.LOG_LEVEL)
        log_file: Optional path for a rotating DEBUG-level file sink
    """
    logger.remove()
    # Records logged outside an extension context render with "-"
    logger.configure(extra={"extension_id": "-"})

    logger.add(sys.stderr, format=CONSOLE_FORMAT, level=level or Config.LOG_LEVEL)

    if log_file:
        logger.add(
            log_file,
            rotation="10 MB",
            retention="7 days",
            compression="zip",
            level="DEBUG",
        )
