"""
Centralized logging configuration using loguru.
"""
from __future__ import annotations

import sys
from typing import Any

from loguru import logger

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)


def configure_logging(debug: bool = False) -> None:
    """(Re)install the stderr sink at DEBUG or INFO level."""
    logger.remove()
    logger.add(
        sys.stderr,
        format=LOG_FORMAT,
        level="DEBUG" if debug else "INFO",
        colorize=True,
    )


configure_logging()


def get_logger(name: str = __name__) -> Any:
    """
    Get a logger bound to a specific module name.
    
    Usage:
        from metabase_proxy.logging import get_logger
        logger = get_logger(__name__)
        logger.info("Hello from this module")
    """
    return logger.bind(name=name)
