"""Logging setup."""

import logging
import sys
from pathlib import Path

from loguru import logger

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan> - <level>{message}</level>"
)


def setup_logging(level: str = "INFO", log_file: str | Path | None = None, verbose: bool = False) -> None:
    """
    Configure loguru sinks and the stdlib root logger.

    Args:
        level: Minimum level for wabridge's own messages.
        log_file: Optional file to write logs to as well (rotated at 10 MB).
        verbose: Force DEBUG everywhere, including aiohttp's loggers.
    """
    if verbose:
        level = "DEBUG"

    logger.remove()
    logger.add(sys.stderr, level=level.upper(), format=LOG_FORMAT)
    if log_file:
        path = Path(log_file).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(path, level=level.upper(), rotation="10 MB", retention=5)

    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING)
