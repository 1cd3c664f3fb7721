"""Logging setup for applications embedding DealScout."""

import sys

from loguru import logger

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)


def configure_logging(level: str = "INFO", log_file=None) -> None:
    """Replace loguru's default sink with a stderr sink at ``level``.

    Parameters
    ----------
    level : str
        Minimum level written to stderr.
    log_file : str or Path, optional
        Also write DEBUG and above to this file, rotated daily.
    """
    logger.remove()
    logger.add(sys.stderr, format=LOG_FORMAT, level=level.upper())
    if log_file:
        logger.add(log_file, rotation="1 day", retention="7 days", level="DEBUG")
