"""
Logging setup for the command line tools and workers.
"""

import sys
from datetime import datetime
from typing import Optional

from loguru import logger


CONSOLE_FORMAT = "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <level>{message}</level>"
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {message}"


def configure_logging(level: str = "INFO", log_file: Optional[str] = None) -> Optional[str]:
    """
    Replace loguru's default handler with the console (and optional file) sinks.

    Args:
        level: Minimum level for both sinks
        log_file: Optional log path; ``{date}`` is replaced with a timestamp

    Returns:
        The resolved log file path, if any
    """
    logger.remove()
    logger.add(sys.stderr, format=CONSOLE_FORMAT, level=level)

    if not log_file:
        return None

    log_file = log_file.replace('{date}', datetime.now().strftime('%Y%m%d_%H%M%S'))
    logger.add(log_file, format=FILE_FORMAT, level=level, rotation="10 MB")
    return log_file
