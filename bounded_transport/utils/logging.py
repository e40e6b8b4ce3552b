import sys
from typing import Optional

from loguru import logger

_CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
_SHORT_FORMAT = (
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)
_FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function} - {message}"


def setup_logging(level="INFO", show_time=True, log_file: Optional[str] = None):
    """Configure loguru for the bounded transport package.

    Parameters
    ----------
    level : str
        Console logging level (DEBUG, INFO, SUCCESS, WARNING, ERROR, CRITICAL)
    show_time : bool
        Whether to show timestamps in the console output.
    log_file : str, optional
        Also write everything from DEBUG up (including the per-iteration
        bounded solver lines) to this file.
    """
    logger.remove()

    log_format = _CONSOLE_FORMAT if show_time else _SHORT_FORMAT
    logger.add(sys.stderr, format=log_format, level=level, colorize=True)

    if log_file is not None:
        logger.add(log_file, format=_FILE_FORMAT, level="DEBUG", mode="w")

    return logger
