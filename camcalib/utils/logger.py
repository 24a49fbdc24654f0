"""
camcalib/utils/logger.py

Objective:
    Central logging for the package, built on loguru. Modules call
    get_logger(__name__); applications call setup_logging() once at start-up.
"""
import sys
from pathlib import Path
from typing import Optional, Union

from loguru import logger

CONSOLE_FORMAT = ("<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
                  "<level>{level: <8}</level> | "
                  "<cyan>{extra[name]}</cyan> - <level>{message}</level>")
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {extra[name]} - {message}"

# every record carries a module name, also those logged before setup_logging()
logger.configure(extra={"name": "camcalib"})


def setup_logging(level: str = "INFO",
                  log_file: Optional[Union[str, Path]] = None):
    """
    Replace loguru's default sink with a formatted console sink and,
    optionally, a rotating file sink that records everything from DEBUG up.
    """
    logger.remove()
    logger.add(sys.stderr, level=level, format=CONSOLE_FORMAT, colorize=True)
    if log_file is not None:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(log_path,
                   level="DEBUG",
                   format=FILE_FORMAT,
                   rotation="10 MB",
                   retention=3)
    return logger


def get_logger(name: Optional[str] = None):
    """ Return the package logger bound to a module name (usually __name__). """
    if name:
        return logger.bind(name=name)
    return logger
