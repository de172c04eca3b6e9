# logger.py
import inspect
import logging
import os
import sys
import traceback
from contextlib import contextmanager
from logging.handlers import RotatingFileHandler
from typing import Iterator, Optional

from config import LOG_DIR, LOG_LEVEL

LOGGER_NAME = "treasure_promo"


def setup_logger() -> logging.Logger:
    """
    Configure and return the service logger.

    Console output always; a rotating file under LOG_DIR when it is set.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(LOG_LEVEL)

    # Re-imports must not stack handlers
    if logger.handlers:
        return logger

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(LOG_LEVEL)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if LOG_DIR:
        os.makedirs(LOG_DIR, exist_ok=True)
        file_handler = RotatingFileHandler(
            os.path.join(LOG_DIR, "promo.log"), maxBytes=10485760, backupCount=5  # 10 MB
        )
        file_handler.setLevel(LOG_LEVEL)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


logger = setup_logger()


def log_error(error: Exception, stack_level: int = 1) -> None:
    """
    Log an error together with the location it was reported from.

    Args:
        error: Exception to log
        stack_level: Stack frame to report (1 is the caller)
    """
    stack = inspect.stack()
    if stack_level < len(stack):
        frame_info = stack[stack_level]
        error_location = (
            f"file: {frame_info.filename}, function: {frame_info.function}, "
            f"line: {frame_info.lineno}"
        )
    else:
        error_location = "call site unavailable"

    stack_trace = "".join(traceback.format_tb(error.__traceback__))

    logger.error(f"Error: {error} | {error_location}\nTraceback:\n{stack_trace}")


@contextmanager
def error_logging_context(context_name: Optional[str] = None) -> Iterator[None]:
    """
    Log any exception raised inside the block, then re-raise it.

    Example:
        ```python
        with error_logging_context("play ABCD1234"):
            award = play(db, "ABCD1234", "ana")
        ```
    """
    try:
        yield
    except Exception as e:
        context_info = f" in '{context_name}'" if context_name else ""
        logger.error(f"Exception caught{context_info}")
        log_error(e, stack_level=3)
        raise
