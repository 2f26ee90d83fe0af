"""
Logging setup via loguru.

Call configure_logging() once at app startup. Modules log through
``from loguru import logger`` directly.
"""

import sys

from loguru import logger

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)


def configure_logging(level: str = "INFO", json: bool = False) -> int:
    """
    Replace loguru's default sink with the mirror's stderr sink.

    Args:
        level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json: Emit one serialized JSON record per line for log aggregators

    Returns:
        The loguru handler id of the installed sink
    """
    logger.remove()

    if json:
        handler_id = logger.add(sys.stderr, level=level.upper(), serialize=True)
    else:
        handler_id = logger.add(
            sys.stderr,
            format=CONSOLE_FORMAT,
            level=level.upper(),
            colorize=True,
        )

    logger.debug(f"Logger initialized - Level: {level}, JSON: {json}")
    return handler_id
