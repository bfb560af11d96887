"""
Loguru logging configuration.

The package only emits records through `loguru.logger`; applications that
want the default sinks call `configure_logging()` once at startup.
"""

import sys

from loguru import logger

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)


def configure_logging(environment: str = "development", level: str = "INFO") -> None:
    """
    Replace loguru's handlers with a single stderr sink.

    Args:
        environment: "development" for colorized console output, anything
            else for one JSON object per line.
        level: minimum level to emit.
    """
    logger.remove()

    if environment == "development":
        logger.add(sys.stderr, format=LOG_FORMAT, level=level, colorize=True)
    else:
        logger.add(sys.stderr, format="{message}", level=level, serialize=True)
