"""Centralized logging configuration for the harvest trader.

Usage:
    from harvest_trader.core.logger import get_logger

    logger = get_logger(__name__)
    logger.info("Starting backtest")
    logger.warning("LP solve failed, holding")
"""

import logging
import os
import sys
from typing import Optional

DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
ROOT_LOGGER_NAME = 'harvest_trader'


def get_logger(
    name: str,
    level: Optional[str] = None,
    format_string: Optional[str] = None
) -> logging.Logger:
    """Get or create a logger writing to stdout.

    Args:
        name: Logger name (typically __name__ from calling module)
        level: Log level ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL').
               Defaults to the LOG_LEVEL env var, or INFO.
        format_string: Custom format string (optional)

    Returns:
        Configured logger instance

    Example:
        >>> logger = get_logger('harvest_trader.core.backtest_engine')
        >>> logger.info("Backtest complete")
        2025-11-24 14:23:45 - harvest_trader.core.backtest_engine - INFO - Backtest complete
    """
    logger = logging.getLogger(name)

    # Configure once; repeated calls must not stack handlers
    if not logger.handlers:
        if level is None:
            level = os.environ.get('LOG_LEVEL', 'INFO')
        level_value = getattr(logging, level.upper())
        logger.setLevel(level_value)

        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(level_value)
        handler.setFormatter(logging.Formatter(
            format_string or DEFAULT_FORMAT,
            datefmt='%Y-%m-%d %H:%M:%S'
        ))
        logger.addHandler(handler)
        logger.propagate = False

    return logger


def set_log_level(level: str):
    """Set log level for every harvest_trader logger created so far.

    Example:
        >>> set_log_level('DEBUG')  # trace every daily decision
    """
    level_value = getattr(logging, level.upper())

    for logger_name in list(logging.Logger.manager.loggerDict):
        if logger_name.startswith(ROOT_LOGGER_NAME):
            logger = logging.getLogger(logger_name)
            logger.setLevel(level_value)
            for handler in logger.handlers:
                handler.setLevel(level_value)
