"""
Unified logging configuration for the avatar worker.

Provides a standardized logger with:
- Console output
- Optional file output with rotation (disabled when LOG_FILE is empty)
- Consistent formatting across all modules
"""

import logging
import sys
from pathlib import Path
from logging.handlers import RotatingFileHandler
from typing import Optional
from avatar_worker import config


def setup_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Get or create a configured logger instance.

    Args:
        name: Logger name (typically __name__ from calling module)
              If None, returns root logger

    Returns:
        Configured logger instance

    Example:
        >>> from avatar_worker.utils import setup_logger
        >>> logger = setup_logger(__name__)
        >>> logger.info("Drain started")
    """
    logger = logging.getLogger(name)

    # Only configure if not already configured
    if logger.handlers:
        return logger

    log_level = getattr(config, 'LOG_LEVEL', 'INFO')
    logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.DEBUG)
    console_handler.setFormatter(logging.Formatter('%(levelname)s [%(name)s] %(message)s'))
    logger.addHandler(console_handler)

    log_file = getattr(config, 'LOG_FILE', '')
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
            encoding='utf-8'
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s | %(levelname)-8s | %(name)s | %(funcName)s:%(lineno)d | %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))
        logger.addHandler(file_handler)

    # Prevent propagation to avoid duplicate logs
    logger.propagate = False

    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Alias for setup_logger for convenience."""
    return setup_logger(name)


app_logger = setup_logger('avatar_worker')
