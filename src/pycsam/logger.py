"""Centralized logging configuration for pycsam."""

import logging
import sys

# Create logger
logger = logging.getLogger('pycsam')
logger.setLevel(logging.DEBUG)

# Create console handler with formatting
console_handler = logging.StreamHandler(sys.stdout)
console_handler.setLevel(logging.INFO)

# Create formatter
formatter = logging.Formatter(
    '%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
console_handler.setFormatter(formatter)

# Add handler to logger
logger.addHandler(console_handler)


def get_logger(name: str = None):
    """Get a logger instance.

    Parameters
    ----------
    name : str, optional
        Component name (e.g. 'growth'). If None, returns the package logger.

    Returns
    -------
    logging.Logger
        Configured logger instance
    """
    if name:
        return logging.getLogger(f'pycsam.{name}')
    return logger