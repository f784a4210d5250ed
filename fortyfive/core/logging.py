"""Logging configuration for the service."""
import logging
import sys

LOGGER_NAME = "fortyfive"


def setup_logging(level: str = "INFO") -> logging.Logger:
    """
    Configure the package logger once.

    Module loggers (``logging.getLogger(__name__)``) propagate here, so only the
    top-level ``fortyfive`` logger gets a handler.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.handlers.clear()
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )
    logger.addHandler(handler)
    logger.propagate = False
    return logger
