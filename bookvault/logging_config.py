import logging

from .config import get_settings


def setup_logging():
    """Configure the root logger with a single console handler."""
    logger = logging.getLogger()
    level = getattr(logging, get_settings().log_level, logging.INFO)
    logger.setLevel(level)

    # Prevent duplicate handlers when the app module is imported twice
    if logger.hasHandlers():
        logger.handlers.clear()

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(formatter)
    logger.addHandler(handler)
