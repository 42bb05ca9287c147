"""
Logging configuration for the Screenings API
"""
import logging
import sys
from pathlib import Path

from screenings.core.config import settings


def setup_logging() -> None:
    """
    Set up logging configuration
    """
    # Define log format; DEBUG adds source locations
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    if settings.DEBUG:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s"

    # Configure logging level based on environment
    log_level = logging.DEBUG if settings.DEBUG else logging.INFO

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]

    # File output is opt-in; containers usually only want stdout
    if settings.LOG_FILE:
        log_path = Path(settings.LOG_FILE)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path))

    # Configure root logger
    logging.basicConfig(
        level=log_level,
        format=log_format,
        handlers=handlers,
    )

    # Set specific loggers
    logging.getLogger("uvicorn.access").disabled = True
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("stripe").setLevel(logging.WARNING)
    logging.getLogger("arq.worker").setLevel(logging.INFO)


def get_logger(name: str) -> logging.Logger:
    """
    Get logger instance for a specific module

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)


# Application logger
logger = get_logger(__name__)
