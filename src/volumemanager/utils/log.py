"""
Logging setup for the volume manager process.
"""
import logging

from rich.logging import RichHandler


def setup_logging(level: str = "INFO") -> logging.Logger:
    """
    Configure the root logger with a rich console handler.

    Args:
        level: Name of the logging level (DEBUG, INFO, WARNING, ...)

    Returns:
        The package logger.
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level}")

    logging.basicConfig(
        level=numeric_level,
        format="%(name)s: %(message)s",
        datefmt="[%Y-%m-%d %H:%M:%S]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
        force=True,
    )
    # requests/urllib3 are chatty at DEBUG about every connection
    logging.getLogger("urllib3").setLevel(max(numeric_level, logging.WARNING))

    logger = logging.getLogger("volumemanager")
    logger.debug(f"Logging initialized at level {level.upper()}")
    return logger
