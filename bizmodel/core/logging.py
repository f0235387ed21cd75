# bizmodel/core/logging.py
"""
Application-wide logging configuration.

One call to configure_logging() at startup (main.py); every other module
grabs its own logger:

    from bizmodel.core.logging import get_logger
    logger = get_logger(__name__)
"""

import logging

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """
    Configure root logging settings.

    Parameters:
        level (str): "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"
    """
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )
    logging.getLogger(__name__).info("Logging initialized with level %s", level)


def get_logger(name: str) -> logging.Logger:
    """Return a module logger."""
    return logging.getLogger(name)


def mask(value: str | None, keep: int = 6) -> str:
    """
    Shorten a secret-ish value (tokens, intent ids) for log lines.

    mask("abcdef123456") -> "abcdef…"
    """
    if not value:
        return "-"
    if len(value) <= keep:
        return value
    return value[:keep] + "…"
