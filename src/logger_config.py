"""Centralized logging configuration."""

import sys

from loguru import logger

from src.config import settings

log_format = " | ".join(
    (
        "<lk>{time:YYYY-MM-DD HH:mm:ss.SSS}</>",
        "<lvl>{level:<8}</>",
        "<c>{name}::{function}:{line}</>",
        "{message}",
    )
)


def configure_logging(level: str = None):
    """Replace loguru's default sink with the service format"""
    logger.remove()
    logger.add(sys.stderr, format=log_format, level=level or settings.LOG_LEVEL)
    return logger
