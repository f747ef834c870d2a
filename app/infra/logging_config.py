"""Process-wide logging setup."""

from __future__ import annotations

import logging
from typing import Optional

from app.config import get_settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class LoggingConfig:
    """Configure the root logger once, using LOG_LEVEL from settings."""

    _configured = False

    def __init__(self, level: Optional[str] = None) -> None:
        if LoggingConfig._configured:
            return
        level_name = (level or get_settings().log_level or "INFO").upper()
        logging.basicConfig(
            level=getattr(logging, level_name, logging.INFO), format=LOG_FORMAT
        )
        # Chatty third-party loggers
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("telegram").setLevel(logging.WARNING)
        LoggingConfig._configured = True


def get_logger(name: str = "threadline") -> logging.Logger:
    return logging.getLogger(name)
