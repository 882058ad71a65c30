"""Logging: apply LOG_LEVEL and optional LOG_FILE from settings to the root logger."""
from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler

from voicetracks.config import Settings, get_settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def setup_logging(settings: Settings | None = None) -> None:
    """Configure root logging once. Console always; rotating file when LOG_FILE is set."""
    settings = settings or get_settings()
    level = getattr(logging, (settings.LOG_LEVEL or "INFO").upper(), logging.INFO)
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if settings.LOG_FILE:
        os.makedirs(os.path.dirname(settings.LOG_FILE) or ".", exist_ok=True)
        handlers.append(
            RotatingFileHandler(settings.LOG_FILE, maxBytes=10 * 1024 * 1024, backupCount=5, encoding="utf-8")
        )
    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)
