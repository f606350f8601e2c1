"""Process-wide logging setup."""

from __future__ import annotations

import logging

_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
_configured = False


def configure_logging(level: str | int = "INFO") -> None:
    """Attach one stream handler to the package logger; later calls only adjust the level."""
    global _configured

    package_logger = logging.getLogger("legal_agent")
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    package_logger.setLevel(level)

    if _configured:
        return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    package_logger.addHandler(handler)
    _configured = True
