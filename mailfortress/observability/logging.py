from __future__ import annotations

import logging
import os
from typing import Final

_CONFIGURED: bool = False
_FORMAT: Final[str] = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
_DATE_FORMAT: Final[str] = "%Y-%m-%d %H:%M:%S"


def _level_from_env() -> int:
    level_name = os.getenv("MAILFORTRESS_LOG_LEVEL", "INFO").upper()
    return getattr(logging, level_name, logging.INFO)


def configure_logging(level: int | None = None) -> None:
    """Attach the stream handler to the root logger once; later calls only adjust level."""
    global _CONFIGURED

    resolved = level if level is not None else _level_from_env()
    root = logging.getLogger()
    if not _CONFIGURED:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_FORMAT, datefmt=_DATE_FORMAT))
        root.addHandler(handler)
        _CONFIGURED = True
    root.setLevel(resolved)


def get_logger(name: str) -> logging.Logger:
    """Return a module logger, configuring the root handler on first use."""
    configure_logging()
    logger = logging.getLogger(name)
    logger.setLevel(_level_from_env())
    return logger
