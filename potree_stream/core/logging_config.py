"""Root logging setup for the streaming service."""

from __future__ import annotations

import contextlib
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Iterable, Optional, Union

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"
LOG_MAX_BYTES = 2 * 1024 * 1024
LOG_BACKUP_COUNT = 3

# aioice and aiortc log every STUN transaction at INFO.
NOISY_LOGGERS = ("aioice", "aiortc", "aiohttp.access")

_configured = False


def coerce_level(level: Union[int, str]) -> int:
    """Turn ``"info"`` / ``"DEBUG"`` / ``20`` into a numeric level."""
    if isinstance(level, int):
        return level
    value = getattr(logging, str(level).upper(), None)
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level '{level}'")
    return value


def _build_handlers(
    level: int,
    console: bool,
    log_file: Optional[Path],
    max_bytes: int,
    backup_count: int,
) -> list[logging.Handler]:
    handlers: list[logging.Handler] = []
    if console:
        handlers.append(logging.StreamHandler(sys.stdout))
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            RotatingFileHandler(log_file, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
        )

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
    return handlers


def configure_logging(
    level: Union[int, str] = logging.INFO,
    *,
    force: bool = False,
    console: bool = True,
    log_file: Optional[Union[str, Path]] = None,
    max_bytes: int = LOG_MAX_BYTES,
    backup_count: int = LOG_BACKUP_COUNT,
    suppressed_loggers: Iterable[str] = NOISY_LOGGERS,
) -> None:
    """Install stdout and rotating-file handlers on the root logger.

    A second call only adjusts the level unless ``force`` is set. Loggers in
    ``suppressed_loggers`` are held at ERROR unless ``level`` is DEBUG.
    """
    global _configured
    numeric_level = coerce_level(level)
    root = logging.getLogger()

    if _configured and not force:
        root.setLevel(numeric_level)
        return

    for handler in list(root.handlers):
        root.removeHandler(handler)
        with contextlib.suppress(Exception):
            handler.close()

    handlers = _build_handlers(
        numeric_level,
        console,
        Path(log_file) if log_file else None,
        max_bytes,
        backup_count,
    )
    if not handlers:
        # Neither console nor file: keep errors visible on stderr.
        handlers = [logging.StreamHandler(sys.stderr)]
        handlers[0].setLevel(logging.ERROR)
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(numeric_level)

    noisy_level = logging.DEBUG if numeric_level <= logging.DEBUG else logging.ERROR
    for name in suppressed_loggers:
        logging.getLogger(name).setLevel(noisy_level)

    _configured = True


__all__ = ["LOG_DATEFMT", "LOG_FORMAT", "NOISY_LOGGERS", "coerce_level", "configure_logging"]
