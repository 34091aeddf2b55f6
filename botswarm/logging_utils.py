"""Logging configuration for the swarm."""

from __future__ import annotations

import logging
import sys
from datetime import date
from pathlib import Path

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def session_log_path(log_dir: str | Path, day: date | None = None) -> Path:
    day = day or date.today()
    return Path(log_dir) / f"session_{day.isoformat()}.log"


def configure_logging(level: str = "INFO", log_dir: str | Path | None = None) -> None:
    """Configure console output and, with ``log_dir``, the daily session log."""
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    # Root logger
    root = logging.getLogger()
    root.setLevel(numeric_level)

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    # Console handler
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)
    handler.setFormatter(formatter)

    # Avoid duplicate handlers on re-init
    for old in root.handlers:
        old.close()
    root.handlers.clear()
    root.addHandler(handler)

    # Append-only per-day file
    if log_dir is not None:
        path = session_log_path(log_dir)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, mode="a", encoding="utf-8")
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    # Reduce noise from libraries
    logging.getLogger("websockets").setLevel(logging.WARNING)
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)
