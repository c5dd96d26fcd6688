"""
Logging setup for the agent.

Single log level for all loggers, from SCREEN_SWITCH_LOG_LEVEL (default INFO).
Records go to the console and, when the log directory is writable, to
<base>/logs/screen_switch.log.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _parse_level(raw: str) -> int:
    if not raw or not str(raw).strip():
        return logging.INFO
    raw = str(raw).strip().upper()
    if raw.isdigit():
        return int(raw)
    return int(getattr(logging, raw, logging.INFO))


def level_from_env() -> int:
    """Resolve log level from SCREEN_SWITCH_LOG_LEVEL, else INFO."""
    raw = os.environ.get("SCREEN_SWITCH_LOG_LEVEL", "").strip()
    return _parse_level(raw) if raw else logging.INFO


def apply_log_level(level: int) -> None:
    """Set root logger level so all loggers use this level."""
    logging.getLogger().setLevel(level)


def add_file_handler(log_path: Path) -> Optional[logging.Handler]:
    """
    Attach a file handler for log_path to the root logger.

    Returns the handler, or None if the file cannot be opened. Adding the same
    path twice is a no-op.
    """
    root = logging.getLogger()
    target = str(log_path.resolve())
    for handler in root.handlers:
        if isinstance(handler, logging.FileHandler) and handler.baseFilename == target:
            return handler

    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(log_path, encoding="utf-8")
    except OSError as exc:
        logging.getLogger(__name__).warning("File logging disabled (%s): %s", log_path, exc)
        return None

    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    return handler


def configure_logging(log_path: Optional[Path] = None) -> None:
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
    apply_log_level(level_from_env())
    if log_path is not None:
        add_file_handler(log_path)
