"""
Central path configuration for Screen Switch Agent.

All filesystem paths are derived from a single base directory.

Path Structure:
    ~/.screen-switch-agent/
    ├── logs/              (Application logs)
    │   └── screen_switch.log
    └── run/               (Runtime state)

Usage:
    from screen_switch_agent.paths import get_paths

    paths = get_paths()
    log_path = paths.log_path
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

LOG_FILENAME = "screen_switch.log"


@dataclass(frozen=True, slots=True)
class Paths:
    """
    Immutable container for all filesystem paths used by the agent.

    All paths are derived from base_dir.
    """

    base_dir: Path
    log_dir: Path
    runtime_dir: Path

    @property
    def log_path(self) -> Path:
        """Path to the agent log file."""
        return self.log_dir / LOG_FILENAME


def _default_base_dir() -> Path:
    return Path(os.environ.get("SCREEN_SWITCH_BASE_DIR", str(Path.home() / ".screen-switch-agent")))


def build_paths(base_dir: Optional[Path] = None) -> Paths:
    """
    Build Paths object from base directory.

    Args:
        base_dir: Base directory for all agent files.
                  Defaults to ~/.screen-switch-agent.
                  Can be overridden via SCREEN_SWITCH_BASE_DIR env var.
    """
    if base_dir is None:
        base_dir = _default_base_dir()

    return Paths(
        base_dir=base_dir,
        log_dir=base_dir / "logs",
        runtime_dir=base_dir / "run",
    )


def ensure_dirs(paths: Paths) -> None:
    """
    Create all required directories if they don't exist.

    Raises:
        OSError: If directory creation fails.
    """
    for dir_path, mode in [
        (paths.base_dir, 0o755),
        (paths.log_dir, 0o750),
        (paths.runtime_dir, 0o750),
    ]:
        dir_path.mkdir(parents=True, exist_ok=True)
        # mkdir may apply umask
        dir_path.chmod(mode)


# Global instance (lazy-initialized)
_paths: Optional[Paths] = None


def get_paths() -> Paths:
    """Return the global Paths instance, building it from defaults on first use."""
    global _paths
    if _paths is None:
        _paths = build_paths()
    return _paths


def set_paths(paths: Paths) -> None:
    global _paths
    _paths = paths


def reset_paths() -> None:
    """Forget the global Paths instance; primarily for tests."""
    global _paths
    _paths = None
