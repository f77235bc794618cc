"""Pause marker file shared by the loop and whoever controls it.

`.ralph-pause` existence = pause requested. The payload is the PID of the
process that requested the pause. The marker only expresses intent; the loop
decides when it is actually paused (at iteration boundaries).
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from loguru import logger

from .constants import PAUSE_FILE


def pause_marker_path(project_dir: Path) -> Path:
    return Path(project_dir) / PAUSE_FILE


def is_pause_requested(project_dir: Path) -> bool:
    """Check if the pause marker exists."""
    return pause_marker_path(project_dir).is_file()


def request_pause(project_dir: Path, pid: Optional[int] = None) -> None:
    """Create the pause marker, recording the requesting PID."""
    path = pause_marker_path(project_dir)
    path.write_text(str(pid if pid is not None else os.getpid()), encoding="utf-8")
    logger.info("Pause requested ({})", path)


def clear_pause(project_dir: Path) -> bool:
    """Remove the pause marker.

    Returns:
        True if a marker was removed, False if none existed.
    """
    path = pause_marker_path(project_dir)
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    logger.info("Pause cleared ({})", path)
    return True


def toggle_pause(project_dir: Path) -> bool:
    """Flip the pause intent and return the new value."""
    if clear_pause(project_dir):
        return False
    request_pause(project_dir)
    return True
