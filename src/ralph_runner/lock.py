"""Single-instance lock for one run per project directory.

The lock file holds the owner's PID as plain text. Ownership is decided by
existence plus liveness: a record whose PID is no longer running is stale and
is reclaimed silently. The lock models one logical run, not reentrancy, so a
process that already holds it cannot acquire it again.

Inspecting, reclaiming and removing the lock file all happen under an
exclusive flock on a sidecar guard file, so two processes reclaiming the same
stale record cannot both end up holding the lock.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from loguru import logger

from .constants import LOCK_FILE, LOCK_GUARD_FILE
from .io_utils import FileLock
from .utils import _coerce_int, _pid_is_running


def _read_pid(path: Path) -> Optional[int]:
    try:
        text = path.read_text(encoding="utf-8").strip()
    except OSError:
        return None
    pid = _coerce_int(text, 0)
    return pid if pid > 0 else None


class SingletonLock:
    """PID-file lock guarding the state file of a project directory."""

    def __init__(self, project_dir: Path, pid: Optional[int] = None):
        self.path = Path(project_dir) / LOCK_FILE
        self.guard_path = Path(project_dir) / LOCK_GUARD_FILE
        self.pid = pid if pid is not None else os.getpid()

    def owner(self) -> Optional[int]:
        """Return the PID recorded in the lock file, if any."""
        return _read_pid(self.path)

    def acquire(self) -> bool:
        """Try to take the lock without waiting for a live owner.

        Returns:
            True if the lock file was created for this PID; False if a live
            process (this one included) already holds it.
        """
        with FileLock(self.guard_path):
            for _ in range(2):
                try:
                    fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
                except FileExistsError:
                    owner = self.owner()
                    if owner is not None and _pid_is_running(owner):
                        logger.debug("Lock {} held by live pid {}", self.path, owner)
                        return False
                    logger.info("Reclaiming stale lock {} (recorded pid={})", self.path, owner)
                    self.path.unlink(missing_ok=True)
                    continue
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(str(self.pid))
                    handle.flush()
                logger.debug("Lock {} acquired by pid {}", self.path, self.pid)
                return True
        return False

    def release(self) -> None:
        """Remove the lock file if this PID owns it. Safe to call repeatedly."""
        with FileLock(self.guard_path):
            if self.owner() != self.pid:
                return
            try:
                self.path.unlink()
            except FileNotFoundError:
                return
        logger.debug("Lock {} released by pid {}", self.path, self.pid)
