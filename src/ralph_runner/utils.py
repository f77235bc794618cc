"""Provide utility helpers for timestamps and process liveness."""

from __future__ import annotations

import os
import time
from datetime import datetime, timezone
from typing import Any


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _now_ms() -> int:
    return int(time.time() * 1000)


def _coerce_int(value: Any, default: int = 0) -> int:
    try:
        if value is None:
            return default
        if isinstance(value, bool):
            return int(value)
        return int(str(value).strip())
    except (TypeError, ValueError):
        return default


def _pid_is_running(pid_value: Any) -> bool:
    pid = _coerce_int(pid_value, 0)
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except PermissionError:
        # Process exists but we may not have permission to signal it.
        return True
    except OSError:
        return False
    return True
