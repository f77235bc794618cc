"""Configure loguru sinks and provide small log-formatting helpers."""

from __future__ import annotations

import json
import resource
import sys
from pathlib import Path
from typing import Any, Optional

from loguru import logger

from .utils import _now_iso

_STDERR_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{module}</cyan>:<cyan>{line}</cyan>\n"
    "{message}"
)
_FILE_FORMAT = "[{time:YYYY-MM-DD HH:mm:ss.SSS}] [{level}] [{module}] {message}"


def configure_logging(
    level: str = "WARNING",
    log_path: Optional[Path] = None,
    reset: bool = False,
) -> None:
    """Configure loguru for a run.

    Args:
        level: Minimum level written to stderr. The console reporter owns the
            terminal, so the default only lets warnings through.
        log_path: Optional debug log file. Receives everything from DEBUG up.
        reset: Truncate the log file instead of appending a resumed session.
    """
    logger.remove()
    logger.add(sys.stderr, level=level.upper(), format=_STDERR_FORMAT)
    if log_path is None:
        return

    fresh = reset or not log_path.exists()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        with open(log_path, "w" if fresh else "a", encoding="utf-8") as handle:
            label = "Started" if fresh else "Session Resumed"
            prefix = "" if fresh else "\n"
            handle.write(f"{prefix}=== Ralph Log {label}: {_now_iso()} ===\n")
    except OSError as exc:
        logger.warning("Unable to open log file {}: {}", log_path, exc)
        return
    logger.add(log_path, level="DEBUG", format=_FILE_FORMAT, encoding="utf-8")


def _format_megabytes(kilobytes: int) -> str:
    return f"{kilobytes / 1024:.1f} MB"


def log_memory(label: str = "Memory usage") -> None:
    """Log peak resident memory of this process and its reaped children."""
    own = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    children = resource.getrusage(resource.RUSAGE_CHILDREN).ru_maxrss
    if sys.platform == "darwin":
        # macOS reports bytes, Linux kilobytes.
        own //= 1024
        children //= 1024
    logger.debug(
        "{} {}",
        label,
        pretty({"maxrss": _format_megabytes(own), "children_maxrss": _format_megabytes(children)}, indent=None),
    )


def pretty(obj: Any, *, indent: Optional[int] = 2) -> str:
    """Serialize an object as JSON for readable logs.

    Args:
        obj: Object to serialize.
        indent: Indentation level for JSON output (None for a single line).

    Returns:
        A JSON string when possible; otherwise `str(obj)`.
    """
    try:
        return json.dumps(obj, indent=indent, default=str)
    except (TypeError, ValueError):
        return str(obj)
