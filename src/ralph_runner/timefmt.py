"""Format durations and estimate time to completion."""

from __future__ import annotations

from typing import Optional, Sequence


def format_duration(ms: float) -> str:
    """Format milliseconds as "5s", "1m 30s" or "2h 5m"."""
    total_seconds = max(int(ms // 1000), 0)
    hours, remainder = divmod(total_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    if hours:
        return f"{hours}h {minutes}m"
    if minutes:
        return f"{minutes}m {seconds}s"
    return f"{seconds}s"


def calculate_eta(iteration_times: Sequence[float], remaining_tasks: int) -> Optional[float]:
    """Estimate remaining milliseconds from the mean iteration time.

    Returns None when there is no iteration history yet.
    """
    if not iteration_times:
        return None
    average = sum(iteration_times) / len(iteration_times)
    return average * max(remaining_tasks, 0)


def format_eta(eta_ms: Optional[float]) -> str:
    if eta_ms is None:
        return "--"
    return f"~{format_duration(eta_ms)}"
