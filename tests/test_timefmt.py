"""Test duration formatting and ETA estimation."""

from __future__ import annotations

import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from ralph_runner.timefmt import calculate_eta, format_duration, format_eta


def test_format_duration() -> None:
    assert format_duration(0) == "0s"
    assert format_duration(5000) == "5s"
    assert format_duration(59_999) == "59s"
    assert format_duration(90_000) == "1m 30s"
    assert format_duration(300_000) == "5m 0s"
    assert format_duration(3_720_000) == "1h 2m"


def test_format_duration_clamps_negative() -> None:
    assert format_duration(-1000) == "0s"


def test_calculate_eta_without_history_is_none() -> None:
    assert calculate_eta([], 4) is None


def test_calculate_eta_uses_mean_iteration_time() -> None:
    assert calculate_eta([60_000, 120_000], 3) == 270_000
    assert calculate_eta([60_000], 0) == 0
    assert calculate_eta([60_000], -2) == 0


def test_format_eta() -> None:
    assert format_eta(None) == "--"
    assert format_eta(90_000) == "~1m 30s"
