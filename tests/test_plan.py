"""Test checklist counting in plan files."""

from __future__ import annotations

import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from ralph_runner.models import PlanProgress
from ralph_runner.plan import count_checkboxes, parse_plan


def test_parse_plan_counts_mixed_case_marks(tmp_path: Path) -> None:
    plan = tmp_path / "plan.md"
    plan.write_text(
        "# Plan\n"
        "- [x] scaffold project\n"
        "- [ ] add parser\n"
        "- [X] wire CLI\n"
        "- [ ] write docs\n"
        "- [ ] release\n"
    )

    progress = parse_plan(plan)

    assert progress == PlanProgress(done=2, total=5)
    assert progress.remaining == 3
    assert progress.is_complete is False


def test_parse_plan_missing_file_is_empty(tmp_path: Path) -> None:
    assert parse_plan(tmp_path / "nope.md") == PlanProgress(0, 0)


def test_parse_plan_is_idempotent(tmp_path: Path) -> None:
    plan = tmp_path / "plan.md"
    plan.write_text("- [x] one\n- [ ] two\n")

    assert parse_plan(plan) == parse_plan(plan)


def test_count_checkboxes_accepts_list_markers_and_indentation() -> None:
    text = "\n".join(
        [
            "* [x] star",
            "+ [ ] plus",
            "  - [x] nested",
            "1. [ ] numbered",
            "2) [X] paren numbered",
        ]
    )

    assert count_checkboxes(text) == PlanProgress(done=3, total=5)


def test_count_checkboxes_ignores_malformed_lines() -> None:
    text = "\n".join(
        [
            "[x] no list marker",
            "-[x] no space after marker",
            "- [y] unknown mark",
            "- [ ]no space after box",
            "- [] empty box",
            "text mentioning - [x] inline",
            "```",
            "- [x] counted even inside fences",
            "```",
        ]
    )

    assert count_checkboxes(text) == PlanProgress(done=1, total=1)


def test_checkbox_at_end_of_line_counts() -> None:
    assert count_checkboxes("- [ ]\n- [x]") == PlanProgress(done=1, total=2)


def test_done_never_exceeds_total() -> None:
    progress = count_checkboxes("- [x] a\n- [X] b\n- [ ] c\nrandom\n")
    assert 0 <= progress.done <= progress.total


def test_complete_requires_tasks() -> None:
    assert PlanProgress(0, 0).is_complete is False
    assert PlanProgress(3, 3).is_complete is True
