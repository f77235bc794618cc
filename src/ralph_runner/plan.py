"""Count completed and total checklist items in a markdown plan."""

from __future__ import annotations

import re
from pathlib import Path

from .io_utils import _read_text_or_none
from .models import PlanProgress

# "- [ ] task", "* [x] task", "  + [X] task", "1. [ ] task", "2) [x] task"
_CHECKBOX_RE = re.compile(r"^\s*(?:[-*+]|\d+[.)])\s+\[(?P<mark>[ xX])\](?:\s|$)")


def count_checkboxes(text: str) -> PlanProgress:
    """Count checklist items in markdown text.

    Args:
        text: Markdown document contents.

    Returns:
        A `PlanProgress` with the number of checked items and the total.
    """
    done = 0
    total = 0
    for line in text.splitlines():
        match = _CHECKBOX_RE.match(line)
        if not match:
            continue
        total += 1
        if match.group("mark") in {"x", "X"}:
            done += 1
    return PlanProgress(done=done, total=total)


def parse_plan(path: Path | str) -> PlanProgress:
    """Parse a plan file into checklist counts.

    A missing or unreadable file yields `PlanProgress(0, 0)`.
    """
    text = _read_text_or_none(Path(path))
    if text is None:
        return PlanProgress()
    return count_checkboxes(text)
