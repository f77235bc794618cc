"""Classify agent output chunks into tool events."""

from __future__ import annotations

import re

from .constants import EVENT_CATEGORY_OUTPUT
from .models import ToolEvent

_ANSI_RE = re.compile(r"\x1b\[[0-?]*[ -/]*[@-~]|\x1b\][^\x07]*(?:\x07|\x1b\\)")

# Agent CLIs print tool calls as "| Read  src/app.py" or "⏺ Bash(ls)".
_TOOL_PREFIX = r"^\s*(?:[|│⏺●•>*-]\s*)?"

_CATEGORY_PATTERNS: list[tuple[str, re.Pattern[str]]] = [
    ("todo", re.compile(_TOOL_PREFIX + r"todo(?:write|read)?\b", re.I)),
    ("read", re.compile(_TOOL_PREFIX + r"read\b", re.I)),
    ("write", re.compile(_TOOL_PREFIX + r"write\b", re.I)),
    ("edit", re.compile(_TOOL_PREFIX + r"(?:(?:multi)?edit|patch)\b", re.I)),
    ("bash", re.compile(_TOOL_PREFIX + r"(?:bash|shell)\b", re.I)),
    ("search", re.compile(_TOOL_PREFIX + r"(?:glob|grep|search)\b", re.I)),
    ("list", re.compile(_TOOL_PREFIX + r"(?:list|ls)\b", re.I)),
    ("fetch", re.compile(_TOOL_PREFIX + r"(?:webfetch|fetch|websearch)\b", re.I)),
    ("task", re.compile(_TOOL_PREFIX + r"task\b", re.I)),
    ("thinking", re.compile(_TOOL_PREFIX + r"(?:thinking|reasoning)\b", re.I)),
]


def strip_ansi(text: str) -> str:
    return _ANSI_RE.sub("", text)


def classify_output(text: str) -> str:
    """Return a best-effort tool category for a chunk of agent output.

    Lines are checked in order and the first recognised tool marker wins.
    Unrecognised output is categorised as "output".
    """
    for line in strip_ansi(text).splitlines():
        if not line.strip():
            continue
        for category, pattern in _CATEGORY_PATTERNS:
            if pattern.match(line):
                return category
    return EVENT_CATEGORY_OUTPUT


def make_event(text: str, iteration: int) -> ToolEvent:
    return ToolEvent(text=text, category=classify_output(text), iteration=iteration)
