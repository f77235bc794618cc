"""Yes/no questions asked before a run starts."""

from __future__ import annotations

from typing import Optional

from loguru import logger
from rich.console import Console
from rich.prompt import Confirm


def confirm(
    question: str,
    *,
    default: bool = False,
    assume_yes: bool = False,
    console: Optional[Console] = None,
) -> bool:
    """Ask a yes/no question on the terminal.

    Args:
        question: Question text, e.g. "Continue previous run?".
        default: Answer used for an empty reply or when stdin is closed.
        assume_yes: Answer yes without asking (``--yes``).
        console: Console to prompt on.

    Returns:
        The answer.
    """
    if assume_yes:
        return True
    try:
        return Confirm.ask(question, default=default, console=console)
    except EOFError:
        logger.info("No answer to {!r} (stdin closed); using default {}", question, default)
        return default
