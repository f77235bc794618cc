"""Provide the public `ralph_runner` package exports."""

from __future__ import annotations

from .loop import LoopCallbacks, LoopController, run_loop

__all__ = ["LoopCallbacks", "LoopController", "run_loop"]
