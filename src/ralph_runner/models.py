"""Define durable run state and the in-memory models shared by the loop and its UI."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from .constants import (
    DEFAULT_AGENT_COMMAND,
    DEFAULT_COLUMNS,
    DEFAULT_MAX_CONSECUTIVE_FAILURES,
    DEFAULT_MODEL,
    DEFAULT_PAUSE_POLL_SECONDS,
    DEFAULT_PLAN_FILE,
    DEFAULT_ROWS,
    EVENT_CATEGORY_OUTPUT,
)
from .utils import _now_ms


class LoopStatus(str, Enum):
    """Represent the lifecycle state of the iteration loop."""

    STARTING = "starting"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETE = "complete"
    ERROR = "error"
    STOPPED = "stopped"


@dataclass(frozen=True)
class PlanProgress:
    """Checklist counts parsed from a plan document."""

    done: int = 0
    total: int = 0

    @property
    def remaining(self) -> int:
        return max(self.total - self.done, 0)

    @property
    def is_complete(self) -> bool:
        return self.total > 0 and self.done == self.total


@dataclass(frozen=True)
class PtyExit:
    """Exit status reported once by a pseudo-terminal process."""

    exit_code: int
    signal: Optional[int] = None


@dataclass(frozen=True)
class ToolEvent:
    """One observed unit of agent activity."""

    text: str
    category: str = EVENT_CATEGORY_OUTPUT
    iteration: int = 0
    timestamp: int = field(default_factory=_now_ms)


@dataclass(frozen=True)
class LoopState:
    """Immutable snapshot of the loop as seen by the UI."""

    status: LoopStatus = LoopStatus.STARTING
    iteration: int = 0
    tasks_complete: int = 0
    total_tasks: int = 0
    commits: int = 0
    events: tuple[ToolEvent, ...] = ()
    pause_requested: bool = False
    failures: int = 0
    last_error: Optional[str] = None


@dataclass
class LoopOptions:
    """Runtime options for one loop run."""

    project_dir: Path = field(default_factory=Path.cwd)
    plan_file: str = DEFAULT_PLAN_FILE
    model: str = DEFAULT_MODEL
    prompt: str = ""  # Empty selects the default template
    agent_command: str = DEFAULT_AGENT_COMMAND
    max_iterations: Optional[int] = None
    max_consecutive_failures: int = DEFAULT_MAX_CONSECUTIVE_FAILURES
    pause_poll_seconds: float = DEFAULT_PAUSE_POLL_SECONDS
    columns: int = DEFAULT_COLUMNS
    rows: int = DEFAULT_ROWS
    env: dict[str, str] = field(default_factory=dict)

    @property
    def plan_path(self) -> Path:
        path = Path(self.plan_file)
        return path if path.is_absolute() else self.project_dir / path


@dataclass
class PersistedState:
    """Durable progress record used to resume a run after a restart.

    Serialized with the camelCase keys of the on-disk state file.
    """

    start_time: int
    initial_commit_hash: Optional[str]
    iteration_times: list[int] = field(default_factory=list)
    plan_file: str = DEFAULT_PLAN_FILE

    @classmethod
    def fresh(cls, plan_file: str, initial_commit_hash: Optional[str]) -> "PersistedState":
        """Create the state for a brand new run starting now."""
        return cls(
            start_time=_now_ms(),
            initial_commit_hash=initial_commit_hash,
            iteration_times=[],
            plan_file=plan_file,
        )

    @property
    def iteration_count(self) -> int:
        return len(self.iteration_times)

    def elapsed_ms(self, now_ms: Optional[int] = None) -> int:
        current = _now_ms() if now_ms is None else now_ms
        return max(current - self.start_time, 0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "startTime": self.start_time,
            "initialCommitHash": self.initial_commit_hash,
            "iterationTimes": list(self.iteration_times),
            "planFile": self.plan_file,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PersistedState":
        """Create a `PersistedState` from the state file payload.

        Args:
            data: Raw JSON object read from the state file.

        Returns:
            The parsed state.

        Raises:
            ValueError: If a field is missing or has the wrong type.
        """
        start_time = data.get("startTime")
        if isinstance(start_time, bool) or not isinstance(start_time, (int, float)):
            raise ValueError("startTime must be a number")

        commit = data.get("initialCommitHash")
        if commit is not None and not isinstance(commit, str):
            raise ValueError("initialCommitHash must be a string or null")

        times = data.get("iterationTimes")
        if not isinstance(times, list) or any(
            isinstance(item, bool) or not isinstance(item, (int, float)) for item in times
        ):
            raise ValueError("iterationTimes must be a list of numbers")

        plan_file = data.get("planFile")
        if not isinstance(plan_file, str) or not plan_file:
            raise ValueError("planFile must be a non-empty string")

        return cls(
            start_time=int(start_time),
            initial_commit_hash=commit,
            iteration_times=[int(item) for item in times],
            plan_file=plan_file,
        )
