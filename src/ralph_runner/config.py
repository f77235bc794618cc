"""Load optional runner configuration from `.ralph.yaml`."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .constants import (
    CONFIG_FILE,
    DEFAULT_AGENT_COMMAND,
    DEFAULT_COLUMNS,
    DEFAULT_LOG_LEVEL,
    DEFAULT_MAX_CONSECUTIVE_FAILURES,
    DEFAULT_MODEL,
    DEFAULT_PAUSE_POLL_SECONDS,
    DEFAULT_PLAN_FILE,
    DEFAULT_ROWS,
    LOG_LEVELS,
)
from .io_utils import _load_data_with_error


class RunnerConfig(BaseModel):
    """Settings read from `.ralph.yaml`; CLI flags take precedence."""

    model_config = ConfigDict(extra="forbid")

    plan: str = DEFAULT_PLAN_FILE
    model: str = DEFAULT_MODEL
    prompt: str = ""
    agent_command: str = DEFAULT_AGENT_COMMAND
    max_iterations: Optional[int] = Field(default=None, ge=1)
    max_consecutive_failures: int = Field(default=DEFAULT_MAX_CONSECUTIVE_FAILURES, ge=1)
    pause_poll_seconds: float = Field(default=DEFAULT_PAUSE_POLL_SECONDS, gt=0)
    columns: int = Field(default=DEFAULT_COLUMNS, ge=1)
    rows: int = Field(default=DEFAULT_ROWS, ge=1)
    log_level: str = DEFAULT_LOG_LEVEL
    env: dict[str, str] = Field(default_factory=dict)

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"unknown log level {value!r}; expected one of {', '.join(LOG_LEVELS)}")
        return level


def load_runner_config(project_dir: Path) -> tuple[RunnerConfig, str | None]:
    """Load the optional runner config file.

    Args:
        project_dir: Project directory holding `.ralph.yaml`.

    Returns:
        A tuple of `(config, error_message)`. A missing file yields defaults
        and no error; an unreadable or invalid file yields defaults plus the
        error so the caller can report it.
    """
    path = Path(project_dir) / CONFIG_FILE
    data, err = _load_data_with_error(path, {})
    if err:
        return RunnerConfig(), err
    try:
        return RunnerConfig.model_validate(data), None
    except ValidationError as exc:
        issues = "; ".join(
            f"{'.'.join(str(part) for part in issue['loc']) or '<root>'}: {issue['msg']}"
            for issue in exc.errors()
        )
        return RunnerConfig(), f"{path.name}: {issues}"
