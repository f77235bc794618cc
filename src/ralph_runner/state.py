from __future__ import annotations

from pathlib import Path
from typing import Optional

from loguru import logger

from .constants import STATE_FILE
from .io_utils import _atomic_write_json, _load_data_with_error
from .models import PersistedState


class StateStore:
    """Durable JSON record of run progress for one project directory.

    Only the holder of the project lock should call `save`.
    """

    def __init__(self, project_dir: Path):
        self.path = Path(project_dir) / STATE_FILE

    def load(self) -> Optional[PersistedState]:
        """Return the persisted state, or None when absent or corrupt."""
        if not self.path.exists():
            return None
        data, err = _load_data_with_error(self.path, {})
        if err:
            logger.warning("Ignoring unreadable state file: {}", err)
            return None
        try:
            return PersistedState.from_dict(data)
        except ValueError as exc:
            logger.warning("Ignoring invalid state file {}: {}", self.path, exc)
            return None

    def save(self, state: PersistedState) -> None:
        """Persist the full state atomically.

        Raises:
            OSError: If the state file cannot be written.
        """
        _atomic_write_json(self.path, state.to_dict())
        logger.debug("State saved: iterations={} plan={}", state.iteration_count, state.plan_file)

    def clear(self) -> None:
        """Delete the state file; a no-op when it does not exist."""
        self.path.unlink(missing_ok=True)
