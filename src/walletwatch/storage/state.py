"""Persisted engine state (JSON file).

The only thing that survives a restart is whether tracking was on, so the
service can resume after a crash or redeploy.
"""

from __future__ import annotations

from pathlib import Path

import orjson
from pydantic import ValidationError

from walletwatch.core.exceptions import StorageError
from walletwatch.core.logging import get_logger
from walletwatch.tracker.models import EngineState

logger = get_logger(__name__)


class EngineStateStore:
    """Load and save :class:`EngineState` as ``{"isTracking", "lastUpdated"}``."""

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> EngineState:
        """Read the saved state; a missing or unreadable file means not tracking."""
        if not self._path.exists():
            return EngineState()
        try:
            data = orjson.loads(self._path.read_bytes())
            return EngineState.model_validate(data)
        except (OSError, orjson.JSONDecodeError, ValidationError) as e:
            logger.warning("Could not load saved state, starting fresh", path=str(self._path), error=str(e))
            return EngineState()

    def save(self, is_tracking: bool) -> EngineState:
        state = EngineState(is_tracking=is_tracking)
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_bytes(
                orjson.dumps(state.model_dump(mode="json", by_alias=True), option=orjson.OPT_INDENT_2)
            )
        except OSError as e:
            raise StorageError(f"Failed to save state to {self._path}: {e}") from e
        logger.debug("State saved", path=str(self._path), is_tracking=is_tracking)
        return state
