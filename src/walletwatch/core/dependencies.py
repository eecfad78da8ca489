"""FastAPI dependencies for dependency injection."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request

from walletwatch.config import Settings, get_settings
from walletwatch.tracker.__main__ import TrackerState
from walletwatch.tracker.engine import WatchEngine

# Type aliases for cleaner dependency injection
SettingsDep = Annotated[Settings, Depends(get_settings)]


async def get_tracker_state(request: Request) -> TrackerState:
    """Get TrackerState from app.state (set during lifespan)."""
    state: TrackerState | None = getattr(request.app.state, "tracker", None)
    if state is None:
        raise HTTPException(status_code=503, detail="Tracker not running")
    return state


async def get_engine(state: Annotated[TrackerState, Depends(get_tracker_state)]) -> WatchEngine:
    return state.engine


# Annotated dependencies for use in route handlers
TrackerStateDep = Annotated[TrackerState, Depends(get_tracker_state)]
EngineDep = Annotated[WatchEngine, Depends(get_engine)]
