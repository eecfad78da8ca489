"""FastAPI application entry point."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from walletwatch.api import api_router
from walletwatch.config import get_settings
from walletwatch.core.dependencies import TrackerStateDep
from walletwatch.core.logging import get_logger, setup_logging
from walletwatch.tracker.__main__ import watch_lifespan

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan, runs the wallet tracker alongside the HTTP server."""
    settings = get_settings()
    setup_logging(settings)

    async with watch_lifespan(settings) as state:
        app.state.tracker = state
        logger.info("walletwatch ready", env=settings.env)
        yield
        app.state.tracker = None


app = FastAPI(
    title="walletwatch",
    description="Solana two-wallet activity correlation with Telegram alerts",
    version="0.1.0",
    lifespan=lifespan,
)

# Infrastructure (no prefix, not versioned)


@app.get("/health")
async def health() -> dict[str, str]:
    """Liveness check, always ok if the process is running."""
    return {"status": "ok"}


@app.get("/ready")
async def ready(state: TrackerStateDep) -> dict[str, str]:
    """Readiness check, verifies the ledger connection and command poller."""
    checks: dict[str, str] = {
        "solana_ws": "ok" if state.ledger.is_connected else "error",
        "poller": "ok" if state.poller.is_running else "error",
        "tracking": "on" if state.engine.is_tracking else "off",
    }
    status = "ready" if all(v != "error" for v in checks.values()) else "not_ready"
    return {"status": status, **checks}


# Domain API
app.include_router(api_router, prefix="/api/v1")
