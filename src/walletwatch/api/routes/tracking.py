"""Tracking lifecycle endpoints, the HTTP twin of /start /stop /status."""

from fastapi import APIRouter
from pydantic import BaseModel

from walletwatch.core.dependencies import EngineDep
from walletwatch.tracker.models import EngineStatus, LifecycleResult

router = APIRouter()


class LifecycleResponse(BaseModel):
    result: LifecycleResult
    status: EngineStatus


class WalletStatus(BaseModel):
    wallet_id: int
    address: str
    sol_balance: float | None
    discovered: int


class TrackingStatusResponse(BaseModel):
    status: EngineStatus
    is_tracking: bool
    wallets: list[WalletStatus]
    tokens: dict[str, int]
    subscriptions: int


@router.get("/status")
async def tracking_status(engine: EngineDep) -> TrackingStatusResponse:
    report = await engine.status_report()
    wallets = [
        WalletStatus(
            wallet_id=wid,
            address=address,
            sol_balance=report.sol_balances.get(wid),
            discovered=report.discovered.get(wid, 0),
        )
        for wid, address in sorted(engine.root_addresses.items())
    ]
    return TrackingStatusResponse(
        status=report.status,
        is_tracking=report.is_tracking,
        wallets=wallets,
        tokens=report.correlation,
        subscriptions=report.subscriptions,
    )


@router.post("/start")
async def start_tracking(engine: EngineDep) -> LifecycleResponse:
    result = await engine.start()
    return LifecycleResponse(result=result, status=engine.status)


@router.post("/stop")
async def stop_tracking(engine: EngineDep) -> LifecycleResponse:
    result = await engine.stop()
    return LifecycleResponse(result=result, status=engine.status)
