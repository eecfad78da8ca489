"""Top-level API router, mounts all domain routers under /api/v1."""

from fastapi import APIRouter

from walletwatch.api.routes import tracking

api_router = APIRouter()
api_router.include_router(tracking.router, prefix="/tracking", tags=["tracking"])
