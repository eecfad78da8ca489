"""CLI entry point for walletwatch.

    walletwatch serve [--host H] [--port P] [--reload]   FastAPI app + tracker (default)
    walletwatch track                                    tracker only, no HTTP surface
    walletwatch check                                    validate configuration and exit
"""

import argparse

import uvicorn

from walletwatch.config import get_settings
from walletwatch.core.exceptions import ConfigurationError
from walletwatch.tracker.__main__ import main as run_tracker


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="walletwatch", description="Cross-wallet Solana tracker")
    sub = parser.add_subparsers(dest="command")

    serve = sub.add_parser("serve", help="Run the HTTP API with the tracker (default)")
    serve.add_argument("--reload", action="store_true", help="Enable auto-reload")
    serve.add_argument("--host", default="0.0.0.0", help="Bind host")
    serve.add_argument("--port", type=int, default=8000, help="Bind port")

    sub.add_parser("track", help="Run the tracker headless until SIGINT/SIGTERM")
    sub.add_parser("check", help="Validate configuration and print the watched wallets")
    return parser


def check_config() -> int:
    settings = get_settings()
    try:
        settings.require_tracking_config()
    except ConfigurationError as e:
        print(f"Configuration error: {e.message}")
        return 1

    for wallet_id, address in settings.root_wallets.items():
        print(f"Root wallet {wallet_id}: {address}")
    print(f"Channel: {settings.telegram_channel_id}")
    print(f"RPC: {settings.solana_rpc_url}")
    print(f"Websocket: {settings.solana_ws_endpoint}")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)

    if args.command == "track":
        run_tracker()
        return 0
    if args.command == "check":
        return check_config()

    uvicorn.run(
        "walletwatch.main:app",
        host=getattr(args, "host", "0.0.0.0"),
        port=getattr(args, "port", 8000),
        reload=getattr(args, "reload", False),
    )
    return 0
