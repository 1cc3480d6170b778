#!/usr/bin/env python3
"""
Rust Insight Pairing Tool - Main Entry Point

Pairs Rust+ servers and devices through Steam login and syncs them to the
Rust Insight web app.

Usage:
    python main.py login                 # Sign in to the web app
    python main.py pair                  # Steam login, then listen for pairings
    python main.py servers               # List paired servers
    python main.py sync                  # Upload servers/entities to the cloud
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, List, Tuple

import config
from core.app import PairingToolApp

# Configure logging
logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
    format=config.LOG_FORMAT
)
logger = logging.getLogger(__name__)

# Suppress noisy third-party library logs (HTTP requests, etc.)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)

# Commands that open a browser surface and therefore need the GUI loop
SURFACE_COMMANDS = {"login", "pair"}

_HOST_HTML = "<!DOCTYPE html><html><body></body></html>"


def _command_for(args: argparse.Namespace) -> Tuple[str, List[Any]]:
    """Map CLI arguments to an app command and its parameters."""
    table = {
        "login": ("auth.login", []),
        "logout": ("auth.logout", []),
        "session": ("auth.getSession", []),
        "servers": ("pairing.getServers", []),
        "entities": ("pairing.getEntities", []),
        "sync": ("sync.toCloud", []),
        "open": ("app.openWebApp", []),
    }
    if args.command == "delete-server":
        return "pairing.deleteServer", [args.id]
    if args.command == "delete-entity":
        return "pairing.deleteEntity", [args.id]
    return table[args.command]


def _print_notification(channel: str, payload: Any) -> None:
    if channel == "pairing:status":
        print(f"… {payload}")
    elif channel == "pairing:server":
        print(f"✓ Server paired: {payload.get('name', 'Unknown')} ({payload.get('ip')}:{payload.get('port')})")
    elif channel == "pairing:entity":
        print(f"✓ Device paired: {payload.get('entityName')} on {payload.get('serverName')}")
    elif channel == "pairing:error":
        print(f"⚠ Pairing error: {payload}")


def _print_result(result: Any) -> None:
    if isinstance(result, dict) and result.get("success") is False:
        print(f"❌ {result.get('error')}")
        return
    print(json.dumps(result, indent=2, default=str))


def _exit_code(result: Any) -> int:
    return 1 if isinstance(result, dict) and result.get("success") is False else 0


async def _pair(app: PairingToolApp) -> int:
    """Start pairing and listen until the user presses Enter."""
    result = await app.handle("pairing.start")
    if not result["success"]:
        _print_result(result)
        return 1

    print("\n📡 Listening for pairing notifications.")
    print("   Pair servers and devices from the Rust in-game menu.")
    print("   Press Enter to stop.\n")
    try:
        await asyncio.to_thread(sys.stdin.readline)
    finally:
        await app.handle("pairing.stop")
    return 0


async def run_command(args: argparse.Namespace) -> int:
    """Run one CLI command inside an application context."""
    async with PairingToolApp(on_notify=_print_notification) as app:
        if args.command == "pair":
            return await _pair(app)
        command, params = _command_for(args)
        result = await app.handle(command, *params)
        _print_result(result)
        return _exit_code(result)


def run_with_webview(args: argparse.Namespace) -> int:
    """
    Run a command that needs browser surfaces.

    pywebview must own the main thread, so the command runs on the worker
    thread webview.start() provides, with a hidden host window keeping the
    GUI loop alive until it finishes.
    """
    import webview

    host = webview.create_window(config.APP_NAME, html=_HOST_HTML, hidden=True)
    exit_code = [1]

    def _worker() -> None:
        try:
            exit_code[0] = asyncio.run(run_command(args))
        except Exception as e:
            logger.error(f"Fatal error: {e}", exc_info=True)
        finally:
            host.destroy()

    webview.start(_worker)
    return exit_code[0]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description=f"{config.APP_NAME} - Rust+ pairing and cloud sync",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py login                    Sign in to the web app
  python main.py pair                     Pair servers and devices
  python main.py delete-server 1.2.3.4:28082
  python main.py sync                     Upload to the cloud
        """
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("login", help="Sign in to the web app")
    subparsers.add_parser("logout", help="Forget the cloud session")
    subparsers.add_parser("session", help="Show the stored cloud session")
    subparsers.add_parser("pair", help="Log in with Steam and listen for pairings")
    subparsers.add_parser("servers", help="List paired servers")
    subparsers.add_parser("entities", help="List paired devices")
    delete_server = subparsers.add_parser("delete-server", help="Remove a paired server")
    delete_server.add_argument("id", help="Server key (ip:port)")
    delete_entity = subparsers.add_parser("delete-entity", help="Remove a paired device")
    delete_entity.add_argument("id", help="Entity id")
    subparsers.add_parser("sync", help="Upload servers and devices to the cloud")
    subparsers.add_parser("open", help="Open the web app in the browser")
    return parser


def main() -> None:
    """Main entry point — parses arguments and runs the command."""
    args = build_parser().parse_args()

    try:
        if args.command in SURFACE_COMMANDS:
            code = run_with_webview(args)
        else:
            code = asyncio.run(run_command(args))
    except KeyboardInterrupt:
        print("\n\nGoodbye!")
        code = 0
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        print(f"\nFatal error: {e}")
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()
