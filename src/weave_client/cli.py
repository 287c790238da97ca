# src/weave_client/cli.py

import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .auth_session import AuthSession
from .client import ApiClient
from .error_handler import ApiError, mask_credential
from .token_inspector import get_expiry

console = Console()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="weave-client", description="WeaveCarbon API client"
    )
    parser.add_argument("--base-url", type=str, default=None, help="API base URL.")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging.")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("status", help="Show stored credentials.")

    get_parser = sub.add_parser("get", help="Perform an authenticated GET.")
    get_parser.add_argument("path", type=str)

    logout_parser = sub.add_parser("logout", help="Sign out and clear stored credentials.")
    logout_parser.add_argument(
        "--local", action="store_true", help="Skip the server sign-out request."
    )
    return parser


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def _describe_expiry(token: Optional[str]) -> str:
    if not token:
        return "-"
    exp = get_expiry(token)
    if exp is None:
        return "unknown"
    return datetime.fromtimestamp(exp, tz=timezone.utc).isoformat(timespec="seconds")


def _print_status(client: ApiClient) -> None:
    store = client.token_store
    access_token = store.get_access_token()
    refresh_token = store.get_refresh_token()

    table = Table(title="Stored credentials")
    table.add_column("Token")
    table.add_column("Value")
    table.add_column("Expires (UTC)")
    table.add_row("access", mask_credential(access_token), _describe_expiry(access_token))
    table.add_row("refresh", mask_credential(refresh_token), _describe_expiry(refresh_token))

    console.print(f"API base: [bold]{client.base_url}[/bold]")
    console.print(f"Storage mode: [bold]{store.storage_mode().value}[/bold]")
    console.print(table)


async def _run(args: argparse.Namespace) -> int:
    async with ApiClient(base_url=args.base_url) as client:
        if args.command == "status":
            _print_status(client)
        elif args.command == "logout":
            if args.local:
                client.token_store.clear()
            else:
                await AuthSession(client).sign_out()
            console.print("Credentials cleared.")
        elif args.command == "get":
            try:
                result = await client.get(args.path)
            except ApiError as e:
                console.print(f"[red]Error {e.status}[/red]: {e.message}")
                if e.code:
                    console.print(f"code: {e.code}")
                return 1
            console.print_json(json.dumps(result, default=str))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv(Path.cwd() / ".env")
    args = _build_parser().parse_args(argv)
    _configure_logging(args.verbose)
    return asyncio.run(_run(args))


if __name__ == "__main__":
    sys.exit(main())
