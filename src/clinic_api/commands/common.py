"""Helpers shared by the CLI command groups."""

from __future__ import annotations

import asyncio
from typing import Any, Coroutine

from rich.console import Console

from clinic_api.client import ApiClient

console = Console(stderr=True)


def session_ended(error: Exception) -> None:
    """Tell the operator the session is gone; the CLI has no login page to redirect to."""
    console.print("[yellow]Session ended. Run `clinic-api auth login` to sign in again.[/yellow]")


def run(client: ApiClient, coro: Coroutine[Any, Any, Any]) -> Any:
    """Run a coroutine on a fresh event loop and close the client afterwards."""
    async def _main() -> Any:
        try:
            return await coro
        finally:
            await client.close()

    return asyncio.run(_main())
