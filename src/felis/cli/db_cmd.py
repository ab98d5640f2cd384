"""CLI commands for the cat database.

Usage:
    felis db init
    felis db check
    felis db purge --yes
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

import typer
from rich.console import Console

from felis.cache.factory import build_coordinator, get_cache_backend, reset_cache_backend
from felis.cache.redis import close_redis
from felis.errors import FelisError
from felis.persistence.db import build_repositories, close_db, health_check, init_db

T = TypeVar("T")

app = typer.Typer(help="Manage the cat database", no_args_is_help=True)
console = Console()


def _run(operation: Callable[[], Awaitable[T]]) -> T:
    async def runner() -> T:
        try:
            return await operation()
        finally:
            await close_db()
            await close_redis()
            reset_cache_backend()

    try:
        return asyncio.run(runner())
    except FelisError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=2)


@app.command("init")
def init() -> None:
    """Create the cats and likes tables if they are missing."""
    _run(init_db)
    console.print("[green]Tables ready[/green]")


@app.command("check")
def check() -> None:
    """Check database and cache connectivity."""

    async def check_all() -> tuple[bool, bool]:
        cache, _ = await get_cache_backend()
        return await health_check(), await cache.health_check()

    db_ok, cache_ok = _run(check_all)
    for name, ok in (("database", db_ok), ("cache", cache_ok)):
        status = "[green]ok[/green]" if ok else "[red]unreachable[/red]"
        console.print(f"{name}: {status}")
    if not (db_ok and cache_ok):
        raise typer.Exit(code=1)


@app.command("purge")
def purge(
    yes: bool = typer.Option(False, "--yes", "-y", help="Confirm deleting every cat"),
) -> None:
    """Delete every cat and like, then drop every cached entry."""
    if not yes:
        console.print("[yellow]Refusing to purge without --yes[/yellow]")
        raise typer.Exit(code=1)

    async def purge_all() -> int:
        store, _ = build_repositories()
        coordinator = await build_coordinator(store)
        deleted = await coordinator.purge_all()
        await coordinator.drain()
        return deleted

    deleted = _run(purge_all)
    console.print(f"[green]Deleted {deleted} cats[/green]")
