"""CLI commands for cache administration.

Usage:
    felis cache flush
    felis cache inspect "cats:all"
    felis cache delete "cats:all"
    felis cache delete-pattern "cats:list:*"
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

import typer
from rich.console import Console
from rich.markup import escape

from felis.cache.base import CacheStore
from felis.cache.factory import get_cache_backend, get_cache_keys, reset_cache_backend
from felis.cache.redis import close_redis
from felis.errors import CacheError

T = TypeVar("T")

app = typer.Typer(help="Inspect and purge cached cat listings", no_args_is_help=True)
console = Console()


def _run(operation: Callable[[CacheStore], Awaitable[T]]) -> T:
    async def runner() -> T:
        cache, _ = await get_cache_backend()
        try:
            return await operation(cache)
        finally:
            await close_redis()
            reset_cache_backend()

    try:
        return asyncio.run(runner())
    except CacheError as e:
        console.print(f"[red]Cache error:[/red] {e}")
        raise typer.Exit(code=2)


@app.command("flush")
def flush(
    namespace_only: bool = typer.Option(
        False,
        "--namespace-only",
        "-n",
        help="Only delete keys under the configured prefix instead of the whole database",
    ),
) -> None:
    """Drop every cached entry."""
    if namespace_only:
        pattern = get_cache_keys().namespace_pattern()
        deleted = _run(lambda cache: cache.delete_pattern(pattern))
        console.print(f"[green]Deleted {deleted} keys matching[/green] {escape(pattern)}")
        return

    _run(lambda cache: cache.flush())
    console.print("[green]Cache flushed[/green]")


@app.command("inspect")
def inspect(
    key: str = typer.Argument(..., help="Cache key to inspect"),
) -> None:
    """Show a cached value and its remaining TTL."""

    async def read(cache: CacheStore) -> tuple[bytes | None, int | None]:
        return await cache.get(key), await cache.ttl(key)

    value, ttl = _run(read)
    if value is None:
        console.print(f"[yellow]Key not found:[/yellow] {escape(key)}")
        raise typer.Exit(code=1)

    console.print(f"[bold]Key:[/bold] {escape(key)}")
    console.print(f"[bold]TTL:[/bold] {ttl if ttl is not None else 'none'}")
    console.print(value.decode("utf-8", errors="replace"), markup=False, highlight=False)


@app.command("delete")
def delete(
    key: str = typer.Argument(..., help="Cache key to delete"),
) -> None:
    """Delete a single cache key."""
    if _run(lambda cache: cache.delete(key)):
        console.print(f"[green]Deleted[/green] {escape(key)}")
    else:
        console.print(f"[yellow]Key not found:[/yellow] {escape(key)}")
        raise typer.Exit(code=1)


@app.command("delete-pattern")
def delete_pattern(
    pattern: str = typer.Argument(..., help="Glob pattern, e.g. 'cats:list:*'"),
) -> None:
    """Delete every key matching a glob pattern."""
    deleted = _run(lambda cache: cache.delete_pattern(pattern))
    console.print(f"[green]Deleted {deleted} keys matching[/green] {escape(pattern)}")
