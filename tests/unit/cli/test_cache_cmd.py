"""Tests for the cache administration CLI."""

import asyncio
from unittest.mock import AsyncMock

import pytest
from typer.testing import CliRunner

from felis.cache.index import MemoryScopeIndex
from felis.cache.memory import MemoryCache
from felis.cli import app, cache_cmd
from felis.errors import CacheUnavailableError

runner = CliRunner()


@pytest.fixture
def cache(monkeypatch: pytest.MonkeyPatch) -> MemoryCache:
    cache = MemoryCache()
    asyncio.run(cache.set("cats:all", b'[{"id":"cat-1"}]', 300))
    asyncio.run(cache.set("cats:list:a", b"[]", 300))
    asyncio.run(cache.set("cats:list:b", b"[]", 300))
    asyncio.run(cache.set("other:key", b"1", 0))
    monkeypatch.setattr(
        cache_cmd, "get_cache_backend", AsyncMock(return_value=(cache, MemoryScopeIndex()))
    )
    monkeypatch.setattr(cache_cmd, "close_redis", AsyncMock())
    return cache


class TestCacheCommands:
    """Test felis cache subcommands."""

    def test_inspect(self, cache: MemoryCache) -> None:
        """Inspect prints the value and TTL."""
        result = runner.invoke(app, ["cache", "inspect", "cats:all"])
        assert result.exit_code == 0
        assert '{"id":"cat-1"}' in result.output
        assert "TTL:" in result.output

    def test_inspect_missing(self, cache: MemoryCache) -> None:
        """Missing keys exit with code 1."""
        result = runner.invoke(app, ["cache", "inspect", "cats:nope"])
        assert result.exit_code == 1
        assert "Key not found" in result.output

    def test_delete(self, cache: MemoryCache) -> None:
        """Delete removes one key."""
        result = runner.invoke(app, ["cache", "delete", "cats:all"])
        assert result.exit_code == 0
        assert "cats:all" not in cache.keys()

    def test_delete_pattern(self, cache: MemoryCache) -> None:
        """Pattern delete reports how many keys went away."""
        result = runner.invoke(app, ["cache", "delete-pattern", "cats:list:*"])
        assert result.exit_code == 0
        assert "Deleted 2 keys" in result.output
        assert sorted(cache.keys()) == ["cats:all", "other:key"]

    def test_flush_namespace_only(self, cache: MemoryCache) -> None:
        """Namespace flush keeps foreign keys."""
        result = runner.invoke(app, ["cache", "flush", "--namespace-only"])
        assert result.exit_code == 0
        assert cache.keys() == ["other:key"]

    def test_flush(self, cache: MemoryCache) -> None:
        """Full flush empties the store."""
        result = runner.invoke(app, ["cache", "flush"])
        assert result.exit_code == 0
        assert cache.keys() == []

    def test_cache_error_exit_code(self, cache: MemoryCache) -> None:
        """Cache errors are reported, not raised."""
        cache.delete = AsyncMock(side_effect=CacheUnavailableError("delete", "cats:all"))
        result = runner.invoke(app, ["cache", "delete", "cats:all"])
        assert result.exit_code == 2
        assert "Cache error" in result.output
