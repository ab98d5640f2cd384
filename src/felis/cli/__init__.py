"""CLI commands for Felis.

Provides command-line interface using Typer:
- felis cache flush: Drop every cached entry
- felis cache inspect: Show a cached value and its TTL
- felis cache delete: Delete one key
- felis cache delete-pattern: Delete keys matching a glob pattern
- felis db init: Create the cats and likes tables
- felis db check: Check database and cache connectivity
- felis db purge: Delete every cat and drop the cache

Usage:
    felis --help
    felis cache inspect "cats:all"
"""

import typer

from felis.cli.cache_cmd import app as cache_app
from felis.cli.db_cmd import app as db_app
from felis.config import settings
from felis.observability.logging import configure_logging

# Main CLI application
app = typer.Typer(
    name="felis",
    help="Felis: cache consistency for cat listings",
    no_args_is_help=True,
)

app.add_typer(cache_app, name="cache")
app.add_typer(db_app, name="db")


@app.callback()
def callback() -> None:
    """Felis: cache consistency for cat listings."""
    configure_logging(level=settings.log_level, json_format=settings.log_json)


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
