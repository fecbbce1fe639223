"""CLI wiring for the saved stories repository.

Usage:
    python -m favorites.cli list --filter rust
    python -m favorites.cli add 8863 https://example.com --title "My YC app"
    python -m favorites.cli remove 8863 121003
    python -m favorites.cli clear --filter rust
    python -m favorites.cli export --format md
    python -m favorites.cli export --format json --output stories.json
"""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import Optional, Tuple

import click
from rich.console import Console
from rich.table import Table

from favorites.cache.manager import FavoriteManager
from favorites.config import DEFAULT_CONFIG_PATH, load_config
from favorites.export.formats import ExportFormat
from favorites.export.notifier import ConsoleNotifier
from favorites.export.orchestrator import ExportOrchestrator
from favorites.storage.db import DEFAULT_DB_PATH, SavedStoriesDB
from favorites.storage.models import Favorite
from favorites.sync import ItemSyncScheduler

console = Console()

FORMAT_CHOICES = [f.extension for f in ExportFormat]


def run_async(coro):
    """Run an async function to completion on a fresh event loop."""
    return asyncio.run(coro)


class _LoadedObserver:
    """Observer that lets the CLI wait for the first published cursor."""

    def __init__(self) -> None:
        self.loaded = asyncio.Event()

    def on_changed(self) -> None:
        self.loaded.set()


@click.group()
@click.option("--db", default=None, help="Database path (default: storage.db_path or data/saved.db)")
@click.option("--config", default=DEFAULT_CONFIG_PATH, help="Config file path")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging")
@click.pass_context
def cli(ctx, db: Optional[str], config: str, verbose: bool):
    """Saved stories repository CLI."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    cfg = load_config(config)
    ctx.obj["config"] = cfg
    ctx.obj["db_path"] = db or cfg.get("storage", {}).get("db_path", DEFAULT_DB_PATH)


@cli.command("list")
@click.option("--filter", "-f", "filter_", default=None, help="Only titles containing this text")
@click.pass_context
def list_(ctx, filter_: Optional[str]):
    """List saved stories, most recent first."""

    async def _run():
        db = SavedStoriesDB(ctx.obj["db_path"])
        await db.initialize()
        manager = FavoriteManager(db)
        try:
            observer = _LoadedObserver()
            manager.attach(observer, filter_)
            await manager.wait_idle()
            if not observer.loaded.is_set() or manager.size() == 0:
                console.print("[yellow]No saved stories[/yellow]")
                return

            table = Table(title=f"Saved Stories ({manager.size()})")
            table.add_column("#", style="dim", width=4)
            table.add_column("ID", style="cyan")
            table.add_column("Title", max_width=60)
            table.add_column("Saved", width=16)
            for position in range(manager.size()):
                item = manager.get_item(position)
                if item is None:
                    continue
                table.add_row(
                    str(position + 1),
                    item.id,
                    item.display_title[:60],
                    item.saved_datetime.strftime("%Y-%m-%d %H:%M"),
                )
            console.print(table)
        finally:
            manager.detach()
            await db.close()

    run_async(_run())


@cli.command()
@click.argument("item_id")
@click.argument("url")
@click.option("--title", "-t", default="", help="Story title")
@click.option("--no-sync", is_flag=True, help="Skip fetching the item for offline reading")
@click.pass_context
def add(ctx, item_id: str, url: str, title: str, no_sync: bool):
    """Save a story."""

    async def _run():
        db = SavedStoriesDB(ctx.obj["db_path"])
        await db.initialize()
        sync = None if no_sync else ItemSyncScheduler(ctx.obj["config"])
        try:
            manager = await FavoriteManager.open(db, sync_scheduler=sync)
            if manager.is_favorite(item_id):
                console.print(f"[dim]{item_id} already saved, updating[/dim]")
            await manager.add(Favorite(id=item_id, url=url, title=title))
            if sync is not None:
                with console.status("[bold green]Syncing..."):
                    await sync.drain()
            console.print(f"[green]Saved[/green] {item_id}")
        finally:
            await db.close()

    run_async(_run())


@cli.command()
@click.argument("item_ids", nargs=-1, required=True)
@click.pass_context
def remove(ctx, item_ids: Tuple[str, ...]):
    """Remove saved stories by ID."""

    async def _run():
        db = SavedStoriesDB(ctx.obj["db_path"])
        await db.initialize()
        manager = FavoriteManager(db)
        try:
            await manager.remove_many(item_ids)
            console.print(f"[green]Removed[/green] {len(item_ids)} stor{'y' if len(item_ids) == 1 else 'ies'}")
        finally:
            await db.close()

    run_async(_run())


@cli.command()
@click.option("--filter", "-f", "filter_", default=None, help="Only titles containing this text")
@click.confirmation_option(prompt="Delete matching saved stories?")
@click.pass_context
def clear(ctx, filter_: Optional[str]):
    """Delete all saved stories (or those matching --filter)."""

    async def _run():
        db = SavedStoriesDB(ctx.obj["db_path"])
        await db.initialize()
        manager = FavoriteManager(db)
        try:
            deleted = await manager.clear(filter_)
            console.print(f"[green]Deleted {deleted} saved stories[/green]")
        finally:
            await db.close()

    run_async(_run())


@cli.command()
@click.option("--format", "-F", "fmt", type=click.Choice(FORMAT_CHOICES), default="csv", help="Export format")
@click.option("--filter", "-f", "filter_", default=None, help="Only titles containing this text")
@click.option("--output", "-o", type=click.Path(dir_okay=False, writable=True), default=None,
              help="Write to this file instead of the share flow")
@click.option("--no-share", is_flag=True, help="Do not open the export afterwards")
@click.pass_context
def export(ctx, fmt: str, filter_: Optional[str], output: Optional[str], no_share: bool):
    """Export saved stories."""
    export_format = ExportFormat.parse(fmt)

    async def _run() -> bool:
        db = SavedStoriesDB(ctx.obj["db_path"])
        await db.initialize()
        orchestrator = ExportOrchestrator(db, ConsoleNotifier(console), ctx.obj["config"])
        if no_share:
            orchestrator.share_action = None
        try:
            if output:
                ok = await orchestrator.export_to_destination(filter_, export_format, output)
            else:
                ok = await orchestrator.export_to_share(filter_, export_format) is not None
            await orchestrator.drain()
            return ok
        finally:
            await db.close()

    if not run_async(_run()):
        sys.exit(1)


def main():
    cli()


if __name__ == "__main__":
    main()
