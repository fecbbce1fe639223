"""Export orchestrator: acquire -> serialize -> deliver -> notify.

Two pipelines share the first two stages:

* ``export_to_share`` writes an ephemeral file in the export directory,
  reports it, then (independently, best effort) promotes it into Downloads and
  opens it with the share action after a short delay.
* ``export_to_destination`` writes straight into a caller-supplied path or
  binary sink and reports only success or failure.

Both return an ``asyncio.Task`` right away. Store access happens on the
store's own thread, serialization and file I/O on ``executor``; notifier
calls and the share action run on the event loop.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from concurrent.futures import Executor
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, TypeVar

from favorites.errors import AcquireError, ExportError, SerializeError
from favorites.export.delivery import (
    DEFAULT_BASENAME,
    Destination,
    DownloadsPromoter,
    open_with_default_app,
    write_export_file,
    write_to_destination,
)
from favorites.export.formats import DEFAULT_DISCUSSION_URL_TEMPLATE, ExportFormat, serialize
from favorites.export.notifier import ProgressNotifier
from favorites.storage.cursor import FavoriteCursor
from favorites.storage.db import SavedStoriesStore, query_store
from favorites.storage.models import Favorite

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_EXPORT_DIR = "data/saved"
DEFAULT_SHARE_DELAY = 1.5


class ExportOrchestrator:
    """Exports the (optionally filtered) saved stories in one of five formats.

    Usage:
        orchestrator = ExportOrchestrator(db, ConsoleNotifier(), config)
        path = await orchestrator.export_to_share("rust", ExportFormat.MARKDOWN)
        await orchestrator.drain()
    """

    def __init__(
        self,
        store: SavedStoriesStore,
        notifier: ProgressNotifier,
        config: Dict[str, Any],
        promoter: Optional[DownloadsPromoter] = None,
        share_action: Optional[Callable[[Path], None]] = open_with_default_app,
        executor: Optional[Executor] = None,
    ) -> None:
        export = config.get("export", {})
        self.store = store
        self.notifier = notifier
        self.export_dir = Path(export.get("directory", DEFAULT_EXPORT_DIR)).expanduser()
        self.basename: str = export.get("basename", DEFAULT_BASENAME)
        self.discussion_url_template: str = export.get(
            "discussion_url_template", DEFAULT_DISCUSSION_URL_TEMPLATE
        )
        self.share_delay = float(export.get("share_delay_seconds", DEFAULT_SHARE_DELAY))
        self.promoter = promoter if promoter is not None else DownloadsPromoter(config)
        self.share_action = share_action
        self.executor = executor
        self._tasks: Set[asyncio.Task] = set()

    # --- Public pipelines ---

    def export_to_share(
        self,
        filter: Optional[str] = None,
        fmt: ExportFormat = ExportFormat.CSV,
    ) -> asyncio.Task:
        """Export to the ephemeral file; the task yields its path or None."""
        logger.info("Starting export in %s format...", fmt.name)
        self.notifier.started()
        return self._spawn(self._export_to_share(filter, fmt))

    def export_to_destination(
        self,
        filter: Optional[str],
        fmt: ExportFormat,
        destination: Optional[Destination],
    ) -> asyncio.Task:
        """Export into ``destination``; the task yields True on success."""
        logger.info("Starting export to destination in %s format...", fmt.name)
        self.notifier.started()
        return self._spawn(self._export_to_destination(filter, fmt, destination))

    async def drain(self) -> None:
        """Wait for running exports and their promotion / share side tasks."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # --- Pipelines ---

    async def _export_to_share(self, filter: Optional[str], fmt: ExportFormat) -> Optional[Path]:
        try:
            content = await self._render(filter, fmt)
            path = await self._in_background(
                write_export_file, self.export_dir, self.basename, fmt, content
            )
        except Exception as e:
            self._log_failure("Export", e)
            self.notifier.failed()
            return None

        logger.info("Export done: %s", path)
        self.notifier.succeeded(path)
        if self.promoter.enabled:
            self._spawn(self._promote(path, fmt))
        if self.share_action is not None:
            self._spawn(self._share_later(path))
        return path

    async def _export_to_destination(
        self,
        filter: Optional[str],
        fmt: ExportFormat,
        destination: Optional[Destination],
    ) -> bool:
        try:
            content = await self._render(filter, fmt)
            await self._in_background(write_to_destination, destination, content)
        except Exception as e:
            self._log_failure("Export to destination", e)
            self.notifier.failed()
            return False

        logger.info("Export to destination done")
        self.notifier.succeeded(None)
        return True

    # --- Stages ---

    async def _render(self, filter: Optional[str], fmt: ExportFormat) -> str:
        items = await self._acquire(filter)
        return await self._in_background(self._serialize, fmt, items)

    async def _acquire(self, filter: Optional[str]) -> List[Favorite]:
        try:
            result = await query_store(self.store, filter)
        except Exception as e:
            raise AcquireError(f"query for filter {filter!r} failed: {e}") from e

        with FavoriteCursor(result) as cursor:
            if cursor.count == 0:
                raise AcquireError(f"no saved stories match filter {filter!r}")
            try:
                items = list(cursor)
            except (KeyError, ValueError, IndexError) as e:
                raise SerializeError(f"corrupt saved story row: {e}") from e

        logger.debug("Writing export, count: %d", len(items))
        return items

    def _serialize(self, fmt: ExportFormat, items: List[Favorite]) -> str:
        try:
            return serialize(fmt, items, self.discussion_url_template)
        except (KeyError, TypeError, ValueError) as e:
            raise SerializeError(f"could not render {fmt.name}: {e}") from e

    # --- Side effects after success ---

    async def _promote(self, path: Path, fmt: ExportFormat) -> Optional[str]:
        try:
            saved = await self._in_background(self.promoter.promote, path, fmt)
        except Exception as e:
            logger.error("Promotion of %s failed: %s", path, e)
            saved = None
        if saved:
            self.notifier.message(f"✓ Saved to Downloads folder:\n{saved}")
        else:
            self.notifier.message("Could not save to Downloads. Use share option.")
        return saved

    async def _share_later(self, path: Path) -> None:
        await asyncio.sleep(self.share_delay)
        try:
            self.share_action(path)
        except Exception as e:
            logger.error("Failed to open share dialog for %s: %s", path, e)

    # --- Helpers ---

    async def _in_background(self, fn: Callable[..., T], *args: Any) -> T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self.executor, functools.partial(fn, *args))

    def _spawn(self, work: Awaitable[T]) -> asyncio.Task:
        task = asyncio.ensure_future(work)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @staticmethod
    def _log_failure(what: str, error: Exception) -> None:
        if isinstance(error, ExportError):
            logger.error("%s failed: %s", what, error)
        else:
            logger.exception("%s failed with unexpected error", what)
