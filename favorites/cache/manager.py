"""Local item cache manager: current cursor, loader, and saved-story mutations."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Iterable, Optional, Protocol, Set, TypeVar

from favorites.cache.changes import ChangeFeed, build_added, build_cleared, build_removed
from favorites.cache.loader import FavoriteLoader, Observer
from favorites.cache.local_cache import LocalCache
from favorites.errors import FavoriteMutationError
from favorites.storage.cursor import FavoriteCursor
from favorites.storage.db import SavedStoriesStore, delete_matching
from favorites.storage.models import Favorite, SavedStory

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SyncScheduler(Protocol):
    """Fire-and-forget content refresh for a newly saved item."""

    def schedule_sync(self, item_id: str) -> None:
        ...


class FavoriteManager:
    """Owns the cursor shown to a listing and re-queries after every mutation.

    All mutations return an ``asyncio.Task`` immediately. When the store work
    finishes, the manager asks the *currently attached* loader to reload and
    publishes a change token on ``changes``. A failed mutation publishes
    nothing; its task raises ``FavoriteMutationError``.

    The membership cache behind ``is_favorite`` is filled from the store by
    ``open()`` or by the first ``attach()``. A cache passed in is taken as
    already reflecting the store.

    Usage:
        manager = await FavoriteManager.open(db)
        manager.attach(observer, filter=None)
        await manager.add(story)
        manager.get_item(0)
    """

    def __init__(
        self,
        store: SavedStoriesStore,
        cache: Optional[LocalCache] = None,
        changes: Optional[ChangeFeed] = None,
        sync_scheduler: Optional[SyncScheduler] = None,
    ) -> None:
        self.store = store
        self.cache = cache if cache is not None else LocalCache()
        self.changes = changes if changes is not None else ChangeFeed()
        self.sync_scheduler = sync_scheduler
        self._cursor: Optional[FavoriteCursor] = None
        self._loader: Optional[FavoriteLoader] = None
        self._tasks: Set[asyncio.Task] = set()
        self._cache_loaded = cache is not None

    @classmethod
    async def open(cls, store: SavedStoriesStore, **kwargs: Any) -> FavoriteManager:
        """Create a manager whose membership cache already reflects ``store``."""
        manager = cls(store, **kwargs)
        await manager.refresh_cache()
        return manager

    # --- Listing ---

    def attach(self, observer: Observer, filter: Optional[str] = None) -> asyncio.Task:
        """Bind ``observer`` to a new loader for ``filter`` and load it.

        The task resolves to True if the load was published. On the first
        attach it also waits for the membership cache to be filled.
        """
        self._loader = FavoriteLoader(self, filter, observer)
        load = self._loader.load()
        if self._cache_loaded:
            return load
        self._cache_loaded = True
        return self.dispatch(self._warm_cache(load))

    def detach(self) -> None:
        """Release the cursor and forget the loader; late loads are dropped."""
        if self._cursor is not None:
            self._cursor.close()
            self._cursor = None
        self._loader = None

    def size(self) -> int:
        return self._cursor.count if self._cursor is not None else 0

    def get_item(self, position: int) -> Optional[Favorite]:
        if self._cursor is None:
            return None
        return self._cursor.get(position)

    def is_current(self, loader: FavoriteLoader) -> bool:
        return loader is self._loader

    def swap_cursor(self, cursor: FavoriteCursor) -> None:
        previous, self._cursor = self._cursor, cursor
        if previous is not None:
            previous.close()

    # --- Mutations ---

    def add(self, item: Any) -> asyncio.Task:
        """Save ``item`` (anything with id / url / title)."""
        story = SavedStory.from_item(item)
        task = self.dispatch(self._add(story))
        self._schedule_sync(story.item_id)
        return task

    def remove(self, item_id: Optional[str]) -> Optional[asyncio.Task]:
        if item_id is None:
            return None
        return self.dispatch(self._remove([item_id]))

    def remove_many(self, item_ids: Optional[Iterable[str]]) -> Optional[asyncio.Task]:
        ids = list(item_ids or [])
        if not ids:
            return None
        return self.dispatch(self._remove(ids))

    def clear(self, filter: Optional[str] = None) -> asyncio.Task:
        """Delete every saved story matching ``filter``; task yields the count."""
        return self.dispatch(self._clear(filter))

    def is_favorite(self, item_id: Optional[str]) -> bool:
        if not item_id:
            return False
        return self.cache.is_favorite(item_id)

    async def refresh_cache(self) -> None:
        """Rebuild the membership cache from the store."""
        with FavoriteCursor(await self.store.query_all()) as cursor:
            self.cache.replace(f.id for f in cursor)
        self._cache_loaded = True

    async def _warm_cache(self, load: Awaitable[bool]) -> bool:
        try:
            with FavoriteCursor(await self.store.query_all()) as cursor:
                for favorite in cursor:
                    self.cache.put(favorite.id)
        except Exception as e:
            logger.error("Could not fill saved stories cache: %s", e)
            self._cache_loaded = False
        return await load

    async def _add(self, story: SavedStory) -> None:
        await self._mutate("add", self.store.insert(story))
        self.cache.put(story.item_id)
        self._reload()
        self.changes.set_value(build_added(story.item_id))

    async def _remove(self, item_ids: list) -> None:
        for item_id in item_ids:
            await self._mutate("remove", self.store.delete_by_id(item_id))
            self.cache.evict(item_id)
        self._reload()
        for item_id in item_ids:
            self.changes.set_value(build_removed(item_id))

    async def _clear(self, filter: Optional[str]) -> int:
        deleted = await self._mutate("clear", delete_matching(self.store, filter))
        try:
            await self.refresh_cache()
        except Exception as e:
            logger.error("Could not refresh saved stories cache after clear: %s", e)
        logger.info("Cleared %d saved stories (filter=%r)", deleted, filter)
        self._reload()
        self.changes.set_value(build_cleared())
        return deleted

    async def _mutate(self, operation: str, work: Awaitable[T]) -> T:
        try:
            return await work
        except Exception as e:
            logger.error("Saved stories %s failed: %s", operation, e)
            raise FavoriteMutationError(operation, e) from e

    def _reload(self) -> None:
        loader = self._loader
        if loader is not None:
            loader.load()

    def _schedule_sync(self, item_id: str) -> None:
        if self.sync_scheduler is None:
            return
        try:
            self.sync_scheduler.schedule_sync(item_id)
        except Exception as e:
            logger.warning("Could not schedule sync for %s: %s", item_id, e)

    # --- Task bookkeeping ---

    def dispatch(self, work: Awaitable[T]) -> asyncio.Task:
        """Run ``work`` on the running loop, keeping a reference until done."""
        task = asyncio.ensure_future(work)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled():
            task.exception()  # mark retrieved; failures are logged in _mutate

    async def wait_idle(self) -> None:
        """Wait until all dispatched mutations and loads have finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
