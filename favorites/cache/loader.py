"""Observer-driven loader publishing fresh cursors to the cache manager."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Optional, Protocol

from favorites.storage.cursor import FavoriteCursor
from favorites.storage.db import query_store

if TYPE_CHECKING:
    from favorites.cache.manager import FavoriteManager

logger = logging.getLogger(__name__)


class Observer(Protocol):
    """Listing surface notified whenever a new cursor is published."""

    def on_changed(self) -> None:
        ...


class FavoriteLoader:
    """Queries saved stories for one filter and hands the result to its manager.

    Every ``load()`` gets a sequence number. A finished query is published only
    if this loader is still the manager's current loader and no later load has
    been published already; otherwise its result set is closed and dropped.
    """

    def __init__(
        self,
        manager: FavoriteManager,
        filter: Optional[str],
        observer: Observer,
    ) -> None:
        self.manager = manager
        self.filter = filter
        self.observer = observer
        self._issued = 0
        self._published = 0

    def load(self) -> asyncio.Task:
        """Start a background query; the task resolves to True if published."""
        self._issued += 1
        return self.manager.dispatch(self._load(self._issued))

    async def _load(self, seq: int) -> bool:
        try:
            result = await query_store(self.manager.store, self.filter)
        except Exception as e:
            logger.error("Load %d for filter %r failed: %s", seq, self.filter, e)
            return False

        if not self.manager.is_current(self) or seq < self._published:
            logger.debug("Discarding stale load %d for filter %r", seq, self.filter)
            result.close()
            return False

        self._published = seq
        self.manager.swap_cursor(FavoriteCursor(result))
        self.observer.on_changed()
        return True
