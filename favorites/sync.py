"""Background refresh of a saved item's content, triggered when it is saved."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Set

import aiohttp

logger = logging.getLogger(__name__)

DEFAULT_ITEM_URL_TEMPLATE = "https://hacker-news.firebaseio.com/v0/item/%s.json"
DEFAULT_SYNC_DIR = "data/sync"
DEFAULT_TIMEOUT = 15.0


class ItemSyncScheduler:
    """Fetches item JSON for offline reading; fire-and-forget.

    ``schedule_sync`` returns immediately. Fetch or write failures are logged
    and never reach the caller.
    """

    def __init__(self, config: Dict[str, Any]) -> None:
        sync = config.get("sync", {})
        self.enabled: bool = sync.get("enabled", True)
        self.item_url_template: str = sync.get("item_url_template", DEFAULT_ITEM_URL_TEMPLATE)
        self.directory = Path(sync.get("directory", DEFAULT_SYNC_DIR)).expanduser()
        self.timeout = float(sync.get("timeout_seconds", DEFAULT_TIMEOUT))
        self._tasks: Set[asyncio.Task] = set()

    def schedule_sync(self, item_id: str) -> None:
        if not self.enabled:
            return
        task = asyncio.get_running_loop().create_task(self.sync(item_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def sync(self, item_id: str) -> Optional[Path]:
        """Fetch one item and store it as ``<directory>/<id>.json``."""
        url = self.item_url_template % item_id
        try:
            async with aiohttp.ClientSession() as session:
                async with session.get(url, timeout=aiohttp.ClientTimeout(total=self.timeout)) as resp:
                    if resp.status != 200:
                        logger.warning("Sync of %s failed: HTTP %d", item_id, resp.status)
                        return None
                    payload = await resp.json(content_type=None)
        except Exception as e:
            logger.warning("Sync of %s failed: %s", item_id, e)
            return None

        path = self.directory / f"{item_id}.json"
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(payload), encoding="utf-8")
        except OSError as e:
            logger.warning("Could not store synced item %s: %s", item_id, e)
            return None
        logger.debug("Synced item %s to %s", item_id, path)
        return path

    async def drain(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
