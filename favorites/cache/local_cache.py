"""In-memory membership cache for saved story IDs."""

from __future__ import annotations

import threading
from typing import Iterable, Set


class LocalCache:
    """Answers "is this item saved?" without touching the store."""

    def __init__(self, item_ids: Iterable[str] = ()) -> None:
        self._ids: Set[str] = set(item_ids)
        self._lock = threading.Lock()

    def is_favorite(self, item_id: str) -> bool:
        with self._lock:
            return item_id in self._ids

    def put(self, item_id: str) -> None:
        with self._lock:
            self._ids.add(item_id)

    def evict(self, item_id: str) -> None:
        with self._lock:
            self._ids.discard(item_id)

    def replace(self, item_ids: Iterable[str]) -> None:
        with self._lock:
            self._ids = set(item_ids)

    def __len__(self) -> int:
        with self._lock:
            return len(self._ids)
