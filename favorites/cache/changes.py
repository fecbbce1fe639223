"""Change tokens published after saved-story mutations."""

from __future__ import annotations

import logging
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)

BASE_SAVED_URI = "content://saved-stories/saved"
PATH_ADD = "add"
PATH_REMOVE = "remove"
PATH_CLEAR = "clear"


def build_added(item_id: str) -> str:
    return f"{BASE_SAVED_URI}/{PATH_ADD}/{item_id}"


def build_removed(item_id: str) -> str:
    return f"{BASE_SAVED_URI}/{PATH_REMOVE}/{item_id}"


def build_cleared() -> str:
    return f"{BASE_SAVED_URI}/{PATH_CLEAR}"


def is_added(token: str) -> bool:
    return token.startswith(f"{BASE_SAVED_URI}/{PATH_ADD}")


def is_removed(token: str) -> bool:
    return token.startswith(f"{BASE_SAVED_URI}/{PATH_REMOVE}")


def is_cleared(token: str) -> bool:
    return token.startswith(build_cleared())


def item_id_of(token: str) -> Optional[str]:
    """Item ID carried by an add/remove token, None for clear tokens."""
    if is_cleared(token):
        return None
    return token.rsplit("/", 1)[-1] or None


class ChangeFeed:
    """Single "value changed" sink; subscribers get every token set on it."""

    def __init__(self) -> None:
        self.value: Optional[str] = None
        self._subscribers: List[Callable[[str], None]] = []

    def subscribe(self, callback: Callable[[str], None]) -> Callable[[], None]:
        """Register ``callback``; returns a function that unsubscribes it."""
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    def set_value(self, token: str) -> None:
        self.value = token
        for callback in list(self._subscribers):
            try:
                callback(token)
            except Exception:
                logger.exception("Change subscriber failed for %s", token)
