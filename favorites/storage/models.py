"""Data models for the saved stories storage layer."""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional


@dataclass(frozen=True)
class Favorite:
    """A saved story as exposed to listings and exporters."""

    id: str
    url: str
    title: str = ""
    saved_at: int = 0  # epoch seconds

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("Favorite id must not be empty")

    @property
    def display_title(self) -> str:
        """Title to show, falling back to URL and then ID."""
        return self.title or self.url or self.id

    @property
    def saved_datetime(self) -> datetime:
        """Saved time in local time."""
        return datetime.fromtimestamp(self.saved_at)


@dataclass
class SavedStory:
    """A row in the ``saved_stories`` table."""

    item_id: str
    url: str
    title: str
    time: int

    @classmethod
    def from_item(cls, item: Any, saved_at: Optional[int] = None) -> SavedStory:
        """Build a row from any web item exposing id, url and a title.

        ``display_title`` is preferred over ``title`` when the item has one.
        """
        title = getattr(item, "display_title", None) or getattr(item, "title", None) or ""
        if saved_at is None:
            saved_at = getattr(item, "saved_at", None) or int(time.time())
        return cls(
            item_id=str(item.id),
            url=item.url or "",
            title=title,
            time=int(saved_at),
        )

    def to_row(self) -> tuple:
        return (self.item_id, self.url, self.title, str(self.time))


# --- Helpers ---

def parse_epoch(val: Any) -> Optional[int]:
    """Parse a stored saved-time value into epoch seconds, or return None.

    Values are normally stringified integers; ISO timestamps written by older
    tools are accepted too.
    """
    if val is None or val == "":
        return None
    if isinstance(val, (int, float)):
        return int(val)
    text = str(val).strip()
    try:
        return int(float(text))
    except ValueError:
        pass
    try:
        from dateutil.parser import parse
        return int(parse(text).timestamp())
    except (ValueError, OverflowError):
        return None
