"""Position-addressable result snapshots over the saved stories table."""

from __future__ import annotations

from typing import Any, Iterator, List, Mapping, Optional, Sequence

from favorites.storage.models import Favorite, parse_epoch


COLUMN_ITEM_ID = "item_id"
COLUMN_URL = "url"
COLUMN_TITLE = "title"
COLUMN_TIME = "time"


class ResultSet:
    """A closable snapshot of query rows with a movable position.

    The position starts before the first row. Moves return False and leave the
    position out of range when they run off either end.

    Usage:
        with await store.query_all() as rs:
            if rs.move_to_first():
                url = rs.get_or_raise("url")
    """

    def __init__(self, columns: Sequence[str], rows: Sequence[Sequence[Any]]):
        self._columns: List[str] = list(columns)
        self._rows: Optional[List[Sequence[Any]]] = list(rows)
        self._position = -1

    @classmethod
    def from_dicts(cls, rows: Sequence[Mapping[str, Any]]) -> ResultSet:
        columns: List[str] = []
        for row in rows:
            for key in row:
                if key not in columns:
                    columns.append(key)
        return cls(columns, [[row.get(c) for c in columns] for row in rows])

    @property
    def count(self) -> int:
        return len(self._rows) if self._rows is not None else 0

    @property
    def position(self) -> int:
        return self._position

    @property
    def closed(self) -> bool:
        return self._rows is None

    @property
    def columns(self) -> List[str]:
        return list(self._columns)

    def move_to_position(self, position: int) -> bool:
        count = self.count
        if position < 0:
            self._position = -1
            return False
        if position >= count:
            self._position = count
            return False
        self._position = position
        return True

    def move_to_first(self) -> bool:
        return self.move_to_position(0)

    def move_to_next(self) -> bool:
        return self.move_to_position(self._position + 1)

    def column_index(self, column: str) -> int:
        try:
            return self._columns.index(column)
        except ValueError:
            return -1

    def get(self, column: str) -> Any:
        """Value of ``column`` in the current row, or None if no such column."""
        index = self.column_index(column)
        if index < 0:
            return None
        return self._current()[index]

    def get_or_raise(self, column: str) -> Any:
        """Value of ``column`` in the current row; KeyError if no such column."""
        index = self.column_index(column)
        if index < 0:
            raise KeyError(f"column {column!r} does not exist")
        return self._current()[index]

    def close(self) -> None:
        self._rows = None
        self._position = -1

    def _current(self) -> Sequence[Any]:
        if self._rows is None:
            raise IndexError("result set is closed")
        if not 0 <= self._position < len(self._rows):
            raise IndexError(f"position {self._position} out of range ({len(self._rows)} rows)")
        return self._rows[self._position]

    def __enter__(self) -> ResultSet:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


class FavoriteCursor:
    """Adapts a ResultSet of saved_stories rows into Favorite records.

    The cursor owns the result set; closing the cursor closes it.
    """

    def __init__(self, result: ResultSet):
        self._result = result

    @property
    def count(self) -> int:
        return self._result.count

    @property
    def closed(self) -> bool:
        return self._result.closed

    def move_to_position(self, position: int) -> bool:
        return self._result.move_to_position(position)

    def move_to_first(self) -> bool:
        return self._result.move_to_first()

    def move_to_next(self) -> bool:
        return self._result.move_to_next()

    @property
    def favorite(self) -> Favorite:
        """Favorite at the current position.

        Missing id / url columns raise KeyError: the table is corrupt.
        """
        rs = self._result
        item_id = rs.get_or_raise(COLUMN_ITEM_ID)
        return Favorite(
            id=str(item_id) if item_id is not None else "",
            url=rs.get_or_raise(COLUMN_URL) or "",
            title=rs.get(COLUMN_TITLE) or "",
            saved_at=parse_epoch(rs.get(COLUMN_TIME)) or 0,
        )

    def get(self, position: int) -> Optional[Favorite]:
        if self.move_to_position(position):
            return self.favorite
        return None

    def __iter__(self) -> Iterator[Favorite]:
        if not self.move_to_first():
            return
        yield self.favorite
        while self.move_to_next():
            yield self.favorite

    def close(self) -> None:
        self._result.close()

    def __enter__(self) -> FavoriteCursor:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
