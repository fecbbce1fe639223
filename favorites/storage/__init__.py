"""Storage layer - SQLite saved stories table, result cursors, and migrations."""

from favorites.storage.cursor import FavoriteCursor, ResultSet
from favorites.storage.db import SavedStoriesDB, SavedStoriesStore
from favorites.storage.models import Favorite, SavedStory

__all__ = [
    "FavoriteCursor",
    "ResultSet",
    "SavedStoriesDB",
    "SavedStoriesStore",
    "Favorite",
    "SavedStory",
]
