"""Observer-driven local cache of saved stories."""

from favorites.cache.changes import ChangeFeed
from favorites.cache.loader import FavoriteLoader
from favorites.cache.local_cache import LocalCache
from favorites.cache.manager import FavoriteManager

__all__ = ["ChangeFeed", "FavoriteLoader", "LocalCache", "FavoriteManager"]
