"""Background music asset stores.

The library is laid out as ``<Category>/<Category>_<index>.<ext>`` under one
root. Stores expose four read-only operations; the resolver only ever talks
to them through CachedAssetStore.
"""

import logging
import os
import threading
from typing import Protocol

logger = logging.getLogger(__name__)


class AssetStore(Protocol):
    def list_categories(self) -> list[str]: ...

    def list_assets_in_category(self, category: str) -> list[str]: ...

    def exists(self, path: str) -> bool: ...

    def resolve_url(self, path: str) -> str: ...


class LocalAssetStore:
    """Asset library on the local filesystem."""

    def __init__(self, root: str):
        self.root = root

    def _full_path(self, path: str) -> str:
        return os.path.join(self.root, *path.split("/"))

    def list_categories(self) -> list[str]:
        if not os.path.isdir(self.root):
            return []
        return sorted(
            name for name in os.listdir(self.root)
            if os.path.isdir(os.path.join(self.root, name))
        )

    def list_assets_in_category(self, category: str) -> list[str]:
        category_dir = os.path.join(self.root, category)
        if not os.path.isdir(category_dir):
            return []
        return sorted(
            name for name in os.listdir(category_dir)
            if os.path.isfile(os.path.join(category_dir, name))
        )

    def exists(self, path: str) -> bool:
        # Compare names exactly: case-insensitive filesystems would otherwise
        # report "X_1.MP3" as present when only "X_1.mp3" exists.
        directory, _, filename = path.rpartition("/")
        full_dir = self._full_path(directory) if directory else self.root
        if not os.path.isdir(full_dir):
            return False
        return filename in os.listdir(full_dir)

    def resolve_url(self, path: str) -> str:
        return os.path.abspath(self._full_path(path))


class CachedAssetStore:
    """Read-through existence cache in front of another store.

    Safe for concurrent readers: lookups that hit the cache take the lock
    only briefly, misses query the backing store outside the lock and the
    result is published atomically.
    """

    def __init__(self, store: AssetStore):
        self.store = store
        self._exists: dict[str, bool] = {}
        self._lock = threading.Lock()

    def list_categories(self) -> list[str]:
        return self.store.list_categories()

    def list_assets_in_category(self, category: str) -> list[str]:
        return self.store.list_assets_in_category(category)

    def exists(self, path: str) -> bool:
        with self._lock:
            cached = self._exists.get(path)
        if cached is not None:
            return cached
        found = bool(self.store.exists(path))
        with self._lock:
            self._exists.setdefault(path, found)
            return self._exists[path]

    def resolve_url(self, path: str) -> str:
        return self.store.resolve_url(path)

    def warm(self) -> int:
        """Prime the cache from the store listings. Returns entries cached."""
        entries = {}
        for category in self.store.list_categories():
            for filename in self.store.list_assets_in_category(category):
                entries[f"{category}/{filename}"] = True
        with self._lock:
            self._exists.update(entries)
        logger.info("Asset cache warmed with %d entries", len(entries))
        return len(entries)

    def invalidate(self, misses_only: bool = False) -> None:
        """Forget cached answers; with misses_only, keep known hits."""
        with self._lock:
            if misses_only:
                self._exists = {k: v for k, v in self._exists.items() if v}
            else:
                self._exists.clear()
