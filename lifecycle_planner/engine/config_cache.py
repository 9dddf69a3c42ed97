"""
Configuration cache for the Lifecycle Planner.

Holds externally loaded configuration objects keyed by name together with the
last-modified timestamp they were loaded at. A caller passes the current
timestamp of the source; the entry is reloaded only when the source is newer.
Reloads of one key are serialized so concurrent callers do not load the same
object twice.
"""

import logging
import threading
from typing import Any, Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)


class ConfigCache:
    """Thread-safe key -> (value, timestamp) cache with staleness checks."""

    def __init__(self):
        self._entries: Dict[str, Tuple[Any, float]] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, key: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    def get(self, key: str, last_modified: float, loader: Callable[[], Any]) -> Any:
        """
        Get a cached value, reloading it if the source changed.

        Args:
            key: Cache key
            last_modified: Modification timestamp of the source right now
            loader: Called with no arguments to load a fresh value

        Returns:
            The cached or freshly loaded value
        """
        entry = self._entries.get(key)
        if entry is not None and entry[1] >= last_modified:
            return entry[0]

        with self._lock_for(key):
            # Another caller may have refreshed while we waited
            entry = self._entries.get(key)
            if entry is not None and entry[1] >= last_modified:
                return entry[0]

            value = loader()
            self._entries[key] = (value, last_modified)
            logger.debug(f"Refreshed cache entry '{key}' (modified {last_modified})")
            return value

    def peek(self, key: str) -> Optional[Tuple[Any, float]]:
        """Return the raw (value, timestamp) entry without refreshing."""
        return self._entries.get(key)

    def invalidate(self, key: Optional[str] = None):
        """Drop one entry, or everything when no key is given."""
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries
