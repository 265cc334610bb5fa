"""Static-asset cache — a byte-budgeted FIFO of on-disk files.

Holds optimized image derivatives and content-tree files served verbatim.
Eviction is by insertion order (oldest inserted entry first), not by
recency of access.
"""

from __future__ import annotations

import threading
from collections import OrderedDict
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class StaticEntry:
    """One cached file body with its media type and ETag."""

    body: bytes
    content_type: str
    etag: str


class FifoByteCache:
    """Bounded byte cache with insertion-order eviction.

    Args:
        max_bytes: Total body bytes retained.
        max_entry_bytes: Bodies of this size or larger are never cached.

    Thread Safety:
        All methods are protected by a ``threading.Lock``; serve mode runs
        several Pounce workers over one cache.

    """

    __slots__ = ("_entries", "_lock", "_size", "max_bytes", "max_entry_bytes")

    def __init__(self, max_bytes: int, max_entry_bytes: int) -> None:
        self.max_bytes = max_bytes
        self.max_entry_bytes = max_entry_bytes
        self._entries: OrderedDict[str, StaticEntry] = OrderedDict()
        self._size = 0
        self._lock = threading.Lock()

    @property
    def size(self) -> int:
        """Total bytes currently held."""
        return self._size

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def keys(self) -> list[str]:
        """Keys in eviction order (next to be evicted first)."""
        with self._lock:
            return list(self._entries)

    def get(self, key: str) -> StaticEntry | None:
        return self._entries.get(key)

    def put(self, key: str, entry: StaticEntry) -> bool:
        """Insert *entry*; returns False when it is too large to cache.

        Re-inserting an existing key replaces it at the back of the queue.
        """
        size = len(entry.body)
        if size >= self.max_entry_bytes or size > self.max_bytes:
            return False
        with self._lock:
            previous = self._entries.pop(key, None)
            if previous is not None:
                self._size -= len(previous.body)
            self._entries[key] = entry
            self._size += size
            while self._size > self.max_bytes and self._entries:
                _, evicted = self._entries.popitem(last=False)
                self._size -= len(evicted.body)
        return True

    def discard(self, key: str) -> bool:
        with self._lock:
            entry = self._entries.pop(key, None)
            if entry is None:
                return False
            self._size -= len(entry.body)
            return True

    def discard_prefix(self, prefix: str) -> int:
        """Drop every key starting with *prefix*. Returns the number dropped."""
        with self._lock:
            doomed = [k for k in self._entries if k.startswith(prefix)]
            for key in doomed:
                self._size -= len(self._entries.pop(key).body)
            return len(doomed)

    def clear(self) -> int:
        """Drop everything. Returns the number of entries freed."""
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            self._size = 0
            return count
