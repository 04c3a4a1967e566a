from __future__ import annotations

from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from threading import Lock
from typing import Any


class DetailState(str, Enum):
    UNFETCHED = "unfetched"
    LOADING = "loading"
    LOADED = "loaded"
    FAILED = "failed"


MediaKey = tuple[str, int]

DEFAULT_MAX_ENTRIES = 512


@dataclass(frozen=True)
class CacheEntry:
    state: DetailState
    value: Any = None
    error: str | None = None


_UNFETCHED = CacheEntry(state=DetailState.UNFETCHED)


class DetailCache:
    """In-process cache of extended media details, keyed by (media_type, media_id).

    A key in `loading` is never fetched a second time; concurrent callers get
    the loading entry back instead. Failed keys are fetched again on the next call.
    Once more than `max_entries` keys are held, the least recently used settled
    (loaded or failed) entries are evicted; in-flight loads are never evicted.
    """

    def __init__(self, max_entries: int = DEFAULT_MAX_ENTRIES) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._lock = Lock()
        self._max_entries = max_entries
        self._entries: OrderedDict[MediaKey, CacheEntry] = OrderedDict()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def peek(self, key: MediaKey) -> CacheEntry:
        with self._lock:
            return self._entries.get(key, _UNFETCHED)

    def _store(self, key: MediaKey, entry: CacheEntry) -> None:
        # Caller holds the lock.
        self._entries[key] = entry
        self._entries.move_to_end(key)
        excess = len(self._entries) - self._max_entries
        if excess <= 0:
            return
        for old_key in [k for k, e in self._entries.items() if e.state is not DetailState.LOADING]:
            if excess <= 0:
                break
            if old_key != key:
                del self._entries[old_key]
                excess -= 1

    def get_or_fetch(self, key: MediaKey, loader: Callable[[], Any]) -> CacheEntry:
        with self._lock:
            entry = self._entries.get(key, _UNFETCHED)
            if entry.state is DetailState.LOADED:
                self._entries.move_to_end(key)
                return entry
            if entry.state is DetailState.LOADING:
                return entry
            self._store(key, CacheEntry(state=DetailState.LOADING))

        try:
            value = loader()
        except Exception as e:
            with self._lock:
                self._store(key, CacheEntry(state=DetailState.FAILED, error=str(e)))
            raise

        loaded = CacheEntry(state=DetailState.LOADED, value=value)
        with self._lock:
            self._store(key, loaded)
        return loaded

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
