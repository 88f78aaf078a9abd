"""Single-flight cache for downloaded artifact content.

Concurrent lookups of the same key share one download: the first caller runs
the loader, everyone else waits on the same future. A failed load is dropped
from the cache so the next caller retries.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Hashable
from concurrent.futures import Future
from typing import Generic, TypeVar

T = TypeVar("T")


class ArtifactCache(Generic[T]):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[Hashable, Future[T]] = {}

    def get_or_load(self, key: Hashable, loader: Callable[[], T]) -> tuple[T, bool]:
        """Return ``(value, cached)``; ``cached`` is False only for the caller that loaded."""

        with self._lock:
            future = self._entries.get(key)
            owner = future is None
            if owner:
                future = Future()
                self._entries[key] = future

        assert future is not None
        if not owner:
            return future.result(), True

        try:
            value = loader()
        except BaseException as exc:
            with self._lock:
                self._entries.pop(key, None)
            future.set_exception(exc)
            raise
        future.set_result(value)
        return value, False

    def peek(self, key: Hashable) -> T | None:
        with self._lock:
            future = self._entries.get(key)
        if future is None or not future.done() or future.exception() is not None:
            return None
        return future.result()

    def __contains__(self, key: Hashable) -> bool:
        return self.peek(key) is not None

    def __len__(self) -> int:
        with self._lock:
            return sum(1 for f in self._entries.values() if f.done() and f.exception() is None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


__all__ = ["ArtifactCache"]
