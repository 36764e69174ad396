"""Per-node memoisation of computed frames."""

from __future__ import annotations

from collections import OrderedDict
from contextlib import nullcontext
from threading import RLock
from typing import ContextManager, Iterator, Tuple

import numpy as np


class FrameCache:
    """Maps frame indices to previously computed values.

    ``capacity`` bounds the number of retained frames; once exceeded the
    least recently used index is evicted. ``None`` keeps every frame until
    :meth:`clear`. Lookups never trigger computation.

    The cache is not thread-safe unless ``synchronized`` is set, in which case
    every operation runs under a re-entrant lock. Callers that reset a graph
    while other threads evaluate it must still coordinate externally.
    """

    __slots__ = ("_capacity", "_store", "_lock")

    def __init__(self, capacity: int | None = None, *, synchronized: bool = False) -> None:
        if capacity is not None:
            capacity = int(capacity)
            if capacity <= 0:
                raise ValueError("cache capacity must be a positive integer or None")
        self._capacity = capacity
        self._store: "OrderedDict[int, np.ndarray]" = OrderedDict()
        self._lock: ContextManager = RLock() if synchronized else nullcontext()

    @property
    def capacity(self) -> int | None:
        return self._capacity

    @property
    def synchronized(self) -> bool:
        return not isinstance(self._lock, nullcontext)

    def get(self, index: int) -> Tuple[np.ndarray | None, bool]:
        with self._lock:
            value = self._store.get(index)
            if value is None:
                return None, False
            if self._capacity is not None:
                self._store.move_to_end(index)
            return value, True

    def set(self, index: int, value: np.ndarray) -> None:
        with self._lock:
            self._store[index] = value
            if self._capacity is None:
                return
            self._store.move_to_end(index)
            while len(self._store) > self._capacity:
                self._store.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def indices(self) -> Tuple[int, ...]:
        with self._lock:
            return tuple(self._store)

    def __contains__(self, index: object) -> bool:
        with self._lock:
            return index in self._store

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def __iter__(self) -> Iterator[int]:
        return iter(self.indices())


__all__ = ["FrameCache"]
