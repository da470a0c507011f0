"""Closable FIFO used for the work and result hand-offs between threads."""

from __future__ import annotations

import queue
import threading
import time
from typing import Generic, Iterator, TypeVar

T = TypeVar("T")

_POLL_INTERVAL = 0.05


class QueueClosed(Exception):
    """Raised when putting into a queue that has already been closed."""


class ClosableQueue(Generic[T]):
    """A ``queue.Queue`` with a terminal closed state.

    Consumers receive ``None`` once the queue is closed *and* drained, so a
    ``for item in q`` loop ends exactly when every produced item was consumed.
    """

    def __init__(self, capacity: int = 0) -> None:
        self.capacity = capacity
        self._queue: queue.Queue[T] = queue.Queue(maxsize=capacity)
        self._closed = threading.Event()

    def put(self, item: T, timeout: float | None = None) -> None:
        if self._closed.is_set():
            raise QueueClosed("put on a closed queue")
        self._queue.put(item, timeout=timeout)

    def get(self, timeout: float | None = None) -> T | None:
        """Return the next item, or None once the queue is closed and drained.

        Raises ``queue.Empty`` when ``timeout`` elapses while the queue is open.
        """

        expires = None if timeout is None else time.monotonic() + timeout
        while True:
            try:
                return self._queue.get(timeout=_POLL_INTERVAL)
            except queue.Empty:
                if self._closed.is_set() and self._queue.empty():
                    return None
                if expires is not None and time.monotonic() >= expires:
                    raise

    def close(self) -> None:
        self._closed.set()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def qsize(self) -> int:
        return self._queue.qsize()

    def __iter__(self) -> Iterator[T]:
        while True:
            item = self.get()
            if item is None:
                return
            yield item


__all__ = ["ClosableQueue", "QueueClosed"]
