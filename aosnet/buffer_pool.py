"""Per-thread pools of fixed-size I/O buffers with global accounting."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator

BUFFER_SIZE = 4096


class ForeignBufferError(Exception):
    """Raised when a buffer is returned to a pool that did not create it."""


@dataclass(eq=False)
class PoolBuffer:
    """A fixed-size byte buffer that remembers the pool it belongs to."""

    owner: "BufferPool | None" = None
    data: bytearray = field(default_factory=lambda: bytearray(BUFFER_SIZE))

    @property
    def size(self) -> int:
        return len(self.data)


class BufferPool:
    """Stack of reusable buffers; creates new ones when empty."""

    def __init__(self, manager: "GlobalPoolManager | None" = None) -> None:
        self._manager = manager if manager is not None else GlobalPoolManager.instance()
        self._stack: list[PoolBuffer] = []
        self._lock = threading.Lock()
        self._total = 0

    def acquire(self) -> PoolBuffer:
        """Take a free buffer, creating one if none is available."""
        with self._lock:
            buffer = self._stack.pop() if self._stack else None
            if buffer is None:
                self._total += 1
        if buffer is None:
            self._manager.add_to_total(1)
            return PoolBuffer(owner=self)
        self._manager.sub_from_available(1)
        return buffer

    def release(self, buffer: PoolBuffer) -> None:
        """Return ``buffer`` to this pool."""
        if buffer is None:
            raise ValueError("cannot release None")
        if buffer.owner is not self:
            raise ForeignBufferError("buffer was created by a different pool")
        with self._lock:
            self._stack.append(buffer)
        self._manager.add_to_available(1)

    @property
    def total_count(self) -> int:
        """Number of buffers this pool has ever created."""
        return self._total

    @contextmanager
    def borrow(self) -> Iterator[PoolBuffer]:
        """Acquire a buffer for the duration of a ``with`` block."""
        buffer = self.acquire()
        try:
            yield buffer
        finally:
            self.release(buffer)


class GlobalPoolManager:
    """Hands out one pool per thread and tracks buffer totals across them."""

    _instance: "GlobalPoolManager | None" = None
    _instance_lock = threading.Lock()

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._total = 0
        self._available = 0
        self._local = threading.local()

    @staticmethod
    def instance() -> "GlobalPoolManager":
        """Return the process-wide manager."""
        with GlobalPoolManager._instance_lock:
            if GlobalPoolManager._instance is None:
                GlobalPoolManager._instance = GlobalPoolManager()
            return GlobalPoolManager._instance

    def my_pool(self) -> BufferPool:
        """Return the calling thread's pool, creating it on first use."""
        pool = getattr(self._local, "pool", None)
        if pool is None:
            pool = BufferPool(self)
            self._local.pool = pool
        return pool

    @property
    def total_count(self) -> int:
        return self._total

    @property
    def available_count(self) -> int:
        return self._available

    def add_to_total(self, n: int = 1) -> None:
        with self._lock:
            self._total += n

    def add_to_available(self, n: int = 1) -> None:
        with self._lock:
            self._available += n

    def sub_from_available(self, n: int = 1) -> None:
        with self._lock:
            self._available -= n