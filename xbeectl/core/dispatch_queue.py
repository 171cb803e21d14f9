"""Bounded, thread-safe queue of decoded frames."""

from __future__ import annotations

import threading
import time
from collections import deque
from collections.abc import Callable
from enum import Enum

from xbeectl.core.constants import DEFAULT_QUEUE_CAPACITY
from xbeectl.core.errors import QueueFullError
from xbeectl.core.frames import Frame, frame_id_of
from xbeectl.core.model import RemoteNode


class Overflow(Enum):
    REJECT = "reject"
    EVICT_OLDEST = "evict_oldest"


def _source_node(frame: Frame) -> RemoteNode | None:
    x64 = getattr(frame, "x64bit_addr", None)
    x16 = getattr(frame, "x16bit_addr", None)
    if x64 is None and x16 is None:
        return None
    return RemoteNode(x64bit_addr=x64, x16bit_addr=x16)


class DispatchQueue:
    """FIFO of frames with a fixed capacity and predicate-based removal.

    Every operation runs under one condition variable, so eviction and
    insertion happen in the same critical section and waiters are woken as
    soon as a frame arrives.
    """

    def __init__(self, capacity: int = DEFAULT_QUEUE_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("Queue capacity must be at least 1")
        self._capacity = capacity
        self._frames: deque[Frame] = deque()
        self._cond = threading.Condition()

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def full(self) -> bool:
        with self._cond:
            return len(self._frames) >= self._capacity

    def __len__(self) -> int:
        with self._cond:
            return len(self._frames)

    def push(self, frame: Frame, overflow: Overflow = Overflow.REJECT) -> Frame | None:
        """Append frame, returning the evicted frame if one was dropped."""
        with self._cond:
            evicted = None
            if len(self._frames) >= self._capacity:
                if overflow is Overflow.REJECT:
                    raise QueueFullError(f"Queue is full ({self._capacity} frames)")
                evicted = self._frames.popleft()
            self._frames.append(frame)
            self._cond.notify_all()
            return evicted

    def _take(self, predicate: Callable[[Frame], bool] | None) -> Frame | None:
        for index, frame in enumerate(self._frames):
            if predicate is None or predicate(frame):
                del self._frames[index]
                return frame
        return None

    def pop(
        self,
        predicate: Callable[[Frame], bool] | None = None,
        timeout: float | None = 0.0,
        cancel: threading.Event | None = None,
    ) -> Frame | None:
        """Remove and return the first frame matching predicate.

        A timeout of 0 never waits and None waits until a match arrives or
        cancel is set. Returns None on timeout or cancellation.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while True:
                if cancel is not None and cancel.is_set():
                    return None
                found = self._take(predicate)
                if found is not None:
                    return found
                if deadline is None:
                    self._cond.wait()
                    continue
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return None
                self._cond.wait(remaining)

    def pop_by_id(self, frame_id: int, timeout: float | None = 0.0) -> Frame | None:
        return self.pop(lambda frame: frame.NEEDS_ID and frame_id_of(frame) == frame_id, timeout)

    def pop_by_remote(self, node: RemoteNode, timeout: float | None = 0.0) -> Frame | None:
        return self.pop(lambda frame: _source_node(frame) == node, timeout)

    def clear(self) -> None:
        with self._cond:
            self._frames.clear()

    def wake_all(self) -> None:
        with self._cond:
            self._cond.notify_all()

    def snapshot(self) -> list[Frame]:
        with self._cond:
            return list(self._frames)
