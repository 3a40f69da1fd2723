import asyncio
import logging
import threading
from collections import deque
from typing import Any

logger = logging.getLogger(__name__)


class Broadcaster:
    """Thread-safe ring buffer that fans new entries out to asyncio subscribers.

    Entries may be published from any thread; each subscriber queue is fed on
    the loop it was created for.
    """

    def __init__(self, maxlen: int = 500):
        self._buffer: deque[Any] = deque(maxlen=maxlen)
        self._lock = threading.Lock()
        self._subscribers: list[tuple[asyncio.AbstractEventLoop, asyncio.Queue]] = []

    def publish(self, entry: Any) -> None:
        with self._lock:
            self._buffer.append(entry)
            subscribers = list(self._subscribers)

        for loop, queue in subscribers:
            try:
                loop.call_soon_threadsafe(queue.put_nowait, entry)
            except RuntimeError:
                # Loop already closed; the subscriber is gone.
                self.unsubscribe(queue)

    def snapshot(self) -> list[Any]:
        with self._lock:
            return list(self._buffer)

    def clear(self) -> None:
        with self._lock:
            self._buffer.clear()

    def subscribe(self, loop: asyncio.AbstractEventLoop | None = None) -> asyncio.Queue:
        loop = loop or asyncio.get_running_loop()
        queue: asyncio.Queue = asyncio.Queue()
        with self._lock:
            self._subscribers.append((loop, queue))
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        with self._lock:
            self._subscribers = [(l, q) for l, q in self._subscribers if q is not queue]

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)
