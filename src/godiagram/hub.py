"""Fan broadcast messages out to connected observers."""

from __future__ import annotations

import itertools
import logging
import queue
import threading
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 256

_ids = itertools.count(1)


class ObserverConnection:
    """Transport-independent half of an observer connection.

    Holds the bounded outbound queue and the ``closed`` event that acts as
    the connection's cancellation signal.
    """

    def __init__(self, queue_size: int = DEFAULT_QUEUE_SIZE, label: str | None = None) -> None:
        self.id = next(_ids)
        self.label = label or f"observer-{self.id}"
        self._queue: queue.Queue[Any] = queue.Queue(maxsize=queue_size)
        self.closed = threading.Event()

    def __repr__(self) -> str:
        return f"<ObserverConnection {self.label}>"

    def offer(self, message: Any) -> bool:
        """Enqueue *message* without blocking; False if full or closed."""
        if self.closed.is_set():
            return False
        try:
            self._queue.put_nowait(message)
        except queue.Full:
            return False
        return True

    def next_message(self, timeout: float | None = None) -> Any | None:
        """Return the next queued message, or None on timeout or close."""
        if self.closed.is_set():
            return None
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def pending(self) -> int:
        return self._queue.qsize()

    def close(self) -> None:
        """Signal cancellation and wake a reader blocked on the queue."""
        self.closed.set()
        try:
            self._queue.put_nowait(None)
        except queue.Full:
            pass  # a full queue wakes the reader anyway


class BroadcastHub:
    """The set of connected observers plus best-effort fan-out."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._connections: set[ObserverConnection] = set()

    def __len__(self) -> int:
        with self._lock:
            return len(self._connections)

    def connections(self) -> list[ObserverConnection]:
        with self._lock:
            return sorted(self._connections, key=lambda c: c.id)

    def register(self, conn: ObserverConnection) -> None:
        with self._lock:
            self._connections.add(conn)
        logger.info("Observer connected: %s", conn.label)

    def unregister(self, conn: ObserverConnection) -> None:
        with self._lock:
            present = conn in self._connections
            self._connections.discard(conn)
        if present:
            logger.info("Observer disconnected: %s", conn.label)

    def broadcast(self, message: Any) -> int:
        """Offer *message* to every observer; return how many accepted it.

        An observer whose queue is full is treated as dead: its queue is
        closed and it is dropped from the set.
        """
        delivered = 0
        dropped: list[ObserverConnection] = []
        with self._lock:
            for conn in sorted(self._connections, key=lambda c: c.id):
                if conn.offer(message):
                    delivered += 1
                else:
                    conn.close()
                    self._connections.discard(conn)
                    dropped.append(conn)
        for conn in dropped:
            logger.warning("Dropped slow observer %s", conn.label)
        return delivered

    def close_all(self) -> None:
        with self._lock:
            conns = list(self._connections)
            self._connections.clear()
        for conn in conns:
            conn.close()
