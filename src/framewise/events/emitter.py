"""Single-thread delivery of pipeline updates to observers."""

from __future__ import annotations

import json
import logging
import queue
import threading
from pathlib import Path
from typing import Any, Callable

from framewise.events.schemas import UpdateBase

logger = logging.getLogger(__name__)

Subscriber = Callable[[UpdateBase], None]


class SequenceCounter:
    """Monotonic sequence counter per channel."""

    def __init__(self, start: int = 0):
        self._value = start
        self._lock = threading.Lock()

    def next(self) -> int:
        with self._lock:
            self._value += 1
            return self._value


class _Flush:
    def __init__(self) -> None:
        self.done = threading.Event()


class UpdateChannel:
    """FIFO fan-out where every subscriber runs on one dispatcher thread.

    Publishers on any thread enqueue; observers see updates in sequence order
    and never concurrently with each other.
    """

    def __init__(self, name: str = "framewise-updates") -> None:
        self.name = name
        self._queue: queue.Queue[UpdateBase | _Flush | None] = queue.Queue()
        self._subscribers: list[Subscriber] = []
        self._lock = threading.Lock()
        self._seq = SequenceCounter()
        self._thread: threading.Thread | None = None
        self._closed = False

    def subscribe(self, callback: Subscriber) -> None:
        with self._lock:
            self._subscribers.append(callback)

    def unsubscribe(self, callback: Subscriber) -> None:
        with self._lock:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

    def publish(self, update_type: type[UpdateBase], **fields: Any) -> UpdateBase:
        """Build an update with the next sequence number and enqueue it."""
        with self._lock:
            if self._closed:
                raise RuntimeError(f"update channel {self.name} is closed")
            self._ensure_thread()
            update = update_type(seq=self._seq.next(), **fields)
            self._queue.put(update)
        return update

    def flush(self, timeout: float | None = None) -> bool:
        """Block until everything published so far has been delivered."""
        marker = _Flush()
        with self._lock:
            if self._closed or self._thread is None:
                return True
            self._queue.put(marker)
        return marker.done.wait(timeout)

    def close(self, timeout: float = 2.0) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            thread = self._thread
            self._queue.put(None)
        if thread is not None:
            thread.join(timeout=timeout)

    def _ensure_thread(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._thread = threading.Thread(target=self._run_loop, name=self.name, daemon=True)
        self._thread.start()

    def _run_loop(self) -> None:
        while True:
            item = self._queue.get()
            if item is None:
                return
            if isinstance(item, _Flush):
                item.done.set()
                continue
            with self._lock:
                subscribers = list(self._subscribers)
            for callback in subscribers:
                try:
                    callback(item)
                except Exception:  # noqa: BLE001
                    logger.exception("Update subscriber %r failed on %s #%d", callback, item.event_type, item.seq)


class JsonlSink:
    """Subscriber appending each update as one JSON line."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def __call__(self, update: UpdateBase) -> None:
        payload = update.model_dump(mode="json")
        with self._lock:
            with self.path.open("a", encoding="utf-8") as f:
                f.write(json.dumps(payload) + "\n")
