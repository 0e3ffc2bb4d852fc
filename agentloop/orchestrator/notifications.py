"""
Progress notifications from the turn loop to its consumer.

The loop is the only producer; a presentation layer drains the channel from
its own thread (typically once per frame).  Sending is fire-and-forget: it
never blocks and never raises into the loop.
"""

from __future__ import annotations

import logging
import queue
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TextDelta:
    text: str


@dataclass(frozen=True)
class LogLine:
    text: str


@dataclass(frozen=True)
class Completed:
    pass


@dataclass(frozen=True)
class Failed:
    message: str


Notification = TextDelta | LogLine | Completed | Failed


def is_terminal(note: Notification) -> bool:
    return isinstance(note, (Completed, Failed))


class NotificationChannel:
    """Unbounded, ordered, thread-safe notification queue."""

    def __init__(self) -> None:
        self._queue: queue.SimpleQueue[Notification] = queue.SimpleQueue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Drop every later ``send``.  Already queued items stay drainable."""
        self._closed = True

    def send(self, note: Notification) -> bool:
        """Queue *note*.  Returns ``False`` if it was not delivered."""
        if self._closed:
            return False
        try:
            self._queue.put(note)
        except Exception:
            logger.warning("Dropping notification %r", note, exc_info=True)
            return False
        return True

    def get(self, timeout: float | None = None) -> Notification | None:
        """Block up to *timeout* seconds for the next item; ``None`` on timeout."""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self) -> list[Notification]:
        """Return everything queued right now without blocking."""
        items: list[Notification] = []
        while True:
            try:
                items.append(self._queue.get_nowait())
            except queue.Empty:
                return items
