"""
Progress events emitted by the crawl and apply engines

Engines push events onto a queue; the presentation layer drains it at its
own pace, so worker threads never touch UI state directly.
"""

from dataclasses import dataclass
from queue import Queue, Empty
from typing import List, Optional


@dataclass(frozen=True)
class ProgressEvent:
    """A status update: phase name, counts and a human readable message"""
    phase: str
    processed: int = 0
    total: int = 0
    message: str = ''


class ProgressChannel:
    """Thread-safe queue of ProgressEvent objects"""

    def __init__(self):
        self._queue: Queue = Queue()

    def emit(self, phase: str, processed: int = 0, total: int = 0, message: str = ''):
        self._queue.put(ProgressEvent(phase=phase, processed=processed, total=total, message=message))

    def get(self, timeout: Optional[float] = None) -> Optional[ProgressEvent]:
        """Wait up to timeout seconds for the next event"""
        try:
            return self._queue.get(timeout=timeout)
        except Empty:
            return None

    def drain(self) -> List[ProgressEvent]:
        """Return every event queued so far without blocking"""
        events = []
        while True:
            try:
                events.append(self._queue.get_nowait())
            except Empty:
                return events


def emit(channel: Optional[ProgressChannel], phase: str, processed: int = 0,
         total: int = 0, message: str = ''):
    """Emit on channel if one was supplied"""
    if channel is not None:
        channel.emit(phase, processed, total, message)
