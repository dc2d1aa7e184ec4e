"""
Watermarks and the bounded buy feed.

WatermarkTracker remembers, per wallet, the newest timestamp already
merged, so each poll only contributes transactions newer than that.
FeedStore keeps the newest FEED_CAPACITY events, newest first.
"""
import threading

import config
from tracker.models import TransactionEvent


def _newest_first(events) -> list[TransactionEvent]:
    return sorted(events, key=lambda ev: ev.timestamp, reverse=True)


class WatermarkTracker:

    def __init__(self):
        self._marks: dict[str, int] = {}
        self._lock = threading.Lock()

    def get(self, wallet: str) -> int:
        with self._lock:
            return self._marks.get(wallet, 0)

    def advance(self, wallet: str, events: list[TransactionEvent]):
        """Raise the wallet's watermark to the newest event; never lowers it."""
        if not events:
            return
        newest = max(ev.timestamp for ev in events)
        with self._lock:
            if newest > self._marks.get(wallet, 0):
                self._marks[wallet] = newest

    def filter_new(self, wallet: str, events: list[TransactionEvent]) -> list[TransactionEvent]:
        mark = self.get(wallet)
        return [ev for ev in events if ev.timestamp > mark]

    def reset(self, marks: dict[str, int]):
        with self._lock:
            self._marks = dict(marks)

    def snapshot(self) -> dict[str, int]:
        with self._lock:
            return dict(self._marks)


class FeedStore:

    def __init__(self, capacity: int = config.FEED_CAPACITY):
        self.capacity = capacity
        self._events: list[TransactionEvent] = []
        self._lock = threading.Lock()

    def merge(self, events: list[TransactionEvent]):
        """Prepend a batch, re-sort newest first, drop anything past capacity."""
        if not events:
            return
        with self._lock:
            self._events = _newest_first(list(events) + self._events)[:self.capacity]

    def replace(self, events: list[TransactionEvent]):
        with self._lock:
            self._events = _newest_first(events)[:self.capacity]

    def snapshot(self) -> list[TransactionEvent]:
        with self._lock:
            return _newest_first(self._events)

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)
