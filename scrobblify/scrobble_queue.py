"""
Persistent, capped retry queue of scrobble events.

- Holds events whose ingestion failed when the "queue" failure policy is active.
- Stored as a JSON list on disk; the oldest event is dropped at capacity.
- API is minimal: enqueue(), drain_iter(), size().
"""

from __future__ import annotations
import json
import logging
import os
import threading
from collections import deque
from typing import Deque, Iterator

from scrobblify.models import ScrobbleEvent

log = logging.getLogger("queue")


class ScrobbleQueue:
    def __init__(self, path: str, maxlen: int = 500):
        self.path = path
        self.maxlen = maxlen
        self._lock = threading.Lock()
        self._q: Deque[ScrobbleEvent] = deque(maxlen=maxlen)
        self._load()

    # -------- persistence --------
    def _load(self) -> None:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        if not os.path.isfile(self.path):
            return
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if isinstance(data, list):
                for item in data[-self.maxlen:]:
                    self._q.append(ScrobbleEvent.from_dict(item))
        except (OSError, ValueError, KeyError, TypeError) as e:
            log.warning("Scrobble queue %s unreadable (%s); starting empty", self.path, e)
            self._q.clear()

    def _save(self) -> None:
        # Write atomically to avoid corruption
        tmp = f"{self.path}.tmp"
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump([e.to_dict() for e in self._q], f, ensure_ascii=False)
        os.replace(tmp, self.path)

    # -------- public API --------
    def enqueue(self, event: ScrobbleEvent) -> None:
        with self._lock:
            dropped = None
            if len(self._q) == self.maxlen:
                dropped = self._q.popleft()
                log.warning("Scrobble queue full; dropping oldest event %s", dropped.track.id)
            self._q.append(event)
            try:
                self._save()
            except OSError:
                self._q.pop()
                if dropped is not None:
                    self._q.appendleft(dropped)
                raise

    def drain_iter(self) -> Iterator[ScrobbleEvent]:
        """
        Pops events from the left (oldest-first) one by one,
        saving after each pop so we don't lose progress.
        """
        while True:
            with self._lock:
                if not self._q:
                    return
                event = self._q.popleft()
                self._save()
            yield event

    def requeue_front(self, event: ScrobbleEvent) -> None:
        """Put an event back at the head so it stays first in line."""
        with self._lock:
            self._q.appendleft(event)
            self._save()

    def size(self) -> int:
        with self._lock:
            return len(self._q)
