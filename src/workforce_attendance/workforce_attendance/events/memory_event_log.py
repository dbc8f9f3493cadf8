from __future__ import annotations

import threading
import uuid
from collections import deque
from typing import Optional, Sequence

from ..core.constants import DEFAULT_EVENT_RETENTION_PER_WORKER
from ..core.exceptions import ResyncRequired
from .model import Event, EventDraft
from .repository import EventLog


class InMemoryEventLog(EventLog):
    """Bounded per-worker ring buffer for single-process deployments.

    Sequences restart after a process restart, so every instance draws a fresh
    epoch. Cursors from an earlier process are refused by the channel and the
    client reloads from a snapshot.
    """

    def __init__(self, *, retention: int = DEFAULT_EVENT_RETENTION_PER_WORKER):
        if retention < 1:
            raise ValueError("retention must be >= 1")
        self._retention = int(retention)
        self._events: dict[str, deque[Event]] = {}
        self._latest: dict[str, int] = {}
        self._lock = threading.Lock()
        self.epoch = uuid.uuid4().hex[:12]

    def append(self, draft: EventDraft, *, team_id: Optional[str]) -> Event:
        with self._lock:
            sequence = self._latest.get(draft.worker_id, 0) + 1
            event = Event(
                type=draft.type,
                worker_id=draft.worker_id,
                sequence=sequence,
                payload=dict(draft.payload),
                timestamp=draft.timestamp,
                team_id=team_id,
                epoch=self.epoch,
            )
            self._events.setdefault(draft.worker_id, deque(maxlen=self._retention)).append(event)
            self._latest[draft.worker_id] = sequence
            return event

    def since(self, worker_id: str, after_sequence: int) -> Sequence[Event]:
        with self._lock:
            latest = self._latest.get(worker_id, 0)
            if after_sequence > latest:
                raise ResyncRequired(f"Cursor {worker_id}:{after_sequence} is ahead of the log ({latest})")
            if after_sequence == latest:
                return []
            retained = self._events.get(worker_id) or deque()
            oldest = retained[0].sequence if retained else latest + 1
            if after_sequence < oldest - 1:
                raise ResyncRequired(f"Events after {worker_id}:{after_sequence} are no longer retained")
            return [e for e in retained if e.sequence > after_sequence]

    def latest_sequence(self, worker_id: str) -> int:
        with self._lock:
            return self._latest.get(worker_id, 0)
