from __future__ import annotations

import queue
import threading
import uuid
from dataclasses import dataclass
from typing import Iterator, Optional

from ..core.exceptions import ChannelClosed, ValidationError
from ..events.model import Event

_CLOSED = object()


@dataclass(frozen=True)
class SubscriptionFilter:
    """Which events a subscriber receives: one worker's, one team's, or both."""

    worker_id: Optional[str] = None
    team_id: Optional[str] = None

    def __post_init__(self):
        if not self.worker_id and not self.team_id:
            raise ValidationError("Subscribe to a worker_id or a team_id")

    def matches(self, event: Event) -> bool:
        if self.worker_id and event.worker_id == self.worker_id:
            return True
        return bool(self.team_id) and event.team_id == self.team_id


class Subscription:
    """Bounded event buffer for one connected client.

    The channel closes a subscription whose consumer falls ``maxsize`` events
    behind; the client then reconnects with its cursor or resyncs.
    """

    def __init__(
        self,
        event_filter: SubscriptionFilter,
        *,
        maxsize: int,
        cursor: Optional[dict[str, int]] = None,
        epoch: Optional[str] = None,
    ):
        self.subscription_id = str(uuid.uuid4())
        self.filter = event_filter
        # Position the subscriber starts from: every event it is handed comes after this.
        self.cursor: dict[str, int] = dict(cursor or {})
        self.epoch = epoch
        self._maxsize = max(1, int(maxsize))
        self._queue: queue.Queue = queue.Queue()
        self._closed = threading.Event()
        self._lock = threading.Lock()
        self.close_reason: Optional[str] = None

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def deliver(self, event: Event) -> bool:
        """Called by the channel under the event's worker lock. False means the subscription was closed."""
        with self._lock:
            if self.closed:
                return False
            if self._queue.qsize() >= self._maxsize:
                self._close("overflow")
                return False
            self._queue.put_nowait(event)
            return True

    def close(self, reason: str = "closed") -> None:
        with self._lock:
            self._close(reason)

    def _close(self, reason: str) -> None:
        if self.closed:
            return
        self.close_reason = reason
        self._closed.set()
        self._queue.put_nowait(_CLOSED)

    def get(self, timeout: Optional[float] = None) -> Optional[Event]:
        """Next event, or None when ``timeout`` passes first.

        Raises ChannelClosed once the buffered events are drained after close.
        """
        try:
            item = self._queue.get(timeout=timeout)
        except queue.Empty:
            return None
        if item is _CLOSED:
            self._queue.put_nowait(_CLOSED)
            raise ChannelClosed(f"Subscription closed ({self.close_reason})")
        return item

    def __iter__(self) -> Iterator[Event]:
        while True:
            try:
                yield self.get()
            except ChannelClosed:
                return
