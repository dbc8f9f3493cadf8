from __future__ import annotations

import logging
import threading
from contextlib import ExitStack
from typing import Callable, Iterable, Mapping, Optional

from ..common.locks import KeyedLocks
from ..core.constants import DEFAULT_SUBSCRIBER_QUEUE_SIZE
from ..core.exceptions import ChannelClosed, ResyncRequired
from ..events.model import Event, EventDraft
from ..events.publisher import EventPublisher
from ..events.repository import EventLog
from .subscription import Subscription, SubscriptionFilter

logger = logging.getLogger(__name__)


class RealtimeSyncChannel(EventPublisher):
    """Sequences state transitions and fans them out to subscribers.

    Each worker has its own lock. Appending one of its events and delivering it
    to live subscribers happen under that lock; a new subscriber holds the
    locks of every worker it follows while it replays and registers. A
    subscriber therefore sees every event after its cursor exactly once:
    either from the replay or live, never both and never neither. Publishing
    for different workers runs in parallel.

    Constructed once per process by the container; ``shutdown`` closes every
    subscription so streaming responses end.
    """

    def __init__(
        self,
        log: EventLog,
        *,
        team_lookup: Callable[[str], Optional[str]],
        team_members: Callable[[str], Iterable[str]],
        queue_size: int = DEFAULT_SUBSCRIBER_QUEUE_SIZE,
    ):
        self._log = log
        self._team_lookup = team_lookup
        self._team_members = team_members
        self._queue_size = int(queue_size)
        self._worker_locks = KeyedLocks()
        # Guards _subscribers and _closed only; never held across log I/O.
        self._registry = threading.Lock()
        self._subscribers: dict[str, Subscription] = {}
        self._closed = False

    @property
    def log(self) -> EventLog:
        return self._log

    @property
    def epoch(self) -> str:
        return self._log.epoch

    def publish(self, draft: EventDraft) -> Event:
        team_id = self._team_lookup(draft.worker_id)
        with self._worker_locks.hold(draft.worker_id):
            with self._registry:
                if self._closed:
                    raise ChannelClosed("Sync channel is shut down")
            event = self._log.append(draft, team_id=team_id)
            with self._registry:
                subs = list(self._subscribers.values())
            for sub in subs:
                if sub.filter.matches(event) and not sub.deliver(event):
                    logger.warning("dropping subscription_id=%s reason=%s", sub.subscription_id, sub.close_reason)
                    with self._registry:
                        self._subscribers.pop(sub.subscription_id, None)
        logger.debug("published %s worker_id=%s sequence=%s", event.type.value, event.worker_id, event.sequence)
        return event

    def subscribe(
        self,
        event_filter: SubscriptionFilter,
        *,
        cursor: Optional[Mapping[str, int]] = None,
        epoch: Optional[str] = None,
    ) -> Subscription:
        """Register a subscriber, replaying what it missed when ``cursor`` is given.

        ``cursor`` maps worker id to the last sequence the client applied and
        ``epoch`` names the log run those sequences came from. Raises
        ResyncRequired when the epoch differs or the log no longer holds the
        gap; the client must load a snapshot and subscribe again with the
        snapshot's cursor and epoch.
        """
        workers = self._workers_for(event_filter)
        current_epoch = self._log.epoch
        if cursor is not None and epoch != current_epoch and any(int(v) > 0 for v in cursor.values()):
            raise ResyncRequired(f"Cursor is from epoch {epoch}, log is at {current_epoch}")

        with ExitStack() as stack:
            for worker_id in sorted(workers):
                stack.enter_context(self._worker_locks.hold(worker_id))
            with self._registry:
                if self._closed:
                    raise ChannelClosed("Sync channel is shut down")

            replay: list[Event] = []
            if cursor is not None:
                start = {w: int(cursor.get(w, 0)) for w in workers}
                for worker_id in workers:
                    replay.extend(self._log.since(worker_id, start[worker_id]))
            else:
                start = {w: self._log.latest_sequence(w) for w in workers}

            sub = Subscription(
                event_filter, maxsize=max(self._queue_size, len(replay) + 1), cursor=start, epoch=current_epoch
            )
            for event in replay:
                sub.deliver(event)
            with self._registry:
                self._subscribers[sub.subscription_id] = sub

        logger.info(
            "subscribe subscription_id=%s worker_id=%s team_id=%s replayed=%d",
            sub.subscription_id,
            event_filter.worker_id,
            event_filter.team_id,
            len(replay),
        )
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        with self._registry:
            self._subscribers.pop(sub.subscription_id, None)
        sub.close("unsubscribed")

    def cursor_for(self, worker_ids: Iterable[str]) -> dict[str, int]:
        return {w: self._log.latest_sequence(w) for w in worker_ids}

    def subscriber_count(self) -> int:
        with self._registry:
            return len(self._subscribers)

    def shutdown(self) -> None:
        with self._registry:
            self._closed = True
            subs = list(self._subscribers.values())
            self._subscribers.clear()
        for sub in subs:
            sub.close("shutdown")
        logger.info("sync channel shut down, closed %d subscriptions", len(subs))

    def _workers_for(self, event_filter: SubscriptionFilter) -> list[str]:
        workers = []
        if event_filter.worker_id:
            workers.append(event_filter.worker_id)
        if event_filter.team_id:
            workers.extend(w for w in self._team_members(event_filter.team_id) if w not in workers)
        return workers
