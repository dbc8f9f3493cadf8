from __future__ import annotations

import logging
import threading
import time
from dataclasses import replace
from typing import Any, Callable, Mapping, Optional

from ..core.constants import DEFAULT_GAP_TIMEOUT_S
from ..core.enums import EventType
from ..events.model import Event
from .model import Projection, WorkerView

logger = logging.getLogger(__name__)

_SESSION_EVENTS = {
    EventType.SESSION_STARTED,
    EventType.SESSION_CLOSED,
    EventType.SESSION_FORCE_CLOSED,
    EventType.BREAK_STARTED,
    EventType.BREAK_ENDED,
}


def reduce(projection: Projection, event: Event) -> Projection:
    """Pure ``(projection, event) -> projection``.

    Events at or below the worker's cursor are duplicates and leave the
    projection untouched. Gap handling is the caller's job.
    """
    if event.sequence <= projection.cursor(event.worker_id):
        return projection

    payload = event.payload or {}
    workers = projection.workers
    approvals = projection.approvals
    view = projection.view(event.worker_id)
    session = payload.get("session")

    if event.type in _SESSION_EVENTS and session:
        if event.type == EventType.BREAK_STARTED:
            open_break = payload.get("break")
        else:
            open_break = None
        workers = {**workers, event.worker_id: WorkerView(event.worker_id, session=session, open_break=open_break)}
    elif event.type in {EventType.APPROVAL_REQUESTED, EventType.APPROVAL_DECIDED}:
        request = payload.get("request")
        if request:
            approvals = {**approvals, request["request_id"]: request}
        if session and view.session and view.session.get("session_id") == session.get("session_id"):
            workers = {**workers, event.worker_id: replace(view, session=session)}

    return Projection(
        workers=workers,
        approvals=approvals,
        cursors={**projection.cursors, event.worker_id: event.sequence},
        epoch=event.epoch or projection.epoch,
    )


def projection_from_snapshot(snapshot: Mapping[str, Any]) -> Projection:
    """Build a projection from a worker status or team status snapshot."""
    members = snapshot.get("members")
    if members is None:
        members = [snapshot]

    workers: dict[str, WorkerView] = {}
    approvals: dict[str, dict] = {}
    cursors: dict[str, int] = {}
    for m in members:
        worker_id = str(m["worker_id"])
        workers[worker_id] = WorkerView(worker_id, session=m.get("session"), open_break=m.get("open_break"))
        cursors[worker_id] = int(m.get("cursor") or 0)
        for r in m.get("pending_approvals") or []:
            approvals[r["request_id"]] = r
    return Projection(workers=workers, approvals=approvals, cursors=cursors, epoch=snapshot.get("epoch"))


class ClientStateProjector:
    """Per-connection read model fed by the event stream.

    Events are applied in per-worker sequence order. An event that arrives
    ahead of a gap is buffered; if the gap is still open ``gap_timeout_s``
    later, ``check_gaps`` flags the projector for resync. So does an event
    numbered by a different log epoch than the one the projection follows.
    """

    def __init__(
        self,
        projection: Optional[Projection] = None,
        *,
        gap_timeout_s: float = DEFAULT_GAP_TIMEOUT_S,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._projection = projection or Projection()
        self._gap_timeout_s = float(gap_timeout_s)
        self._clock = clock
        self._buffer: dict[str, dict[int, Event]] = {}
        self._gap_since: dict[str, float] = {}
        self._listeners: list[Callable[[Projection], None]] = []
        self._lock = threading.RLock()
        self.needs_resync = False

    @property
    def projection(self) -> Projection:
        return self._projection

    @property
    def cursors(self) -> dict[str, int]:
        return dict(self._projection.cursors)

    @property
    def epoch(self) -> Optional[str]:
        return self._projection.epoch

    def add_listener(self, listener: Callable[[Projection], None]) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def apply(self, event: Event) -> bool:
        """Returns True when the projection changed."""
        with self._lock:
            epoch = self._projection.epoch
            if event.epoch and epoch and event.epoch != epoch:
                if not self.needs_resync:
                    logger.info("event %s from epoch %s, projection is at %s", event.event_id, event.epoch, epoch)
                self.needs_resync = True
                return False
            expected = self._projection.cursor(event.worker_id) + 1
            if event.sequence < expected:
                return False
            if event.sequence > expected:
                self._buffer.setdefault(event.worker_id, {})[event.sequence] = event
                self._gap_since.setdefault(event.worker_id, self._clock())
                logger.debug("buffered %s, waiting for %s:%s", event.event_id, event.worker_id, expected)
                return False

            projection = reduce(self._projection, event)
            projection = self._drain(projection, event.worker_id)
            self._set(projection)
            return True

    def check_gaps(self) -> bool:
        with self._lock:
            now = self._clock()
            for worker_id, since in self._gap_since.items():
                if now - since >= self._gap_timeout_s:
                    if not self.needs_resync:
                        logger.info("gap for worker_id=%s open for %.1fs, resync needed", worker_id, now - since)
                    self.needs_resync = True
            return self.needs_resync

    def load_snapshot(self, snapshot: Mapping[str, Any]) -> None:
        """Replace state with a server snapshot, keeping buffered events that are newer.

        A snapshot from another log epoch replaces the projection outright;
        nothing numbered by the old epoch is kept.
        """
        with self._lock:
            loaded = projection_from_snapshot(snapshot)
            if loaded.epoch != self._projection.epoch:
                logger.info("log epoch changed %s -> %s, dropping local state", self._projection.epoch, loaded.epoch)
                for worker_id in list(self._buffer):
                    kept_events = {s: e for s, e in self._buffer[worker_id].items() if e.epoch == loaded.epoch}
                    if kept_events:
                        self._buffer[worker_id] = kept_events
                    else:
                        self._buffer.pop(worker_id)
                        self._gap_since.pop(worker_id, None)
                projection = loaded
            else:
                kept = {
                    k: r for k, r in self._projection.approvals.items() if r.get("worker_id") not in loaded.workers
                }
                projection = Projection(
                    workers={**self._projection.workers, **loaded.workers},
                    approvals={**kept, **loaded.approvals},
                    cursors={**self._projection.cursors, **loaded.cursors},
                    epoch=loaded.epoch,
                )
            for worker_id in list(self._buffer):
                projection = self._drain(projection, worker_id)
            self.needs_resync = False
            self._set(projection)

    def _drain(self, projection: Projection, worker_id: str) -> Projection:
        pending = self._buffer.get(worker_id, {})
        for seq in [s for s in pending if s <= projection.cursor(worker_id)]:
            del pending[seq]
        while projection.cursor(worker_id) + 1 in pending:
            projection = reduce(projection, pending.pop(projection.cursor(worker_id) + 1))

        if pending:
            self._gap_since[worker_id] = self._clock()
        else:
            self._buffer.pop(worker_id, None)
            self._gap_since.pop(worker_id, None)
        return projection

    def _set(self, projection: Projection) -> None:
        self._projection = projection
        for listener in list(self._listeners):
            listener(projection)
