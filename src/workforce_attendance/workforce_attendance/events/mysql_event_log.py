from __future__ import annotations

import json
import logging
import threading
import uuid
from typing import Optional, Sequence

from ..common.datetime_utils import as_utc, to_db
from ..core.constants import DEFAULT_EVENT_RETENTION_PER_WORKER
from ..core.enums import EventType
from ..core.exceptions import ConcurrentUpdate, ResyncRequired
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone, is_duplicate_key
from .model import Event, EventDraft
from .repository import EventLog

logger = logging.getLogger(__name__)


class MySQLEventLog(EventLog):
    """Durable event log; sequences survive restarts.

    The epoch lives in ``attendance_event_epoch`` and is created on first use.
    Deleting that row together with the events starts a new epoch.
    """

    def __init__(self, conn_factory: DatabaseConnection, *, retention: int = DEFAULT_EVENT_RETENTION_PER_WORKER):
        self._conn_factory = conn_factory
        self._retention = int(retention)
        self._epoch: Optional[str] = None
        self._epoch_lock = threading.Lock()

    @property
    def epoch(self) -> str:
        with self._epoch_lock:
            if self._epoch is None:
                self._epoch = self._load_epoch()
            return self._epoch

    def _load_epoch(self) -> str:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "INSERT IGNORE INTO attendance_event_epoch(id, epoch) VALUES(1, %s)", (uuid.uuid4().hex[:12],)
            )
            cur.execute("SELECT epoch FROM attendance_event_epoch WHERE id=1")
            return str(fetchone(cur)["epoch"])

    def append(self, draft: EventDraft, *, team_id: Optional[str]) -> Event:
        for _ in range(3):
            try:
                return self._append_once(draft, team_id=team_id)
            except Exception as e:
                if not is_duplicate_key(e):
                    raise
                logger.debug("sequence collision for worker_id=%s, retrying", draft.worker_id)
        raise ConcurrentUpdate(f"Could not allocate a sequence for worker {draft.worker_id}")

    def _append_once(self, draft: EventDraft, *, team_id: Optional[str]) -> Event:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "SELECT COALESCE(MAX(sequence), 0) AS latest FROM attendance_events WHERE worker_id=%s FOR UPDATE",
                (draft.worker_id,),
            )
            sequence = int(fetchone(cur)["latest"]) + 1
            cur.execute(
                """
                INSERT INTO attendance_events(worker_id, sequence, event_type, team_id, payload, occurred_at)
                VALUES(%s,%s,%s,%s,%s,%s)
                """,
                (draft.worker_id, sequence, draft.type.value, team_id, json.dumps(draft.payload), to_db(draft.timestamp)),
            )
            cur.execute(
                "DELETE FROM attendance_events WHERE worker_id=%s AND sequence <= %s",
                (draft.worker_id, sequence - self._retention),
            )
        return Event(
            type=draft.type,
            worker_id=draft.worker_id,
            sequence=sequence,
            payload=dict(draft.payload),
            timestamp=draft.timestamp,
            team_id=team_id,
            epoch=self.epoch,
        )

    def since(self, worker_id: str, after_sequence: int) -> Sequence[Event]:
        epoch = self.epoch
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT COALESCE(MIN(sequence), 0) AS oldest, COALESCE(MAX(sequence), 0) AS latest
                FROM attendance_events WHERE worker_id=%s
                """,
                (worker_id,),
            )
            bounds = fetchone(cur)
            oldest, latest = int(bounds["oldest"]), int(bounds["latest"])
            if after_sequence > latest:
                raise ResyncRequired(f"Cursor {worker_id}:{after_sequence} is ahead of the log ({latest})")
            if after_sequence == latest:
                return []
            if after_sequence < oldest - 1:
                raise ResyncRequired(f"Events after {worker_id}:{after_sequence} are no longer retained")

            cur.execute(
                """
                SELECT worker_id, sequence, event_type, team_id, payload, occurred_at
                FROM attendance_events
                WHERE worker_id=%s AND sequence > %s
                ORDER BY sequence
                """,
                (worker_id, int(after_sequence)),
            )
            return [
                Event(
                    type=EventType(r["event_type"]),
                    worker_id=str(r["worker_id"]),
                    sequence=int(r["sequence"]),
                    payload=json.loads(r["payload"]) if isinstance(r["payload"], (str, bytes)) else dict(r["payload"]),
                    timestamp=as_utc(r["occurred_at"]),
                    team_id=r.get("team_id"),
                    epoch=epoch,
                )
                for r in fetchall(cur)
            ]

    def latest_sequence(self, worker_id: str) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "SELECT COALESCE(MAX(sequence), 0) AS latest FROM attendance_events WHERE worker_id=%s",
                (worker_id,),
            )
            return int(fetchone(cur)["latest"])
