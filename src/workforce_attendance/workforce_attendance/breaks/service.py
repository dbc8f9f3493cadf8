from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Callable, Optional, Sequence

from ..common.datetime_utils import now_utc
from ..common.locks import KeyedLocks
from ..core.enums import BreakType, EventType, SessionStatus
from ..core.exceptions import AuthorizationError, BreakAlreadyOpen, NoActiveSession, NoOpenBreak, SessionNotActive
from ..events.model import EventDraft
from ..events.publisher import EventPublisher, emit
from ..sessions.model import AttendanceSession
from ..sessions.repository import SessionRepository, save_changes
from ..workers.model import Identity
from .model import Break
from .repository import BreakRepository

logger = logging.getLogger(__name__)


class BreakManager:
    """Break sub-periods nested inside an open session.

    Both rows change on every command. Whichever row is written second is
    undone when that write fails, so a session is ON_BREAK exactly while one
    of its breaks is open. The version check on the session row serializes
    competing break commands across processes.
    """

    def __init__(
        self,
        sessions: SessionRepository,
        breaks: BreakRepository,
        publisher: EventPublisher,
        *,
        locks: KeyedLocks | None = None,
        clock: Callable[[], datetime] = now_utc,
    ):
        self._sessions = sessions
        self._breaks = breaks
        self._publisher = publisher
        self._locks = locks or KeyedLocks()
        self._clock = clock

    def _load(self, session_id: str, actor: Optional[Identity]) -> AttendanceSession:
        session = self._sessions.get(session_id)
        if not session or not session.is_open:
            raise NoActiveSession(f"No open session {session_id}")
        if actor is not None and not actor.can_act_for(session.worker_id):
            raise AuthorizationError("You can only manage breaks on your own session")
        return session

    def start_break(
        self, session_id: str, break_type: BreakType, *, actor: Optional[Identity] = None
    ) -> tuple[AttendanceSession, Break]:
        with self._locks.hold(f"session:{session_id}"):
            session = self._load(session_id, actor)
            if session.status == SessionStatus.ON_BREAK or self._breaks.get_open_for_session(session_id):
                raise BreakAlreadyOpen("A break is already open for this session")
            if session.status != SessionStatus.ACTIVE:
                raise SessionNotActive(f"Session {session_id} is {session.status.value}")

            now = self._clock()
            brk = Break(
                break_id=str(uuid.uuid4()),
                session_id=session.session_id,
                break_type=break_type,
                start_time=now,
            )
            updated = save_changes(self._sessions, session, status=SessionStatus.ON_BREAK)
            try:
                self._breaks.create(brk)
            except Exception:
                save_changes(self._sessions, updated, status=SessionStatus.ACTIVE)
                raise

            logger.info("break_start session_id=%s break_id=%s type=%s", session_id, brk.break_id, break_type.value)
            emit(
                self._publisher,
                EventDraft(
                    type=EventType.BREAK_STARTED,
                    worker_id=updated.worker_id,
                    payload={"session": updated.to_summary(), "break": brk.to_dict()},
                    timestamp=now,
                ),
            )
            return updated, brk

    def end_break(self, session_id: str, *, actor: Optional[Identity] = None) -> tuple[AttendanceSession, Break]:
        with self._locks.hold(f"session:{session_id}"):
            session = self._load(session_id, actor)
            open_break = self._breaks.get_open_for_session(session_id)
            if not open_break:
                raise NoOpenBreak(f"Session {session_id} has no open break")

            now = max(self._clock(), open_break.start_time)
            closed = Break(
                break_id=open_break.break_id,
                session_id=open_break.session_id,
                break_type=open_break.break_type,
                start_time=open_break.start_time,
                end_time=now,
            )
            if not self._breaks.close(open_break.break_id, end_time=now):
                raise NoOpenBreak(f"Break {open_break.break_id} was already closed")
            try:
                updated = save_changes(
                    self._sessions,
                    session,
                    status=SessionStatus.ACTIVE,
                    total_break_duration=session.total_break_duration + closed.duration,
                )
            except Exception:
                self._breaks.reopen(open_break.break_id)
                raise

            logger.info(
                "break_end session_id=%s break_id=%s seconds=%.1f",
                session_id,
                closed.break_id,
                closed.duration.total_seconds(),
            )
            emit(
                self._publisher,
                EventDraft(
                    type=EventType.BREAK_ENDED,
                    worker_id=updated.worker_id,
                    payload={"session": updated.to_summary(), "break": closed.to_dict()},
                    timestamp=now,
                ),
            )
            return updated, closed

    def list_breaks(self, session_id: str) -> Sequence[Break]:
        return self._breaks.list_for_session(session_id)
