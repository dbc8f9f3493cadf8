from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta
from typing import Callable, Optional

from ..approvals.model import SYSTEM_ACTOR
from ..approvals.service import ApprovalWorkflowEngine
from ..breaks.repository import BreakRepository
from ..common.datetime_utils import now_utc
from ..common.locks import KeyedLocks
from ..common.validators import optional_text
from ..core.constants import DEFAULT_HISTORY_LIMIT
from ..core.enums import ApprovalKind, EventType, SessionStatus
from ..core.exceptions import (
    AuthorizationError,
    ConcurrentUpdate,
    NoActiveSession,
    NotFoundError,
    OpenBreakExists,
    SessionConflict,
    ValidationError,
)
from ..events.model import EventDraft
from ..events.publisher import EventPublisher, emit
from ..geofence.model import GeofenceResult, Position
from ..geofence.repository import ZoneRepository
from ..geofence.validator import GeofenceValidator
from ..workers.model import Identity
from .model import AttendanceSession, GeofenceCheck
from .repository import SessionRepository, save_changes

logger = logging.getLogger(__name__)


class AttendanceSessionService:
    """Punch-in, punch-out and administrative force-close.

    Punch-in is serialized per worker and guarded by the store's one-open-session
    rule; every later mutation is serialized per session and version-checked.
    """

    def __init__(
        self,
        sessions: SessionRepository,
        breaks: BreakRepository,
        zones: ZoneRepository,
        approvals: ApprovalWorkflowEngine,
        publisher: EventPublisher,
        *,
        validator: GeofenceValidator | None = None,
        locks: KeyedLocks | None = None,
        clock: Callable[[], datetime] = now_utc,
    ):
        self._sessions = sessions
        self._breaks = breaks
        self._zones = zones
        self._approvals = approvals
        self._publisher = publisher
        self._validator = validator or GeofenceValidator()
        self._locks = locks or KeyedLocks()
        self._clock = clock

    def _check_location(self, workplace_id: str, position: Position) -> GeofenceResult:
        zones = self._zones.get_for_workplace(workplace_id)
        if not zones:
            raise ValidationError(f"Unknown workplace {workplace_id}", code="UNKNOWN_WORKPLACE")
        return self._validator.best_match(position, zones)

    def verify_location(self, workplace_id: str, position: Position) -> GeofenceResult:
        """Dry run of the punch geofence check; nothing is recorded."""
        return self._check_location(workplace_id, position)

    def punch_in(
        self,
        worker_id: str,
        workplace_id: str,
        position: Position,
        *,
        notes: Optional[str] = None,
        device_info: Optional[str] = None,
        verification_token: Optional[str] = None,
    ) -> AttendanceSession:
        result = self._check_location(workplace_id, position)

        with self._locks.hold(f"worker:{worker_id}"):
            if self._sessions.get_open_for_worker(worker_id):
                raise SessionConflict("You already have an open session")

            now = self._clock()
            session = AttendanceSession(
                session_id=str(uuid.uuid4()),
                worker_id=str(worker_id),
                workplace_id=str(workplace_id),
                start_time=now,
                status=SessionStatus.ACTIVE,
                pending_approval=not result.inside,
                last_geofence_check=GeofenceCheck(result.inside, result.distance_meters, now),
                punch_in_position=position,
                notes=optional_text(notes),
                device_info=optional_text(device_info, max_len=255),
                verification_token=optional_text(verification_token, max_len=255),
            )
            self._sessions.create(session)

            request = None
            if not result.inside:
                try:
                    request = self._approvals.record(
                        session,
                        ApprovalKind.MISSED_GEOFENCE,
                        SYSTEM_ACTOR,
                        reason=f"Punch-in {result.distance_meters:.0f} m from workplace {workplace_id}",
                    )
                except Exception:
                    self._sessions.delete(session.session_id)
                    raise

            logger.info(
                "punch_in worker_id=%s session_id=%s inside=%s distance=%.1f",
                worker_id,
                session.session_id,
                result.inside,
                result.distance_meters,
            )
            emit(
                self._publisher,
                EventDraft(
                    type=EventType.SESSION_STARTED,
                    worker_id=session.worker_id,
                    payload={"session": session.to_summary(), "geofence": result.to_dict()},
                    timestamp=now,
                ),
            )
            if request is not None:
                self._approvals.announce(request, session)
            return session

    def punch_out(
        self,
        session_id: str,
        position: Position,
        *,
        actor: Optional[Identity] = None,
    ) -> AttendanceSession:
        with self._locks.hold(f"session:{session_id}"):
            session = self._sessions.get(session_id)
            if not session or not session.is_open:
                raise NoActiveSession(f"No open session {session_id}")
            if actor is not None and not actor.can_act_for(session.worker_id):
                raise AuthorizationError("You can only punch out of your own session")
            if session.status == SessionStatus.ON_BREAK or self._breaks.get_open_for_session(session_id):
                raise OpenBreakExists("End the open break before punching out")

            result = self._check_location(session.workplace_id, position)
            now = max(self._clock(), session.start_time)
            request = None
            if not result.inside:
                request = self._approvals.record(
                    session,
                    ApprovalKind.MISSED_GEOFENCE,
                    SYSTEM_ACTOR,
                    reason=f"Punch-out {result.distance_meters:.0f} m from workplace {session.workplace_id}",
                )
            try:
                closed = save_changes(
                    self._sessions,
                    session,
                    status=SessionStatus.CLOSED,
                    end_time=now,
                    pending_approval=session.pending_approval or not result.inside,
                    last_geofence_check=GeofenceCheck(result.inside, result.distance_meters, now),
                    punch_out_position=position,
                    closed_by=actor.worker_id if actor else session.worker_id,
                )
            except Exception:
                if request is not None:
                    self._approvals.withdraw(request)
                raise

            logger.info(
                "punch_out worker_id=%s session_id=%s inside=%s pending_approval=%s",
                closed.worker_id,
                session_id,
                result.inside,
                closed.pending_approval,
            )
            emit(
                self._publisher,
                EventDraft(
                    type=EventType.SESSION_CLOSED,
                    worker_id=closed.worker_id,
                    payload={"session": closed.to_summary(), "geofence": result.to_dict()},
                    timestamp=now,
                ),
            )
            if request is not None:
                self._approvals.announce(request, closed)
            return closed

    def force_close(
        self,
        session_id: str,
        by: str,
        *,
        actor: Optional[Identity] = None,
        reason: Optional[str] = None,
    ) -> AttendanceSession:
        """Close regardless of open breaks or pending approvals.

        An open break is ended at the same instant and counted in the session's
        break total. The pending flag is left as it is.
        """
        if actor is not None and not actor.is_manager:
            raise AuthorizationError("Only managers can force-close a session")

        with self._locks.hold(f"session:{session_id}"):
            session = self._sessions.get(session_id)
            if not session or not session.is_open:
                raise NoActiveSession(f"No open session {session_id}")

            now = max(self._clock(), session.start_time)
            open_break = self._breaks.get_open_for_session(session_id)
            extra = timedelta(0)
            if open_break:
                if not self._breaks.close(open_break.break_id, end_time=now):
                    raise ConcurrentUpdate(f"Break {open_break.break_id} was closed concurrently")
                extra = max(timedelta(0), now - open_break.start_time)
            try:
                closed = save_changes(
                    self._sessions,
                    session,
                    status=SessionStatus.CLOSED,
                    end_time=now,
                    total_break_duration=session.total_break_duration + extra,
                    closed_by=str(by),
                    force_closed=True,
                )
            except Exception:
                if open_break:
                    self._breaks.reopen(open_break.break_id)
                raise

            logger.info(
                "force_close session_id=%s by=%s closed_break=%s", session_id, by, open_break is not None
            )
            emit(
                self._publisher,
                EventDraft(
                    type=EventType.SESSION_FORCE_CLOSED,
                    worker_id=closed.worker_id,
                    payload={
                        "session": closed.to_summary(),
                        "by": str(by),
                        "closed_break_id": open_break.break_id if open_break else None,
                        "reason": optional_text(reason),
                    },
                    timestamp=now,
                ),
            )
            return closed

    def get_session(self, session_id: str, *, actor: Optional[Identity] = None) -> AttendanceSession:
        session = self._sessions.get(session_id)
        if not session:
            raise NotFoundError(f"Session {session_id} not found")
        if actor is not None and not actor.can_act_for(session.worker_id):
            raise AuthorizationError("You cannot view this session")
        return session

    def history(self, worker_id: str, *, limit: int = DEFAULT_HISTORY_LIMIT) -> list[dict]:
        limit = min(max(1, int(limit)), 200)
        out = []
        for s in self._sessions.list_for_worker(worker_id, limit=limit):
            row = s.to_summary()
            row["breaks"] = [b.to_dict() for b in self._breaks.list_for_session(s.session_id)]
            row["worked_seconds"] = s.worked_duration(self._clock()).total_seconds()
            out.append(row)
        return out
