from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from datetime import datetime
from typing import Callable, Iterable, Optional, Sequence

from ..common.datetime_utils import now_utc
from ..common.locks import KeyedLocks
from ..common.validators import optional_text
from ..core.constants import DEFAULT_VERSION_RETRIES
from ..core.enums import ApprovalKind, EventType, RequestStatus
from ..core.exceptions import AlreadyDecided, AuthorizationError, ConcurrentUpdate, NotFoundError
from ..events.model import EventDraft
from ..events.publisher import EventPublisher, emit
from ..sessions.model import AttendanceSession
from ..sessions.repository import SessionRepository, save_changes
from ..workers.model import Identity
from .model import SYSTEM_ACTOR, ApprovalRequest
from .repository import ApprovalRepository

logger = logging.getLogger(__name__)

# Raised only by system rules (the punch geofence check), never by a person.
SYSTEM_KINDS = frozenset({ApprovalKind.MISSED_GEOFENCE})


class ApprovalWorkflowEngine:
    """Creates exception requests and applies single-shot manager decisions.

    A session stays flagged ``pending_approval`` while any of its requests is
    not APPROVED; a rejection therefore keeps the flag set for good.
    """

    def __init__(
        self,
        requests: ApprovalRepository,
        sessions: SessionRepository,
        publisher: EventPublisher,
        *,
        locks: KeyedLocks | None = None,
        clock: Callable[[], datetime] = now_utc,
        version_retries: int = DEFAULT_VERSION_RETRIES,
    ):
        self._requests = requests
        self._sessions = sessions
        self._publisher = publisher
        self._locks = locks or KeyedLocks()
        self._clock = clock
        self._version_retries = max(1, int(version_retries))

    def create_request(
        self,
        session_id: str,
        kind: ApprovalKind,
        requested_by: str,
        *,
        actor: Optional[Identity] = None,
        reason: Optional[str] = None,
    ) -> ApprovalRequest:
        if kind in SYSTEM_KINDS and requested_by != SYSTEM_ACTOR:
            raise AuthorizationError(f"{kind.value} requests are raised by the system only")

        with self._locks.hold(f"session:{session_id}"):
            session = self._sessions.get(session_id)
            if not session:
                raise NotFoundError(f"Session {session_id} not found")
            if actor is not None and not actor.can_act_for(session.worker_id):
                raise AuthorizationError("You can only raise requests for your own session")

            # The request row goes in first; the flag is never set without it.
            request = self.record(session, kind, requested_by, reason=reason)
            try:
                session = self._set_pending(session_id, lambda: True)
            except Exception:
                self.withdraw(request)
                raise
            self.announce(request, session)
            return request

    def record(
        self,
        session: AttendanceSession,
        kind: ApprovalKind,
        requested_by: str,
        *,
        reason: Optional[str] = None,
    ) -> ApprovalRequest:
        """Insert a PENDING request without touching the session or publishing.

        Callers own the session write that sets ``pending_approval`` and must
        ``withdraw`` the request if that write fails, then ``announce`` it.
        """
        request = ApprovalRequest(
            request_id=str(uuid.uuid4()),
            subject_session_id=session.session_id,
            worker_id=session.worker_id,
            requested_by=str(requested_by),
            kind=kind,
            status=RequestStatus.PENDING,
            created_at=self._clock(),
            reason=optional_text(reason),
        )
        self._requests.create(request)
        return request

    def withdraw(self, request: ApprovalRequest) -> None:
        if not self._requests.delete(request.request_id):
            logger.warning("withdraw found no pending request_id=%s", request.request_id)

    def announce(self, request: ApprovalRequest, session: AttendanceSession) -> None:
        logger.info(
            "approval_requested request_id=%s session_id=%s kind=%s by=%s",
            request.request_id,
            request.subject_session_id,
            request.kind.value,
            request.requested_by,
        )
        emit(
            self._publisher,
            EventDraft(
                type=EventType.APPROVAL_REQUESTED,
                worker_id=request.worker_id,
                payload={"request": request.to_dict(), "session": session.to_summary()},
                timestamp=request.created_at,
            ),
        )

    def decide(
        self,
        request_id: str,
        decided_by: str,
        approved: bool,
        *,
        actor: Optional[Identity] = None,
        comment: Optional[str] = None,
    ) -> ApprovalRequest:
        if actor is not None and not actor.is_manager:
            raise AuthorizationError("Only managers can decide approval requests")

        request = self._requests.get(request_id)
        if not request:
            raise NotFoundError(f"Approval request {request_id} not found")
        if request.is_decided:
            raise AlreadyDecided(f"Request {request_id} was already {request.status.value}")
        if str(decided_by) == request.worker_id:
            raise AuthorizationError("You cannot decide your own request")

        now = self._clock()
        status = RequestStatus.APPROVED if approved else RequestStatus.REJECTED
        note = optional_text(comment)
        if not self._requests.decide(
            request_id=request.request_id,
            status=status,
            decided_by=str(decided_by),
            decided_at=now,
            comment=note,
        ):
            logger.warning("approval_decide lost race request_id=%s by=%s", request_id, decided_by)
            raise AlreadyDecided(f"Request {request_id} was already decided")

        decided = replace(request, status=status, decided_by=str(decided_by), decided_at=now, comment=note)
        session_id = request.subject_session_id
        with self._locks.hold(f"session:{session_id}"):
            session = self._set_pending(session_id, lambda: self._has_unapproved(session_id))

            logger.info("approval_decided request_id=%s status=%s by=%s", request_id, status.value, decided_by)
            emit(
                self._publisher,
                EventDraft(
                    type=EventType.APPROVAL_DECIDED,
                    worker_id=decided.worker_id,
                    payload={"request": decided.to_dict(), "approved": bool(approved), "session": session.to_summary()},
                    timestamp=now,
                ),
            )
        return decided

    def get(self, request_id: str, *, actor: Optional[Identity] = None) -> ApprovalRequest:
        request = self._requests.get(request_id)
        if not request:
            raise NotFoundError(f"Approval request {request_id} not found")
        if actor is not None and not actor.can_act_for(request.worker_id):
            raise AuthorizationError("You cannot view this request")
        return request

    def list_pending(self, *, worker_ids: Optional[Iterable[str]] = None) -> Sequence[ApprovalRequest]:
        return self._requests.list_pending(worker_ids=worker_ids)

    def list_for_session(self, session_id: str) -> Sequence[ApprovalRequest]:
        return self._requests.list_for_session(session_id)

    def _has_unapproved(self, session_id: str) -> bool:
        return any(r.status != RequestStatus.APPROVED for r in self._requests.list_for_session(session_id))

    def _set_pending(self, session_id: str, desired: Callable[[], bool]) -> AttendanceSession:
        for _ in range(self._version_retries):
            session = self._sessions.get(session_id)
            if not session:
                raise NotFoundError(f"Session {session_id} not found")
            flag = desired()
            if session.pending_approval == flag:
                return session
            try:
                return save_changes(self._sessions, session, pending_approval=flag)
            except ConcurrentUpdate:
                logger.debug("pending flag retry session_id=%s", session_id)
        raise ConcurrentUpdate(f"Session {session_id} kept changing; approval flag not updated")
