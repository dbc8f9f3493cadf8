from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional

from ..approvals.service import ApprovalWorkflowEngine
from ..breaks.service import BreakManager
from ..common.validators import (
    first_present,
    parse_approval_kind,
    parse_approved,
    parse_break_type,
    parse_position,
    require_non_empty,
)
from ..core.exceptions import DomainError, TransientError, ValidationError
from ..sessions.service import AttendanceSessionService
from ..workers.model import Identity

logger = logging.getLogger(__name__)

ACCEPTED = "accepted"
REJECTED = "rejected"


@dataclass(frozen=True)
class CommandResult:
    """Outcome of a command that reached the service.

    ``rejected`` means delivered and denied by current state or input; the
    client must not blindly resend it. Transient failures are not results:
    they propagate so the transport reports the command as undelivered.
    """

    command: str
    status: str
    command_id: Optional[str] = None
    result: Optional[dict] = None
    error: Optional[dict] = None

    @property
    def accepted(self) -> bool:
        return self.status == ACCEPTED

    def to_dict(self) -> dict:
        return {
            "command": self.command,
            "command_id": self.command_id,
            "status": self.status,
            "result": self.result,
            "error": self.error,
        }


class CommandDispatcher:
    """Routes named client commands to the owning component."""

    def __init__(
        self,
        sessions: AttendanceSessionService,
        breaks: BreakManager,
        approvals: ApprovalWorkflowEngine,
    ):
        self._sessions = sessions
        self._breaks = breaks
        self._approvals = approvals
        self._handlers: dict[str, Callable[[Identity, Mapping[str, Any]], dict]] = {
            "punchIn": self._punch_in,
            "punchOut": self._punch_out,
            "breakStart": self._break_start,
            "breakEnd": self._break_end,
            "approvalRequest": self._approval_request,
            "approvalDecision": self._approval_decision,
            "forceClose": self._force_close,
        }

    @property
    def command_names(self) -> list[str]:
        return sorted(self._handlers)

    def dispatch(
        self,
        identity: Identity,
        name: str,
        payload: Optional[Mapping[str, Any]],
        *,
        command_id: Optional[str] = None,
    ) -> CommandResult:
        handler = self._handlers.get(name)
        try:
            if handler is None:
                raise ValidationError(f"Unknown command {name!r}", code="UNKNOWN_COMMAND")
            result = handler(identity, payload or {})
        except TransientError:
            raise
        except DomainError as e:
            logger.warning("command %s rejected for worker_id=%s: %s (%s)", name, identity.worker_id, e, e.code)
            return CommandResult(command=name, status=REJECTED, command_id=command_id, error=e.to_dict())
        return CommandResult(command=name, status=ACCEPTED, command_id=command_id, result=result)

    def _punch_in(self, identity: Identity, payload: Mapping[str, Any]) -> dict:
        session = self._sessions.punch_in(
            identity.worker_id,
            require_non_empty(first_present(payload, "workplaceId", "workplace_id"), "workplaceId"),
            parse_position(payload),
            notes=payload.get("notes"),
            device_info=first_present(payload, "deviceInfo", "device_info"),
            verification_token=first_present(payload, "verificationToken", "verification_token"),
        )
        return session.to_summary()

    def _punch_out(self, identity: Identity, payload: Mapping[str, Any]) -> dict:
        session_id = require_non_empty(first_present(payload, "sessionId", "session_id"), "sessionId")
        session = self._sessions.punch_out(session_id, parse_position(payload), actor=identity)
        return session.to_summary()

    def _break_start(self, identity: Identity, payload: Mapping[str, Any]) -> dict:
        session_id = require_non_empty(first_present(payload, "sessionId", "session_id"), "sessionId")
        session, brk = self._breaks.start_break(session_id, parse_break_type(payload.get("type")), actor=identity)
        return {**session.to_summary(), "open_break": brk.to_dict()}

    def _break_end(self, identity: Identity, payload: Mapping[str, Any]) -> dict:
        session_id = require_non_empty(first_present(payload, "sessionId", "session_id"), "sessionId")
        session, brk = self._breaks.end_break(session_id, actor=identity)
        return {**session.to_summary(), "closed_break": brk.to_dict()}

    def _approval_request(self, identity: Identity, payload: Mapping[str, Any]) -> dict:
        session_id = require_non_empty(first_present(payload, "sessionId", "session_id"), "sessionId")
        request = self._approvals.create_request(
            session_id,
            parse_approval_kind(payload.get("kind")),
            identity.worker_id,
            actor=identity,
            reason=payload.get("reason"),
        )
        return {"request_id": request.request_id, "request": request.to_dict()}

    def _approval_decision(self, identity: Identity, payload: Mapping[str, Any]) -> dict:
        request_id = require_non_empty(first_present(payload, "requestId", "request_id"), "requestId")
        decided = self._approvals.decide(
            request_id,
            identity.worker_id,
            parse_approved(payload.get("approved")),
            actor=identity,
            comment=payload.get("comment"),
        )
        return decided.to_dict()

    def _force_close(self, identity: Identity, payload: Mapping[str, Any]) -> dict:
        session_id = require_non_empty(first_present(payload, "sessionId", "session_id"), "sessionId")
        session = self._sessions.force_close(session_id, identity.worker_id, actor=identity, reason=payload.get("reason"))
        return session.to_summary()
