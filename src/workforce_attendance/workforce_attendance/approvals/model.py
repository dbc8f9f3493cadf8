from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..common.datetime_utils import to_iso
from ..core.enums import ApprovalKind, RequestStatus

SYSTEM_ACTOR = "system"


@dataclass(frozen=True)
class ApprovalRequest:
    """Exception record that must be decided before its session counts as valid.

    A decision is terminal: once ``status`` leaves PENDING it never changes again.
    """

    request_id: str
    subject_session_id: str
    worker_id: str
    requested_by: str
    kind: ApprovalKind
    status: RequestStatus
    created_at: datetime
    reason: Optional[str] = None
    decided_by: Optional[str] = None
    decided_at: Optional[datetime] = None
    comment: Optional[str] = None

    @property
    def is_decided(self) -> bool:
        return self.status != RequestStatus.PENDING

    def to_dict(self) -> dict:
        return {
            "request_id": self.request_id,
            "session_id": self.subject_session_id,
            "worker_id": self.worker_id,
            "requested_by": self.requested_by,
            "kind": self.kind.value,
            "status": self.status.value,
            "reason": self.reason,
            "created_at": to_iso(self.created_at),
            "decided_by": self.decided_by,
            "decided_at": to_iso(self.decided_at),
            "comment": self.comment,
        }
