from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional, Protocol, Sequence

from ..core.enums import RequestStatus
from .model import ApprovalRequest


class ApprovalRepository(Protocol):
    def create(self, request: ApprovalRequest) -> None:
        raise NotImplementedError

    def delete(self, request_id: str) -> bool:
        """Remove a request that was never announced (its command failed)."""

        raise NotImplementedError

    def get(self, request_id: str) -> Optional[ApprovalRequest]:
        raise NotImplementedError

    def decide(
        self,
        *,
        request_id: str,
        status: RequestStatus,
        decided_by: str,
        decided_at: datetime,
        comment: Optional[str] = None,
    ) -> bool:
        """Atomic PENDING -> ``status`` transition.

        Returns False when the request is no longer PENDING, which is how the
        losing side of two concurrent decisions finds out.
        """

        raise NotImplementedError

    def list_for_session(self, session_id: str) -> Sequence[ApprovalRequest]:
        raise NotImplementedError

    def list_pending(self, *, worker_ids: Optional[Iterable[str]] = None, limit: int = 500) -> Sequence[ApprovalRequest]:
        raise NotImplementedError
