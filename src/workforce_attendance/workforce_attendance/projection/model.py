from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from ..core.enums import RequestStatus, SessionStatus


@dataclass(frozen=True)
class WorkerView:
    worker_id: str
    session: Optional[dict] = None
    open_break: Optional[dict] = None

    @property
    def status(self) -> Optional[SessionStatus]:
        if not self.session:
            return None
        return SessionStatus(self.session.get("display_status") or self.session["status"])

    @property
    def is_open(self) -> bool:
        return bool(self.session) and self.session.get("status") != SessionStatus.CLOSED.value


@dataclass(frozen=True)
class Projection:
    """Client-side read model. Treated as immutable; ``reduce`` returns new instances."""

    workers: dict[str, WorkerView] = field(default_factory=dict)
    approvals: dict[str, dict] = field(default_factory=dict)
    cursors: dict[str, int] = field(default_factory=dict)
    # Log run the cursors belong to; None until the first event or snapshot.
    epoch: Optional[str] = None

    def cursor(self, worker_id: str) -> int:
        return self.cursors.get(worker_id, 0)

    def view(self, worker_id: str) -> WorkerView:
        return self.workers.get(worker_id) or WorkerView(worker_id=worker_id)

    def session_status(self, worker_id: str) -> Optional[SessionStatus]:
        return self.view(worker_id).status

    def open_break(self, worker_id: str) -> Optional[dict]:
        return self.view(worker_id).open_break

    def find_session(self, session_id: str) -> Optional[dict]:
        for v in self.workers.values():
            if v.session and v.session.get("session_id") == session_id:
                return v.session
        return None

    def pending_approvals(self, worker_id: Optional[str] = None) -> list[dict]:
        return [
            r
            for r in self.approvals.values()
            if r.get("status") == RequestStatus.PENDING.value and (worker_id is None or r.get("worker_id") == worker_id)
        ]

    def team_snapshot(self) -> list[dict]:
        """Open sessions across every worker this projection follows."""
        out = []
        for worker_id in sorted(self.workers):
            v = self.workers[worker_id]
            if v.is_open:
                out.append(
                    {
                        "worker_id": worker_id,
                        "status": v.status.value if v.status else None,
                        "session_id": v.session.get("session_id"),
                        "open_break": v.open_break,
                        "pending_approvals": len(self.pending_approvals(worker_id)),
                    }
                )
        return out
