from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from ..approvals.repository import ApprovalRepository
from ..breaks.repository import BreakRepository
from ..common.datetime_utils import now_utc, to_iso
from ..core.exceptions import NotFoundError
from ..events.repository import EventLog
from ..sessions.repository import SessionRepository
from ..workers.repository import WorkerRepository


@dataclass(frozen=True)
class WorkerStatus:
    worker_id: str
    session: Optional[dict]
    open_break: Optional[dict]
    pending_approvals: list[dict] = field(default_factory=list)
    cursor: int = 0
    full_name: Optional[str] = None
    epoch: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "worker_id": self.worker_id,
            "full_name": self.full_name,
            "session": self.session,
            "open_break": self.open_break,
            "pending_approvals": list(self.pending_approvals),
            "cursor": self.cursor,
            "epoch": self.epoch,
        }


@dataclass(frozen=True)
class TeamStatusSnapshot:
    """Point-in-time view of a team, rebuilt from current session state. Never persisted."""

    team_id: str
    generated_at: datetime
    members: list[WorkerStatus]
    epoch: Optional[str] = None

    @property
    def cursors(self) -> dict[str, int]:
        return {m.worker_id: m.cursor for m in self.members}

    def to_dict(self) -> dict:
        return {
            "team_id": self.team_id,
            "generated_at": to_iso(self.generated_at),
            "epoch": self.epoch,
            "members": [m.to_dict() for m in self.members],
            "active_count": sum(1 for m in self.members if m.session),
        }


class SnapshotService:
    """Full-state reads used for first load and for resync.

    The log epoch and cursors are read before state, so an event racing the
    read is at worst replayed on top of a snapshot that already contains it.
    Event payloads carry whole session summaries, which makes that replay
    harmless.
    """

    def __init__(
        self,
        sessions: SessionRepository,
        breaks: BreakRepository,
        approvals: ApprovalRepository,
        workers: WorkerRepository,
        log: EventLog,
        *,
        clock: Callable[[], datetime] = now_utc,
    ):
        self._sessions = sessions
        self._breaks = breaks
        self._approvals = approvals
        self._workers = workers
        self._log = log
        self._clock = clock

    def current_status(self, worker_id: str) -> WorkerStatus:
        epoch = self._log.epoch
        cursor = self._log.latest_sequence(worker_id)
        worker = self._workers.get_by_id(worker_id)
        session = self._sessions.get_open_for_worker(worker_id)
        open_break = self._breaks.get_open_for_session(session.session_id) if session else None
        pending = self._approvals.list_pending(worker_ids=[worker_id])
        return WorkerStatus(
            worker_id=str(worker_id),
            full_name=worker.full_name if worker else None,
            session=session.to_summary() if session else None,
            open_break=open_break.to_dict() if open_break else None,
            pending_approvals=[r.to_dict() for r in pending],
            cursor=cursor,
            epoch=epoch,
        )

    def team_status(self, team_id: str) -> TeamStatusSnapshot:
        members = list(self._workers.list_team(team_id))
        if not members:
            raise NotFoundError(f"Team {team_id} has no active members")

        ids = [m.worker_id for m in members]
        epoch = self._log.epoch
        cursors = {w: self._log.latest_sequence(w) for w in ids}
        sessions = {s.worker_id: s for s in self._sessions.list_open_for_workers(ids)}
        breaks = {b.session_id: b for b in self._breaks.list_open_for_sessions(s.session_id for s in sessions.values())}
        pending: dict[str, list[dict]] = {}
        for r in self._approvals.list_pending(worker_ids=ids):
            pending.setdefault(r.worker_id, []).append(r.to_dict())

        out = []
        for m in members:
            s = sessions.get(m.worker_id)
            b = breaks.get(s.session_id) if s else None
            out.append(
                WorkerStatus(
                    worker_id=m.worker_id,
                    full_name=m.full_name,
                    session=s.to_summary() if s else None,
                    open_break=b.to_dict() if b else None,
                    pending_approvals=pending.get(m.worker_id, []),
                    cursor=cursors[m.worker_id],
                    epoch=epoch,
                )
            )
        return TeamStatusSnapshot(team_id=str(team_id), generated_at=self._clock(), members=out, epoch=epoch)
