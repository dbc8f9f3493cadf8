from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from ..common.datetime_utils import to_iso
from ..core.enums import SessionStatus
from ..geofence.model import Position


@dataclass(frozen=True)
class GeofenceCheck:
    inside: bool
    distance_meters: float
    checked_at: datetime

    def to_dict(self) -> dict:
        return {
            "inside": self.inside,
            "distance_meters": round(self.distance_meters, 3),
            "checked_at": to_iso(self.checked_at),
        }


@dataclass(frozen=True)
class AttendanceSession:
    """One worker's work period, from punch-in to punch-out.

    ``status`` only ever holds ACTIVE, ON_BREAK or CLOSED. ``pending_approval``
    is orthogonal and may stay set after closure, which keeps the attendance
    out of payroll-ready output until a manager approves it.
    ``version`` increments on every write and backs the optimistic check.
    """

    session_id: str
    worker_id: str
    workplace_id: str
    start_time: datetime
    status: SessionStatus = SessionStatus.ACTIVE
    end_time: Optional[datetime] = None
    pending_approval: bool = False
    total_break_duration: timedelta = timedelta(0)
    last_geofence_check: Optional[GeofenceCheck] = None
    punch_in_position: Optional[Position] = None
    punch_out_position: Optional[Position] = None
    notes: Optional[str] = None
    device_info: Optional[str] = None
    verification_token: Optional[str] = None
    closed_by: Optional[str] = None
    force_closed: bool = False
    version: int = 1

    @property
    def is_open(self) -> bool:
        return self.status != SessionStatus.CLOSED

    @property
    def display_status(self) -> SessionStatus:
        if self.status == SessionStatus.ACTIVE and self.pending_approval:
            return SessionStatus.PENDING_APPROVAL
        return self.status

    @property
    def payroll_ready(self) -> bool:
        return self.status == SessionStatus.CLOSED and not self.pending_approval

    def worked_duration(self, now: datetime) -> timedelta:
        end = self.end_time or now
        return max(timedelta(0), end - self.start_time - self.total_break_duration)

    def to_summary(self) -> dict:
        return {
            "session_id": self.session_id,
            "worker_id": self.worker_id,
            "workplace_id": self.workplace_id,
            "status": self.status.value,
            "display_status": self.display_status.value,
            "pending_approval": self.pending_approval,
            "start_time": to_iso(self.start_time),
            "end_time": to_iso(self.end_time),
            "total_break_seconds": self.total_break_duration.total_seconds(),
            "last_geofence_check": self.last_geofence_check.to_dict() if self.last_geofence_check else None,
            "force_closed": self.force_closed,
            "closed_by": self.closed_by,
            "payroll_ready": self.payroll_ready,
            "version": self.version,
        }
