from __future__ import annotations

from typing import Iterable, Optional, Sequence

from ..common.datetime_utils import as_utc, from_micros, to_db, to_micros
from ..core.enums import SessionStatus
from ..core.exceptions import SessionConflict
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone, is_duplicate_key
from ..geofence.model import Position
from .model import AttendanceSession, GeofenceCheck
from .repository import SessionRepository

_COLUMNS = """
    session_id, worker_id, workplace_id, start_time, end_time, status, pending_approval,
    total_break_micros, last_geofence_inside, last_geofence_distance, last_geofence_at,
    punch_in_lat, punch_in_lng, punch_in_accuracy, punch_out_lat, punch_out_lng, punch_out_accuracy,
    notes, device_info, verification_token, closed_by, force_closed, version
"""


def _position(r: dict, prefix: str) -> Optional[Position]:
    if r.get(f"{prefix}_lat") is None:
        return None
    return Position(
        lat=float(r[f"{prefix}_lat"]),
        lng=float(r[f"{prefix}_lng"]),
        accuracy=float(r.get(f"{prefix}_accuracy") or 0.0),
    )


def _to_session(r: dict) -> AttendanceSession:
    check = None
    if r.get("last_geofence_at") is not None:
        check = GeofenceCheck(
            inside=bool(r["last_geofence_inside"]),
            distance_meters=float(r["last_geofence_distance"] or 0.0),
            checked_at=as_utc(r["last_geofence_at"]),
        )
    return AttendanceSession(
        session_id=str(r["session_id"]),
        worker_id=str(r["worker_id"]),
        workplace_id=str(r["workplace_id"]),
        start_time=as_utc(r["start_time"]),
        end_time=as_utc(r.get("end_time")),
        status=SessionStatus(r["status"]),
        pending_approval=bool(r["pending_approval"]),
        total_break_duration=from_micros(r["total_break_micros"]),
        last_geofence_check=check,
        punch_in_position=_position(r, "punch_in"),
        punch_out_position=_position(r, "punch_out"),
        notes=r.get("notes"),
        device_info=r.get("device_info"),
        verification_token=r.get("verification_token"),
        closed_by=r.get("closed_by"),
        force_closed=bool(r.get("force_closed")),
        version=int(r["version"]),
    )


def _params(s: AttendanceSession) -> dict:
    check = s.last_geofence_check
    p_in = s.punch_in_position
    p_out = s.punch_out_position
    return {
        "session_id": s.session_id,
        "worker_id": s.worker_id,
        "workplace_id": s.workplace_id,
        "start_time": to_db(s.start_time),
        "end_time": to_db(s.end_time),
        "status": s.status.value,
        "pending_approval": int(s.pending_approval),
        "total_break_micros": to_micros(s.total_break_duration),
        "last_geofence_inside": int(check.inside) if check else None,
        "last_geofence_distance": check.distance_meters if check else None,
        "last_geofence_at": to_db(check.checked_at) if check else None,
        "punch_in_lat": p_in.lat if p_in else None,
        "punch_in_lng": p_in.lng if p_in else None,
        "punch_in_accuracy": p_in.accuracy if p_in else None,
        "punch_out_lat": p_out.lat if p_out else None,
        "punch_out_lng": p_out.lng if p_out else None,
        "punch_out_accuracy": p_out.accuracy if p_out else None,
        "notes": s.notes,
        "device_info": s.device_info,
        "verification_token": s.verification_token,
        "closed_by": s.closed_by,
        "force_closed": int(s.force_closed),
        "version": s.version,
        "open_worker_id": s.worker_id if s.is_open else None,
    }


class MySQLSessionRepository(SessionRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def create(self, session: AttendanceSession) -> None:
        try:
            with db_cursor(self._conn_factory) as (_, cur):
                cur.execute(
                    """
                    INSERT INTO attendance_sessions(
                        session_id, worker_id, workplace_id, start_time, end_time, status, pending_approval,
                        total_break_micros, last_geofence_inside, last_geofence_distance, last_geofence_at,
                        punch_in_lat, punch_in_lng, punch_in_accuracy, punch_out_lat, punch_out_lng,
                        punch_out_accuracy, notes, device_info, verification_token, closed_by, force_closed,
                        version, open_worker_id
                    )
                    VALUES(
                        %(session_id)s, %(worker_id)s, %(workplace_id)s, %(start_time)s, %(end_time)s, %(status)s,
                        %(pending_approval)s, %(total_break_micros)s, %(last_geofence_inside)s,
                        %(last_geofence_distance)s, %(last_geofence_at)s, %(punch_in_lat)s, %(punch_in_lng)s,
                        %(punch_in_accuracy)s, %(punch_out_lat)s, %(punch_out_lng)s, %(punch_out_accuracy)s,
                        %(notes)s, %(device_info)s, %(verification_token)s, %(closed_by)s, %(force_closed)s,
                        %(version)s, %(open_worker_id)s
                    )
                    """,
                    _params(session),
                )
        except Exception as e:
            if is_duplicate_key(e):
                raise SessionConflict(f"Worker {session.worker_id} already has an open session") from e
            raise

    def delete(self, session_id: str) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("DELETE FROM attendance_sessions WHERE session_id=%s", (str(session_id),))
            return cur.rowcount > 0

    def get(self, session_id: str) -> Optional[AttendanceSession]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_COLUMNS} FROM attendance_sessions WHERE session_id=%s", (str(session_id),))
            r = fetchone(cur)
            return _to_session(r) if r else None

    def get_open_for_worker(self, worker_id: str) -> Optional[AttendanceSession]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_COLUMNS} FROM attendance_sessions WHERE open_worker_id=%s", (str(worker_id),))
            r = fetchone(cur)
            return _to_session(r) if r else None

    def update(self, session: AttendanceSession, *, expected_version: int) -> bool:
        params = _params(session)
        params["expected_version"] = int(expected_version)
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE attendance_sessions
                SET end_time=%(end_time)s, status=%(status)s, pending_approval=%(pending_approval)s,
                    total_break_micros=%(total_break_micros)s,
                    last_geofence_inside=%(last_geofence_inside)s,
                    last_geofence_distance=%(last_geofence_distance)s,
                    last_geofence_at=%(last_geofence_at)s,
                    punch_out_lat=%(punch_out_lat)s, punch_out_lng=%(punch_out_lng)s,
                    punch_out_accuracy=%(punch_out_accuracy)s,
                    closed_by=%(closed_by)s, force_closed=%(force_closed)s,
                    version=%(version)s, open_worker_id=%(open_worker_id)s
                WHERE session_id=%(session_id)s AND version=%(expected_version)s
                """,
                params,
            )
            return cur.rowcount > 0

    def list_for_worker(self, worker_id: str, *, limit: int) -> Sequence[AttendanceSession]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_COLUMNS}
                FROM attendance_sessions
                WHERE worker_id=%s
                ORDER BY start_time DESC
                LIMIT %s
                """,
                (str(worker_id), int(limit)),
            )
            return [_to_session(r) for r in fetchall(cur)]

    def list_open_for_workers(self, worker_ids: Iterable[str]) -> Sequence[AttendanceSession]:
        ids = [str(w) for w in worker_ids]
        if not ids:
            return []
        placeholders = ",".join(["%s"] * len(ids))
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"SELECT {_COLUMNS} FROM attendance_sessions WHERE open_worker_id IN ({placeholders})",
                tuple(ids),
            )
            return [_to_session(r) for r in fetchall(cur)]
