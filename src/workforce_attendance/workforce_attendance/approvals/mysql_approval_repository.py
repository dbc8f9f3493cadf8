from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional, Sequence

from ..common.datetime_utils import as_utc, to_db
from ..core.enums import ApprovalKind, RequestStatus
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone
from .model import ApprovalRequest
from .repository import ApprovalRepository

_COLUMNS = """
    request_id, subject_session_id, worker_id, requested_by, kind, status, reason,
    created_at, decided_by, decided_at, decision_comment
"""


def _to_request(r: dict) -> ApprovalRequest:
    return ApprovalRequest(
        request_id=str(r["request_id"]),
        subject_session_id=str(r["subject_session_id"]),
        worker_id=str(r["worker_id"]),
        requested_by=str(r["requested_by"]),
        kind=ApprovalKind(r["kind"]),
        status=RequestStatus(r["status"]),
        reason=r.get("reason"),
        created_at=as_utc(r["created_at"]),
        decided_by=r.get("decided_by"),
        decided_at=as_utc(r.get("decided_at")),
        comment=r.get("decision_comment"),
    )


class MySQLApprovalRepository(ApprovalRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def create(self, request: ApprovalRequest) -> None:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO approval_requests(
                    request_id, subject_session_id, worker_id, requested_by, kind, status, reason, created_at
                )
                VALUES(%s,%s,%s,%s,%s,%s,%s,%s)
                """,
                (
                    request.request_id,
                    request.subject_session_id,
                    request.worker_id,
                    request.requested_by,
                    request.kind.value,
                    request.status.value,
                    request.reason,
                    to_db(request.created_at),
                ),
            )

    def delete(self, request_id: str) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "DELETE FROM approval_requests WHERE request_id=%s AND status=%s",
                (str(request_id), RequestStatus.PENDING.value),
            )
            return cur.rowcount > 0

    def get(self, request_id: str) -> Optional[ApprovalRequest]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_COLUMNS} FROM approval_requests WHERE request_id=%s", (str(request_id),))
            r = fetchone(cur)
            return _to_request(r) if r else None

    def decide(
        self,
        *,
        request_id: str,
        status: RequestStatus,
        decided_by: str,
        decided_at: datetime,
        comment: Optional[str] = None,
    ) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE approval_requests
                SET status=%s, decided_by=%s, decided_at=%s, decision_comment=%s
                WHERE request_id=%s AND status=%s
                """,
                (
                    status.value,
                    str(decided_by),
                    to_db(decided_at),
                    comment,
                    str(request_id),
                    RequestStatus.PENDING.value,
                ),
            )
            return cur.rowcount > 0

    def list_for_session(self, session_id: str) -> Sequence[ApprovalRequest]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"SELECT {_COLUMNS} FROM approval_requests WHERE subject_session_id=%s ORDER BY created_at",
                (str(session_id),),
            )
            return [_to_request(r) for r in fetchall(cur)]

    def list_pending(self, *, worker_ids: Optional[Iterable[str]] = None, limit: int = 500) -> Sequence[ApprovalRequest]:
        where = ["status=%s"]
        params: list = [RequestStatus.PENDING.value]
        if worker_ids is not None:
            ids = [str(w) for w in worker_ids]
            if not ids:
                return []
            where.append(f"worker_id IN ({','.join(['%s'] * len(ids))})")
            params.extend(ids)

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_COLUMNS}
                FROM approval_requests
                WHERE {' AND '.join(where)}
                ORDER BY created_at
                LIMIT %s
                """,
                (*params, int(limit)),
            )
            return [_to_request(r) for r in fetchall(cur)]
