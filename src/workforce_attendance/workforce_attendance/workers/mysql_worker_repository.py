from __future__ import annotations

from typing import Optional, Sequence

from ..core.enums import Role
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone
from .model import Worker
from .repository import WorkerRepository


def _to_worker(r: dict) -> Worker:
    return Worker(
        worker_id=str(r["worker_id"]),
        full_name=r["full_name"],
        team_id=r.get("team_id"),
        role=Role(r.get("role") or Role.WORKER.value),
        is_active=bool(r.get("is_active", 1)),
    )


class MySQLWorkerRepository(WorkerRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def get_by_id(self, worker_id: str) -> Optional[Worker]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "SELECT worker_id, full_name, team_id, role, is_active FROM workers WHERE worker_id=%s",
                (str(worker_id),),
            )
            r = fetchone(cur)
            return _to_worker(r) if r else None

    def list_team(self, team_id: str) -> Sequence[Worker]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT worker_id, full_name, team_id, role, is_active
                FROM workers
                WHERE team_id=%s AND is_active=1
                ORDER BY full_name
                """,
                (str(team_id),),
            )
            return [_to_worker(r) for r in fetchall(cur)]
