from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional, Sequence

from ..common.datetime_utils import as_utc, to_db
from ..core.enums import BreakType
from ..core.exceptions import BreakAlreadyOpen
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone, is_duplicate_key
from .model import Break
from .repository import BreakRepository


def _to_break(r: dict) -> Break:
    return Break(
        break_id=str(r["break_id"]),
        session_id=str(r["session_id"]),
        break_type=BreakType(r["break_type"]),
        start_time=as_utc(r["start_time"]),
        end_time=as_utc(r.get("end_time")),
    )


class MySQLBreakRepository(BreakRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def create(self, brk: Break) -> None:
        try:
            with db_cursor(self._conn_factory) as (_, cur):
                cur.execute(
                    """
                    INSERT INTO session_breaks(break_id, session_id, break_type, start_time, end_time, open_session_id)
                    VALUES(%s,%s,%s,%s,%s,%s)
                    """,
                    (
                        brk.break_id,
                        brk.session_id,
                        brk.break_type.value,
                        to_db(brk.start_time),
                        to_db(brk.end_time),
                        brk.session_id if brk.is_open else None,
                    ),
                )
        except Exception as e:
            if is_duplicate_key(e):
                raise BreakAlreadyOpen(f"Session {brk.session_id} already has an open break") from e
            raise

    def get_open_for_session(self, session_id: str) -> Optional[Break]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT break_id, session_id, break_type, start_time, end_time
                FROM session_breaks
                WHERE open_session_id=%s
                """,
                (str(session_id),),
            )
            r = fetchone(cur)
            return _to_break(r) if r else None

    def close(self, break_id: str, *, end_time: datetime) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE session_breaks
                SET end_time=%s, open_session_id=NULL
                WHERE break_id=%s AND end_time IS NULL
                """,
                (to_db(end_time), str(break_id)),
            )
            return cur.rowcount > 0

    def reopen(self, break_id: str) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE session_breaks
                SET end_time=NULL, open_session_id=session_id
                WHERE break_id=%s AND end_time IS NOT NULL
                """,
                (str(break_id),),
            )
            return cur.rowcount > 0

    def list_for_session(self, session_id: str) -> Sequence[Break]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT break_id, session_id, break_type, start_time, end_time
                FROM session_breaks
                WHERE session_id=%s
                ORDER BY start_time
                """,
                (str(session_id),),
            )
            return [_to_break(r) for r in fetchall(cur)]

    def list_open_for_sessions(self, session_ids: Iterable[str]) -> Sequence[Break]:
        ids = [str(s) for s in session_ids]
        if not ids:
            return []
        placeholders = ",".join(["%s"] * len(ids))
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT break_id, session_id, break_type, start_time, end_time
                FROM session_breaks
                WHERE open_session_id IN ({placeholders})
                """,
                tuple(ids),
            )
            return [_to_break(r) for r in fetchall(cur)]
