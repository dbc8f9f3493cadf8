from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

from mysql.connector import errorcode, errors

from ..core.exceptions import StoreUnavailable
from .connection import DatabaseConnection

logger = logging.getLogger(__name__)


@contextmanager
def db_cursor(conn_factory: DatabaseConnection, *, dictionary: bool = True):
    """One transaction: commit on success, rollback on any error.

    Connection-level driver failures surface as StoreUnavailable so callers see
    a transient error instead of a driver exception.
    """

    try:
        conn = conn_factory.connect()
    except (errors.InterfaceError, errors.OperationalError, errors.PoolError) as e:
        logger.warning("store unavailable: %s", e)
        raise StoreUnavailable("Attendance store is unavailable") from e

    try:
        cur = conn.cursor(dictionary=dictionary)
        try:
            yield conn, cur
            conn.commit()
        finally:
            cur.close()
    except errors.OperationalError as e:
        conn.rollback()
        raise StoreUnavailable("Attendance store is unavailable") from e
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def fetchone(cur) -> Optional[Dict[str, Any]]:
    row = cur.fetchone()
    return row if row else None


def fetchall(cur) -> List[Dict[str, Any]]:
    rows = cur.fetchall()
    return list(rows or [])


def is_duplicate_key(error: Exception) -> bool:
    return isinstance(error, errors.IntegrityError) and getattr(error, "errno", None) == errorcode.ER_DUP_ENTRY
