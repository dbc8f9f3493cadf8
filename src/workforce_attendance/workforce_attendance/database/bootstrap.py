from __future__ import annotations

import logging
import re
from pathlib import Path

import mysql.connector

from .connection import DBConfig

logger = logging.getLogger(__name__)

_CREATE_OR_USE = re.compile(r"(?im)^\s*(CREATE\s+DATABASE|USE)\b[^;]*;")
_LINE_COMMENT = re.compile(r"(?m)^\s*--.*$")


def _server_connection(target: DBConfig, database: str | None = None):
    return mysql.connector.connect(
        host=target.host,
        port=target.port,
        user=target.user,
        password=target.password,
        database=database,
        use_pure=True,
    )


def split_statements(sql: str) -> list[str]:
    """Statements of a schema file, minus comments and CREATE DATABASE / USE.

    The target database comes from DB_CONFIG, so the file's own name is ignored.
    Statements must not contain ';' inside string literals.
    """
    sql = _LINE_COMMENT.sub("", _CREATE_OR_USE.sub("", sql))
    return [s.strip() for s in sql.split(";") if s.strip()]


def apply_schema(db_config: dict, *, schema_path: str | Path) -> int:
    target = DBConfig.from_dict(db_config)
    statements = split_statements(Path(schema_path).read_text(encoding="utf-8"))

    conn = _server_connection(target)
    try:
        cur = conn.cursor()
        cur.execute(
            f"CREATE DATABASE IF NOT EXISTS `{target.database}` CHARACTER SET utf8mb4 COLLATE utf8mb4_unicode_ci"
        )
        cur.execute(f"USE `{target.database}`")
        for stmt in statements:
            cur.execute(stmt)
        conn.commit()
    finally:
        conn.close()
    logger.info("applied %d statements from %s to %s", len(statements), schema_path, target.database)
    return len(statements)


def list_tables(db_config: dict) -> list[str]:
    target = DBConfig.from_dict(db_config)
    conn = _server_connection(target, target.database)
    try:
        cur = conn.cursor()
        cur.execute("SHOW TABLES")
        return sorted(row[0] for row in cur.fetchall())
    finally:
        conn.close()
