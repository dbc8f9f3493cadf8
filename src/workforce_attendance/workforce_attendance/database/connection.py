from __future__ import annotations

from dataclasses import dataclass

import mysql.connector


@dataclass(frozen=True)
class DBConfig:
    host: str
    port: int
    user: str
    password: str
    database: str

    @classmethod
    def from_dict(cls, db_config: dict) -> "DBConfig":
        return cls(
            host=str(db_config.get("host", "localhost")),
            port=int(db_config.get("port", 3306)),
            user=str(db_config.get("user", "root")),
            password=str(db_config.get("password", "")),
            database=str(db_config.get("database", "workforce_attendance")),
        )


class DatabaseConnection:
    """Connection factory shared by every MySQL repository.

    Each operation takes a short-lived connection from the driver-side pool.
    """

    def __init__(self, config: DBConfig, *, pool_size: int = 8):
        self._config = config
        self._pool_size = int(pool_size)

    @property
    def config(self) -> DBConfig:
        return self._config

    def connect(self):
        return mysql.connector.connect(
            host=self._config.host,
            port=int(self._config.port),
            user=self._config.user,
            password=self._config.password,
            database=self._config.database,
            pool_name="workforce_attendance",
            pool_size=self._pool_size,
        )

    def ping(self) -> bool:
        try:
            conn = self.connect()
        except mysql.connector.Error:
            return False
        try:
            return bool(conn.is_connected())
        finally:
            conn.close()
