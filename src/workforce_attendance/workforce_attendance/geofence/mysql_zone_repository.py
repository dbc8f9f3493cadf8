from __future__ import annotations

from typing import Optional, Sequence

from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone
from .model import GeofenceZone
from .repository import ZoneRepository


def _to_zone(r: dict) -> GeofenceZone:
    return GeofenceZone(
        workplace_id=str(r["workplace_id"]),
        center_lat=float(r["center_lat"]),
        center_lng=float(r["center_lng"]),
        radius_meters=float(r["radius_meters"]),
        name=r.get("workplace_name"),
    )


class MySQLZoneRepository(ZoneRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def get_for_workplace(self, workplace_id: str) -> Sequence[GeofenceZone]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT workplace_id, workplace_name, center_lat, center_lng, radius_meters
                FROM workplace_zones
                WHERE workplace_id=%s AND is_active=1
                ORDER BY zone_id
                """,
                (str(workplace_id),),
            )
            return [_to_zone(r) for r in fetchall(cur)]

    def list_all(self) -> Sequence[GeofenceZone]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT workplace_id, workplace_name, center_lat, center_lng, radius_meters
                FROM workplace_zones
                WHERE is_active=1
                ORDER BY workplace_id, zone_id
                """
            )
            return [_to_zone(r) for r in fetchall(cur)]

    def get_workplace_name(self, workplace_id: str) -> Optional[str]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "SELECT workplace_name FROM workplace_zones WHERE workplace_id=%s LIMIT 1",
                (str(workplace_id),),
            )
            r = fetchone(cur)
            return r.get("workplace_name") if r else None
