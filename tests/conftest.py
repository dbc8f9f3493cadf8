from __future__ import annotations

import math
import threading
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from src.workforce_attendance.workforce_attendance.container import Repositories, assemble
from src.workforce_attendance.workforce_attendance.core.constants import EARTH_RADIUS_M
from src.workforce_attendance.workforce_attendance.core.enums import RequestStatus, Role
from src.workforce_attendance.workforce_attendance.core.exceptions import BreakAlreadyOpen, SessionConflict
from src.workforce_attendance.workforce_attendance.core.settings import TrackerSettings
from src.workforce_attendance.workforce_attendance.geofence.model import GeofenceZone, Position
from src.workforce_attendance.workforce_attendance.workers.model import Identity, Worker


def north_of(meters: float, *, accuracy: float = 0.0) -> Position:
    """Point ``meters`` due north of (0, 0); haversine distance is exact along a meridian."""
    return Position(lat=math.degrees(meters / EARTH_RADIUS_M), lng=0.0, accuracy=accuracy)


class FixedClock:
    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 3, 2, 8, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeMonotonic:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


class FakeZoneRepo:
    def __init__(self, zones):
        self._zones = list(zones)

    def get_for_workplace(self, workplace_id):
        return [z for z in self._zones if z.workplace_id == workplace_id]

    def list_all(self):
        return list(self._zones)

    def get_workplace_name(self, workplace_id):
        for z in self._zones:
            if z.workplace_id == workplace_id:
                return z.name
        return None


class FakeWorkerRepo:
    def __init__(self, workers):
        self._workers = {w.worker_id: w for w in workers}

    def get_by_id(self, worker_id):
        return self._workers.get(worker_id)

    def list_team(self, team_id):
        return [w for w in self._workers.values() if w.team_id == team_id and w.is_active]


class FakeSessionRepo:
    def __init__(self):
        self._lock = threading.Lock()
        self.rows = {}

    def create(self, session):
        with self._lock:
            if any(s.worker_id == session.worker_id and s.is_open for s in self.rows.values()):
                raise SessionConflict("open session exists")
            self.rows[session.session_id] = session

    def delete(self, session_id):
        with self._lock:
            return self.rows.pop(session_id, None) is not None

    def get(self, session_id):
        return self.rows.get(session_id)

    def get_open_for_worker(self, worker_id):
        with self._lock:
            for s in self.rows.values():
                if s.worker_id == worker_id and s.is_open:
                    return s
        return None

    def update(self, session, *, expected_version):
        with self._lock:
            current = self.rows.get(session.session_id)
            if not current or current.version != expected_version:
                return False
            self.rows[session.session_id] = session
            return True

    def list_for_worker(self, worker_id, *, limit):
        rows = sorted((s for s in self.rows.values() if s.worker_id == worker_id), key=lambda s: s.start_time)
        return list(reversed(rows))[:limit]

    def list_open_for_workers(self, worker_ids):
        ids = set(worker_ids)
        return [s for s in self.rows.values() if s.worker_id in ids and s.is_open]


class FakeBreakRepo:
    def __init__(self):
        self._lock = threading.Lock()
        self.rows = {}

    def create(self, brk):
        with self._lock:
            if any(b.session_id == brk.session_id and b.is_open for b in self.rows.values()):
                raise BreakAlreadyOpen("open break exists")
            self.rows[brk.break_id] = brk

    def get_open_for_session(self, session_id):
        for b in list(self.rows.values()):
            if b.session_id == session_id and b.is_open:
                return b
        return None

    def close(self, break_id, *, end_time):
        with self._lock:
            b = self.rows.get(break_id)
            if not b or not b.is_open:
                return False
            self.rows[break_id] = replace(b, end_time=end_time)
            return True

    def reopen(self, break_id):
        with self._lock:
            b = self.rows.get(break_id)
            if not b or b.is_open:
                return False
            self.rows[break_id] = replace(b, end_time=None)
            return True

    def list_for_session(self, session_id):
        return sorted((b for b in self.rows.values() if b.session_id == session_id), key=lambda b: b.start_time)

    def list_open_for_sessions(self, session_ids):
        ids = set(session_ids)
        return [b for b in self.rows.values() if b.session_id in ids and b.is_open]


class FakeApprovalRepo:
    def __init__(self):
        self._lock = threading.Lock()
        self.rows = {}

    def create(self, request):
        with self._lock:
            self.rows[request.request_id] = request

    def delete(self, request_id):
        with self._lock:
            req = self.rows.get(request_id)
            if not req or req.status != RequestStatus.PENDING:
                return False
            del self.rows[request_id]
            return True

    def get(self, request_id):
        return self.rows.get(request_id)

    def decide(self, *, request_id, status, decided_by, decided_at, comment=None):
        with self._lock:
            req = self.rows.get(request_id)
            if not req or req.status != RequestStatus.PENDING:
                return False
            self.rows[request_id] = replace(
                req, status=status, decided_by=decided_by, decided_at=decided_at, comment=comment
            )
            return True

    def list_for_session(self, session_id):
        return [r for r in self.rows.values() if r.subject_session_id == session_id]

    def list_pending(self, *, worker_ids=None, limit=500):
        ids = None if worker_ids is None else set(worker_ids)
        rows = [
            r for r in self.rows.values() if r.status == RequestStatus.PENDING and (ids is None or r.worker_id in ids)
        ]
        return sorted(rows, key=lambda r: r.created_at)[:limit]


HQ = GeofenceZone(workplace_id="hq", center_lat=0.0, center_lng=0.0, radius_meters=100.0, name="Head office")

WORKERS = [
    Worker(worker_id="w1", full_name="Ana Lima", team_id="t1"),
    Worker(worker_id="w2", full_name="Bo Chen", team_id="t1"),
    Worker(worker_id="m1", full_name="Mara Quist", team_id="t1", role=Role.MANAGER),
    Worker(worker_id="w3", full_name="Cy Odu", team_id="t2"),
]


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def repos():
    return Repositories(
        zones=FakeZoneRepo([HQ]),
        workers=FakeWorkerRepo(WORKERS),
        sessions=FakeSessionRepo(),
        breaks=FakeBreakRepo(),
        approvals=FakeApprovalRepo(),
    )


@pytest.fixture
def settings():
    return TrackerSettings(event_retention_per_worker=50, subscriber_queue_size=100, keepalive_seconds=0.05)


@pytest.fixture
def container(repos, settings, clock):
    c = assemble(repos, settings=settings, clock=clock)
    yield c
    c.shutdown()


@pytest.fixture
def worker():
    return Identity(worker_id="w1", role=Role.WORKER, team_id="t1")


@pytest.fixture
def manager():
    return Identity(worker_id="m1", role=Role.MANAGER, team_id="t1")


@pytest.fixture
def at():
    """``at(150)`` is a position 150 m from the HQ zone center."""
    return north_of


@pytest.fixture
def monotonic():
    return FakeMonotonic()
