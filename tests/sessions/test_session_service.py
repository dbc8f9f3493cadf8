from __future__ import annotations

import random
import threading

import pytest

from src.workforce_attendance.workforce_attendance.core.enums import (
    ApprovalKind,
    BreakType,
    EventType,
    RequestStatus,
    Role,
    SessionStatus,
)
from src.workforce_attendance.workforce_attendance.core.exceptions import (
    AuthorizationError,
    ConcurrentUpdate,
    NoActiveSession,
    OpenBreakExists,
    SessionConflict,
    StoreUnavailable,
    ValidationError,
)
from src.workforce_attendance.workforce_attendance.workers.model import Identity


def _events(container, worker_id="w1"):
    return [e.type for e in container.event_log.since(worker_id, 0)]


def test_punch_in_inside_zone_starts_active_session(container, at):
    session = container.session_service.punch_in("w1", "hq", at(40), notes="early shift")

    assert session.status == SessionStatus.ACTIVE
    assert session.pending_approval is False
    assert session.last_geofence_check.inside is True
    assert session.notes == "early shift"
    assert _events(container) == [EventType.SESSION_STARTED]


def test_second_punch_in_conflicts(container, at):
    container.session_service.punch_in("w1", "hq", at(10))
    with pytest.raises(SessionConflict):
        container.session_service.punch_in("w1", "hq", at(10))


def test_unknown_workplace_is_a_validation_error(container, at):
    with pytest.raises(ValidationError) as exc:
        container.session_service.punch_in("w1", "nowhere", at(10))
    assert exc.value.code == "UNKNOWN_WORKPLACE"


def test_punch_in_outside_zone_flags_session_and_opens_request(container, at):
    session = container.session_service.punch_in("w1", "hq", at(200))

    assert session.status == SessionStatus.ACTIVE
    assert session.pending_approval is True
    assert session.display_status == SessionStatus.PENDING_APPROVAL
    requests = container.approval_engine.list_for_session(session.session_id)
    assert [(r.kind, r.status) for r in requests] == [(ApprovalKind.MISSED_GEOFENCE, RequestStatus.PENDING)]
    assert _events(container) == [EventType.SESSION_STARTED, EventType.APPROVAL_REQUESTED]


def test_punch_out_closes_session(container, clock, at, worker):
    session = container.session_service.punch_in("w1", "hq", at(10))
    clock.advance(hours=8)

    closed = container.session_service.punch_out(session.session_id, at(20), actor=worker)

    assert closed.status == SessionStatus.CLOSED
    assert closed.end_time == clock.now
    assert closed.payroll_ready is True
    assert container.sessions_repo.get_open_for_worker("w1") is None
    assert _events(container)[-1] == EventType.SESSION_CLOSED


def test_punch_out_of_missing_or_closed_session(container, at):
    with pytest.raises(NoActiveSession):
        container.session_service.punch_out("missing", at(0))

    session = container.session_service.punch_in("w1", "hq", at(10))
    container.session_service.punch_out(session.session_id, at(10))
    with pytest.raises(NoActiveSession):
        container.session_service.punch_out(session.session_id, at(10))


def test_worker_cannot_punch_out_someone_else(container, at):
    session = container.session_service.punch_in("w2", "hq", at(10))
    intruder = Identity(worker_id="w1", role=Role.WORKER, team_id="t1")
    with pytest.raises(AuthorizationError):
        container.session_service.punch_out(session.session_id, at(10), actor=intruder)


def test_open_break_blocks_punch_out_until_it_ends(container, clock, at):
    session = container.session_service.punch_in("w1", "hq", at(10))
    container.break_manager.start_break(session.session_id, BreakType.LUNCH)

    with pytest.raises(OpenBreakExists):
        container.session_service.punch_out(session.session_id, at(10))

    clock.advance(minutes=30)
    container.break_manager.end_break(session.session_id)
    closed = container.session_service.punch_out(session.session_id, at(10))
    assert closed.status == SessionStatus.CLOSED


def test_pending_approval_does_not_block_punch_out(container, at):
    session = container.session_service.punch_in("w1", "hq", at(200))
    closed = container.session_service.punch_out(session.session_id, at(10))

    assert closed.status == SessionStatus.CLOSED
    assert closed.pending_approval is True
    assert closed.payroll_ready is False


def test_punch_out_outside_zone_raises_its_own_request(container, at):
    session = container.session_service.punch_in("w1", "hq", at(10))
    closed = container.session_service.punch_out(session.session_id, at(500))

    assert closed.pending_approval is True
    requests = container.approval_engine.list_for_session(session.session_id)
    assert [r.kind for r in requests] == [ApprovalKind.MISSED_GEOFENCE]


def test_force_close_ends_open_break_and_tags_actor(container, clock, at, manager):
    session = container.session_service.punch_in("w1", "hq", at(10))
    _, brk = container.break_manager.start_break(session.session_id, BreakType.COFFEE)
    clock.advance(minutes=15)

    closed = container.session_service.force_close(session.session_id, manager.worker_id, actor=manager)

    assert closed.status == SessionStatus.CLOSED
    assert closed.force_closed is True
    assert closed.closed_by == "m1"
    assert closed.total_break_duration.total_seconds() == 15 * 60
    assert container.breaks_repo.get_open_for_session(session.session_id) is None

    last = container.event_log.since("w1", 0)[-1]
    assert last.type == EventType.SESSION_FORCE_CLOSED
    assert last.payload["by"] == "m1"
    assert last.payload["closed_break_id"] == brk.break_id


def test_force_close_requires_manager(container, at, worker):
    session = container.session_service.punch_in("w1", "hq", at(10))
    with pytest.raises(AuthorizationError):
        container.session_service.force_close(session.session_id, worker.worker_id, actor=worker)


def test_history_lists_sessions_with_breaks(container, clock, at):
    first = container.session_service.punch_in("w1", "hq", at(10))
    container.break_manager.start_break(first.session_id, BreakType.REST)
    clock.advance(minutes=5)
    container.break_manager.end_break(first.session_id)
    clock.advance(hours=1)
    container.session_service.punch_out(first.session_id, at(10))
    clock.advance(hours=12)
    second = container.session_service.punch_in("w1", "hq", at(10))

    rows = container.session_service.history("w1", limit=10)

    assert [r["session_id"] for r in rows] == [second.session_id, first.session_id]
    assert len(rows[1]["breaks"]) == 1
    assert rows[1]["worked_seconds"] == 3600


def test_at_most_one_open_session_under_random_interleavings(container, at):
    service = container.session_service
    workers = ["w1", "w2", "w3"]
    errors = []

    def run(seed: int) -> None:
        rng = random.Random(seed)
        for _ in range(60):
            worker_id = rng.choice(workers)
            try:
                if rng.random() < 0.5:
                    service.punch_in(worker_id, "hq", at(10))
                else:
                    open_session = container.sessions_repo.get_open_for_worker(worker_id)
                    if open_session:
                        service.punch_out(open_session.session_id, at(10))
            except (SessionConflict, NoActiveSession):
                pass
            except Exception as e:  # pragma: no cover - surfaced by the assertion below
                errors.append(e)

            for w in workers:
                open_count = sum(1 for s in list(container.sessions_repo.rows.values()) if s.worker_id == w and s.is_open)
                if open_count > 1:
                    errors.append(AssertionError(f"{w} has {open_count} open sessions"))

    threads = [threading.Thread(target=run, args=(seed,)) for seed in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    for w in workers:
        assert sum(1 for s in list(container.sessions_repo.rows.values()) if s.worker_id == w and s.is_open) <= 1


def test_failed_request_insert_undoes_the_punch_in(container, at, monkeypatch):
    def unavailable(request):
        raise StoreUnavailable("approval store offline")

    monkeypatch.setattr(container.approvals_repo, "create", unavailable)
    with pytest.raises(StoreUnavailable):
        container.session_service.punch_in("w1", "hq", at(200))

    assert container.sessions_repo.get_open_for_worker("w1") is None
    assert _events(container) == []

    monkeypatch.undo()
    session = container.session_service.punch_in("w1", "hq", at(200))
    assert session.pending_approval is True
    assert len(container.approval_engine.list_for_session(session.session_id)) == 1


def test_failed_punch_out_withdraws_its_request(container, at, monkeypatch):
    session = container.session_service.punch_in("w1", "hq", at(10))

    monkeypatch.setattr(container.sessions_repo, "update", lambda s, *, expected_version: False)
    with pytest.raises(ConcurrentUpdate):
        container.session_service.punch_out(session.session_id, at(500))

    stored = container.sessions_repo.get(session.session_id)
    assert stored.is_open
    assert stored.pending_approval is False
    assert container.approval_engine.list_for_session(session.session_id) == []
    assert _events(container) == [EventType.SESSION_STARTED]


def test_force_close_keeps_break_open_when_closing_it_fails(container, at, manager, monkeypatch):
    session = container.session_service.punch_in("w1", "hq", at(10))
    container.break_manager.start_break(session.session_id, BreakType.LUNCH)

    def unavailable(break_id, *, end_time):
        raise StoreUnavailable("break store offline")

    monkeypatch.setattr(container.breaks_repo, "close", unavailable)
    with pytest.raises(StoreUnavailable):
        container.session_service.force_close(session.session_id, "m1", actor=manager)

    assert container.sessions_repo.get(session.session_id).status == SessionStatus.ON_BREAK
    assert container.breaks_repo.get_open_for_session(session.session_id) is not None


def test_force_close_reopens_break_when_session_write_fails(container, clock, at, manager, monkeypatch):
    session = container.session_service.punch_in("w1", "hq", at(10))
    _, brk = container.break_manager.start_break(session.session_id, BreakType.LUNCH)
    clock.advance(minutes=5)

    monkeypatch.setattr(container.sessions_repo, "update", lambda s, *, expected_version: False)
    with pytest.raises(ConcurrentUpdate):
        container.session_service.force_close(session.session_id, "m1", actor=manager)

    stored = container.sessions_repo.get(session.session_id)
    assert stored.status == SessionStatus.ON_BREAK
    assert stored.total_break_duration.total_seconds() == 0
    assert container.breaks_repo.get_open_for_session(session.session_id).break_id == brk.break_id
