from __future__ import annotations

import pytest

from src.workforce_attendance.workforce_attendance.core.enums import BreakType
from src.workforce_attendance.workforce_attendance.core.exceptions import NotFoundError


def test_worker_status_carries_cursor_break_and_requests(container, at):
    session = container.session_service.punch_in("w1", "hq", at(180))
    container.break_manager.start_break(session.session_id, BreakType.COFFEE)

    status = container.snapshot_service.current_status("w1").to_dict()

    assert status["full_name"] == "Ana Lima"
    assert status["session"]["status"] == "ON_BREAK"
    assert status["open_break"]["type"] == "COFFEE"
    assert [r["kind"] for r in status["pending_approvals"]] == ["MISSED_GEOFENCE"]
    assert status["cursor"] == container.event_log.latest_sequence("w1") == 3
    assert status["epoch"] == container.event_log.epoch


def test_idle_worker_has_empty_status(container):
    status = container.snapshot_service.current_status("w2")

    assert status.session is None
    assert status.cursor == 0


def test_team_status_covers_active_members(container, at):
    container.session_service.punch_in("w1", "hq", at(10))
    container.session_service.punch_in("w3", "hq", at(10))

    snapshot = container.snapshot_service.team_status("t1")

    assert snapshot.cursors == {"w1": 1, "w2": 0, "m1": 0}
    assert snapshot.to_dict()["active_count"] == 1
    assert snapshot.to_dict()["epoch"] == container.sync_channel.epoch


def test_empty_team_is_not_found(container):
    with pytest.raises(NotFoundError):
        container.snapshot_service.team_status("t9")
