from __future__ import annotations

import pytest

from src.workforce_attendance.workforce_attendance.core.exceptions import ValidationError
from src.workforce_attendance.workforce_attendance.main import create_app
from src.workforce_attendance.workforce_attendance.sync.controller import format_cursor, parse_cursor

WORKER = {"X-Worker-Id": "w1", "X-Worker-Role": "worker", "X-Team-Id": "t1"}
OTHER = {"X-Worker-Id": "w2", "X-Worker-Role": "worker", "X-Team-Id": "t1"}
MANAGER = {"X-Worker-Id": "m1", "X-Worker-Role": "manager", "X-Team-Id": "t1"}


@pytest.fixture
def app(container, monkeypatch):
    monkeypatch.setenv("APP_ENV", "testing")
    return create_app(container=container)


@pytest.fixture
def client(app):
    return app.test_client()


def punch_in(client, distance_lat=0.0, headers=WORKER):
    return client.post(
        "/attendance/punch-in",
        json={"workplace_id": "hq", "lat": distance_lat, "lng": 0.0, "accuracy": 5},
        headers=headers,
    )


def test_requests_without_identity_are_rejected(client):
    resp = client.post("/attendance/punch-in", json={"workplace_id": "hq", "lat": 0, "lng": 0})

    assert resp.status_code == 401
    body = resp.get_json()
    assert body["success"] is False
    assert body["error"]["code"] == "UNAUTHENTICATED"


def test_unknown_role_is_rejected(client):
    resp = client.get("/workplaces", headers={"X-Worker-Id": "w1", "X-Worker-Role": "owner"})
    assert resp.status_code == 401


def test_workplaces_and_location_check(client):
    resp = client.get("/workplaces", headers=WORKER)
    assert [z["workplace_id"] for z in resp.get_json()["data"]] == ["hq"]

    resp = client.get("/attendance/verify-location?workplace_id=hq&lat=0.0005&lng=0", headers=WORKER)
    assert resp.status_code == 200
    assert resp.get_json()["data"]["inside"] is True

    assert client.get("/workplaces/nowhere", headers=WORKER).status_code == 404


def test_punch_in_break_and_punch_out(client):
    resp = punch_in(client)
    assert resp.status_code == 201
    session_id = resp.get_json()["data"]["session_id"]

    assert punch_in(client).get_json()["error"]["code"] == "SESSION_CONFLICT"

    resp = client.post("/attendance/break-start", json={"session_id": session_id, "type": "lunch"}, headers=WORKER)
    assert resp.get_json()["data"]["status"] == "ON_BREAK"

    resp = client.post("/attendance/punch-out", json={"session_id": session_id, "lat": 0, "lng": 0}, headers=WORKER)
    assert resp.status_code == 409
    assert resp.get_json()["error"]["code"] == "OPEN_BREAK_EXISTS"

    client.post("/attendance/break-end", json={"session_id": session_id}, headers=WORKER)
    resp = client.post("/attendance/punch-out", json={"session_id": session_id, "lat": 0, "lng": 0}, headers=WORKER)
    assert resp.status_code == 200
    assert resp.get_json()["data"]["status"] == "CLOSED"

    detail = client.get(f"/attendance/sessions/{session_id}", headers=WORKER).get_json()["data"]
    assert len(detail["breaks"]) == 1
    assert client.get(f"/attendance/sessions/{session_id}", headers=OTHER).status_code == 403

    history = client.get("/attendance/history", headers=WORKER).get_json()["data"]
    assert [h["session_id"] for h in history] == [session_id]


def test_invalid_position_is_a_400(client):
    resp = client.post("/attendance/punch-in", json={"workplace_id": "hq", "lat": 95, "lng": 0}, headers=WORKER)

    assert resp.status_code == 400
    assert resp.get_json()["error"]["category"] == "validation"


def test_outside_punch_in_goes_through_manager_approval(client):
    # ~200 m north of the zone center
    session = punch_in(client, distance_lat=0.0018).get_json()["data"]
    assert session["display_status"] == "PENDING_APPROVAL"

    pending = client.get("/approvals/pending", headers=MANAGER).get_json()["data"]
    assert [r["kind"] for r in pending] == ["MISSED_GEOFENCE"]
    request_id = pending[0]["request_id"]

    assert client.post(f"/approvals/{request_id}/decision", json={"approved": True}, headers=WORKER).status_code == 403

    resp = client.post(f"/approvals/{request_id}/decision", json={"approved": True, "comment": "ok"}, headers=MANAGER)
    assert resp.get_json()["data"]["status"] == "APPROVED"

    again = client.post(f"/approvals/{request_id}/decision", json={"approved": False}, headers=MANAGER)
    assert again.status_code == 409
    assert again.get_json()["error"]["code"] == "ALREADY_DECIDED"

    status = client.get("/status/w1", headers=WORKER).get_json()["data"]
    assert status["session"]["pending_approval"] is False


def test_manager_force_close(client):
    session_id = punch_in(client).get_json()["data"]["session_id"]

    assert client.post(f"/attendance/sessions/{session_id}/force-close", headers=WORKER).status_code == 403
    resp = client.post(f"/attendance/sessions/{session_id}/force-close", json={"reason": "forgot"}, headers=MANAGER)
    assert resp.get_json()["data"]["force_closed"] is True


def test_commands_endpoint(client):
    resp = client.post(
        "/commands",
        json={"command": "punchIn", "command_id": "c-1", "payload": {"workplaceId": "hq", "lat": 0, "lng": 0}},
        headers=WORKER,
    )
    assert resp.status_code == 200
    body = resp.get_json()["data"]
    assert body["status"] == "accepted"
    assert body["command_id"] == "c-1"

    resp = client.post("/commands", json={"command": "breakEnd", "payload": {"sessionId": body["result"]["session_id"]}}, headers=WORKER)
    assert resp.status_code == 409
    assert resp.get_json()["data"]["error"]["code"] == "NO_OPEN_BREAK"

    resp = client.post("/commands", json={"command": "teleport"}, headers=WORKER)
    assert resp.get_json()["data"]["error"]["code"] == "UNKNOWN_COMMAND"


def test_team_status_is_for_the_teams_manager(client):
    punch_in(client)

    assert client.get("/teams/t1/status", headers=WORKER).status_code == 403
    assert client.get("/teams/t2/status", headers=MANAGER).status_code == 403

    data = client.get("/teams/t1/status", headers=MANAGER).get_json()["data"]
    assert data["active_count"] == 1
    assert {m["worker_id"] for m in data["members"]} == {"w1", "w2", "m1"}


def test_event_stream_replays_from_cursor(client, container):
    punch_in(client)
    resp = client.get("/events/stream?cursor=w1:0", headers=WORKER, buffered=False)
    assert resp.mimetype == "text/event-stream"

    container.sync_channel.shutdown()
    body = resp.get_data(as_text=True)
    resp.close()

    assert "event: connected" in body
    assert "event: SessionStarted\n" in body
    assert f"id: {container.sync_channel.epoch};w1:1\n" in body
    assert "event: closed" in body
    assert container.sync_channel.subscriber_count() == 0


def test_event_stream_signals_resync(client, container):
    resp = client.get(f"/events/stream?cursor={container.sync_channel.epoch};w1:42", headers=WORKER)

    assert resp.status_code == 200
    assert "event: resync" in resp.get_data(as_text=True)


def test_event_stream_refuses_cursor_from_earlier_run(client):
    punch_in(client)
    resp = client.get("/events/stream", headers={**WORKER, "Last-Event-ID": "0ldepoch;w1:1"})

    assert "event: resync" in resp.get_data(as_text=True)


def test_worker_cannot_follow_another_worker(client):
    assert client.get("/events/stream?worker_id=w2", headers=WORKER).status_code == 403


def test_health(client):
    resp = client.get("/health")

    assert resp.status_code == 200
    data = resp.get_json()["data"]
    assert data["database"] == "disabled"
    assert data["event_store"] == "memory"


def test_unknown_route_uses_error_envelope(client):
    resp = client.get("/nope", headers=WORKER)

    assert resp.status_code == 404
    assert resp.get_json()["success"] is False


def test_cursor_round_trip_and_errors():
    assert parse_cursor("e1;w2:7, w1:5") == ("e1", {"w2": 7, "w1": 5})
    assert format_cursor({"w2": 7, "w1": 5}, "e1") == "e1;w1:5,w2:7"
    assert parse_cursor("w1:5") == (None, {"w1": 5})
    assert parse_cursor("e1;") == ("e1", {})
    assert parse_cursor("") == (None, None)
    with pytest.raises(ValidationError):
        parse_cursor("w1:five")
