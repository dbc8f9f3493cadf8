from __future__ import annotations

import pytest

from src.workforce_attendance.workforce_attendance.core.enums import ConnectionState, SessionStatus
from src.workforce_attendance.workforce_attendance.core.exceptions import ResyncRequired, StaleCommand
from src.workforce_attendance.workforce_attendance.projection.model import Projection
from src.workforce_attendance.workforce_attendance.projection.projector import ClientStateProjector
from src.workforce_attendance.workforce_attendance.sync.backoff import ExponentialBackoff
from src.workforce_attendance.workforce_attendance.sync.client import CommandRejected, SyncClient, TransportError
from src.workforce_attendance.workforce_attendance.sync.subscription import SubscriptionFilter
from src.workforce_attendance.workforce_attendance.sync.transport import InProcessTransport

PUNCH_IN = {"workplaceId": "hq", "lat": 0.0, "lng": 0.0, "accuracy": 5}


class FlakyTransport:
    """Wraps a real transport; ``down`` makes every call fail like a dropped network."""

    def __init__(self, inner):
        self.inner = inner
        self.down = False
        self.connect_attempts = 0
        self.sent = []

    def _check(self):
        if self.down:
            raise TransportError("network unreachable")

    def connect(self, cursor, epoch=None):
        self.connect_attempts += 1
        self._check()
        self.inner.connect(cursor, epoch=epoch)

    def receive(self, timeout=None):
        self._check()
        return self.inner.receive(timeout)

    def send(self, command, payload, command_id):
        self._check()
        self.sent.append(command)
        return self.inner.send(command, payload, command_id)

    def fetch_snapshot(self):
        self._check()
        return self.inner.fetch_snapshot()

    def close(self):
        self.inner.close()


@pytest.fixture
def transport(container, worker):
    inner = InProcessTransport(
        container.sync_channel,
        container.command_dispatcher,
        container.snapshot_service,
        worker,
        SubscriptionFilter(worker_id="w1"),
    )
    flaky = FlakyTransport(inner)
    yield flaky
    flaky.close()


@pytest.fixture
def client(transport, monotonic):
    return SyncClient(
        transport,
        projector=ClientStateProjector(clock=monotonic),
        backoff=ExponentialBackoff(base_delay_s=1, max_delay_s=8, jitter=0),
        clock=monotonic,
    )


def _punch_in(client):
    future = client.submit("punchIn", PUNCH_IN)
    client.tick()
    return future.result(timeout=0).result["session_id"]


def _go_offline(client, transport):
    transport.down = True
    client.connection_lost("test")


def test_connect_and_follow_events(client):
    states = []
    client.on_state_change(states.append)

    assert client.connect() is True
    session_id = _punch_in(client)

    assert states == [ConnectionState.CONNECTING, ConnectionState.CONNECTED]
    assert client.projector.projection.find_session(session_id)["status"] == SessionStatus.ACTIVE.value
    assert client.projector.cursors == {"w1": 1}


def test_reconnect_attempts_back_off_up_to_the_cap(client, transport, monotonic):
    transport.down = True
    assert client.connect() is False
    assert client.state == ConnectionState.DISCONNECTED

    gaps = []
    for _ in range(5):
        gaps.append(client.next_attempt_at - monotonic())
        monotonic.advance(gaps[-1] - 0.5)
        client.tick()
        assert client.state == ConnectionState.DISCONNECTED
        monotonic.advance(0.5)
        client.tick()

    assert gaps == pytest.approx([1, 2, 4, 8, 8])
    assert transport.connect_attempts == 6

    transport.down = False
    monotonic.advance(client.next_attempt_at - monotonic())
    client.tick()
    assert client.state == ConnectionState.CONNECTED
    assert client.next_attempt_at is None


def test_offline_commands_flush_in_order_on_reconnect(client, transport, monotonic, container):
    client.connect()
    session_id = _punch_in(client)

    _go_offline(client, transport)
    started = client.submit("breakStart", {"sessionId": session_id, "type": "LUNCH"})
    ended = client.submit("breakEnd", {"sessionId": session_id})
    assert client.queued == 2
    assert not started.done()

    transport.down = False
    monotonic.advance(1)
    client.tick()

    assert client.state == ConnectionState.CONNECTED
    assert client.queued == 0
    assert transport.sent == ["punchIn", "breakStart", "breakEnd"]
    assert started.result(timeout=0).accepted
    assert ended.result(timeout=0).result["status"] == SessionStatus.ACTIVE.value
    (brk,) = container.breaks_repo.list_for_session(session_id)
    assert not brk.is_open


def test_undelivered_command_stays_queued(client, transport, monotonic):
    client.connect()
    transport.down = True

    future = client.submit("punchIn", PUNCH_IN)

    assert client.state == ConnectionState.DISCONNECTED
    assert client.queued == 1
    assert not future.done()

    transport.down = False
    monotonic.advance(1)
    client.tick()
    assert future.result(timeout=0).accepted


def test_command_for_session_closed_while_offline_is_stale(client, transport, monotonic, container, manager):
    client.connect()
    session_id = _punch_in(client)

    _go_offline(client, transport)
    punch_out = client.submit("punchOut", {"sessionId": session_id, "lat": 0.0, "lng": 0.0})
    container.session_service.force_close(session_id, "m1", actor=manager)

    transport.down = False
    monotonic.advance(1)
    client.tick()

    with pytest.raises(StaleCommand):
        punch_out.result(timeout=0)
    assert "punchOut" not in transport.sent
    assert client.projector.projection.find_session(session_id)["status"] == SessionStatus.CLOSED.value


def test_command_for_unknown_session_goes_to_the_service(client, transport):
    client.connect()

    future = client.submit("breakStart", {"sessionId": "never-seen", "type": "COFFEE"})

    with pytest.raises(CommandRejected) as exc:
        future.result(timeout=0)
    assert exc.value.code == "NO_ACTIVE_SESSION"
    assert transport.sent == ["breakStart"]


def test_break_right_after_punch_in_is_accepted(client, container):
    client.connect()
    punched = client.submit("punchIn", PUNCH_IN)
    session_id = punched.result(timeout=0).result["session_id"]

    started = client.submit("breakStart", {"sessionId": session_id, "type": "COFFEE"})

    assert started.result(timeout=0).accepted
    assert container.sessions_repo.get(session_id).status == SessionStatus.ON_BREAK


def test_rejected_command_reports_code(client):
    client.connect()
    session_id = _punch_in(client)

    future = client.submit("breakEnd", {"sessionId": session_id})

    with pytest.raises(CommandRejected) as exc:
        future.result(timeout=0)
    assert exc.value.code == "NO_OPEN_BREAK"
    assert exc.value.category == "conflict"


def test_cursor_ahead_of_server_loads_snapshot(transport, monotonic, container, at):
    container.session_service.punch_in("w1", "hq", at(10))
    projector = ClientStateProjector(Projection(cursors={"w1": 99}), clock=monotonic)
    client = SyncClient(transport, projector=projector, clock=monotonic)

    assert client.connect() is True
    assert projector.cursors == {"w1": 1}
    assert projector.projection.session_status("w1") == SessionStatus.ACTIVE


def test_dropped_stream_schedules_reconnect(client, transport, monotonic):
    client.connect()
    transport.down = True

    client.tick()

    assert client.state == ConnectionState.DISCONNECTED
    assert client.next_attempt_at == pytest.approx(monotonic() + 1)


class AlwaysResyncTransport:
    """Server that keeps refusing the cursor even after a snapshot load."""

    def __init__(self):
        self.connect_attempts = 0

    def connect(self, cursor, epoch=None):
        self.connect_attempts += 1
        raise ResyncRequired("log restarted again")

    def receive(self, timeout=None):
        raise TransportError("not connected")

    def send(self, command, payload, command_id):
        raise TransportError("not connected")

    def fetch_snapshot(self):
        return {"worker_id": "w1", "cursor": 0, "epoch": "e2"}

    def close(self):
        pass


def test_repeated_resync_on_connect_schedules_retry(monotonic):
    transport = AlwaysResyncTransport()
    client = SyncClient(
        transport,
        projector=ClientStateProjector(clock=monotonic),
        backoff=ExponentialBackoff(base_delay_s=1, max_delay_s=8, jitter=0),
        clock=monotonic,
    )

    assert client.connect() is False

    assert transport.connect_attempts == 2
    assert client.state == ConnectionState.DISCONNECTED
    assert client.next_attempt_at == pytest.approx(monotonic() + 1)
    assert client.projector.epoch == "e2"


def test_repeated_resync_during_resync_schedules_retry(client, transport, monotonic):
    client.connect()

    def refuse(cursor, epoch=None):
        raise ResyncRequired("log restarted again")

    transport.inner.connect = refuse
    client.resync()

    assert client.state == ConnectionState.DISCONNECTED
    assert client.next_attempt_at == pytest.approx(monotonic() + 1)
