from __future__ import annotations

import logging
import time
import uuid
from collections import deque
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Protocol

from ..core.enums import ConnectionState, RequestStatus, SessionStatus
from ..core.exceptions import ResyncRequired, StaleCommand
from ..events.model import Event
from ..projection.projector import ClientStateProjector
from .backoff import ExponentialBackoff
from .commands import CommandResult

logger = logging.getLogger(__name__)

# Commands whose target session must still be open when they are flushed.
_SESSION_COMMANDS = {"punchOut", "breakStart", "breakEnd"}


class TransportError(Exception):
    """The command or connection did not get through; nothing was applied."""


class CommandRejected(Exception):
    """The service received the command and refused it."""

    def __init__(self, result: CommandResult):
        error = result.error or {}
        super().__init__(error.get("message") or "Command rejected")
        self.result = result
        self.code = error.get("code")
        self.category = error.get("category")


class SyncTransport(Protocol):
    def connect(self, cursor: dict[str, int], epoch: Optional[str] = None) -> None:
        """Open the event stream from ``cursor`` in log ``epoch``. Raises TransportError or ResyncRequired."""

        raise NotImplementedError

    def receive(self, timeout: Optional[float] = None) -> Optional[Event]:
        raise NotImplementedError

    def send(self, command: str, payload: dict, command_id: str) -> CommandResult:
        raise NotImplementedError

    def fetch_snapshot(self) -> dict:
        raise NotImplementedError

    def close(self) -> None:
        raise NotImplementedError


@dataclass
class QueuedCommand:
    name: str
    payload: dict
    command_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    future: Future = field(default_factory=Future)


def _session_id(payload: dict) -> Optional[str]:
    return payload.get("sessionId") or payload.get("session_id")


class SyncClient:
    """Client side of the sync channel.

    Connection state machine: DISCONNECTED -> CONNECTING -> CONNECTED, back to
    DISCONNECTED on any transport failure, with the next attempt scheduled by
    the backoff policy. Nothing here sleeps or spawns threads; the owner calls
    ``tick`` from its own loop, which keeps every transition reproducible under
    a fake clock.

    Commands submitted while disconnected wait in order and are flushed on
    reconnect. A command whose session has closed in the meantime fails with
    StaleCommand instead of being sent.
    """

    def __init__(
        self,
        transport: SyncTransport,
        *,
        projector: Optional[ClientStateProjector] = None,
        backoff: Optional[ExponentialBackoff] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._transport = transport
        self.projector = projector or ClientStateProjector(clock=clock)
        self._backoff = backoff or ExponentialBackoff()
        self._clock = clock
        self._queue: deque[QueuedCommand] = deque()
        self.state = ConnectionState.DISCONNECTED
        self.next_attempt_at: Optional[float] = None
        self._listeners: list[Callable[[ConnectionState], None]] = []

    @property
    def queued(self) -> int:
        return len(self._queue)

    def on_state_change(self, listener: Callable[[ConnectionState], None]) -> None:
        self._listeners.append(listener)

    def _set_state(self, state: ConnectionState) -> None:
        if state != self.state:
            logger.debug("sync client %s -> %s", self.state.value, state.value)
            self.state = state
            for listener in list(self._listeners):
                listener(state)

    def connect(self) -> bool:
        self._set_state(ConnectionState.CONNECTING)
        try:
            try:
                self._transport.connect(self.projector.cursors, epoch=self.projector.epoch)
            except ResyncRequired:
                logger.info("cursor not replayable, loading snapshot")
                self.projector.load_snapshot(self._transport.fetch_snapshot())
                self._transport.connect(self.projector.cursors, epoch=self.projector.epoch)
        except (TransportError, ResyncRequired) as e:
            self._schedule_retry(e)
            return False

        self._set_state(ConnectionState.CONNECTED)
        self._backoff.reset()
        self.next_attempt_at = None
        # Replayed events first, so queued commands are checked against current state.
        if self._pump():
            self._flush()
        return self.state == ConnectionState.CONNECTED

    def connection_lost(self, reason: Any = None) -> None:
        self._transport.close()
        self._schedule_retry(reason)

    def _schedule_retry(self, reason: Any) -> None:
        delay = self._backoff.next_delay()
        self.next_attempt_at = self._clock() + delay
        logger.info("sync disconnected (%s), retry in %.2fs", reason, delay)
        self._set_state(ConnectionState.DISCONNECTED)

    def tick(self) -> None:
        """Advance the state machine: reconnect when due, pump events, watch gaps."""
        if self.state == ConnectionState.DISCONNECTED:
            if self.next_attempt_at is not None and self._clock() >= self.next_attempt_at:
                self.connect()
            return

        if self.state != ConnectionState.CONNECTED or not self._pump():
            return
        if self.projector.check_gaps():
            self.resync()

    def _pump(self) -> bool:
        try:
            while True:
                event = self._transport.receive(timeout=0)
                if event is None:
                    return True
                self.projector.apply(event)
        except TransportError as e:
            self.connection_lost(e)
            return False

    def resync(self) -> None:
        try:
            self.projector.load_snapshot(self._transport.fetch_snapshot())
            self._transport.close()
            self._transport.connect(self.projector.cursors, epoch=self.projector.epoch)
        except (TransportError, ResyncRequired) as e:
            self._schedule_retry(e)

    def submit(self, name: str, payload: Optional[dict] = None) -> Future:
        cmd = QueuedCommand(name=name, payload=dict(payload or {}))
        self._queue.append(cmd)
        if self.state == ConnectionState.CONNECTED:
            self._flush()
        return cmd.future

    def close(self) -> None:
        self._transport.close()
        self.next_attempt_at = None
        self._set_state(ConnectionState.DISCONNECTED)

    def _is_stale(self, cmd: QueuedCommand) -> bool:
        """True only when the projection has seen the command's target settle.

        A session the projection does not know yet is not stale; the service
        decides.
        """
        projection = self.projector.projection
        if cmd.name in _SESSION_COMMANDS:
            session = projection.find_session(_session_id(cmd.payload) or "")
            return session is not None and session.get("status") == SessionStatus.CLOSED.value
        if cmd.name == "approvalDecision":
            request = projection.approvals.get(cmd.payload.get("requestId") or cmd.payload.get("request_id") or "")
            return bool(request) and request.get("status") != RequestStatus.PENDING.value
        return False

    def _flush(self) -> None:
        while self._queue and self.state == ConnectionState.CONNECTED:
            # Apply delivered events first so the stale check sees current state.
            if not self._pump():
                return
            cmd = self._queue[0]
            if self._is_stale(cmd):
                self._queue.popleft()
                cmd.future.set_exception(StaleCommand(f"{cmd.name} no longer applies; resync and resubmit"))
                continue
            try:
                result = self._transport.send(cmd.name, cmd.payload, cmd.command_id)
            except TransportError as e:
                # Undelivered: stays at the head of the queue for the next connection.
                self.connection_lost(e)
                return

            self._queue.popleft()
            if result.accepted:
                cmd.future.set_result(result)
            elif (result.error or {}).get("category") == "stale":
                cmd.future.set_exception(StaleCommand((result.error or {}).get("message", "")))
            else:
                cmd.future.set_exception(CommandRejected(result))
