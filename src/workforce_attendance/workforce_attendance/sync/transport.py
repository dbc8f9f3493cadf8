from __future__ import annotations

from typing import Optional

from ..core.exceptions import ChannelClosed, TransientError
from ..events.model import Event
from ..workers.model import Identity
from .channel import RealtimeSyncChannel
from .client import TransportError
from .commands import CommandDispatcher, CommandResult
from .snapshots import SnapshotService
from .subscription import Subscription, SubscriptionFilter


class InProcessTransport:
    """SyncTransport bound directly to a channel in the same process.

    Used by embedded clients (kiosks, the manager dashboard worker) and by
    tests that drive a SyncClient without a network.
    """

    def __init__(
        self,
        channel: RealtimeSyncChannel,
        dispatcher: CommandDispatcher,
        snapshots: SnapshotService,
        identity: Identity,
        event_filter: SubscriptionFilter,
    ):
        self._channel = channel
        self._dispatcher = dispatcher
        self._snapshots = snapshots
        self._identity = identity
        self._filter = event_filter
        self._sub: Optional[Subscription] = None

    def connect(self, cursor: dict[str, int], epoch: Optional[str] = None) -> None:
        self.close()
        try:
            self._sub = self._channel.subscribe(self._filter, cursor=cursor, epoch=epoch)
        except ChannelClosed as e:
            raise TransportError(str(e)) from e

    def receive(self, timeout: Optional[float] = None) -> Optional[Event]:
        if self._sub is None:
            raise TransportError("not connected")
        try:
            return self._sub.get(timeout=timeout)
        except ChannelClosed as e:
            self._sub = None
            raise TransportError(str(e)) from e

    def send(self, command: str, payload: dict, command_id: str) -> CommandResult:
        if self._sub is None:
            raise TransportError("not connected")
        try:
            return self._dispatcher.dispatch(self._identity, command, payload, command_id=command_id)
        except TransientError as e:
            raise TransportError(str(e)) from e

    def fetch_snapshot(self) -> dict:
        try:
            if self._filter.team_id:
                return self._snapshots.team_status(self._filter.team_id).to_dict()
            return self._snapshots.current_status(self._filter.worker_id).to_dict()
        except TransientError as e:
            raise TransportError(str(e)) from e

    def close(self) -> None:
        if self._sub is not None:
            self._channel.unsubscribe(self._sub)
            self._sub = None
