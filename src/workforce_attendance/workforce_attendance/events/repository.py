from __future__ import annotations

from typing import Optional, Protocol, Sequence

from .model import Event, EventDraft


class EventLog(Protocol):
    """Per-worker ordered event log backing replay.

    ``append`` assigns the next sequence number for the draft's worker; numbers
    are strictly increasing per worker. ``since`` raises ResyncRequired when the
    requested cursor is older than the retention window.

    ``epoch`` names one run of the log. Sequence numbers are only comparable
    within an epoch; a log that starts over from 1 must report a new one.
    """

    epoch: str

    def append(self, draft: EventDraft, *, team_id: Optional[str]) -> Event:
        raise NotImplementedError

    def since(self, worker_id: str, after_sequence: int) -> Sequence[Event]:
        raise NotImplementedError

    def latest_sequence(self, worker_id: str) -> int:
        raise NotImplementedError
