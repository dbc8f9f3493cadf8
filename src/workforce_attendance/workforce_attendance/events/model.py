from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from ..common.datetime_utils import parse_iso, to_iso
from ..core.enums import EventType


def worker_channel(worker_id: str) -> str:
    return f"worker:{worker_id}"


def team_channel(team_id: str) -> str:
    return f"team:{team_id}"


@dataclass(frozen=True)
class EventDraft:
    """A state transition before the channel assigns its sequence number."""

    type: EventType
    worker_id: str
    payload: dict[str, Any]
    timestamp: datetime


@dataclass(frozen=True)
class Event:
    type: EventType
    worker_id: str
    sequence: int
    payload: dict[str, Any] = field(default_factory=dict)
    timestamp: Optional[datetime] = None
    team_id: Optional[str] = None
    # Identifies the log run that numbered this event.
    epoch: Optional[str] = None

    @property
    def channels(self) -> list[str]:
        out = [worker_channel(self.worker_id)]
        if self.team_id:
            out.append(team_channel(self.team_id))
        return out

    @property
    def event_id(self) -> str:
        return f"{self.worker_id}:{self.sequence}"

    def to_message(self) -> dict:
        return {
            "type": self.type.value,
            "sequence": self.sequence,
            "worker_id": self.worker_id,
            "team_id": self.team_id,
            "payload": self.payload,
            "timestamp": to_iso(self.timestamp),
            "epoch": self.epoch,
        }

    @classmethod
    def from_message(cls, data: dict) -> "Event":
        return cls(
            type=EventType(data["type"]),
            worker_id=str(data["worker_id"]),
            sequence=int(data["sequence"]),
            payload=dict(data.get("payload") or {}),
            timestamp=parse_iso(data.get("timestamp")),
            team_id=data.get("team_id"),
            epoch=data.get("epoch"),
        )
