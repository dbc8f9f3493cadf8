from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from . import constants


@dataclass(frozen=True)
class TrackerSettings:
    """Options the core consumes, collected from the active settings module."""

    max_accuracy_tolerance_m: float = constants.DEFAULT_MAX_ACCURACY_TOLERANCE_M
    fixed_tolerance_m: Optional[float] = None
    event_retention_per_worker: int = constants.DEFAULT_EVENT_RETENTION_PER_WORKER
    event_store: str = "memory"
    subscriber_queue_size: int = constants.DEFAULT_SUBSCRIBER_QUEUE_SIZE
    keepalive_seconds: float = constants.DEFAULT_KEEPALIVE_SECONDS
    reconnect_base_delay_s: float = constants.DEFAULT_RECONNECT_BASE_DELAY_S
    reconnect_max_delay_s: float = constants.DEFAULT_RECONNECT_MAX_DELAY_S
    reconnect_jitter: float = constants.DEFAULT_RECONNECT_JITTER
    gap_timeout_s: float = constants.DEFAULT_GAP_TIMEOUT_S

    @classmethod
    def from_module(cls, settings) -> "TrackerSettings":
        fixed = getattr(settings, "GEOFENCE_FIXED_TOLERANCE_M", None)
        return cls(
            max_accuracy_tolerance_m=float(
                getattr(settings, "GEOFENCE_MAX_ACCURACY_TOLERANCE_M", constants.DEFAULT_MAX_ACCURACY_TOLERANCE_M)
            ),
            fixed_tolerance_m=float(fixed) if fixed not in (None, "") else None,
            event_retention_per_worker=int(
                getattr(settings, "EVENT_RETENTION_PER_WORKER", constants.DEFAULT_EVENT_RETENTION_PER_WORKER)
            ),
            event_store=str(getattr(settings, "EVENT_STORE", "memory")).lower(),
            subscriber_queue_size=int(
                getattr(settings, "SYNC_SUBSCRIBER_QUEUE_SIZE", constants.DEFAULT_SUBSCRIBER_QUEUE_SIZE)
            ),
            keepalive_seconds=float(getattr(settings, "SYNC_KEEPALIVE_SECONDS", constants.DEFAULT_KEEPALIVE_SECONDS)),
            reconnect_base_delay_s=float(
                getattr(settings, "RECONNECT_BASE_DELAY_S", constants.DEFAULT_RECONNECT_BASE_DELAY_S)
            ),
            reconnect_max_delay_s=float(
                getattr(settings, "RECONNECT_MAX_DELAY_S", constants.DEFAULT_RECONNECT_MAX_DELAY_S)
            ),
            reconnect_jitter=float(getattr(settings, "RECONNECT_JITTER", constants.DEFAULT_RECONNECT_JITTER)),
            gap_timeout_s=float(getattr(settings, "PROJECTOR_GAP_TIMEOUT_S", constants.DEFAULT_GAP_TIMEOUT_S)),
        )
