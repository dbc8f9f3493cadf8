from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from ..common.datetime_utils import to_iso
from ..core.enums import BreakType


@dataclass(frozen=True)
class Break:
    break_id: str
    session_id: str
    break_type: BreakType
    start_time: datetime
    end_time: Optional[datetime] = None

    @property
    def is_open(self) -> bool:
        return self.end_time is None

    @property
    def duration(self) -> Optional[timedelta]:
        """Wall-clock elapsed time; never rounded."""
        if self.end_time is None:
            return None
        return self.end_time - self.start_time

    def to_dict(self) -> dict:
        duration = self.duration
        return {
            "break_id": self.break_id,
            "session_id": self.session_id,
            "type": self.break_type.value,
            "start_time": to_iso(self.start_time),
            "end_time": to_iso(self.end_time),
            "duration_seconds": duration.total_seconds() if duration is not None else None,
        }
