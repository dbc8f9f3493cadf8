from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional, Protocol, Sequence

from .model import Break


class BreakRepository(Protocol):
    def create(self, brk: Break) -> None:
        """Insert an open break; raises BreakAlreadyOpen if the session already has one."""

        raise NotImplementedError

    def get_open_for_session(self, session_id: str) -> Optional[Break]:
        raise NotImplementedError

    def close(self, break_id: str, *, end_time: datetime) -> bool:
        """Set end_time only while the break is still open."""

        raise NotImplementedError

    def reopen(self, break_id: str) -> bool:
        """Clear end_time again; undoes a close whose command failed afterwards."""

        raise NotImplementedError

    def list_for_session(self, session_id: str) -> Sequence[Break]:
        raise NotImplementedError

    def list_open_for_sessions(self, session_ids: Iterable[str]) -> Sequence[Break]:
        raise NotImplementedError
