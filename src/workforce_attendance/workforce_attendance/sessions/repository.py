from __future__ import annotations

from dataclasses import replace
from typing import Iterable, Optional, Protocol, Sequence

from ..core.exceptions import ConcurrentUpdate
from .model import AttendanceSession


class SessionRepository(Protocol):
    def create(self, session: AttendanceSession) -> None:
        """Insert an open session.

        Must be atomic with respect to the one-open-session-per-worker rule:
        raises SessionConflict when the worker already has a non-CLOSED session.
        """

        raise NotImplementedError

    def delete(self, session_id: str) -> bool:
        """Remove a session whose punch-in failed part way."""

        raise NotImplementedError

    def get(self, session_id: str) -> Optional[AttendanceSession]:
        raise NotImplementedError

    def get_open_for_worker(self, worker_id: str) -> Optional[AttendanceSession]:
        raise NotImplementedError

    def update(self, session: AttendanceSession, *, expected_version: int) -> bool:
        """Persist ``session`` only if the stored version still equals ``expected_version``."""

        raise NotImplementedError

    def list_for_worker(self, worker_id: str, *, limit: int) -> Sequence[AttendanceSession]:
        raise NotImplementedError

    def list_open_for_workers(self, worker_ids: Iterable[str]) -> Sequence[AttendanceSession]:
        raise NotImplementedError


def save_changes(repo: SessionRepository, session: AttendanceSession, **changes) -> AttendanceSession:
    """Write ``changes`` on top of ``session`` and bump its version.

    Raises ConcurrentUpdate when another writer got there first; the caller's
    read is stale and the command must be retried from a fresh read.
    """

    updated = replace(session, version=session.version + 1, **changes)
    if not repo.update(updated, expected_version=session.version):
        raise ConcurrentUpdate(f"Session {session.session_id} was modified concurrently")
    return updated
