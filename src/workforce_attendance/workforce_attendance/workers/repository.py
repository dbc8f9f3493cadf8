from __future__ import annotations

from typing import Optional, Protocol, Sequence

from .model import Worker


class WorkerRepository(Protocol):
    def get_by_id(self, worker_id: str) -> Optional[Worker]:
        raise NotImplementedError

    def list_team(self, team_id: str) -> Sequence[Worker]:
        raise NotImplementedError
