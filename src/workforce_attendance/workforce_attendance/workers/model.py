from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..core.enums import Role


@dataclass(frozen=True)
class Worker:
    """Directory entry for a worker. Identity itself lives with the external provider."""

    worker_id: str
    full_name: str
    team_id: Optional[str]
    role: Role = Role.WORKER
    is_active: bool = True


@dataclass(frozen=True)
class Identity:
    """Verified caller, as forwarded by the gateway after bearer-token validation."""

    worker_id: str
    role: Role
    team_id: Optional[str] = None

    @property
    def is_manager(self) -> bool:
        return self.role in {Role.MANAGER, Role.ADMIN}

    def can_act_for(self, worker_id: str) -> bool:
        return self.is_manager or self.worker_id == worker_id
