from __future__ import annotations

from typing import Optional, Protocol, Sequence

from .model import GeofenceZone


class ZoneRepository(Protocol):
    """Read-only access to workplace zones (owned by workplace configuration)."""

    def get_for_workplace(self, workplace_id: str) -> Sequence[GeofenceZone]:
        """A workplace may publish several approved circles."""

        raise NotImplementedError

    def list_all(self) -> Sequence[GeofenceZone]:
        raise NotImplementedError

    def get_workplace_name(self, workplace_id: str) -> Optional[str]:
        raise NotImplementedError
