from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Position:
    """A GPS fix reported by a client. ``accuracy`` is the 1-sigma radius in meters."""

    lat: float
    lng: float
    accuracy: float = 0.0

    def to_dict(self) -> dict:
        return {"lat": self.lat, "lng": self.lng, "accuracy": self.accuracy}


@dataclass(frozen=True)
class GeofenceZone:
    """Approved workplace circle. Reference data owned by workplace configuration."""

    workplace_id: str
    center_lat: float
    center_lng: float
    radius_meters: float
    name: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "workplace_id": self.workplace_id,
            "name": self.name,
            "center_lat": self.center_lat,
            "center_lng": self.center_lng,
            "radius_meters": self.radius_meters,
        }


@dataclass(frozen=True)
class GeofenceResult:
    inside: bool
    distance_meters: float
    tolerance_meters: float = 0.0
    workplace_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "inside": self.inside,
            "distance_meters": round(self.distance_meters, 3),
            "tolerance_meters": self.tolerance_meters,
            "workplace_id": self.workplace_id,
        }
