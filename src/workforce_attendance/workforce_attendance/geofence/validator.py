from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Optional

from ..core.constants import BOUNDARY_EPSILON_M, DEFAULT_MAX_ACCURACY_TOLERANCE_M, EARTH_RADIUS_M
from ..core.exceptions import ValidationError
from .model import GeofenceResult, GeofenceZone, Position


def haversine_meters(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two lat/lng points, in meters."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lng2 - lng1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def check_position(position: Position) -> Position:
    if not -90.0 <= position.lat <= 90.0:
        raise ValidationError("Latitude must be within [-90, 90]", code="INVALID_POSITION")
    if not -180.0 <= position.lng <= 180.0:
        raise ValidationError("Longitude must be within [-180, 180]", code="INVALID_POSITION")
    if position.accuracy < 0 or math.isnan(position.accuracy):
        raise ValidationError("Accuracy must be >= 0", code="INVALID_POSITION")
    return position


def check_zone(zone: GeofenceZone) -> GeofenceZone:
    if not -90.0 <= zone.center_lat <= 90.0 or not -180.0 <= zone.center_lng <= 180.0:
        raise ValidationError(f"Zone {zone.workplace_id} has an invalid center", code="INVALID_ZONE")
    if not zone.radius_meters > 0:
        raise ValidationError(f"Zone {zone.workplace_id} must have a positive radius", code="INVALID_ZONE")
    return zone


@dataclass(frozen=True)
class GeofenceValidator:
    """Decides whether a reported position falls inside a workplace zone.

    The margin added to the radius is the reported GPS accuracy, capped at
    ``max_accuracy_tolerance_m`` so an inflated accuracy value cannot widen the
    fence arbitrarily. When ``fixed_tolerance_m`` is set it replaces the
    accuracy-based margin entirely.
    """

    max_accuracy_tolerance_m: float = DEFAULT_MAX_ACCURACY_TOLERANCE_M
    fixed_tolerance_m: Optional[float] = None

    def tolerance_for(self, position: Position) -> float:
        if self.fixed_tolerance_m is not None:
            return max(0.0, float(self.fixed_tolerance_m))
        return min(max(0.0, position.accuracy), max(0.0, self.max_accuracy_tolerance_m))

    def validate(self, position: Position, zone: GeofenceZone) -> GeofenceResult:
        check_position(position)
        check_zone(zone)

        distance = haversine_meters(position.lat, position.lng, zone.center_lat, zone.center_lng)
        tolerance = self.tolerance_for(position)
        inside = distance <= zone.radius_meters + tolerance + BOUNDARY_EPSILON_M
        return GeofenceResult(
            inside=inside,
            distance_meters=distance,
            tolerance_meters=tolerance,
            workplace_id=zone.workplace_id,
        )

    def best_match(self, position: Position, zones: Iterable[GeofenceZone]) -> Optional[GeofenceResult]:
        """Result for the zone whose boundary is closest (an inside match wins)."""

        best: Optional[GeofenceResult] = None
        best_overshoot = math.inf
        for zone in zones:
            result = self.validate(position, zone)
            overshoot = result.distance_meters - zone.radius_meters
            if best is None or (result.inside and not best.inside) or (
                result.inside == best.inside and overshoot < best_overshoot
            ):
                best, best_overshoot = result, overshoot
        return best
