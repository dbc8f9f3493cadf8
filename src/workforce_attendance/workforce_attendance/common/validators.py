from __future__ import annotations

import math
from typing import Any, Mapping, Optional

from ..core.enums import ApprovalKind, BreakType
from ..core.exceptions import ValidationError
from ..geofence.model import Position


def require_non_empty(value: Optional[str], field_name: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{field_name} is required")
    return str(value).strip()


def optional_text(value: Any, *, max_len: int = 500) -> Optional[str]:
    text = ("" if value is None else str(value)).strip()
    if not text:
        return None
    return text[:max_len]


def require_float(value: Any, field_name: str) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} must be a number", code="INVALID_POSITION")
    if math.isnan(number) or math.isinf(number):
        raise ValidationError(f"{field_name} must be finite", code="INVALID_POSITION")
    return number


def require_position_fields(data: Optional[Mapping[str, Any]]) -> tuple[float, float, float]:
    """Pull (lat, lng, accuracy) out of a request body. Accuracy defaults to 0."""

    if not isinstance(data, Mapping):
        raise ValidationError("position is required", code="INVALID_POSITION")
    lat = require_float(data.get("lat", data.get("latitude")), "lat")
    lng = require_float(data.get("lng", data.get("longitude")), "lng")
    raw_accuracy = data.get("accuracy")
    accuracy = 0.0 if raw_accuracy in (None, "") else require_float(raw_accuracy, "accuracy")
    return lat, lng, accuracy


def parse_break_type(value: Any) -> BreakType:
    try:
        return BreakType(str(value or "").strip().upper())
    except ValueError:
        raise ValidationError(f"Unknown break type: {value!r}")


def _to_upper_snake(raw: str) -> str:
    if "_" in raw or raw.isupper():
        return raw.upper()
    return "".join(f"_{c}" if c.isupper() and i else c for i, c in enumerate(raw)).upper()


def parse_approval_kind(value: Any) -> ApprovalKind:
    # Accept both LATE_ARRIVAL and LateArrival spellings.
    try:
        return ApprovalKind(_to_upper_snake(str(value or "").strip()))
    except ValueError:
        raise ValidationError(f"Unknown approval kind: {value!r}")


def parse_position(data: Optional[Mapping[str, Any]]) -> Position:
    """Position from ``{"position": {...}}`` or from top-level lat/lng fields."""
    if isinstance(data, Mapping) and isinstance(data.get("position"), Mapping):
        data = data["position"]
    lat, lng, accuracy = require_position_fields(data)
    return Position(lat=lat, lng=lng, accuracy=accuracy)


def parse_approved(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value if value is not None else "").strip().lower()
    if text in {"1", "true", "yes", "approve", "approved"}:
        return True
    if text in {"0", "false", "no", "reject", "rejected"}:
        return False
    raise ValidationError("approved must be true or false")


def parse_limit(value: Any, *, default: int, maximum: int = 200) -> int:
    if value in (None, ""):
        return default
    try:
        limit = int(value)
    except (TypeError, ValueError):
        raise ValidationError("limit must be an integer")
    return min(max(1, limit), maximum)


def first_present(payload: Mapping[str, Any], *names: str) -> Any:
    """First non-None value among ``names``; clients send camelCase or snake_case."""
    for name in names:
        if payload.get(name) is not None:
            return payload[name]
    return None
