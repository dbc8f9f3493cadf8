from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    """Roles carried by the identity the gateway forwards."""

    WORKER = "worker"
    MANAGER = "manager"
    ADMIN = "admin"


class SessionStatus(str, Enum):
    """Lifecycle of one work period.

    PENDING_APPROVAL is never stored; it is the display status of an open
    session whose pending_approval flag is set.
    """

    ACTIVE = "ACTIVE"
    ON_BREAK = "ON_BREAK"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    CLOSED = "CLOSED"


class BreakType(str, Enum):
    LUNCH = "LUNCH"
    COFFEE = "COFFEE"
    REST = "REST"
    OTHER = "OTHER"


class ApprovalKind(str, Enum):
    LATE_ARRIVAL = "LATE_ARRIVAL"
    MISSED_GEOFENCE = "MISSED_GEOFENCE"
    MANUAL_OVERRIDE = "MANUAL_OVERRIDE"
    EARLY_LEAVE = "EARLY_LEAVE"


class RequestStatus(str, Enum):
    """Approval request lifecycle. APPROVED and REJECTED are terminal."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class EventType(str, Enum):
    SESSION_STARTED = "SessionStarted"
    SESSION_CLOSED = "SessionClosed"
    SESSION_FORCE_CLOSED = "SessionForceClosed"
    BREAK_STARTED = "BreakStarted"
    BREAK_ENDED = "BreakEnded"
    APPROVAL_REQUESTED = "ApprovalRequested"
    APPROVAL_DECIDED = "ApprovalDecided"


class ConnectionState(str, Enum):
    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"
