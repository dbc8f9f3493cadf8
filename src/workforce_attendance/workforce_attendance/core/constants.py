"""Constants and defaults.

Note: Keep constants here to avoid magic numbers spread across code.
"""

EARTH_RADIUS_M = 6_371_000.0

# Float slack when comparing a distance with the zone boundary.
BOUNDARY_EPSILON_M = 1e-6

DEFAULT_MAX_ACCURACY_TOLERANCE_M = 50.0
DEFAULT_EVENT_RETENTION_PER_WORKER = 500
DEFAULT_SUBSCRIBER_QUEUE_SIZE = 1000
DEFAULT_KEEPALIVE_SECONDS = 15.0

DEFAULT_RECONNECT_BASE_DELAY_S = 0.5
DEFAULT_RECONNECT_MAX_DELAY_S = 30.0
DEFAULT_RECONNECT_JITTER = 0.2

DEFAULT_GAP_TIMEOUT_S = 5.0

DEFAULT_HISTORY_LIMIT = 30
DEFAULT_VERSION_RETRIES = 3
