import os

SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")

DB_CONFIG = {
    "host": os.getenv("DB_HOST", "localhost"),
    "port": int(os.getenv("DB_PORT", "3306")),
    "user": os.getenv("DB_USER", "root"),
    "password": os.getenv("DB_PASSWORD", ""),
    "database": os.getenv("DB_NAME", "workforce_attendance"),
}

DEBUG = True
LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG")

# If enabled, app will apply schema.sql on startup (idempotent: CREATE IF NOT EXISTS)
AUTO_INIT_DB = bool(int(os.getenv("AUTO_INIT_DB", "1")))

# Geofence: margin added to the zone radius is the reported GPS accuracy, capped here.
GEOFENCE_MAX_ACCURACY_TOLERANCE_M = float(os.getenv("GEOFENCE_MAX_ACCURACY_TOLERANCE_M", "50"))
# When set, this fixed margin replaces the reported accuracy.
GEOFENCE_FIXED_TOLERANCE_M = os.getenv("GEOFENCE_FIXED_TOLERANCE_M") or None

# Replay window: events kept per worker for reconnecting clients.
EVENT_RETENTION_PER_WORKER = int(os.getenv("EVENT_RETENTION_PER_WORKER", "500"))
# "memory" or "mysql"
EVENT_STORE = os.getenv("EVENT_STORE", "memory")

SYNC_SUBSCRIBER_QUEUE_SIZE = int(os.getenv("SYNC_SUBSCRIBER_QUEUE_SIZE", "1000"))
SYNC_KEEPALIVE_SECONDS = float(os.getenv("SYNC_KEEPALIVE_SECONDS", "15"))

# Client reconnect backoff bounds (seconds) and jitter fraction.
RECONNECT_BASE_DELAY_S = float(os.getenv("RECONNECT_BASE_DELAY_S", "0.5"))
RECONNECT_MAX_DELAY_S = float(os.getenv("RECONNECT_MAX_DELAY_S", "30"))
RECONNECT_JITTER = float(os.getenv("RECONNECT_JITTER", "0.2"))

PROJECTOR_GAP_TIMEOUT_S = float(os.getenv("PROJECTOR_GAP_TIMEOUT_S", "5"))
