import os

SECRET_KEY = os.getenv("SECRET_KEY", "please-set-SECRET_KEY")

DB_CONFIG = {
    "host": os.getenv("DB_HOST", "localhost"),
    "port": int(os.getenv("DB_PORT", "3306")),
    "user": os.getenv("DB_USER", "root"),
    "password": os.getenv("DB_PASSWORD", ""),
    "database": os.getenv("DB_NAME", "workforce_attendance"),
}

DEBUG = False
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

AUTO_INIT_DB = bool(int(os.getenv("AUTO_INIT_DB", "0")))

GEOFENCE_MAX_ACCURACY_TOLERANCE_M = float(os.getenv("GEOFENCE_MAX_ACCURACY_TOLERANCE_M", "50"))
GEOFENCE_FIXED_TOLERANCE_M = os.getenv("GEOFENCE_FIXED_TOLERANCE_M") or None

EVENT_RETENTION_PER_WORKER = int(os.getenv("EVENT_RETENTION_PER_WORKER", "500"))
EVENT_STORE = os.getenv("EVENT_STORE", "mysql")

SYNC_SUBSCRIBER_QUEUE_SIZE = int(os.getenv("SYNC_SUBSCRIBER_QUEUE_SIZE", "1000"))
SYNC_KEEPALIVE_SECONDS = float(os.getenv("SYNC_KEEPALIVE_SECONDS", "15"))

RECONNECT_BASE_DELAY_S = float(os.getenv("RECONNECT_BASE_DELAY_S", "0.5"))
RECONNECT_MAX_DELAY_S = float(os.getenv("RECONNECT_MAX_DELAY_S", "30"))
RECONNECT_JITTER = float(os.getenv("RECONNECT_JITTER", "0.2"))

PROJECTOR_GAP_TIMEOUT_S = float(os.getenv("PROJECTOR_GAP_TIMEOUT_S", "5"))
