import os

SECRET_KEY = "test-secret"

DB_CONFIG = {
    "host": os.getenv("DB_HOST", "localhost"),
    "port": int(os.getenv("DB_PORT", "3306")),
    "user": os.getenv("DB_USER", "root"),
    "password": os.getenv("DB_PASSWORD", ""),
    "database": os.getenv("DB_NAME", "workforce_attendance_test"),
}

DEBUG = False
TESTING = True
LOG_LEVEL = "WARNING"

AUTO_INIT_DB = bool(int(os.getenv("AUTO_INIT_DB", "0")))

GEOFENCE_MAX_ACCURACY_TOLERANCE_M = 50.0
GEOFENCE_FIXED_TOLERANCE_M = None
EVENT_RETENTION_PER_WORKER = 50
EVENT_STORE = "memory"
SYNC_SUBSCRIBER_QUEUE_SIZE = 100
SYNC_KEEPALIVE_SECONDS = 0.05
RECONNECT_BASE_DELAY_S = 0.5
RECONNECT_MAX_DELAY_S = 30.0
RECONNECT_JITTER = 0.2
PROJECTOR_GAP_TIMEOUT_S = 5.0
