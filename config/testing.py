import os

DB_CONFIG = {
    "host": os.getenv("DB_HOST", "localhost"),
    "port": int(os.getenv("DB_PORT", "3306")),
    "user": os.getenv("DB_USER", "root"),
    "password": os.getenv("DB_PASSWORD", ""),
    "database": os.getenv("DB_NAME", "municipal_attendance_test"),
}

MQTT_CONFIG = {
    "enabled": False,
    "broker": "localhost",
    "port": 1883,
    "username": None,
    "password": None,
    "base_topic": "municipal_attendance/test",
}

DEBUG = False
TESTING = True
LOG_LEVEL = "WARNING"

AUTO_INIT_DB = bool(int(os.getenv("AUTO_INIT_DB", "0")))
ENFORCE_INPUT_CAPS = True
AUDIT_LOG_LIMIT = 50
