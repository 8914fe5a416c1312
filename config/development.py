import os

DB_CONFIG = {
    "host": os.getenv("DB_HOST", "localhost"),
    "port": int(os.getenv("DB_PORT", "3306")),
    "user": os.getenv("DB_USER", "root"),
    "password": os.getenv("DB_PASSWORD", ""),
    "database": os.getenv("DB_NAME", "municipal_attendance"),
}

# Cross-process change notifications; the in-process feed is used when disabled.
MQTT_CONFIG = {
    "enabled": bool(int(os.getenv("MQTT_ENABLED", "0"))),
    "broker": os.getenv("MQTT_BROKER", "localhost"),
    "port": int(os.getenv("MQTT_PORT", "1883")),
    "username": os.getenv("MQTT_USERNAME") or None,
    "password": os.getenv("MQTT_PASSWORD") or None,
    "base_topic": os.getenv("MQTT_BASE_TOPIC", "municipal_attendance/dev"),
}

DEBUG = True
LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG")

# If enabled, bootstrap applies schema.sql (idempotent: CREATE IF NOT EXISTS)
AUTO_INIT_DB = bool(int(os.getenv("AUTO_INIT_DB", "1")))

# Reject overtime figures above the entry-form caps (31 / 10 days).
ENFORCE_INPUT_CAPS = bool(int(os.getenv("ENFORCE_INPUT_CAPS", "1")))
AUDIT_LOG_LIMIT = int(os.getenv("AUDIT_LOG_LIMIT", "100"))
