import os

DB_CONFIG = {
    "host": os.getenv("DB_HOST", "localhost"),
    "port": int(os.getenv("DB_PORT", "3306")),
    "user": os.getenv("DB_USER", "root"),
    "password": os.getenv("DB_PASSWORD", ""),
    "database": os.getenv("DB_NAME", "municipal_attendance"),
}

MQTT_CONFIG = {
    "enabled": bool(int(os.getenv("MQTT_ENABLED", "1"))),
    "broker": os.getenv("MQTT_BROKER", "localhost"),
    "port": int(os.getenv("MQTT_PORT", "1883")),
    "username": os.getenv("MQTT_USERNAME") or None,
    "password": os.getenv("MQTT_PASSWORD") or None,
    "base_topic": os.getenv("MQTT_BASE_TOPIC", "municipal_attendance"),
}

DEBUG = False
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

AUTO_INIT_DB = bool(int(os.getenv("AUTO_INIT_DB", "0")))
ENFORCE_INPUT_CAPS = bool(int(os.getenv("ENFORCE_INPUT_CAPS", "1")))
AUDIT_LOG_LIMIT = int(os.getenv("AUDIT_LOG_LIMIT", "100"))
