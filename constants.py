import os

REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", 6379))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD", None)

ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv(
        "ALLOWED_ORIGINS",
        "http://127.0.0.1:5500,https://package.vanced.media,https://vanced.media,https://beta.vanced.media",
    ).split(",")
    if origin.strip()
]

# Presentation only, carries no authorization weight
ADMIN_PARTICIPANT_PREFIX = os.getenv("ADMIN_PARTICIPANT_PREFIX", "admin_")

IDLE_TIMEOUT_SECONDS = int(os.getenv("IDLE_TIMEOUT_SECONDS", 300))
SWEEP_INTERVAL_SECONDS = int(os.getenv("SWEEP_INTERVAL_SECONDS", 60))
SEND_TIMEOUT_SECONDS = float(os.getenv("SEND_TIMEOUT_SECONDS", 5))

ROOM_INFO_SUFFIX = "/api/room-info"

BANNED_IPS = [ip.strip() for ip in os.getenv("BANNED_IPS", "").split(",") if ip.strip()]
BANNED_PARTICIPANT_IDS = [pid.strip() for pid in os.getenv("BANNED_PARTICIPANT_IDS", "").split(",") if pid.strip()]
BAN_MESSAGE = os.getenv("BAN_MESSAGE", "This device is not allowed.")
