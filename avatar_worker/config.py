import os
from dotenv import load_dotenv

load_dotenv()

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD")

THUMBNAIL_QUEUE_NAME = os.getenv("THUMBNAIL_QUEUE_NAME", "queue:avatar_thumbnail_jobs")
THUMBNAIL_PROCESSING_QUEUE_NAME = os.getenv(
    "THUMBNAIL_PROCESSING_QUEUE_NAME", f"{THUMBNAIL_QUEUE_NAME}:processing"
)
THUMB_COUNT_CACHE_TTL = int(os.getenv("THUMB_COUNT_CACHE_TTL", "3600"))  # seconds
SERVE_TIME_KEY_PREFIX = os.getenv("SERVE_TIME_KEY_PREFIX", "avatar_serve_")
SERVE_TIME_APPLIED_TTL = int(os.getenv("SERVE_TIME_APPLIED_TTL", str(7 * 24 * 3600)))  # seconds

DRAIN_TIMEOUT_SECONDS = float(os.getenv("DRAIN_TIMEOUT_SECONDS", "0")) or None  # 0 = unbounded
DRAIN_SCHEDULE_INTERVAL = float(os.getenv("DRAIN_SCHEDULE_INTERVAL", "0"))  # 0 = scheduler disabled

HTTP_HOST = os.getenv("HTTP_HOST", "0.0.0.0")
HTTP_PORT = int(os.getenv("HTTP_PORT", "8000"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", "logs/app.log")
