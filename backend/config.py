import os
import secrets
from datetime import time
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parents[1]

DB_PATH = Path(os.getenv("EXAMTRACK_DB_PATH", BASE_DIR / "database" / "examtrack.db"))
UPLOADS_DIR = Path(os.getenv("EXAMTRACK_UPLOADS_DIR", BASE_DIR / "uploads"))
TRACKER_UPLOADS_SUBDIR = "exam-tracker"
ADMIN_USERNAME = os.getenv("EXAMTRACK_ADMIN_USERNAME", "admin").strip() or "admin"
ADMIN_PASSWORD = os.getenv("EXAMTRACK_ADMIN_PASSWORD", "admin123").strip() or "admin123"
SIGNING_KEY = os.getenv("EXAMTRACK_SIGNING_KEY", "").strip() or secrets.token_urlsafe(32)
AUTH_TOKEN_TTL_SECONDS = int(os.getenv("EXAMTRACK_AUTH_TOKEN_TTL_SECONDS", "43200"))
TIMEZONE = os.getenv("EXAMTRACK_TIMEZONE", "Asia/Kolkata").strip() or "Asia/Kolkata"
LOG_LEVEL = os.getenv("EXAMTRACK_LOG_LEVEL", "INFO").strip().upper() or "INFO"


def _parse_bool(value: str | None, fallback: bool) -> bool:
    if value is None:
        return fallback
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return fallback


def _parse_csv(value: str | None, fallback: list[str]) -> list[str]:
    if not value:
        return fallback
    parsed = [item.strip() for item in value.split(",") if item.strip()]
    return parsed or fallback


def _parse_time(value: str | None, fallback: time) -> time:
    if not value:
        return fallback
    parts = value.split(":")
    try:
        hh = int(parts[0])
        mm = int(parts[1]) if len(parts) > 1 else 0
        return time(hh, mm)
    except (ValueError, IndexError):
        return fallback


def _window(name: str, start: time, end: time) -> tuple[time, time]:
    return (
        _parse_time(os.getenv(f"EXAMTRACK_{name}_START"), start),
        _parse_time(os.getenv(f"EXAMTRACK_{name}_END"), end),
    )


CORS_ALLOW_ORIGINS = _parse_csv(
    os.getenv("EXAMTRACK_CORS_ALLOW_ORIGINS"),
    ["http://localhost:3000", "http://127.0.0.1:3000"],
)
CORS_ALLOW_METHODS = _parse_csv(
    os.getenv("EXAMTRACK_CORS_ALLOW_METHODS"),
    ["GET", "POST", "OPTIONS"],
)
CORS_ALLOW_HEADERS = _parse_csv(
    os.getenv("EXAMTRACK_CORS_ALLOW_HEADERS"),
    ["Authorization", "Content-Type", "Accept"],
)
CORS_ALLOW_CREDENTIALS = _parse_bool(os.getenv("EXAMTRACK_CORS_ALLOW_CREDENTIALS"), True)

# Operator override for make-up days and field testing. Server-side only.
BYPASS_TIME_CHECK = _parse_bool(os.getenv("EXAMTRACK_BYPASS_TIME_CHECK"), False)

# Tracker time windows, retuned per exam cycle through the environment.
TREASURY_ARRIVAL_WINDOW = _window("TREASURY_ARRIVAL", time(7, 30), time(8, 40))
CUSTODIAN_HANDOVER_WINDOW = _window("CUSTODIAN_HANDOVER", time(7, 30), time(8, 40))
OPENING_MORNING_WINDOW = _window("OPENING_MORNING", time(8, 30), time(9, 0))
OPENING_AFTERNOON_WINDOW = _window("OPENING_AFTERNOON", time(13, 30), time(14, 0))
PACKING_MORNING_CORE_WINDOW = _window("PACKING_MORNING_CORE", time(12, 0), time(14, 0))
PACKING_MORNING_VOCATIONAL_WINDOW = _window("PACKING_MORNING_VOCATIONAL", time(11, 0), time(14, 0))
PACKING_AFTERNOON_CORE_WINDOW = _window("PACKING_AFTERNOON_CORE", time(17, 0), time(19, 0))
PACKING_AFTERNOON_VOCATIONAL_WINDOW = _window("PACKING_AFTERNOON_VOCATIONAL", time(16, 0), time(19, 0))
DELIVERY_MORNING_CORE_WINDOW = _window("DELIVERY_MORNING_CORE", time(12, 0), time(14, 0))
DELIVERY_MORNING_VOCATIONAL_WINDOW = _window("DELIVERY_MORNING_VOCATIONAL", time(11, 0), time(14, 0))
DELIVERY_AFTERNOON_CORE_WINDOW = _window("DELIVERY_AFTERNOON_CORE", time(17, 0), time(19, 0))
DELIVERY_AFTERNOON_VOCATIONAL_WINDOW = _window("DELIVERY_AFTERNOON_VOCATIONAL", time(16, 0), time(19, 0))

# Exams starting at or after this time belong to the afternoon shift.
AFTERNOON_SHIFT_START = _parse_time(os.getenv("EXAMTRACK_AFTERNOON_SHIFT_START"), time(12, 0))
DEFAULT_EXAM_START = _parse_time(os.getenv("EXAMTRACK_DEFAULT_EXAM_START"), time(9, 0))
DEFAULT_CORE_EXAM_END = _parse_time(os.getenv("EXAMTRACK_DEFAULT_CORE_EXAM_END"), time(12, 0))
DEFAULT_VOCATIONAL_EXAM_END = _parse_time(os.getenv("EXAMTRACK_DEFAULT_VOCATIONAL_EXAM_END"), time(11, 0))

MAX_IMAGE_BYTES = max(1, int(os.getenv("EXAMTRACK_MAX_IMAGE_BYTES", str(10 * 1024 * 1024))))
ALLOWED_IMAGE_TYPES = ("image/jpeg", "image/jpg", "image/png", "image/webp")
UPCOMING_LIMIT = max(1, int(os.getenv("EXAMTRACK_UPCOMING_LIMIT", "10")))
