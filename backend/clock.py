from datetime import datetime
from zoneinfo import ZoneInfo

from backend.config import TIMEZONE

SERVER_TZ = ZoneInfo(TIMEZONE)


def current_time() -> datetime:
    """Authoritative server clock; routes receive it as a dependency."""
    return datetime.now(SERVER_TZ)


def today_str(now: datetime) -> str:
    return now.strftime("%Y-%m-%d")
