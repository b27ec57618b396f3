from datetime import date
from typing import TypedDict

from backend.config import UPCOMING_LIMIT
from database.db import get_center_schedules_for_date, get_upcoming_center_schedules


class ExamDayStatus(TypedDict):
    is_exam_day: bool
    next_exam_date: str | None
    today_schedules: list[dict]
    upcoming_schedules: list[dict]


def _date_str(value: date | str) -> str:
    if isinstance(value, date):
        return value.strftime("%Y-%m-%d")
    return value


def neutral_status() -> ExamDayStatus:
    return {
        "is_exam_day": False,
        "next_exam_date": None,
        "today_schedules": [],
        "upcoming_schedules": [],
    }


def admin_status() -> ExamDayStatus:
    # Admins supervise every center and are never locked out.
    return {
        "is_exam_day": True,
        "next_exam_date": None,
        "today_schedules": [],
        "upcoming_schedules": [],
    }


def resolve_exam_day(exam_center_id: int, today: date | str) -> ExamDayStatus:
    """
    Decide whether `today` is an active exam day for the center.

    The caller supplies the effective date; nothing here reads the wall clock.
    """
    today_str = _date_str(today)
    today_schedules = get_center_schedules_for_date(exam_center_id, today_str)
    upcoming = get_upcoming_center_schedules(exam_center_id, today_str, limit=UPCOMING_LIMIT)

    if today_schedules:
        return {
            "is_exam_day": True,
            "next_exam_date": today_str,
            "today_schedules": today_schedules,
            "upcoming_schedules": upcoming,
        }

    return {
        "is_exam_day": False,
        "next_exam_date": upcoming[0]["exam_date"] if upcoming else None,
        "today_schedules": [],
        "upcoming_schedules": upcoming,
    }


def not_available_message(status: ExamDayStatus) -> str:
    if status["next_exam_date"]:
        return (
            f"Question Paper Tracking will be available on {status['next_exam_date']}. "
            "Please come back on the exam date."
        )
    return "No upcoming exams scheduled for your exam center."
