from datetime import datetime

from fastapi import APIRouter, Depends

from backend.clock import current_time, today_str
from backend.config import BYPASS_TIME_CHECK
from backend.errors import InvalidSubmissionError, NotAuthorizedError
from backend.security import is_admin, require_session, session_user_id
from backend.services.exam_day import admin_status, neutral_status, resolve_exam_day
from backend.services.event_types import Shift, parse_event_type
from backend.services.time_windows import check_time_window, get_tracker_time_windows
from database.db import get_center_schedules_for_date, get_exam_center_for_superintendent, get_schedules_by_date

router = APIRouter(prefix="/exam-scheduler", dependencies=[Depends(require_session)])


def _schedules_for(session: dict, exam_date: str) -> list[dict]:
    if is_admin(session):
        return get_schedules_by_date(exam_date)
    center = get_exam_center_for_superintendent(session_user_id(session))
    if not center:
        raise NotAuthorizedError(
            "Access denied. You must be assigned as a Center Superintendent to access "
            "Question Paper Tracking features. Contact your admin."
        )
    return get_center_schedules_for_date(center["id"], exam_date)


@router.get("/exam-day-status")
def exam_day_status(
    session: dict = Depends(require_session),
    now: datetime = Depends(current_time),
):
    if is_admin(session):
        return {"success": True, "data": admin_status()}

    center = get_exam_center_for_superintendent(session_user_id(session))
    if not center:
        return {"success": True, "data": neutral_status()}

    return {"success": True, "data": resolve_exam_day(center["id"], today_str(now))}


@router.get("/time-windows")
def time_windows(
    date: str | None = None,
    shift: Shift = Shift.MORNING,
    session: dict = Depends(require_session),
    now: datetime = Depends(current_time),
):
    exam_date = date or today_str(now)
    schedules = _schedules_for(session, exam_date)
    category, windows = get_tracker_time_windows(schedules, shift, exam_date=exam_date)

    shift_windows = {}
    for each in (Shift.MORNING, Shift.AFTERNOON):
        each_category, each_windows = get_tracker_time_windows(schedules, each, exam_date=exam_date)
        shift_windows[each.value] = {
            "subject_category": each_category.value,
            "time_windows": each_windows,
        }

    return {
        "success": True,
        "data": {
            "exam_date": exam_date,
            "shift": shift.value,
            "subject_category": category.value,
            "schedules": schedules,
            "time_windows": windows,
            "shift_windows": shift_windows,
            "bypass_time_check": BYPASS_TIME_CHECK,
        },
    }


@router.get("/validate-time")
def validate_time(
    event_type: str,
    date: str | None = None,
    session: dict = Depends(require_session),
    now: datetime = Depends(current_time),
):
    """Advisory pre-check used before the camera opens; submission re-validates."""
    parsed = parse_event_type(event_type)
    if parsed is None:
        raise InvalidSubmissionError(f"Invalid event type: {event_type}")

    exam_date = date or today_str(now)
    schedules = _schedules_for(session, exam_date)
    # raises NoScheduleError for an unscheduled date
    get_tracker_time_windows(schedules, exam_date=exam_date)
    result = check_time_window(parsed, schedules, now, bypass=BYPASS_TIME_CHECK)
    return {"success": True, "data": result}
