"""
Sequencing & admission guard for tracker submissions.

Five independent conditions must all hold before a step is accepted:
authorization, exam-day gate, sequential order, time-window membership and
no duplicate. They are evaluated in that order and the first failure is
reported. The ledger unique index still has the final word on duplicates.
"""

import logging
from datetime import datetime
from typing import TypedDict

from backend.errors import (
    DuplicateSubmissionError,
    NotAnExamDayError,
    NotAuthorizedError,
    OutsideTimeWindowError,
    StepOutOfOrderError,
)
from backend.services.exam_day import ExamDayStatus, not_available_message, resolve_exam_day
from backend.services.event_types import ExamTrackerEventType, predecessors
from backend.services.time_windows import TimeWindow, check_time_window
from database.db import (
    get_completed_event_types,
    get_exam_center_for_superintendent,
    get_user_by_id,
    tracker_event_exists,
)

logger = logging.getLogger(__name__)


class TrackerContext(TypedDict):
    user_id: int
    exam_center_id: int
    school_id: int
    school_name: str


class Admission(TypedDict):
    context: TrackerContext
    exam_day: ExamDayStatus
    time_window: TimeWindow


def resolve_superintendent(user_id: int) -> TrackerContext:
    user = get_user_by_id(user_id)
    if not user or not user["is_center_superintendent"]:
        raise NotAuthorizedError(
            "You must be assigned as a Center Superintendent to submit tracker events. Contact your admin."
        )

    center = get_exam_center_for_superintendent(user_id)
    if not center:
        raise NotAuthorizedError(
            "You must be associated with an active exam center to submit tracker events."
        )

    return {
        "user_id": user_id,
        "exam_center_id": center["id"],
        "school_id": center["school_id"],
        "school_name": center["school_name"],
    }


def require_exam_day(context: TrackerContext, exam_date: str, today: str) -> ExamDayStatus:
    """Submissions are only accepted for the server's today, and only on an exam day."""
    status = resolve_exam_day(context["exam_center_id"], today)
    if not status["is_exam_day"]:
        raise NotAnExamDayError(not_available_message(status), next_exam_date=status["next_exam_date"])
    if exam_date != today:
        raise NotAnExamDayError(
            f"Tracker events for {exam_date} cannot be submitted today ({today}). "
            "Events are only accepted on the exam date itself.",
            next_exam_date=status["next_exam_date"],
        )
    return status


def require_scheduled_date(context: TrackerContext, exam_date: str) -> ExamDayStatus:
    """Read-side gate: the requested date must be one of the center's exam days."""
    status = resolve_exam_day(context["exam_center_id"], exam_date)
    if not status["is_exam_day"]:
        raise NotAnExamDayError(not_available_message(status), next_exam_date=status["next_exam_date"])
    return status


def check_sequence(school_id: int, exam_date: str, event_type: ExamTrackerEventType) -> None:
    completed = get_completed_event_types(school_id, exam_date)
    for required in predecessors(event_type):
        if required.value not in completed:
            raise StepOutOfOrderError(
                f"{required.value} must be completed before {event_type.value}.",
                missing_event_type=required.value,
            )


def check_window(
    event_type: ExamTrackerEventType,
    schedules: list[dict],
    now: datetime,
    *,
    bypass: bool,
) -> TimeWindow:
    result = check_time_window(event_type, schedules, now, bypass=bypass)
    if not result["allowed"]:
        raise OutsideTimeWindowError(result["message"], time_window=result["time_window"])
    return result["time_window"]


def check_not_duplicate(context: TrackerContext, exam_date: str, event_type: ExamTrackerEventType) -> None:
    if tracker_event_exists(
        user_id=context["user_id"],
        school_id=context["school_id"],
        exam_date=exam_date,
        event_type=event_type.value,
    ):
        raise DuplicateSubmissionError(
            f"Event {event_type.value} has already been submitted for {exam_date}"
        )


def admit_submission(
    *,
    user_id: int,
    event_type: ExamTrackerEventType,
    exam_date: str,
    now: datetime,
    bypass: bool = False,
) -> Admission:
    today = now.strftime("%Y-%m-%d")
    try:
        context = resolve_superintendent(user_id)
        exam_day = require_exam_day(context, exam_date, today)
        check_sequence(context["school_id"], exam_date, event_type)
        window = check_window(event_type, exam_day["today_schedules"], now, bypass=bypass)
        check_not_duplicate(context, exam_date, event_type)
    except (
        NotAuthorizedError,
        NotAnExamDayError,
        StepOutOfOrderError,
        OutsideTimeWindowError,
        DuplicateSubmissionError,
    ) as exc:
        logger.warning(
            "Rejected %s for user %s on %s: %s",
            event_type.value,
            user_id,
            exam_date,
            exc.error_code,
        )
        raise

    return {"context": context, "exam_day": exam_day, "time_window": window}
