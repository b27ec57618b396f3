"""
Time-window calculator for exam-day tracker steps.

Windows are derived per request from the day's active schedule entries and the
configured bounds in ``backend.config``; nothing here is persisted. Membership
is inclusive on minute granularity: ``start <= minute_of_day <= end``.
"""

from datetime import datetime, time
from typing import Any, Iterable, TypedDict

from backend.config import (
    AFTERNOON_SHIFT_START,
    CUSTODIAN_HANDOVER_WINDOW,
    DELIVERY_AFTERNOON_CORE_WINDOW,
    DELIVERY_AFTERNOON_VOCATIONAL_WINDOW,
    DELIVERY_MORNING_CORE_WINDOW,
    DELIVERY_MORNING_VOCATIONAL_WINDOW,
    OPENING_AFTERNOON_WINDOW,
    OPENING_MORNING_WINDOW,
    PACKING_AFTERNOON_CORE_WINDOW,
    PACKING_AFTERNOON_VOCATIONAL_WINDOW,
    PACKING_MORNING_CORE_WINDOW,
    PACKING_MORNING_VOCATIONAL_WINDOW,
    TREASURY_ARRIVAL_WINDOW,
)
from backend.errors import NoScheduleError
from backend.services.event_types import (
    ExamTrackerEventType,
    Shift,
    SubjectCategory,
    WindowKey,
    shift_for_event,
    window_key_for_event,
)


class TimeWindow(TypedDict):
    start_hour: int
    start_minute: int
    end_hour: int
    end_minute: int
    label: str


class TimeWindowCheck(TypedDict):
    allowed: bool
    time_window: TimeWindow
    message: str


TrackerTimeWindows = dict[str, TimeWindow]

_Bounds = tuple[time, time]


def _same_for_both(bounds: _Bounds) -> dict[SubjectCategory, _Bounds]:
    return {SubjectCategory.CORE: bounds, SubjectCategory.VOCATIONAL: bounds}


WINDOW_TABLE: dict[tuple[Shift, WindowKey], dict[SubjectCategory, _Bounds]] = {}
for _shift in (Shift.MORNING, Shift.AFTERNOON):
    WINDOW_TABLE[(_shift, WindowKey.TREASURY_ARRIVAL)] = _same_for_both(TREASURY_ARRIVAL_WINDOW)
    WINDOW_TABLE[(_shift, WindowKey.CUSTODIAN_HANDOVER)] = _same_for_both(CUSTODIAN_HANDOVER_WINDOW)
WINDOW_TABLE[(Shift.MORNING, WindowKey.OPENING)] = _same_for_both(OPENING_MORNING_WINDOW)
WINDOW_TABLE[(Shift.AFTERNOON, WindowKey.OPENING)] = _same_for_both(OPENING_AFTERNOON_WINDOW)
WINDOW_TABLE[(Shift.MORNING, WindowKey.PACKING)] = {
    SubjectCategory.CORE: PACKING_MORNING_CORE_WINDOW,
    SubjectCategory.VOCATIONAL: PACKING_MORNING_VOCATIONAL_WINDOW,
}
WINDOW_TABLE[(Shift.AFTERNOON, WindowKey.PACKING)] = {
    SubjectCategory.CORE: PACKING_AFTERNOON_CORE_WINDOW,
    SubjectCategory.VOCATIONAL: PACKING_AFTERNOON_VOCATIONAL_WINDOW,
}
WINDOW_TABLE[(Shift.MORNING, WindowKey.DELIVERY)] = {
    SubjectCategory.CORE: DELIVERY_MORNING_CORE_WINDOW,
    SubjectCategory.VOCATIONAL: DELIVERY_MORNING_VOCATIONAL_WINDOW,
}
WINDOW_TABLE[(Shift.AFTERNOON, WindowKey.DELIVERY)] = {
    SubjectCategory.CORE: DELIVERY_AFTERNOON_CORE_WINDOW,
    SubjectCategory.VOCATIONAL: DELIVERY_AFTERNOON_VOCATIONAL_WINDOW,
}


def _clock_label(value: time) -> str:
    if value.hour == 12 and value.minute == 0:
        return "12:00 Noon"
    hour12 = value.hour % 12 or 12
    suffix = "AM" if value.hour < 12 else "PM"
    return f"{hour12}:{value.minute:02d} {suffix}"


def make_window(start: time, end: time) -> TimeWindow:
    return {
        "start_hour": start.hour,
        "start_minute": start.minute,
        "end_hour": end.hour,
        "end_minute": end.minute,
        "label": f"{_clock_label(start)} to {_clock_label(end)}",
    }


def _window_shift(shift: Shift) -> Shift:
    return Shift.MORNING if shift == Shift.GENERAL else shift


def get_time_windows(category: SubjectCategory, shift: Shift = Shift.MORNING) -> TrackerTimeWindows:
    """Window per step key for one shift under one subject category."""
    window_shift = _window_shift(shift)
    out: TrackerTimeWindows = {}
    for key in WindowKey:
        start, end = WINDOW_TABLE[(window_shift, key)][category]
        out[key.value] = make_window(start, end)
    return out


def _parse_clock(value: Any) -> time | None:
    if isinstance(value, time):
        return value
    try:
        hh, mm = str(value).strip().split(":")[:2]
        return time(int(hh), int(mm))
    except (TypeError, ValueError):
        return None


def schedule_shift(entry: dict[str, Any]) -> Shift:
    start = _parse_clock(entry.get("exam_start_time"))
    if start is not None and start >= AFTERNOON_SHIFT_START:
        return Shift.AFTERNOON
    return Shift.MORNING


def category_for_shift(schedules: Iterable[dict[str, Any]], shift: Shift) -> SubjectCategory:
    """
    Category governing packing/delivery for a shift.

    VOCATIONAL only when every active entry of the shift is vocational; a shift
    with no entries falls back to the whole day under the same rule. Anything
    mixed or unknown resolves to CORE, the later (stricter) opening.
    """
    active = [s for s in schedules if s.get("is_active", True)]
    window_shift = _window_shift(shift)
    scoped = [s for s in active if schedule_shift(s) == window_shift] or active
    if scoped and all(s.get("subject_category") == SubjectCategory.VOCATIONAL.value for s in scoped):
        return SubjectCategory.VOCATIONAL
    return SubjectCategory.CORE


def get_tracker_time_windows(
    schedules: list[dict[str, Any]],
    shift: Shift = Shift.MORNING,
    *,
    exam_date: str | None = None,
) -> tuple[SubjectCategory, TrackerTimeWindows]:
    if not schedules:
        raise NoScheduleError(
            f"No exam is scheduled for {exam_date}." if exam_date else "No exam is scheduled for this date."
        )
    category = category_for_shift(schedules, shift)
    return category, get_time_windows(category, shift)


def minutes_of_day(now: datetime) -> int:
    return now.hour * 60 + now.minute


def window_contains(window: TimeWindow, now: datetime) -> bool:
    current = minutes_of_day(now)
    start = window["start_hour"] * 60 + window["start_minute"]
    end = window["end_hour"] * 60 + window["end_minute"]
    return start <= current <= end


def window_for_event(event_type: ExamTrackerEventType, schedules: list[dict[str, Any]]) -> TimeWindow:
    shift = shift_for_event(event_type)
    category = category_for_shift(schedules, shift)
    return get_time_windows(category, shift)[window_key_for_event(event_type).value]


def check_time_window(
    event_type: ExamTrackerEventType,
    schedules: list[dict[str, Any]],
    now: datetime,
    *,
    bypass: bool = False,
) -> TimeWindowCheck:
    window = window_for_event(event_type, schedules)
    allowed = bypass or window_contains(window, now)
    if allowed:
        message = f"Within allowed time window: {window['label']}"
    else:
        message = (
            f"This event can only be submitted between {window['label']}. "
            "Current time is outside the allowed window."
        )
    return {"allowed": allowed, "time_window": window, "message": message}
