from datetime import datetime

import pytest

from backend.errors import NoScheduleError
from backend.services.event_types import ExamTrackerEventType as E
from backend.services.event_types import Shift, SubjectCategory, predecessors, shift_for_event
from backend.services.time_windows import (
    category_for_shift,
    check_time_window,
    get_time_windows,
    get_tracker_time_windows,
    schedule_shift,
    window_contains,
)


def _entry(category: str, start: str = "09:00") -> dict:
    return {"subject_category": category, "exam_start_time": start, "is_active": True}


def test_fixed_windows_ignore_category():
    core = get_time_windows(SubjectCategory.CORE)
    vocational = get_time_windows(SubjectCategory.VOCATIONAL)

    for key in ("TREASURY_ARRIVAL", "CUSTODIAN_HANDOVER", "OPENING"):
        assert core[key] == vocational[key]
    assert core["TREASURY_ARRIVAL"]["label"] == "7:30 AM to 8:40 AM"
    assert core["OPENING"]["label"] == "8:30 AM to 9:00 AM"


def test_packing_and_delivery_open_by_category():
    core = get_time_windows(SubjectCategory.CORE)
    vocational = get_time_windows(SubjectCategory.VOCATIONAL)

    assert (core["PACKING"]["start_hour"], core["PACKING"]["start_minute"]) == (12, 0)
    assert core["PACKING"]["label"] == "12:00 Noon to 2:00 PM"
    assert (vocational["DELIVERY"]["start_hour"], vocational["DELIVERY"]["start_minute"]) == (11, 0)
    assert vocational["DELIVERY"]["label"] == "11:00 AM to 2:00 PM"
    assert core["DELIVERY"]["end_hour"] == vocational["DELIVERY"]["end_hour"] == 14


def test_afternoon_shift_uses_its_own_opening_slot():
    afternoon = get_time_windows(SubjectCategory.CORE, Shift.AFTERNOON)
    assert afternoon["OPENING"]["label"] == "1:30 PM to 2:00 PM"
    assert afternoon["TREASURY_ARRIVAL"] == get_time_windows(SubjectCategory.CORE)["TREASURY_ARRIVAL"]


def test_schedule_shift_from_start_time():
    assert schedule_shift(_entry("CORE", "09:00")) == Shift.MORNING
    assert schedule_shift(_entry("CORE", "14:00")) == Shift.AFTERNOON


def test_category_is_resolved_per_shift():
    schedules = [_entry("VOCATIONAL", "09:00"), _entry("CORE", "14:00")]
    assert category_for_shift(schedules, Shift.MORNING) == SubjectCategory.VOCATIONAL
    assert category_for_shift(schedules, Shift.AFTERNOON) == SubjectCategory.CORE


def test_mixed_categories_in_one_shift_default_to_core():
    schedules = [_entry("VOCATIONAL"), _entry("CORE")]
    assert category_for_shift(schedules, Shift.MORNING) == SubjectCategory.CORE


def test_shift_without_entries_falls_back_to_the_day():
    schedules = [_entry("VOCATIONAL", "09:00")]
    assert category_for_shift(schedules, Shift.AFTERNOON) == SubjectCategory.VOCATIONAL


def test_no_schedule_raises():
    with pytest.raises(NoScheduleError):
        get_tracker_time_windows([], exam_date="2026-03-02")


@pytest.mark.parametrize(
    ("hour", "minute", "inside"),
    [(11, 59, False), (12, 0, True), (13, 15, True), (14, 0, True), (14, 1, False)],
)
def test_window_bounds_are_inclusive(hour, minute, inside):
    window = get_time_windows(SubjectCategory.CORE)["PACKING"]
    assert window_contains(window, datetime(2026, 3, 2, hour, minute)) is inside


def test_check_time_window_message_names_the_window():
    result = check_time_window(E.PACKING_MORNING, [_entry("CORE")], datetime(2026, 3, 2, 11, 30))
    assert result["allowed"] is False
    assert "12:00 Noon to 2:00 PM" in result["message"]


def test_bypass_forces_membership():
    result = check_time_window(E.TREASURY_ARRIVAL, [_entry("CORE")], datetime(2026, 3, 2, 3, 0), bypass=True)
    assert result["allowed"] is True


def test_predecessor_table():
    assert predecessors(E.TREASURY_ARRIVAL) == ()
    assert predecessors(E.CUSTODIAN_HANDOVER) == (E.TREASURY_ARRIVAL,)
    assert predecessors(E.DELIVERY_AFTERNOON) == (
        E.TREASURY_ARRIVAL,
        E.CUSTODIAN_HANDOVER,
        E.OPENING_AFTERNOON,
        E.PACKING_AFTERNOON,
    )
    assert shift_for_event(E.CUSTODIAN_HANDOVER) == Shift.GENERAL
    assert shift_for_event(E.PACKING_MORNING) == Shift.MORNING
