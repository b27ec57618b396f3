import hashlib
import sqlite3

import pytest

import backend.services.submission as submission
import database.db as db
from backend.errors import DuplicateSubmissionError, NotAuthorizedError, UploadFailedError
from backend.services.admission import resolve_superintendent
from backend.services.event_types import ExamTrackerEventType as E
from backend.services.exam_day import not_available_message, resolve_exam_day

MORNING_STEPS = [
    (E.TREASURY_ARRIVAL, (8, 0)),
    (E.CUSTODIAN_HANDOVER, (8, 10)),
    (E.OPENING_MORNING, (8, 45)),
    (E.PACKING_MORNING, (12, 30)),
    (E.DELIVERY_MORNING, (13, 0)),
]


class FailingStorage:
    def __init__(self, exc: Exception):
        self.exc = exc

    def save(self, data, *, name_hint, content_type):
        raise self.exc

    def delete(self, image_url):
        raise AssertionError("nothing was stored")


@pytest.fixture()
def submit(tracker_db, storage, photo, at):
    def _submit(step: E, hour: int, minute: int = 0, **overrides):
        now = overrides.pop("now", None) or at(hour, minute)
        kwargs = {
            "user_id": tracker_db["superintendent_id"],
            "event_type": step.value,
            "exam_date": now.strftime("%Y-%m-%d"),
            "image_bytes": photo,
            "content_type": "image/png",
            "latitude": "26.1445",
            "longitude": "91.7362",
            "now": now,
            "storage": storage,
            "bypass": False,
        }
        kwargs.update(overrides)
        return submission.submit_tracker_event(**kwargs)

    return _submit


def _complete(submit, steps):
    for event_type, (hour, minute) in steps:
        result = submit(event_type, hour, minute)
        assert result["success"], result["message"]


def test_submission_records_event_with_evidence(submit, add_schedule, photo, storage, tracker_db):
    add_schedule("CORE")

    result = submit(E.TREASURY_ARRIVAL, 8, 0, captured_at="2026-03-02T07:58:30+05:30")

    assert result["success"] is True
    assert result["error_code"] is None
    event = result["event"]
    assert event["school_id"] == tracker_db["school_id"]
    assert event["shift"] == "GENERAL"
    assert event["image_hash"] == hashlib.sha256(photo).hexdigest()
    assert event["image_url"].startswith("/uploads/exam-tracker/")
    assert event["captured_at"] == "2026-03-02T07:58:30+05:30"
    assert event["latitude"] == pytest.approx(26.1445)
    assert event["is_verified"] is False
    stored_name = event["image_url"].rsplit("/", 1)[-1]
    assert (storage.directory / stored_name).read_bytes() == photo
    assert result["summary"]["completed_events"] == ["TREASURY_ARRIVAL"]


def test_second_submission_is_rejected_as_duplicate(submit, add_schedule, tracker_db):
    add_schedule("CORE")

    first = submit(E.TREASURY_ARRIVAL, 8, 0)
    second = submit(E.TREASURY_ARRIVAL, 8, 5)

    assert first["success"] is True
    assert second["success"] is False
    assert second["error_code"] == "DUPLICATE_SUBMISSION"
    assert len(db.get_tracker_events(tracker_db["school_id"], "2026-03-02")) == 1


def test_unique_index_rejects_concurrent_insert(tracker_db):
    row = {
        "user_id": tracker_db["superintendent_id"],
        "school_id": tracker_db["school_id"],
        "event_type": "TREASURY_ARRIVAL",
        "exam_date": "2026-03-02",
        "shift": "GENERAL",
        "image_url": "/uploads/exam-tracker/a.png",
        "image_hash": "0" * 64,
        "latitude": 26.1,
        "longitude": 91.7,
        "captured_at": "2026-03-02T08:00:00",
        "submitted_at": "2026-03-02T08:00:00",
    }
    db.record_tracker_event(**row)
    # Both requests passed the read-side check; only the index decides.
    with pytest.raises(DuplicateSubmissionError):
        db.record_tracker_event(**{**row, "image_url": "/uploads/exam-tracker/b.png"})
    assert len(db.get_tracker_events(tracker_db["school_id"])) == 1


def test_duplicate_race_after_upload_removes_photo(submit, add_schedule, storage, monkeypatch):
    add_schedule("CORE")

    def _lost_race(**kwargs):
        raise DuplicateSubmissionError("Event TREASURY_ARRIVAL has already been submitted for 2026-03-02")

    monkeypatch.setattr(submission, "record_tracker_event", _lost_race)
    result = submit(E.TREASURY_ARRIVAL, 8, 0)

    assert result["error_code"] == "DUPLICATE_SUBMISSION"
    assert list(storage.directory.iterdir()) == []


@pytest.mark.parametrize(
    ("skipped", "target", "target_time"),
    [
        (E.OPENING_MORNING, E.PACKING_MORNING, (12, 30)),
        (E.OPENING_AFTERNOON, E.PACKING_AFTERNOON, (17, 30)),
    ],
)
def test_step_before_predecessor_names_missing_step(submit, add_schedule, skipped, target, target_time):
    add_schedule("CORE")
    _complete(submit, MORNING_STEPS[:2])

    result = submit(target, *target_time)

    assert result["error_code"] == "STEP_OUT_OF_ORDER"
    assert result["missing_event_type"] == skipped.value
    assert skipped.value in result["message"]


def test_first_step_must_be_treasury(submit, add_schedule):
    add_schedule("CORE")
    result = submit(E.CUSTODIAN_HANDOVER, 8, 10)
    assert result["error_code"] == "STEP_OUT_OF_ORDER"
    assert result["missing_event_type"] == "TREASURY_ARRIVAL"


def test_core_packing_opens_at_noon(submit, add_schedule):
    add_schedule("CORE")
    _complete(submit, MORNING_STEPS[:3])

    early = submit(E.PACKING_MORNING, 11, 30)
    assert early["success"] is False
    assert early["error_code"] == "OUTSIDE_TIME_WINDOW"
    assert early["time_window"]["label"] == "12:00 Noon to 2:00 PM"

    on_time = submit(E.PACKING_MORNING, 12, 30)
    assert on_time["success"] is True


def test_vocational_packing_opens_at_eleven(submit, add_schedule):
    add_schedule("VOCATIONAL", subject="Retail")
    _complete(submit, MORNING_STEPS[:3])

    result = submit(E.PACKING_MORNING, 11, 30)
    assert result["success"] is True


def test_vocational_morning_is_not_tightened_by_core_afternoon(submit, add_schedule):
    add_schedule("VOCATIONAL", subject="Retail")
    add_schedule("CORE", subject="Mathematics", class_level="CLASS_12", exam_start_time="14:00")
    _complete(submit, MORNING_STEPS[:3])

    assert submit(E.PACKING_MORNING, 11, 30)["success"] is True


def test_summary_after_three_of_five_steps(submit, add_schedule, tracker_db):
    add_schedule("CORE")
    _complete(submit, MORNING_STEPS[:3])

    summary = db.get_tracker_summary(tracker_db["school_id"], "2026-03-02")

    assert summary["completed_events"] == ["TREASURY_ARRIVAL", "CUSTODIAN_HANDOVER", "OPENING_MORNING"]
    morning = [e.value for e, _ in MORNING_STEPS]
    assert [e for e in summary["pending_events"] if e in morning] == ["PACKING_MORNING", "DELIVERY_MORNING"]
    assert len(summary["completed_events"]) + len(summary["pending_events"]) == 8
    for event_type, detail in summary["event_details"].items():
        if event_type in summary["completed_events"]:
            assert detail["completed"] is True
            assert detail["submitted_at"]
            assert detail["image_url"]
        else:
            assert detail == {"completed": False}


def test_full_morning_sequence_completes(submit, add_schedule, tracker_db):
    add_schedule("CORE")
    _complete(submit, MORNING_STEPS)

    summary = db.get_tracker_summary(tracker_db["school_id"], "2026-03-02")
    assert all(summary["event_details"][e.value]["completed"] for e, _ in MORNING_STEPS)


@pytest.mark.parametrize(
    "exc",
    [UploadFailedError("Photo upload failed. Please try again."), OSError("disk full")],
)
def test_upload_failure_leaves_step_pending(submit, add_schedule, tracker_db, exc):
    add_schedule("CORE")

    result = submit(E.TREASURY_ARRIVAL, 8, 0, storage=FailingStorage(exc))

    assert result["success"] is False
    assert result["error_code"] == "UPLOAD_FAILED"
    summary = db.get_tracker_summary(tracker_db["school_id"], "2026-03-02")
    assert "TREASURY_ARRIVAL" in summary["pending_events"]
    assert db.get_tracker_events(tracker_db["school_id"]) == []


def test_storage_outage_reports_network_error(submit, add_schedule, storage, monkeypatch):
    add_schedule("CORE")

    def _locked(**kwargs):
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(submission, "record_tracker_event", _locked)
    result = submit(E.TREASURY_ARRIVAL, 8, 0)

    assert result["error_code"] == "NETWORK_ERROR"
    assert result["status_code"] == 503
    assert list(storage.directory.iterdir()) == []


def test_summary_outage_keeps_photo_of_recorded_step(submit, add_schedule, storage, tracker_db, monkeypatch):
    add_schedule("CORE")

    def _locked(school_id, exam_date):
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(submission, "get_tracker_summary", _locked)
    result = submit(E.TREASURY_ARRIVAL, 8, 0)

    assert result["error_code"] == "NETWORK_ERROR"
    events = db.get_tracker_events(tracker_db["school_id"], "2026-03-02")
    assert len(events) == 1
    stored_name = events[0]["image_url"].rsplit("/", 1)[-1]
    assert (storage.directory / stored_name).exists()


def test_summary_reports_earliest_submission_per_step(tracker_db):
    row = {
        "school_id": tracker_db["school_id"],
        "event_type": "TREASURY_ARRIVAL",
        "exam_date": "2026-03-02",
        "shift": "GENERAL",
        "image_hash": "0" * 64,
        "latitude": 26.1,
        "longitude": 91.7,
    }
    db.record_tracker_event(
        **row,
        user_id=tracker_db["superintendent_id"],
        image_url="/uploads/exam-tracker/first.png",
        captured_at="2026-03-02T08:00:00",
        submitted_at="2026-03-02T08:00:00",
    )
    db.record_tracker_event(
        **row,
        user_id=tracker_db["teacher_id"],
        image_url="/uploads/exam-tracker/second.png",
        captured_at="2026-03-02T08:20:00",
        submitted_at="2026-03-02T08:20:00",
    )

    detail = db.get_tracker_summary(tracker_db["school_id"], "2026-03-02")["event_details"]["TREASURY_ARRIVAL"]

    assert detail["submitted_at"] == "2026-03-02T08:00:00"
    assert detail["image_url"] == "/uploads/exam-tracker/first.png"


def test_center_without_schedule_is_not_an_exam_day(submit, tracker_db):
    status = resolve_exam_day(tracker_db["center_id"], "2026-03-02")
    assert status["is_exam_day"] is False
    assert status["next_exam_date"] is None
    assert not_available_message(status) == "No upcoming exams scheduled for your exam center."

    result = submit(E.TREASURY_ARRIVAL, 8, 0, bypass=True)
    assert result["error_code"] == "NOT_AN_EXAM_DAY"


def test_next_exam_date_points_to_upcoming_schedule(add_schedule, tracker_db):
    add_schedule("CORE", exam_date="2026-03-05")
    add_schedule("CORE", exam_date="2026-03-09", subject="Science")

    status = resolve_exam_day(tracker_db["center_id"], "2026-03-02")

    assert status["is_exam_day"] is False
    assert status["next_exam_date"] == "2026-03-05"
    assert [s["exam_date"] for s in status["upcoming_schedules"]] == ["2026-03-05", "2026-03-09"]
    assert "2026-03-05" in not_available_message(status)


def test_inactive_schedule_does_not_open_the_day(tracker_db):
    db.add_exam_schedule(
        tracker_db["center_id"],
        "2026-03-02",
        class_level="CLASS_10",
        subject="English",
        subject_category="CORE",
        is_active=False,
    )
    assert resolve_exam_day(tracker_db["center_id"], "2026-03-02")["is_exam_day"] is False


def test_submission_for_another_date_is_refused(submit, add_schedule, at):
    add_schedule("CORE")
    add_schedule("CORE", exam_date="2026-03-03", subject="Science")

    result = submit(E.TREASURY_ARRIVAL, 8, 0, exam_date="2026-03-03")

    assert result["error_code"] == "NOT_AN_EXAM_DAY"


def test_only_designated_superintendent_may_submit(submit, add_schedule, tracker_db):
    add_schedule("CORE")

    result = submit(E.TREASURY_ARRIVAL, 8, 0, user_id=tracker_db["teacher_id"])

    assert result["error_code"] == "NOT_AUTHORIZED"
    assert result["status_code"] == 403


def test_flagged_user_without_center_is_not_authorized(tracker_db):
    orphan = db.create_user("cs.orphan", "pw", role="TEACHER", is_center_superintendent=True)
    with pytest.raises(NotAuthorizedError):
        resolve_superintendent(orphan)


def test_bypass_skips_only_the_clock(submit, add_schedule):
    add_schedule("CORE")

    assert submit(E.TREASURY_ARRIVAL, 6, 0, bypass=True)["success"] is True
    out_of_order = submit(E.PACKING_MORNING, 6, 5, bypass=True)
    assert out_of_order["error_code"] == "STEP_OUT_OF_ORDER"


@pytest.mark.parametrize(
    "overrides",
    [
        {"event_type": "LUNCH_BREAK"},
        {"exam_date": "02/03/2026"},
        {"latitude": "95"},
        {"longitude": "-181"},
        {"captured_at": "yesterday"},
        {"shift": "AFTERNOON", "event_type": "OPENING_MORNING"},
        {"content_type": "application/pdf"},
        {"image_bytes": b""},
        {"image_bytes": b"not-an-image"},
    ],
)
def test_invalid_submissions_are_rejected_before_admission(submit, add_schedule, tracker_db, overrides):
    add_schedule("CORE")

    result = submit(E.TREASURY_ARRIVAL, 8, 0, **overrides)

    assert result["error_code"] == "INVALID_SUBMISSION"
    assert result["status_code"] == 400
    assert db.get_tracker_events(tracker_db["school_id"]) == []
