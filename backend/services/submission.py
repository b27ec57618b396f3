import logging
import sqlite3
from datetime import date, datetime
from typing import Any, TypedDict

import cv2  # type: ignore
import numpy as np  # type: ignore
from pydantic import BaseModel, Field, ValidationError

from backend.config import ALLOWED_IMAGE_TYPES, BYPASS_TIME_CHECK, MAX_IMAGE_BYTES
from backend.errors import (
    InvalidSubmissionError,
    NetworkError,
    TrackerError,
    UploadFailedError,
)
from backend.services.admission import admit_submission
from backend.services.event_types import ExamTrackerEventType, Shift, shift_for_event
from backend.services.photo_storage import PhotoStorage
from database.db import ExamTrackerEvent, ExamTrackerSummary, get_tracker_summary, record_tracker_event

logger = logging.getLogger(__name__)


class TrackerSubmissionInput(BaseModel):
    event_type: ExamTrackerEventType
    exam_date: date
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    captured_at: datetime | None = None
    shift: Shift | None = None


class SubmissionResult(TypedDict):
    success: bool
    error_code: str | None
    status_code: int
    message: str
    event: ExamTrackerEvent | None
    summary: ExamTrackerSummary | None
    missing_event_type: str | None
    time_window: dict[str, Any] | None
    next_exam_date: str | None


def _build_result(
    *,
    success: bool,
    message: str,
    status_code: int = 200,
    error_code: str | None = None,
    event: ExamTrackerEvent | None = None,
    summary: ExamTrackerSummary | None = None,
    missing_event_type: str | None = None,
    time_window: dict[str, Any] | None = None,
    next_exam_date: str | None = None,
) -> SubmissionResult:
    return {
        "success": success,
        "error_code": error_code,
        "status_code": status_code,
        "message": message,
        "event": event,
        "summary": summary,
        "missing_event_type": missing_event_type,
        "time_window": time_window,
        "next_exam_date": next_exam_date,
    }


def _result_from_error(exc: TrackerError) -> SubmissionResult:
    return _build_result(
        success=False,
        message=exc.message,
        status_code=exc.status_code,
        error_code=exc.error_code,
        missing_event_type=exc.extra.get("missing_event_type"),
        time_window=exc.extra.get("time_window"),
        next_exam_date=exc.extra.get("next_exam_date"),
    )


def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        field = ".".join(str(loc) for loc in err.get("loc", ())) or "input"
        parts.append(f"{field}: {err.get('msg', 'invalid value')}")
    return "; ".join(parts)


def parse_submission(
    *,
    event_type: str | None,
    exam_date: str | None,
    latitude: Any,
    longitude: Any,
    captured_at: str | None = None,
    shift: str | None = None,
) -> TrackerSubmissionInput:
    try:
        parsed = TrackerSubmissionInput.model_validate(
            {
                "event_type": (event_type or "").strip().upper(),
                "exam_date": (exam_date or "").strip(),
                "latitude": latitude,
                "longitude": longitude,
                "captured_at": (captured_at or "").strip() or None,
                "shift": (shift or "").strip().upper() or None,
            }
        )
    except ValidationError as exc:
        raise InvalidSubmissionError(_format_validation_error(exc)) from exc

    expected = shift_for_event(parsed.event_type)
    if parsed.shift is not None and parsed.shift != expected:
        raise InvalidSubmissionError(
            f"Shift {parsed.shift.value} does not match {parsed.event_type.value} ({expected.value})."
        )
    return parsed


def validate_photo(data: bytes, content_type: str | None) -> None:
    if not data:
        raise InvalidSubmissionError("Image is required")
    if content_type not in ALLOWED_IMAGE_TYPES:
        raise InvalidSubmissionError("Only JPEG, PNG, and WebP images are allowed")
    if len(data) > MAX_IMAGE_BYTES:
        raise InvalidSubmissionError(f"Image exceeds the {MAX_IMAGE_BYTES // (1024 * 1024)} MB limit")

    frame = cv2.imdecode(np.frombuffer(data, np.uint8), cv2.IMREAD_COLOR)
    if frame is None:
        raise InvalidSubmissionError("Invalid image data.")


def _store_photo(storage: PhotoStorage, data: bytes, *, name_hint: str, content_type: str):
    try:
        return storage.save(data, name_hint=name_hint, content_type=content_type)
    except UploadFailedError:
        raise
    except OSError as exc:
        logger.exception("Photo storage failed for %s", name_hint)
        raise UploadFailedError("Photo upload failed. Please try again.") from exc


def submit_tracker_event(
    *,
    user_id: int,
    event_type: str | None,
    exam_date: str | None,
    image_bytes: bytes,
    content_type: str | None,
    latitude: Any,
    longitude: Any,
    now: datetime,
    storage: PhotoStorage,
    captured_at: str | None = None,
    shift: str | None = None,
    bypass: bool | None = None,
) -> SubmissionResult:
    """
    Capture → validate → upload → persist → recompute summary.

    The photo is stored before the ledger insert; if that upload fails no row
    is written. A ledger rejection after upload removes the stored photo; once
    the row is recorded its photo is kept even if the summary read fails.
    """
    bypass_time = BYPASS_TIME_CHECK if bypass is None else bypass
    stored = None
    event = None
    try:
        parsed = parse_submission(
            event_type=event_type,
            exam_date=exam_date,
            latitude=latitude,
            longitude=longitude,
            captured_at=captured_at,
            shift=shift,
        )
        validate_photo(image_bytes, content_type)

        exam_date_str = parsed.exam_date.strftime("%Y-%m-%d")
        admission = admit_submission(
            user_id=user_id,
            event_type=parsed.event_type,
            exam_date=exam_date_str,
            now=now,
            bypass=bypass_time,
        )
        context = admission["context"]

        name_hint = f"{user_id}_{parsed.event_type.value}_{int(now.timestamp() * 1000)}"
        stored = _store_photo(storage, image_bytes, name_hint=name_hint, content_type=str(content_type))

        submitted_at = now.isoformat(timespec="seconds")
        event = record_tracker_event(
            user_id=user_id,
            school_id=context["school_id"],
            event_type=parsed.event_type.value,
            exam_date=exam_date_str,
            shift=shift_for_event(parsed.event_type).value,
            image_url=stored["image_url"],
            image_hash=stored["image_hash"],
            latitude=parsed.latitude,
            longitude=parsed.longitude,
            captured_at=parsed.captured_at.isoformat() if parsed.captured_at else submitted_at,
            submitted_at=submitted_at,
        )
        summary = get_tracker_summary(context["school_id"], exam_date_str)
    except sqlite3.OperationalError:
        logger.exception("Tracker storage unavailable for user %s", user_id)
        if stored and event is None:
            storage.delete(stored["image_url"])
        return _result_from_error(NetworkError("Tracker service is temporarily unavailable. Please retry."))
    except TrackerError as exc:
        if stored and event is None:
            storage.delete(stored["image_url"])
        return _result_from_error(exc)

    logger.info(
        "Recorded %s for school %s on %s (event %s)",
        event["event_type"],
        event["school_id"],
        event["exam_date"],
        event["id"],
    )
    return _build_result(
        success=True,
        message="Event submitted successfully",
        event=event,
        summary=summary,
    )
