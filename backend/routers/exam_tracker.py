from datetime import datetime

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from fastapi.responses import JSONResponse

from backend.clock import current_time, today_str
from backend.errors import InvalidSubmissionError
from backend.security import is_admin, require_admin, require_session, session_user_id
from backend.services.admission import require_scheduled_date, resolve_superintendent
from backend.services.event_types import Shift, parse_event_type
from backend.services.photo_storage import PhotoStorage, get_photo_storage
from backend.services.submission import submit_tracker_event
from backend.services.time_windows import get_tracker_time_windows
from database.db import (
    get_all_tracker_events,
    get_all_tracker_events_total,
    get_school_by_id,
    get_schedules_by_date,
    get_tracker_event,
    get_tracker_events,
    get_tracker_summary,
)

router = APIRouter(prefix="/exam-tracker")


def _windows_by_shift(schedules: list[dict], exam_date: str) -> dict | None:
    if not schedules:
        return None
    out = {}
    for shift in (Shift.MORNING, Shift.AFTERNOON):
        category, windows = get_tracker_time_windows(schedules, shift, exam_date=exam_date)
        out[shift.value] = {"subject_category": category.value, "time_windows": windows}
    return out


@router.post("/events")
async def create_event(
    event_type: str = Form(...),
    exam_date: str = Form(...),
    latitude: str = Form(...),
    longitude: str = Form(...),
    captured_at: str | None = Form(default=None),
    shift: str | None = Form(default=None),
    image: UploadFile | None = File(default=None),
    session: dict = Depends(require_session),
    now: datetime = Depends(current_time),
    storage: PhotoStorage = Depends(get_photo_storage),
):
    data = await image.read() if image is not None else b""
    result = submit_tracker_event(
        user_id=session_user_id(session),
        event_type=event_type,
        exam_date=exam_date,
        image_bytes=data,
        content_type=image.content_type if image is not None else None,
        latitude=latitude,
        longitude=longitude,
        captured_at=captured_at,
        shift=shift,
        now=now,
        storage=storage,
    )

    if result["success"]:
        return {
            "success": True,
            "message": result["message"],
            "data": result["event"],
            "summary": result["summary"],
        }

    payload = {
        "success": False,
        "error_code": result["error_code"],
        "message": result["message"],
    }
    for key in ("missing_event_type", "time_window", "next_exam_date"):
        if result[key] is not None:
            payload[key] = result[key]
    return JSONResponse(status_code=result["status_code"], content=payload)


@router.get("/events")
def my_school_events(
    date: str | None = None,
    session: dict = Depends(require_session),
    now: datetime = Depends(current_time),
):
    context = resolve_superintendent(session_user_id(session))
    events = get_tracker_events(context["school_id"], date or today_str(now))
    return {
        "success": True,
        "data": {
            "events": events,
            "school_id": context["school_id"],
            "school_name": context["school_name"],
        },
    }


@router.get("/events/summary")
def event_summary(
    date: str | None = None,
    school_id: int | None = None,
    session: dict = Depends(require_session),
    now: datetime = Depends(current_time),
):
    exam_date = date or today_str(now)

    if is_admin(session):
        if school_id is None:
            raise HTTPException(status_code=400, detail="school_id is required for admin summaries.")
        school = get_school_by_id(school_id)
        if not school:
            raise HTTPException(status_code=404, detail="School not found.")
        schedules = get_schedules_by_date(exam_date)
        school_name = school["name"]
    else:
        context = resolve_superintendent(session_user_id(session))
        status = require_scheduled_date(context, exam_date)
        school_id = context["school_id"]
        school_name = context["school_name"]
        schedules = status["today_schedules"]

    summary = get_tracker_summary(school_id, exam_date)
    return {
        "success": True,
        "data": {
            "school_name": school_name,
            **summary,
            "time_windows": _windows_by_shift(schedules, exam_date),
        },
    }


@router.get("/events/{event_id}")
def event_detail(event_id: int, session: dict = Depends(require_session)):
    event = get_tracker_event(event_id)
    if event and not is_admin(session):
        context = resolve_superintendent(session_user_id(session))
        if event["school_id"] != context["school_id"]:
            event = None
    if not event:
        raise HTTPException(status_code=404, detail="Event not found.")
    return {"success": True, "data": event}


@router.get("/all")
def all_events(
    date: str | None = None,
    event_type: str | None = None,
    school_id: int | None = None,
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    _session: dict = Depends(require_admin),
):
    clean_type = None
    if event_type:
        parsed = parse_event_type(event_type)
        if parsed is None:
            raise InvalidSubmissionError(f"Invalid event type: {event_type}")
        clean_type = parsed.value

    rows = get_all_tracker_events(
        exam_date=date,
        event_type=clean_type,
        school_id=school_id,
        limit=limit,
        offset=offset,
    )
    total = get_all_tracker_events_total(exam_date=date, event_type=clean_type, school_id=school_id)
    return {
        "success": True,
        "data": rows,
        "total": total,
        "limit": limit,
        "offset": offset,
    }
