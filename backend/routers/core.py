from fastapi import APIRouter

from backend.config import AFTERNOON_SHIFT_START, BYPASS_TIME_CHECK, MAX_IMAGE_BYTES, TIMEZONE
from backend.services.event_types import EVENT_TABLE, SHIFT_SEQUENCES, Shift, SubjectCategory
from backend.services.time_windows import get_time_windows

router = APIRouter()


@router.get("/health")
def health():
    return {"status": "ok"}


@router.get("/config/tracker")
def tracker_config():
    """
    Sequence and window tables for client-side affordances.

    Clients disable steps from this payload; the server re-validates every
    submission against the same tables.
    """
    return {
        "timezone": TIMEZONE,
        "afternoon_shift_start": AFTERNOON_SHIFT_START.strftime("%H:%M"),
        "bypass_time_check": BYPASS_TIME_CHECK,
        "max_image_bytes": MAX_IMAGE_BYTES,
        "sequences": {
            shift.value: [e.value for e in sequence] for shift, sequence in SHIFT_SEQUENCES.items()
        },
        "events": {
            event_type.value: {"shift": shift.value, "window": window_key.value}
            for event_type, (shift, window_key) in EVENT_TABLE.items()
        },
        "time_windows": {
            shift.value: {
                category.value: get_time_windows(category, shift) for category in SubjectCategory
            }
            for shift in (Shift.MORNING, Shift.AFTERNOON)
        },
    }
