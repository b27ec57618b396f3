from typing import Any


class TrackerError(Exception):
    """Base class for every tracker rejection surfaced to the caller verbatim."""

    error_code = "TRACKER_ERROR"
    status_code = 400

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_payload(self) -> dict[str, Any]:
        return {
            "success": False,
            "error_code": self.error_code,
            "message": self.message,
            **self.extra,
        }


class NotAuthorizedError(TrackerError):
    error_code = "NOT_AUTHORIZED"
    status_code = 403


class NotAnExamDayError(TrackerError):
    error_code = "NOT_AN_EXAM_DAY"
    status_code = 403

    def __init__(self, message: str, *, next_exam_date: str | None = None):
        super().__init__(message, next_exam_date=next_exam_date)
        self.next_exam_date = next_exam_date


class NoScheduleError(TrackerError):
    error_code = "NO_SCHEDULE"
    status_code = 404


class StepOutOfOrderError(TrackerError):
    error_code = "STEP_OUT_OF_ORDER"
    status_code = 409

    def __init__(self, message: str, *, missing_event_type: str):
        super().__init__(message, missing_event_type=missing_event_type)
        self.missing_event_type = missing_event_type


class OutsideTimeWindowError(TrackerError):
    error_code = "OUTSIDE_TIME_WINDOW"
    status_code = 422

    def __init__(self, message: str, *, time_window: dict[str, Any]):
        super().__init__(message, time_window=time_window)
        self.time_window = time_window


class DuplicateSubmissionError(TrackerError):
    error_code = "DUPLICATE_SUBMISSION"
    status_code = 409


class InvalidSubmissionError(TrackerError):
    error_code = "INVALID_SUBMISSION"
    status_code = 400


class UploadFailedError(TrackerError):
    error_code = "UPLOAD_FAILED"
    status_code = 502


class NetworkError(TrackerError):
    error_code = "NETWORK_ERROR"
    status_code = 503
