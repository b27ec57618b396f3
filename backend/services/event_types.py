from enum import Enum


class ExamTrackerEventType(str, Enum):
    TREASURY_ARRIVAL = "TREASURY_ARRIVAL"
    CUSTODIAN_HANDOVER = "CUSTODIAN_HANDOVER"
    OPENING_MORNING = "OPENING_MORNING"
    PACKING_MORNING = "PACKING_MORNING"
    DELIVERY_MORNING = "DELIVERY_MORNING"
    OPENING_AFTERNOON = "OPENING_AFTERNOON"
    PACKING_AFTERNOON = "PACKING_AFTERNOON"
    DELIVERY_AFTERNOON = "DELIVERY_AFTERNOON"


class Shift(str, Enum):
    GENERAL = "GENERAL"
    MORNING = "MORNING"
    AFTERNOON = "AFTERNOON"


class SubjectCategory(str, Enum):
    CORE = "CORE"
    VOCATIONAL = "VOCATIONAL"


class ExamClass(str, Enum):
    CLASS_10 = "CLASS_10"
    CLASS_12 = "CLASS_12"


class WindowKey(str, Enum):
    TREASURY_ARRIVAL = "TREASURY_ARRIVAL"
    CUSTODIAN_HANDOVER = "CUSTODIAN_HANDOVER"
    OPENING = "OPENING"
    PACKING = "PACKING"
    DELIVERY = "DELIVERY"


E = ExamTrackerEventType

# Canonical custody sequence per exam shift.
SHIFT_SEQUENCES: dict[Shift, tuple[ExamTrackerEventType, ...]] = {
    Shift.MORNING: (
        E.TREASURY_ARRIVAL,
        E.CUSTODIAN_HANDOVER,
        E.OPENING_MORNING,
        E.PACKING_MORNING,
        E.DELIVERY_MORNING,
    ),
    Shift.AFTERNOON: (
        E.TREASURY_ARRIVAL,
        E.CUSTODIAN_HANDOVER,
        E.OPENING_AFTERNOON,
        E.PACKING_AFTERNOON,
        E.DELIVERY_AFTERNOON,
    ),
}

# (shift the event belongs to, window it is checked against)
EVENT_TABLE: dict[ExamTrackerEventType, tuple[Shift, WindowKey]] = {
    E.TREASURY_ARRIVAL: (Shift.GENERAL, WindowKey.TREASURY_ARRIVAL),
    E.CUSTODIAN_HANDOVER: (Shift.GENERAL, WindowKey.CUSTODIAN_HANDOVER),
    E.OPENING_MORNING: (Shift.MORNING, WindowKey.OPENING),
    E.PACKING_MORNING: (Shift.MORNING, WindowKey.PACKING),
    E.DELIVERY_MORNING: (Shift.MORNING, WindowKey.DELIVERY),
    E.OPENING_AFTERNOON: (Shift.AFTERNOON, WindowKey.OPENING),
    E.PACKING_AFTERNOON: (Shift.AFTERNOON, WindowKey.PACKING),
    E.DELIVERY_AFTERNOON: (Shift.AFTERNOON, WindowKey.DELIVERY),
}

ALL_EVENT_TYPES: tuple[ExamTrackerEventType, ...] = tuple(ExamTrackerEventType)


def shift_for_event(event_type: ExamTrackerEventType) -> Shift:
    return EVENT_TABLE[event_type][0]


def window_key_for_event(event_type: ExamTrackerEventType) -> WindowKey:
    return EVENT_TABLE[event_type][1]


def predecessors(event_type: ExamTrackerEventType) -> tuple[ExamTrackerEventType, ...]:
    """
    Steps that must already be recorded before `event_type` may be submitted.

    Day-level steps (treasury, custodian) sit at the head of both shift
    sequences, so the morning table is used for them.
    """
    shift = shift_for_event(event_type)
    sequence = SHIFT_SEQUENCES[Shift.MORNING if shift == Shift.GENERAL else shift]
    return sequence[: sequence.index(event_type)]


def parse_event_type(value: str | None) -> ExamTrackerEventType | None:
    normalized = (value or "").strip().upper()
    try:
        return ExamTrackerEventType(normalized)
    except ValueError:
        return None
