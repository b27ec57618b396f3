import hashlib
import hmac
import secrets
import sqlite3
from pathlib import Path
from typing import Any, TypedDict

from backend.config import (
    ADMIN_PASSWORD,
    ADMIN_USERNAME,
    DB_PATH,
    DEFAULT_CORE_EXAM_END,
    DEFAULT_EXAM_START,
    DEFAULT_VOCATIONAL_EXAM_END,
)
from backend.errors import DuplicateSubmissionError
from backend.services.event_types import ALL_EVENT_TYPES, SubjectCategory


PASSWORD_HASH_ALGO = "pbkdf2_sha256"
PASSWORD_HASH_ITERATIONS = 120_000
EXAM_TRACKER_MIGRATION_FILE = Path(__file__).resolve().parent / "migrations" / "001_exam_tracker.sql"
REQUIRED_TABLES = {"schools", "users", "exam_centers", "exam_schedules", "exam_tracker_events"}


def _hash_password(password: str, *, salt: str | None = None) -> str:
    salt_value = salt or secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac(
        "sha256",
        password.encode("utf-8"),
        salt_value.encode("utf-8"),
        PASSWORD_HASH_ITERATIONS,
    ).hex()
    return f"{PASSWORD_HASH_ALGO}${PASSWORD_HASH_ITERATIONS}${salt_value}${digest}"


def _verify_password(password: str, password_hash: str) -> bool:
    try:
        algo, rounds_text, salt_value, expected_digest = password_hash.split("$", 3)
        rounds = int(rounds_text)
    except (ValueError, TypeError):
        return False

    if algo != PASSWORD_HASH_ALGO or rounds <= 0:
        return False

    candidate_digest = hashlib.pbkdf2_hmac(
        "sha256",
        password.encode("utf-8"),
        salt_value.encode("utf-8"),
        rounds,
    ).hex()
    return hmac.compare_digest(candidate_digest, expected_digest)


def connect_db():
    conn = sqlite3.connect(str(DB_PATH), check_same_thread=False)
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


def ensure_exam_tracker_schema(conn: sqlite3.Connection) -> None:
    """
    Ensure the tracker tables and indexes exist.

    SQL source: `database/migrations/001_exam_tracker.sql`.
    """
    cur = conn.cursor()
    cur.execute("SELECT name FROM sqlite_master WHERE type='table'")
    existing = {str(row[0]) for row in cur.fetchall()}
    if not REQUIRED_TABLES.issubset(existing):
        sql = EXAM_TRACKER_MIGRATION_FILE.read_text(encoding="utf-8")
        conn.executescript(sql)


def _ensure_default_admin(cursor: sqlite3.Cursor) -> None:
    username = (ADMIN_USERNAME or "").strip()
    password = (ADMIN_PASSWORD or "").strip()
    if not username or not password:
        return

    cursor.execute(
        """
        SELECT id
        FROM users
        WHERE username = ? COLLATE NOCASE
        """,
        (username,),
    )
    if cursor.fetchone():
        return

    cursor.execute(
        """
        INSERT INTO users (username, password_hash, name, role)
        VALUES (?, ?, ?, 'ADMIN')
        """,
        (username, _hash_password(password), "Administrator"),
    )


def create_tables():
    conn = connect_db()
    ensure_exam_tracker_schema(conn)
    cursor = conn.cursor()
    _ensure_default_admin(cursor)
    conn.commit()
    conn.close()


# -----------------------------
# Schools
# -----------------------------
def add_school(name: str, registration_code: str | None = None) -> int:
    conn = connect_db()
    cur = conn.cursor()
    cur.execute(
        """
        INSERT INTO schools (name, registration_code)
        VALUES (?, ?)
        """,
        (name, registration_code),
    )
    school_id = int(cur.lastrowid)
    conn.commit()
    conn.close()
    return school_id


def get_school_by_id(school_id: int) -> dict | None:
    conn = connect_db()
    cur = conn.cursor()
    cur.execute(
        """
        SELECT id, name, registration_code
        FROM schools
        WHERE id = ?
        """,
        (school_id,),
    )
    row = cur.fetchone()
    conn.close()
    if not row:
        return None
    return {"id": row[0], "name": row[1], "registration_code": row[2]}


# -----------------------------
# Users
# -----------------------------
def create_user(
    username: str,
    password: str,
    *,
    name: str | None = None,
    phone: str | None = None,
    role: str = "TEACHER",
    is_center_superintendent: bool = False,
) -> int:
    clean_username = username.strip()
    clean_password = password.strip()
    if not clean_username or not clean_password:
        raise ValueError("Username and password are required.")

    conn = connect_db()
    cur = conn.cursor()
    cur.execute(
        """
        INSERT INTO users (username, password_hash, name, phone, role, is_center_superintendent)
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        (
            clean_username,
            _hash_password(clean_password),
            name,
            phone,
            role,
            1 if is_center_superintendent else 0,
        ),
    )
    user_id = int(cur.lastrowid)
    conn.commit()
    conn.close()
    return user_id


def _user_from_row(row) -> dict:
    return {
        "id": row[0],
        "username": row[1],
        "name": row[2],
        "phone": row[3],
        "role": row[4],
        "is_center_superintendent": bool(row[5]),
    }


def get_user_by_id(user_id: int) -> dict | None:
    conn = connect_db()
    cur = conn.cursor()
    cur.execute(
        """
        SELECT id, username, name, phone, role, is_center_superintendent
        FROM users
        WHERE id = ?
        """,
        (user_id,),
    )
    row = cur.fetchone()
    conn.close()
    return _user_from_row(row) if row else None


def verify_user_credentials(username: str, password: str) -> dict | None:
    clean_username = username.strip()
    clean_password = password.strip()
    if not clean_username or not clean_password:
        return None

    conn = connect_db()
    cur = conn.cursor()
    cur.execute(
        """
        SELECT id, username, name, phone, role, is_center_superintendent, password_hash
        FROM users
        WHERE username = ? COLLATE NOCASE
        """,
        (clean_username,),
    )
    row = cur.fetchone()
    conn.close()

    if not row:
        return None
    if not _verify_password(clean_password, row[6]):
        return None
    return _user_from_row(row)


# -----------------------------
# Exam centers
# -----------------------------
def add_exam_center(school_id: int, superintendent_id: int | None = None, *, is_active: bool = True) -> int:
    conn = connect_db()
    cur = conn.cursor()
    cur.execute(
        """
        INSERT INTO exam_centers (school_id, superintendent_id, is_active)
        VALUES (?, ?, ?)
        """,
        (school_id, superintendent_id, 1 if is_active else 0),
    )
    center_id = int(cur.lastrowid)
    conn.commit()
    conn.close()
    return center_id


def get_exam_center_for_superintendent(user_id: int) -> dict | None:
    """Active exam center whose designated superintendent is `user_id`."""
    conn = connect_db()
    cur = conn.cursor()
    cur.execute(
        """
        SELECT ec.id, ec.school_id, s.name
        FROM exam_centers ec
        JOIN schools s ON s.id = ec.school_id
        WHERE ec.superintendent_id = ?
          AND ec.is_active = 1
        """,
        (user_id,),
    )
    row = cur.fetchone()
    conn.close()
    if not row:
        return None
    return {"id": row[0], "school_id": row[1], "school_name": row[2]}


# -----------------------------
# Exam schedules (read-only to the tracker)
# -----------------------------
SCHEDULE_COLUMNS = (
    "id",
    "exam_center_id",
    "exam_date",
    "class_level",
    "subject",
    "subject_category",
    "exam_start_time",
    "exam_end_time",
    "is_active",
)


def _schedule_from_row(row) -> dict:
    entry = dict(zip(SCHEDULE_COLUMNS, row))
    entry["is_active"] = bool(entry["is_active"])
    return entry


def add_exam_schedule(
    exam_center_id: int,
    exam_date: str,
    *,
    class_level: str,
    subject: str,
    subject_category: str,
    exam_start_time: str | None = None,
    exam_end_time: str | None = None,
    is_active: bool = True,
) -> int:
    start = exam_start_time or DEFAULT_EXAM_START.strftime("%H:%M")
    if exam_end_time:
        end = exam_end_time
    elif subject_category == SubjectCategory.VOCATIONAL.value:
        end = DEFAULT_VOCATIONAL_EXAM_END.strftime("%H:%M")
    else:
        end = DEFAULT_CORE_EXAM_END.strftime("%H:%M")

    conn = connect_db()
    cur = conn.cursor()
    cur.execute(
        """
        INSERT INTO exam_schedules (
            exam_center_id,
            exam_date,
            class_level,
            subject,
            subject_category,
            exam_start_time,
            exam_end_time,
            is_active
        )
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (exam_center_id, exam_date, class_level, subject, subject_category, start, end, 1 if is_active else 0),
    )
    schedule_id = int(cur.lastrowid)
    conn.commit()
    conn.close()
    return schedule_id


def get_center_schedules_for_date(exam_center_id: int, exam_date: str) -> list[dict]:
    conn = connect_db()
    cur = conn.cursor()
    cur.execute(
        f"""
        SELECT {", ".join(SCHEDULE_COLUMNS)}
        FROM exam_schedules
        WHERE exam_center_id = ?
          AND exam_date = ?
          AND is_active = 1
        ORDER BY exam_start_time ASC, class_level ASC, subject ASC
        """,
        (exam_center_id, exam_date),
    )
    rows = cur.fetchall()
    conn.close()
    return [_schedule_from_row(r) for r in rows]


def get_schedules_by_date(exam_date: str) -> list[dict]:
    """Board-wide active schedule for a date (admin views)."""
    conn = connect_db()
    cur = conn.cursor()
    cur.execute(
        f"""
        SELECT {", ".join(SCHEDULE_COLUMNS)}
        FROM exam_schedules
        WHERE exam_date = ?
          AND is_active = 1
        ORDER BY class_level ASC, subject ASC
        """,
        (exam_date,),
    )
    rows = cur.fetchall()
    conn.close()
    return [_schedule_from_row(r) for r in rows]


def get_upcoming_center_schedules(exam_center_id: int, after_date: str, *, limit: int = 10) -> list[dict]:
    conn = connect_db()
    cur = conn.cursor()
    cur.execute(
        f"""
        SELECT {", ".join(SCHEDULE_COLUMNS)}
        FROM exam_schedules
        WHERE exam_center_id = ?
          AND exam_date > ?
          AND is_active = 1
        ORDER BY exam_date ASC, exam_start_time ASC
        LIMIT ?
        """,
        (exam_center_id, after_date, max(1, int(limit))),
    )
    rows = cur.fetchall()
    conn.close()
    return [_schedule_from_row(r) for r in rows]


# -----------------------------
# Exam tracker ledger (append-only)
# -----------------------------
class ExamTrackerEvent(TypedDict):
    id: int
    user_id: int
    school_id: int
    event_type: str
    exam_date: str
    shift: str | None
    image_url: str
    image_hash: str
    latitude: float
    longitude: float
    captured_at: str
    submitted_at: str
    is_verified: bool
    verified_by: int | None
    verified_at: str | None


class EventDetail(TypedDict, total=False):
    completed: bool
    submitted_at: str
    image_url: str
    latitude: float
    longitude: float


class ExamTrackerSummary(TypedDict):
    school_id: int
    exam_date: str
    completed_events: list[str]
    pending_events: list[str]
    event_details: dict[str, EventDetail]


TRACKER_EVENT_COLUMNS = (
    "id",
    "user_id",
    "school_id",
    "event_type",
    "exam_date",
    "shift",
    "image_url",
    "image_hash",
    "latitude",
    "longitude",
    "captured_at",
    "submitted_at",
    "is_verified",
    "verified_by",
    "verified_at",
)


def _tracker_event_from_row(row) -> ExamTrackerEvent:
    event = dict(zip(TRACKER_EVENT_COLUMNS, row))
    event["is_verified"] = bool(event["is_verified"])
    return event  # type: ignore[return-value]


def record_tracker_event(
    *,
    user_id: int,
    school_id: int,
    event_type: str,
    exam_date: str,
    shift: str | None,
    image_url: str,
    image_hash: str,
    latitude: float,
    longitude: float,
    captured_at: str,
    submitted_at: str,
) -> ExamTrackerEvent:
    """
    Append exactly one ledger row.

    The unique index on (user_id, school_id, event_type, exam_date) decides
    races between concurrent or retried submissions.
    """
    conn = connect_db()
    cur = conn.cursor()
    try:
        cur.execute(
            """
            INSERT INTO exam_tracker_events (
                user_id,
                school_id,
                event_type,
                exam_date,
                shift,
                image_url,
                image_hash,
                latitude,
                longitude,
                captured_at,
                submitted_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                user_id,
                school_id,
                event_type,
                exam_date,
                shift,
                image_url,
                image_hash,
                latitude,
                longitude,
                captured_at,
                submitted_at,
            ),
        )
        event_id = int(cur.lastrowid)
        conn.commit()
    except sqlite3.IntegrityError as exc:
        if "UNIQUE" not in str(exc).upper():
            raise
        raise DuplicateSubmissionError(
            f"Event {event_type} has already been submitted for {exam_date}"
        ) from exc
    finally:
        conn.close()

    return {
        "id": event_id,
        "user_id": user_id,
        "school_id": school_id,
        "event_type": event_type,
        "exam_date": exam_date,
        "shift": shift,
        "image_url": image_url,
        "image_hash": image_hash,
        "latitude": latitude,
        "longitude": longitude,
        "captured_at": captured_at,
        "submitted_at": submitted_at,
        "is_verified": False,
        "verified_by": None,
        "verified_at": None,
    }


def tracker_event_exists(*, user_id: int, school_id: int, exam_date: str, event_type: str) -> bool:
    conn = connect_db()
    cur = conn.cursor()
    cur.execute(
        """
        SELECT 1
        FROM exam_tracker_events
        WHERE user_id = ?
          AND school_id = ?
          AND exam_date = ?
          AND event_type = ?
        LIMIT 1
        """,
        (user_id, school_id, exam_date, event_type),
    )
    row = cur.fetchone()
    conn.close()
    return row is not None


def get_tracker_events(school_id: int, exam_date: str | None = None) -> list[ExamTrackerEvent]:
    where = ["school_id = ?"]
    params: list[Any] = [school_id]
    if exam_date:
        where.append("exam_date = ?")
        params.append(exam_date)

    conn = connect_db()
    cur = conn.cursor()
    cur.execute(
        f"""
        SELECT {", ".join(TRACKER_EVENT_COLUMNS)}
        FROM exam_tracker_events
        WHERE {" AND ".join(where)}
        ORDER BY submitted_at DESC, id DESC
        """,
        params,
    )
    rows = cur.fetchall()
    conn.close()
    return [_tracker_event_from_row(r) for r in rows]


def get_tracker_event(event_id: int) -> ExamTrackerEvent | None:
    conn = connect_db()
    cur = conn.cursor()
    cur.execute(
        f"""
        SELECT {", ".join(TRACKER_EVENT_COLUMNS)}
        FROM exam_tracker_events
        WHERE id = ?
        """,
        (event_id,),
    )
    row = cur.fetchone()
    conn.close()
    return _tracker_event_from_row(row) if row else None


def get_completed_event_types(school_id: int, exam_date: str) -> set[str]:
    conn = connect_db()
    cur = conn.cursor()
    cur.execute(
        """
        SELECT DISTINCT event_type
        FROM exam_tracker_events
        WHERE school_id = ? AND exam_date = ?
        """,
        (school_id, exam_date),
    )
    rows = cur.fetchall()
    conn.close()
    return {str(r[0]) for r in rows}


def get_tracker_summary(school_id: int, exam_date: str) -> ExamTrackerSummary:
    """
    Classify each canonical event type as completed or pending for the day.

    Recomputed from the ledger on every call.
    """
    events = get_tracker_events(school_id, exam_date)
    by_type: dict[str, ExamTrackerEvent] = {}
    # rows arrive newest first; the earliest submission per type wins
    for event in reversed(events):
        by_type.setdefault(event["event_type"], event)

    completed: list[str] = []
    pending: list[str] = []
    details: dict[str, EventDetail] = {}
    for event_type in ALL_EVENT_TYPES:
        event = by_type.get(event_type.value)
        if event is None:
            pending.append(event_type.value)
            details[event_type.value] = {"completed": False}
            continue
        completed.append(event_type.value)
        details[event_type.value] = {
            "completed": True,
            "submitted_at": event["submitted_at"],
            "image_url": event["image_url"],
            "latitude": event["latitude"],
            "longitude": event["longitude"],
        }

    return {
        "school_id": school_id,
        "exam_date": exam_date,
        "completed_events": completed,
        "pending_events": pending,
        "event_details": details,
    }


def get_all_tracker_events(
    *,
    exam_date: str | None = None,
    event_type: str | None = None,
    school_id: int | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[dict[str, Any]]:
    """
    Admin feed across every exam center, joined with submitter and school.
    """
    where_sql, params = _build_tracker_events_where_clause(
        exam_date=exam_date,
        event_type=event_type,
        school_id=school_id,
    )
    safe_limit = max(1, min(int(limit), 500))
    safe_offset = max(0, int(offset))

    conn = connect_db()
    cur = conn.cursor()
    cur.execute(
        f"""
        SELECT
            {", ".join(f"te.{c}" for c in TRACKER_EVENT_COLUMNS)},
            u.name,
            u.phone,
            s.name,
            s.registration_code
        FROM exam_tracker_events te
        LEFT JOIN users u ON u.id = te.user_id
        LEFT JOIN schools s ON s.id = te.school_id
        WHERE {where_sql}
        ORDER BY te.submitted_at DESC, te.id DESC
        LIMIT ?
        OFFSET ?
        """,
        [*params, safe_limit, safe_offset],
    )
    rows = cur.fetchall()
    conn.close()

    width = len(TRACKER_EVENT_COLUMNS)
    out: list[dict[str, Any]] = []
    for row in rows:
        event: dict[str, Any] = dict(_tracker_event_from_row(row[:width]))
        user_name, user_phone, school_name, registration_code = row[width:]
        event["user"] = {"id": event["user_id"], "name": user_name, "phone": user_phone}
        event["school"] = {
            "id": event["school_id"],
            "name": school_name,
            "registration_code": registration_code,
        }
        out.append(event)
    return out


def get_all_tracker_events_total(
    *,
    exam_date: str | None = None,
    event_type: str | None = None,
    school_id: int | None = None,
) -> int:
    where_sql, params = _build_tracker_events_where_clause(
        exam_date=exam_date,
        event_type=event_type,
        school_id=school_id,
    )
    conn = connect_db()
    cur = conn.cursor()
    cur.execute(
        f"""
        SELECT COUNT(1)
        FROM exam_tracker_events te
        WHERE {where_sql}
        """,
        params,
    )
    row = cur.fetchone()
    conn.close()
    return int(row[0] or 0) if row else 0


def _build_tracker_events_where_clause(
    *,
    exam_date: str | None = None,
    event_type: str | None = None,
    school_id: int | None = None,
) -> tuple[str, list[Any]]:
    where = ["1=1"]
    params: list[Any] = []

    if exam_date is not None:
        where.append("te.exam_date = ?")
        params.append(exam_date)
    if event_type is not None:
        where.append("te.event_type = ?")
        params.append(event_type)
    if school_id is not None:
        where.append("te.school_id = ?")
        params.append(school_id)

    return " AND ".join(where), params
