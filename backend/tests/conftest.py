from datetime import datetime

import cv2
import numpy as np
import pytest
from fastapi.testclient import TestClient

import backend.config as config
import backend.main as main
import database.db as db
from backend.clock import SERVER_TZ, current_time
from backend.services.photo_storage import LocalPhotoStorage, get_photo_storage

EXAM_DATE = "2026-03-02"


def _at(hour: int, minute: int = 0, day: str = EXAM_DATE) -> datetime:
    year, month, dom = (int(p) for p in day.split("-"))
    return datetime(year, month, dom, hour, minute, tzinfo=SERVER_TZ)


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture()
def at():
    return _at


@pytest.fixture()
def tracker_db(tmp_path, monkeypatch):
    test_db = tmp_path / "examtrack_test.db"

    # Point DB to a temp file for isolation.
    monkeypatch.setattr(config, "DB_PATH", test_db)
    monkeypatch.setattr(db, "DB_PATH", test_db)

    db.create_tables()

    school_id = db.add_school("Government Higher Secondary School", "REG-001")
    superintendent_id = db.create_user(
        "cs.ghss",
        "cs-pass",
        name="Center Superintendent",
        role="HEADMASTER",
        is_center_superintendent=True,
    )
    center_id = db.add_exam_center(school_id, superintendent_id)
    teacher_id = db.create_user("teacher.ghss", "teacher-pass", name="Plain Teacher", role="TEACHER")

    return {
        "school_id": school_id,
        "superintendent_id": superintendent_id,
        "center_id": center_id,
        "teacher_id": teacher_id,
    }


@pytest.fixture()
def add_schedule(tracker_db):
    def _add(
        subject_category: str = "CORE",
        *,
        exam_date: str = EXAM_DATE,
        subject: str = "English",
        class_level: str = "CLASS_10",
        exam_start_time: str | None = None,
        center_id: int | None = None,
    ) -> int:
        return db.add_exam_schedule(
            center_id or tracker_db["center_id"],
            exam_date,
            class_level=class_level,
            subject=subject,
            subject_category=subject_category,
            exam_start_time=exam_start_time,
        )

    return _add


@pytest.fixture()
def photo() -> bytes:
    ok, buf = cv2.imencode(".png", np.full((16, 16, 3), 127, np.uint8))
    assert ok
    return buf.tobytes()


@pytest.fixture()
def storage(tmp_path):
    return LocalPhotoStorage(tmp_path / "uploads")


@pytest.fixture()
def clock():
    return FakeClock(_at(8, 0))


@pytest.fixture()
def client(tracker_db, clock, storage, tmp_path, monkeypatch):
    monkeypatch.setattr(main, "UPLOADS_DIR", tmp_path / "uploads")
    main.app.dependency_overrides[current_time] = clock
    main.app.dependency_overrides[get_photo_storage] = lambda: storage
    with TestClient(main.app) as c:
        yield c
    main.app.dependency_overrides.clear()


@pytest.fixture()
def login(client):
    def _login(username: str, password: str) -> dict:
        res = client.post("/auth/login", json={"username": username, "password": password})
        assert res.status_code == 200
        return {"Authorization": f"Bearer {res.json()['access_token']}"}

    return _login


@pytest.fixture()
def cs_headers(login):
    return login("cs.ghss", "cs-pass")


@pytest.fixture()
def admin_headers(login):
    return login(config.ADMIN_USERNAME, config.ADMIN_PASSWORD)
