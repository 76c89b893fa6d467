# backend/tests/routes/conftest.py
"""
API fixtures: the app runs against the per-test session, Celery is replaced
by the shared ``enqueue`` mock and the Redis booking lock always grants.
"""

import pytest
from fastapi.testclient import TestClient

from lessonbook.api.dependencies import get_booking_service, get_db, get_notification_service
from lessonbook.main import app
from tests.factories import make_teacher


@pytest.fixture
def client(db, notification_service, booking_service):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notification_service] = lambda: notification_service
    app.dependency_overrides[get_booking_service] = lambda: booking_service
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()


def auth_headers(user_id: str, role: str = "TEACHER") -> dict:
    return {"X-User-Id": user_id, "X-User-Role": role}


@pytest.fixture
def teacher_headers(teacher):
    return auth_headers(teacher.user_id)


@pytest.fixture
def admin_headers(db):
    admin = make_teacher(db, name="Admin", email="admin@example.com", user_id="admin-user")
    return auth_headers(admin.user_id, "ADMIN")
