# backend/tests/conftest.py
"""
Pytest configuration.

Everything runs against an in-memory SQLite database. Each test gets a
session joined to an outer transaction that is rolled back afterwards, so
services can commit and roll back freely without leaking rows between tests.
"""

import os
import sys

# Set test mode BEFORE any lessonbook imports
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["EMAIL_PROVIDER"] = "console"

import unittest.mock

# Never talk to Resend from tests
global_resend_mock = unittest.mock.patch("resend.Emails.send")
mocked_send = global_resend_mock.start()
mocked_send.return_value = {"id": "test-email-id"}

backend_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, backend_dir)

from unittest.mock import Mock

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from lessonbook.database import Base
import lessonbook.models  # noqa: F401
from lessonbook.models.teacher import StudentProfile, TeacherProfile
from lessonbook.services.booking_service import BookingService
from lessonbook.services.notification_service import NotificationService
from tests.factories import add_window, allow_lock, make_student, make_teacher


@pytest.fixture(scope="session")
def _engine():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # pysqlite defers BEGIN on its own, which breaks SAVEPOINT nesting
    @event.listens_for(engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db(_engine) -> Session:
    """Session whose commits and rollbacks only ever touch savepoints."""
    connection = _engine.connect()
    transaction = connection.begin()
    session = Session(
        bind=connection,
        join_transaction_mode="create_savepoint",
        expire_on_commit=False,
        autoflush=False,
    )
    try:
        yield session
    finally:
        session.close()
        transaction.rollback()
        connection.close()


@pytest.fixture
def teacher(db) -> TeacherProfile:
    return make_teacher(db)


@pytest.fixture
def student(db, teacher) -> StudentProfile:
    return make_student(db, teacher)


@pytest.fixture
def weekday_availability(db, teacher):
    """Monday through Friday, 09:00-17:00 teacher-local."""
    return [add_window(db, teacher, day, "09:00", "17:00") for day in range(1, 6)]


@pytest.fixture
def enqueue() -> Mock:
    return Mock()


@pytest.fixture
def notification_service(db, enqueue) -> NotificationService:
    return NotificationService(db, enqueue=enqueue)


@pytest.fixture
def booking_service(db, notification_service) -> BookingService:
    return BookingService(db, notification_service=notification_service, lock_factory=allow_lock)
