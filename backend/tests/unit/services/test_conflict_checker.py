# backend/tests/unit/services/test_conflict_checker.py
from datetime import timedelta

import pytest

from lessonbook.models.lesson import Lesson, LessonStatus
from lessonbook.services.conflict_checker import ConflictChecker
from tests.factories import make_teacher, utc

START = utc(2026, 1, 5, 15)  # Monday 10:00 New York


@pytest.fixture
def checker(db):
    return ConflictChecker(db)


@pytest.fixture
def existing(db, teacher, student):
    lesson = Lesson(
        teacher_id=teacher.id,
        student_id=student.id,
        start_utc=START,
        duration=30,
        timezone=teacher.timezone,
        price=5000,
    )
    db.add(lesson)
    db.commit()
    return lesson


class TestConflictChecker:
    def test_overlap_detected(self, checker, teacher, existing):
        conflicts = checker.find_conflicts(teacher.id, START + timedelta(minutes=15), 30)
        assert [conflict.lesson_id for conflict in conflicts] == [existing.id]
        assert conflicts[0].to_dict()["status"] == LessonStatus.SCHEDULED.value

    def test_containing_range_detected(self, checker, teacher, existing):
        assert checker.has_conflict(teacher.id, START - timedelta(minutes=30), 120)

    def test_touching_ranges_do_not_conflict(self, checker, teacher, existing):
        assert not checker.has_conflict(teacher.id, START + timedelta(minutes=30), 30)
        assert not checker.has_conflict(teacher.id, START - timedelta(minutes=30), 30)

    def test_cancelled_lessons_free_the_time(self, db, checker, teacher, existing):
        existing.cancel(START - timedelta(days=1))
        db.commit()
        assert not checker.has_conflict(teacher.id, START, 30)

    def test_completed_lessons_do_not_block(self, db, checker, teacher, existing):
        existing.complete(START + timedelta(minutes=30))
        db.commit()
        assert not checker.has_conflict(teacher.id, START, 30)

    def test_other_teachers_ignored(self, db, checker, existing):
        other = make_teacher(db, email="other@example.com")
        assert not checker.has_conflict(other.id, START, 30)

    def test_exclude_lesson(self, checker, teacher, existing):
        assert not checker.has_conflict(teacher.id, START, 30, exclude_lesson_id=existing.id)
