"""
Tests for the exam eligibility gate.
Run: python -m pytest tests/ -v
"""
import pytest

from factories import complete_all_lessons, make_course

from course_exam import database
from course_exam.eligibility import EligibilityGate
from course_exam.exceptions import CourseNotFoundError
from course_exam.models import LessonProgress


def _gate_for(completed: int, total: int) -> EligibilityGate:
    progress = LessonProgress(completed=frozenset(f"l{i}" for i in range(completed)), total=total)
    return EligibilityGate(progress_provider=lambda user_id, course_id: progress)


class TestEligibilityRule:
    @pytest.mark.parametrize("completed,total,eligible", [
        (3, 3, True),
        (2, 3, False),
        (0, 3, False),
        (1, 1, True),
        (0, 0, False),   # a course without published lessons is never completable
    ])
    def test_all_lessons_required(self, completed, total, eligible):
        status = _gate_for(completed, total).can_attempt("u1", "c1")
        assert status.eligible is eligible
        assert status.completed_count == completed
        assert status.total_count == total

    def test_unknown_course_raises(self):
        gate = EligibilityGate(progress_provider=lambda user_id, course_id: None)
        with pytest.raises(CourseNotFoundError):
            gate.can_attempt("u1", "missing")


class TestEligibilityFromStore:
    def test_learner_who_finished_everything(self, course, learner):
        c, _ = course
        status = EligibilityGate().can_attempt(learner, c.id)
        assert status.eligible
        assert (status.completed_count, status.total_count) == (3, 3)

    def test_partial_progress(self, course):
        c, lesson_ids = course
        complete_all_lessons("u2", c.id, lesson_ids[:2])
        status = EligibilityGate().can_attempt("u2", c.id)
        assert not status.eligible
        assert (status.completed_count, status.total_count) == (2, 3)

    def test_unpublished_lessons_do_not_count(self):
        c, lesson_ids = make_course(slug="drafty", lessons=2, unpublished=2)
        complete_all_lessons("u3", c.id, lesson_ids)
        status = EligibilityGate().can_attempt("u3", c.id)
        assert status.eligible
        assert status.total_count == 2

    def test_completion_without_enrollment_is_ignored(self, course):
        c, lesson_ids = course
        for lesson_id in lesson_ids:
            database.mark_lesson_completed("u4", lesson_id)
        status = EligibilityGate().can_attempt("u4", c.id)
        assert not status.eligible
        assert status.completed_count == 0

    def test_course_without_lessons(self):
        c, _ = make_course(slug="empty", lessons=0)
        database.enroll("u5", c.id)
        assert not EligibilityGate().can_attempt("u5", c.id).eligible

    def test_unknown_course_in_store(self):
        with pytest.raises(CourseNotFoundError):
            EligibilityGate().can_attempt("u1", "missing")
