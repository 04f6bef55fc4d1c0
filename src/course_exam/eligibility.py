"""
eligibility.py — Exam eligibility gate
======================================
A learner may attempt a course's final exam only after completing every
published lesson.  A course with no published lessons can never be
completed, so it is never eligible (no 0/0 == 100% shortcut).

The gate is read-only.  An unknown course raises CourseNotFoundError, which
callers must keep distinct from an ineligible result.
"""

from __future__ import annotations

from typing import Callable, Optional

from course_exam import database
from course_exam.exceptions import CourseNotFoundError
from course_exam.models import EligibilityStatus, LessonProgress

ProgressProvider = Callable[[str, str], Optional[LessonProgress]]


class EligibilityGate:

    def __init__(self, progress_provider: Optional[ProgressProvider] = None) -> None:
        self._progress = progress_provider or database.get_lesson_progress

    def can_attempt(self, user_id: str, course_id: str) -> EligibilityStatus:
        progress = self._progress(user_id, course_id)
        if progress is None:
            raise CourseNotFoundError(course_id)

        completed = min(progress.completed_count, progress.total)
        return EligibilityStatus(
            eligible=progress.total > 0 and completed == progress.total,
            completed_count=completed,
            total_count=progress.total,
        )
