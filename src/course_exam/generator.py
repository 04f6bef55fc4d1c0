"""
generator.py — Question bank generation
=======================================
QuestionGenerator makes sure a course has a bank large enough to sample an
exam from.  It is idempotent: a bank that already meets the minimum size is
returned untouched, and the store re-checks the size inside its write
transaction so two concurrent first-time calls cannot both write a bank.

Every draft passes QuestionGuardrails before insert; a draft whose answer is
not one of its options (or that is otherwise malformed) is skipped and
logged, never stored.
"""

from __future__ import annotations

import logging
from typing import Optional

from openai import OpenAIError
from pydantic import ValidationError

from course_exam import database
from course_exam.config import Settings, get_settings
from course_exam.exceptions import CourseNotFoundError, InsufficientQuestionBankError
from course_exam.guardrails import BankGuardrails, QuestionGuardrails, clean_draft, dedupe_drafts
from course_exam.models import Course, Question, QuestionDraft
from course_exam.question_sources import QuestionSource, get_question_source

logger = logging.getLogger(__name__)


class QuestionGenerator:
    """
    Ensures and (re)builds per-course question banks.

    Usage::

        generator = QuestionGenerator()
        questions = generator.ensure_question_bank(course_id)   # ≥ 40 questions
    """

    def __init__(self, source: Optional[QuestionSource] = None,
                 settings: Optional[Settings] = None) -> None:
        self.settings = settings or get_settings()
        self.source = source or get_question_source(self.settings)
        self._question_guard = QuestionGuardrails()
        self._bank_guard = BankGuardrails()

    def _course(self, course_id: str) -> Course:
        course = database.get_course(course_id)
        if course is None:
            raise CourseNotFoundError(course_id)
        return course

    def _target_size(self, min_size: int) -> int:
        return max(min_size, self.settings.exam.questions_per_attempt)

    def build_drafts(self, course: Course, target: int) -> list[QuestionDraft]:
        """Pull drafts from the source and keep only valid, unique ones."""
        try:
            raw_drafts = self.source.generate(course, target)
        except (EnvironmentError, OpenAIError, ValidationError, ValueError) as exc:
            logger.error("Question source %s failed for %s: %s", self.source.name, course.slug, exc)
            raw_drafts = []

        accepted: list[QuestionDraft] = []
        for raw in raw_drafts:
            draft = clean_draft(raw)
            check = self._question_guard.check(draft)
            if not check.passed:
                logger.warning(
                    "Skipping invalid question for %s (INVALID_QUESTION_DEFINITION): %r — %s",
                    course.slug, draft.text[:80], check.summary(),
                )
                continue
            accepted.append(draft)

        bank_check = self._bank_guard.check(accepted, target)
        for v in bank_check.warnings:
            logger.info("Bank check for %s: [%s] %s", course.slug, v.code, v.message)
        return dedupe_drafts(accepted)

    def ensure_question_bank(self, course_id: str, min_size: Optional[int] = None) -> list[Question]:
        """Return the bank for `course_id`, generating it if it has < `min_size` questions."""
        min_size = min_size if min_size is not None else self.settings.exam.min_bank_size
        course = self._course(course_id)

        existing = database.count_questions(course_id)
        if existing >= min_size:
            return database.get_questions(course_id)

        drafts = self.build_drafts(course, self._target_size(min_size))
        if len(drafts) < min_size:
            logger.error(
                "Source %s produced %d valid questions for %s; %d required",
                self.source.name, len(drafts), course.slug, min_size,
            )
            raise InsufficientQuestionBankError(course_id, len(drafts), min_size)

        written = database.replace_question_bank(course_id, drafts, self.source.name, min_size=min_size)
        if written:
            logger.info("Stored %d questions for %s (source=%s)", len(drafts), course.slug, self.source.name)
        else:
            logger.info("Bank for %s was generated concurrently; using stored bank", course.slug)
        return database.get_questions(course_id)

    def regenerate_question_bank(self, course_id: str, min_size: Optional[int] = None) -> list[Question]:
        """Replace the whole bank for `course_id` (admin operation)."""
        min_size = min_size if min_size is not None else self.settings.exam.min_bank_size
        course = self._course(course_id)
        drafts = self.build_drafts(course, self._target_size(min_size))
        if len(drafts) < min_size:
            raise InsufficientQuestionBankError(course_id, len(drafts), min_size)
        database.replace_question_bank(course_id, drafts, self.source.name)
        logger.info("Regenerated %d questions for %s", len(drafts), course.slug)
        return database.get_questions(course_id)
