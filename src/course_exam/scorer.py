"""
scorer.py — Exam grading
========================
Grades one submission against the questions that were actually presented
for the attempt (not the full bank) and appends the outcome to the result
history.

  score            = round(correct / presented * 1000)
  percentage_score = round(correct / presented * 100)
  passed           = score >= PASS_THRESHOLD

Rounding is half-up on the exact fraction.  Missing, blank or unknown
answers count as incorrect and never raise.  When a question id is
submitted more than once, the first answer counts.
"""

from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, Mapping, Optional, Union

from pydantic import ValidationError

from course_exam import database
from course_exam.guardrails import normalise_answer
from course_exam.models import AnswerReview, ExamAttemptResult, Question, SubmittedAnswer

logger = logging.getLogger(__name__)

PASS_THRESHOLD = 800   # fixed platform policy, out of MAX_SCORE
MAX_SCORE = 1000

AnswerInput = Union[SubmittedAnswer, Mapping[str, Any]]


def normalised_score(correct: int, total: int, scale: int) -> int:
    """`correct / total * scale`, rounded half-up. Zero when nothing was presented."""
    if total <= 0:
        return 0
    value = Decimal(correct) * Decimal(scale) / Decimal(total)
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def _coerce_answers(answers: Iterable[AnswerInput]) -> list[SubmittedAnswer]:
    coerced: list[SubmittedAnswer] = []
    for raw in answers or []:
        if isinstance(raw, SubmittedAnswer):
            coerced.append(raw)
            continue
        try:
            coerced.append(SubmittedAnswer.model_validate(raw))
        except ValidationError as exc:
            logger.warning("Ignoring malformed answer entry %r: %s", raw, exc.errors()[0]["msg"])
    return coerced


class Scorer:
    """
    Usage::

        scorer = Scorer()
        result = scorer.score(user_id, course_id, presented_questions, answers)
    """

    pass_threshold = PASS_THRESHOLD

    def grade(self, presented: list[Question],
              answers: Iterable[AnswerInput]) -> tuple[int, list[AnswerReview]]:
        """Return (correct_count, per-question review) for the presented set."""
        submitted: dict[str, SubmittedAnswer] = {}
        for a in _coerce_answers(answers):
            submitted.setdefault(a.question_id, a)

        correct = 0
        reviews: list[AnswerReview] = []
        for q in presented:
            given = submitted.get(q.id)
            user_answer = given.answer if given else None
            is_correct = user_answer is not None and \
                normalise_answer(user_answer) == normalise_answer(q.answer)
            correct += int(is_correct)
            reviews.append(AnswerReview(
                question_id=q.id,
                user_answer=user_answer,
                correct_answer=q.answer,
                is_correct=is_correct,
            ))

        stray = set(submitted) - {q.id for q in presented}
        if stray:
            logger.debug("Ignored %d answers for questions outside the attempt", len(stray))
        return correct, reviews

    def build_result(self, user_id: str, course_id: str, presented: list[Question],
                     answers: Iterable[AnswerInput],
                     presented_count: Optional[int] = None) -> ExamAttemptResult:
        """`presented_count` keeps the denominator at the number of questions
        shown even if some of them have since left the bank."""
        correct, reviews = self.grade(presented, answers)
        total = max(presented_count or 0, len(presented))
        score = normalised_score(correct, total, MAX_SCORE)
        return ExamAttemptResult(
            id=database.new_id(),
            user_id=user_id,
            course_id=course_id,
            score=score,
            correct_answers=correct,
            total_questions=total,
            percentage_score=normalised_score(correct, total, 100),
            passed=total > 0 and score >= self.pass_threshold,
            created_at=database.utcnow(),
            answers=tuple(reviews),
        )

    def score(self, user_id: str, course_id: str, presented: list[Question],
              answers: Iterable[AnswerInput],
              presented_count: Optional[int] = None) -> ExamAttemptResult:
        """Grade the submission and append it to the result history."""
        result = self.build_result(user_id, course_id, presented, answers, presented_count)
        database.insert_exam_result(result)
        logger.info(
            "Graded attempt %s for user %s on course %s: %d/%d → %d/%d (passed=%s)",
            result.id, user_id, course_id, result.correct_answers, result.total_questions,
            result.score, MAX_SCORE, result.passed,
        )
        return result
