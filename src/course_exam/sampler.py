"""
sampler.py — Per-attempt question sampling
==========================================
Draws a uniform random subset of the bank, without replacement, for one
exam attempt.  Samples are independent: two attempts by the same learner
may share questions.

A bank below the hard minimum is an error (InsufficientQuestionBankError);
a bank that is above the minimum but below the per-attempt target is served
whole, shuffled.

start_attempt() also stamps an AttemptTicket so the server, not the
client, knows which questions were presented and when the time window
closes.
"""

from __future__ import annotations

import logging
import random
from datetime import timedelta
from typing import Optional

from course_exam import database
from course_exam.config import Settings, get_settings
from course_exam.exceptions import InsufficientQuestionBankError
from course_exam.models import AttemptTicket, Question

logger = logging.getLogger(__name__)


class AttemptSampler:

    def __init__(self, settings: Optional[Settings] = None,
                 rng: Optional[random.Random] = None) -> None:
        self.settings = settings or get_settings()
        self._rng = rng or random.SystemRandom()

    def sample_questions(self, course_id: str, count: Optional[int] = None) -> list[Question]:
        """Return up to `count` distinct questions drawn from the course bank."""
        count = count if count is not None else self.settings.exam.questions_per_attempt
        bank = database.get_questions(course_id)
        minimum = self.settings.exam.min_bank_size
        if len(bank) < minimum:
            raise InsufficientQuestionBankError(course_id, len(bank), minimum)

        sampled = self._rng.sample(bank, min(count, len(bank)))
        logger.debug("Sampled %d of %d questions for course %s", len(sampled), len(bank), course_id)
        return sampled

    def start_attempt(self, user_id: str, course_id: str,
                      count: Optional[int] = None) -> tuple[AttemptTicket, list[Question]]:
        """Sample questions and record the attempt start server-side."""
        questions = self.sample_questions(course_id, count)
        started_at = database.utcnow()
        expires_at = started_at + timedelta(seconds=self.settings.exam.attempt_window_seconds)
        ticket = database.create_attempt_ticket(
            user_id, course_id, [q.id for q in questions], started_at, expires_at,
        )
        return ticket, questions
