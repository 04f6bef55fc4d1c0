"""
Data models for the course exam & certification core.

Domain records (questions, attempts, certificates, tickets) are frozen
dataclasses: once a row is written it is never mutated.  Everything that
crosses the request boundary is a Pydantic model so callers can
`model_dump()` it straight onto the wire.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


# ─── Enumerations ────────────────────────────────────────────────────────────

class ResponseStatus(str, Enum):
    """Outcome of a request-style operation on ExamService."""
    OK                     = "ok"
    UNAUTHORIZED           = "unauthorized"            # no resolved identity
    COURSE_NOT_FOUND       = "course_not_found"        # 404-equivalent
    NOT_ELIGIBLE           = "not_eligible"            # lessons incomplete
    INSUFFICIENT_QUESTIONS = "insufficient_questions"  # retryable
    ATTEMPT_NOT_FOUND      = "attempt_not_found"       # unknown / reused ticket
    ATTEMPT_EXPIRED        = "attempt_expired"         # outside the time window
    NOT_FOUND              = "not_found"               # certificate not disclosed


# ─── Catalogue / progress (read-only inputs) ─────────────────────────────────

@dataclass(frozen=True)
class Course:
    id:    str
    slug:  str
    title: str


@dataclass(frozen=True)
class LessonProgress:
    """Completed published lessons for one (user, course) pair."""
    completed: frozenset[str]
    total:     int              # number of published lessons in the course

    @property
    def completed_count(self) -> int:
        return len(self.completed)


@dataclass(frozen=True)
class EligibilityStatus:
    eligible:        bool
    completed_count: int
    total_count:     int


# ─── Question bank ───────────────────────────────────────────────────────────

@dataclass
class QuestionDraft:
    """Unvalidated question as produced by a QuestionSource."""
    text:    str
    options: list[str]
    answer:  str


@dataclass(frozen=True)
class Question:
    """A stored multiple-choice question. `answer` is always one of `options`."""
    id:         str
    course_id:  str
    text:       str
    options:    tuple[str, ...]
    answer:     str
    created_at: datetime

    def to_public(self) -> "PublicQuestion":
        """Wire form with the canonical answer withheld."""
        return PublicQuestion(id=self.id, text=self.text, options=list(self.options))


# ─── Attempts & results ──────────────────────────────────────────────────────

@dataclass(frozen=True)
class AttemptTicket:
    """Server-side stamp of the questions presented for one attempt."""
    id:           str
    user_id:      str
    course_id:    str
    question_ids: tuple[str, ...]
    started_at:   datetime
    expires_at:   datetime
    submitted_at: Optional[datetime] = None


@dataclass(frozen=True)
class AnswerReview:
    """Per-question grading row kept with the attempt for later review."""
    question_id:    str
    user_answer:    Optional[str]
    correct_answer: str
    is_correct:     bool


@dataclass(frozen=True)
class ExamAttemptResult:
    id:               str
    user_id:          str
    course_id:        str
    score:            int          # 0–1000
    correct_answers:  int
    total_questions:  int
    percentage_score: int          # 0–100
    passed:           bool
    created_at:       datetime
    answers:          tuple[AnswerReview, ...] = field(default_factory=tuple)

    @property
    def incorrect_answers(self) -> int:
        return self.total_questions - self.correct_answers


# ─── Certificates ────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Certificate:
    id:          str
    user_id:     str
    course_id:   str
    title:       str
    description: str
    exam_score:  int               # copy of the qualifying attempt's score
    issued_at:   datetime


@dataclass(frozen=True)
class VerifiedCertificate:
    """A certificate that has been re-validated against a passing attempt."""
    certificate:  Certificate
    best_attempt: ExamAttemptResult


# ─── Wire models ─────────────────────────────────────────────────────────────

class SubmittedAnswer(BaseModel):
    """One `{questionId, answer}` pair from the client. `answer` may be blank."""
    model_config = ConfigDict(populate_by_name=True)

    question_id: str = Field(alias="questionId")
    answer:      Optional[str] = None


class PublicQuestion(BaseModel):
    id:      str
    text:    str
    options: list[str]


class ProgressPayload(BaseModel):
    completed: int
    total:     int


class SampleResponse(BaseModel):
    status:     ResponseStatus
    message:    str = ""
    progress:   Optional[ProgressPayload] = None
    attempt_id: Optional[str] = None
    expires_at: Optional[datetime] = None
    questions:  list[PublicQuestion] = Field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.questions)


class GradedResult(BaseModel):
    id:               str
    score:            int
    percentage_score: int
    correct_answers:  int
    incorrect_answers: int
    total_questions:  int
    passed:           bool
    pass_threshold:   int
    message:          str


class CertificateConfirmation(BaseModel):
    available:      bool
    certificate_id: str
    newly_issued:   bool
    exam_score:     int


class SubmitResponse(BaseModel):
    status:      ResponseStatus
    message:     str = ""
    progress:    Optional[ProgressPayload] = None
    result:      Optional[GradedResult] = None
    certificate: Optional[CertificateConfirmation] = None


class AttemptSummary(BaseModel):
    id:              str
    score:           int
    total_questions: int
    correct_answers: int
    passed:          bool
    created_at:      datetime

    @classmethod
    def from_result(cls, result: ExamAttemptResult) -> "AttemptSummary":
        return cls(
            id=result.id,
            score=result.score,
            total_questions=result.total_questions,
            correct_answers=result.correct_answers,
            passed=result.passed,
            created_at=result.created_at,
        )


class CertificatePayload(BaseModel):
    id:          str
    course_id:   str
    title:       str
    description: str
    exam_score:  int
    issued_at:   datetime


class CertificateResponse(BaseModel):
    status:      ResponseStatus
    message:     str = ""
    certificate: Optional[CertificatePayload] = None
    exam_result: Optional[AttemptSummary] = None
    redirect_to: Optional[str] = None


class HistoryResponse(BaseModel):
    status:        ResponseStatus
    attempts:      list[AttemptSummary] = Field(default_factory=list)
    best_result:   Optional[AttemptSummary] = None
    attempt_count: int = 0
