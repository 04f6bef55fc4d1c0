"""
exam_service.py — Request surface of the exam & certification core
==================================================================
ExamService wires the components together and exposes four request-style
operations.  Expected conditions (no identity, unknown course, lessons
incomplete, insufficient bank, stale attempt, undisclosable certificate)
come back as a typed `status` on the response model; they are never
raised across this boundary.

  ensure_and_sample(user_id, course_id)             → SampleResponse
      EligibilityGate → QuestionGenerator.ensure_question_bank
      → AttemptSampler.start_attempt (server-side attempt ticket)

  submit(user_id, course_id, attempt_id, answers)   → SubmitResponse
      EligibilityGate → ticket check (ownership, single use, time window)
      → Scorer.score → CertificateIssuer.issue (when passed)

  read_certificate(user_id, course_id)              → CertificateResponse
      CertificateVerifier.get_verified_certificate

  exam_history(user_id, course_id)                  → HistoryResponse
      attempts newest first + best attempt
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Iterable, Optional

from course_exam import database
from course_exam.certificates import CertificateIssuer, CertificateVerifier
from course_exam.config import Settings, get_settings
from course_exam.eligibility import EligibilityGate
from course_exam.exceptions import (
    AttemptExpiredError,
    AttemptNotFoundError,
    CourseNotFoundError,
    InsufficientQuestionBankError,
    NotEligibleError,
)
from course_exam.generator import QuestionGenerator
from course_exam.models import (
    AttemptSummary,
    AttemptTicket,
    CertificateConfirmation,
    CertificatePayload,
    CertificateResponse,
    EligibilityStatus,
    GradedResult,
    HistoryResponse,
    ProgressPayload,
    ResponseStatus,
    SampleResponse,
    SubmitResponse,
)
from course_exam.sampler import AttemptSampler
from course_exam.scorer import MAX_SCORE, PASS_THRESHOLD, AnswerInput, Scorer

logger = logging.getLogger(__name__)

MSG_UNAUTHORIZED     = "Unauthorized"
MSG_COURSE_NOT_FOUND = "Course not found"
MSG_RETRY            = "Insufficient questions generated. Please try again."
MSG_ATTEMPT_MISSING  = "This exam attempt is no longer valid. Please start a new attempt."
MSG_ATTEMPT_EXPIRED  = "The time limit for this exam attempt has passed."
MSG_NO_CERTIFICATE   = "Certificate not found. You may need to pass the exam first."


def result_message(score: int, passed: bool) -> str:
    if passed:
        return f"Congratulations! You passed with a score of {score}/{MAX_SCORE}"
    return (
        f"You scored {score}/{MAX_SCORE}. You need at least "
        f"{PASS_THRESHOLD}/{MAX_SCORE} to pass. Keep learning!"
    )


def _progress(status: EligibilityStatus) -> ProgressPayload:
    return ProgressPayload(completed=status.completed_count, total=status.total_count)


def _progress_from(exc: NotEligibleError) -> ProgressPayload:
    return ProgressPayload(completed=exc.details["completed"], total=exc.details["total"])


class ExamService:

    def __init__(
        self,
        settings:  Optional[Settings] = None,
        gate:      Optional[EligibilityGate] = None,
        generator: Optional[QuestionGenerator] = None,
        sampler:   Optional[AttemptSampler] = None,
        scorer:    Optional[Scorer] = None,
        issuer:    Optional[CertificateIssuer] = None,
        verifier:  Optional[CertificateVerifier] = None,
        clock:     Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.settings  = settings or get_settings()
        self.gate      = gate or EligibilityGate()
        self.generator = generator or QuestionGenerator(settings=self.settings)
        self.sampler   = sampler or AttemptSampler(settings=self.settings)
        self.scorer    = scorer or Scorer()
        self.issuer    = issuer or CertificateIssuer()
        self.verifier  = verifier or CertificateVerifier()
        self._clock    = clock or database.utcnow

    # ── access checks ────────────────────────────────────────────────────────

    def _require_eligible(self, user_id: str, course_id: str) -> EligibilityStatus:
        status = self.gate.can_attempt(user_id, course_id)
        if not status.eligible:
            raise NotEligibleError(course_id, status.completed_count, status.total_count)
        return status

    def _claim_ticket(self, user_id: str, course_id: str, attempt_id: Optional[str]) -> AttemptTicket:
        """Consume the attempt ticket; it is spent even when the window has closed."""
        ticket = database.get_attempt_ticket(attempt_id) if attempt_id else None
        if (
            ticket is None
            or ticket.user_id != user_id
            or ticket.course_id != course_id
            or ticket.submitted_at is not None
        ):
            raise AttemptNotFoundError(attempt_id or "")

        now = self._clock()
        if not database.consume_attempt_ticket(ticket.id, now):
            raise AttemptNotFoundError(ticket.id)
        if now > ticket.expires_at:
            raise AttemptExpiredError(ticket.id, ticket.expires_at.isoformat())
        return ticket

    # ── ensure-and-sample ────────────────────────────────────────────────────

    def ensure_and_sample(self, user_id: Optional[str], course_id: str) -> SampleResponse:
        if not user_id:
            return SampleResponse(status=ResponseStatus.UNAUTHORIZED, message=MSG_UNAUTHORIZED)

        try:
            eligibility = self._require_eligible(user_id, course_id)
        except CourseNotFoundError:
            return SampleResponse(status=ResponseStatus.COURSE_NOT_FOUND, message=MSG_COURSE_NOT_FOUND)
        except NotEligibleError as exc:
            return SampleResponse(
                status=ResponseStatus.NOT_ELIGIBLE,
                message=exc.message,
                progress=_progress_from(exc),
            )

        try:
            self.generator.ensure_question_bank(course_id)
            ticket, questions = self.sampler.start_attempt(user_id, course_id)
        except InsufficientQuestionBankError as exc:
            logger.error("Cannot start exam for course %s: %s", course_id, exc.details)
            return SampleResponse(
                status=ResponseStatus.INSUFFICIENT_QUESTIONS,
                message=MSG_RETRY,
                progress=_progress(eligibility),
            )

        return SampleResponse(
            status=ResponseStatus.OK,
            message=f"Found {len(questions)} questions",
            progress=_progress(eligibility),
            attempt_id=ticket.id,
            expires_at=ticket.expires_at,
            questions=[q.to_public() for q in questions],
        )

    # ── submit ───────────────────────────────────────────────────────────────

    def submit(self, user_id: Optional[str], course_id: str, attempt_id: str,
               answers: Iterable[AnswerInput]) -> SubmitResponse:
        if not user_id:
            return SubmitResponse(status=ResponseStatus.UNAUTHORIZED, message=MSG_UNAUTHORIZED)

        try:
            eligibility = self._require_eligible(user_id, course_id)
        except CourseNotFoundError:
            return SubmitResponse(status=ResponseStatus.COURSE_NOT_FOUND, message=MSG_COURSE_NOT_FOUND)
        except NotEligibleError as exc:
            return SubmitResponse(
                status=ResponseStatus.NOT_ELIGIBLE,
                message=exc.message,
                progress=_progress_from(exc),
            )

        try:
            ticket = self._claim_ticket(user_id, course_id, attempt_id)
        except AttemptNotFoundError as exc:
            logger.info("Rejected submission: %s", exc.message)
            return SubmitResponse(status=ResponseStatus.ATTEMPT_NOT_FOUND, message=MSG_ATTEMPT_MISSING)
        except AttemptExpiredError as exc:
            logger.info("Rejected late submission for attempt %s (expired %s)",
                        exc.details["attempt_id"], exc.details["expires_at"])
            return SubmitResponse(status=ResponseStatus.ATTEMPT_EXPIRED, message=MSG_ATTEMPT_EXPIRED)

        presented = database.get_questions_by_ids(course_id, ticket.question_ids)
        if len(presented) < len(ticket.question_ids):
            logger.warning("Attempt %s: %d presented questions are no longer in the bank",
                           ticket.id, len(ticket.question_ids) - len(presented))

        result = self.scorer.score(user_id, course_id, presented, answers,
                                   presented_count=len(ticket.question_ids))

        confirmation = None
        if result.passed:
            certificate, newly_issued = self.issuer.issue(user_id, course_id, result)
            database.mark_enrollment_completed(user_id, course_id)
            confirmation = CertificateConfirmation(
                available=True,
                certificate_id=certificate.id,
                newly_issued=newly_issued,
                exam_score=certificate.exam_score,
            )

        message = result_message(result.score, result.passed)
        return SubmitResponse(
            status=ResponseStatus.OK,
            message=message,
            progress=_progress(eligibility),
            result=GradedResult(
                id=result.id,
                score=result.score,
                percentage_score=result.percentage_score,
                correct_answers=result.correct_answers,
                incorrect_answers=result.incorrect_answers,
                total_questions=result.total_questions,
                passed=result.passed,
                pass_threshold=PASS_THRESHOLD,
                message=message,
            ),
            certificate=confirmation,
        )

    # ── certificate-read ─────────────────────────────────────────────────────

    def read_certificate(self, user_id: Optional[str], course_id: str) -> CertificateResponse:
        if not user_id:
            return CertificateResponse(status=ResponseStatus.UNAUTHORIZED, message=MSG_UNAUTHORIZED)

        verified = self.verifier.get_verified_certificate(user_id, course_id)
        if verified is None:
            course = database.get_course(course_id)
            return CertificateResponse(
                status=ResponseStatus.NOT_FOUND,
                message=MSG_NO_CERTIFICATE,
                redirect_to=f"/courses/{course.slug}" if course else None,
            )

        cert = verified.certificate
        return CertificateResponse(
            status=ResponseStatus.OK,
            certificate=CertificatePayload(
                id=cert.id,
                course_id=cert.course_id,
                title=cert.title,
                description=cert.description,
                exam_score=cert.exam_score,
                issued_at=cert.issued_at,
            ),
            exam_result=AttemptSummary.from_result(verified.best_attempt),
        )

    # ── history ──────────────────────────────────────────────────────────────

    def exam_history(self, user_id: Optional[str], course_id: str) -> HistoryResponse:
        if not user_id:
            return HistoryResponse(status=ResponseStatus.UNAUTHORIZED)
        if database.get_course(course_id) is None:
            return HistoryResponse(status=ResponseStatus.COURSE_NOT_FOUND)

        results = database.get_exam_results(user_id, course_id)
        best = max(results, key=lambda r: r.score) if results else None
        return HistoryResponse(
            status=ResponseStatus.OK,
            attempts=[AttemptSummary.from_result(r) for r in results],
            best_result=AttemptSummary.from_result(best) if best else None,
            attempt_count=len(results),
        )
