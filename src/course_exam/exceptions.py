"""
Exam core exceptions.

Components raise these; ExamService turns the expected ones (not found,
not eligible, expired attempt) into typed response statuses so they never
cross the request boundary as raw errors.
"""

from __future__ import annotations

from typing import Any, Optional


class ExamCoreError(Exception):
    """Base exception for exam & certification errors."""

    def __init__(
        self,
        message: str,
        code: str = "EXAM_CORE_ERROR",
        details: Optional[dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class CourseNotFoundError(ExamCoreError):
    """Raised when a course id does not resolve to a course."""

    def __init__(self, course_id: str):
        super().__init__(
            message=f"Course not found: {course_id}",
            code="COURSE_NOT_FOUND",
            details={"course_id": course_id},
        )


class NotEligibleError(ExamCoreError):
    """Raised when the learner has not completed every published lesson."""

    def __init__(self, course_id: str, completed: int, total: int):
        super().__init__(
            message="You must complete all lessons before taking the exam",
            code="NOT_ELIGIBLE",
            details={"course_id": course_id, "completed": completed, "total": total},
        )


class InsufficientQuestionBankError(ExamCoreError):
    """Raised when a bank stays below the hard minimum after generation."""

    def __init__(self, course_id: str, available: int, required: int):
        super().__init__(
            message=f"Only {available} questions found. Minimum {required} required.",
            code="INSUFFICIENT_QUESTION_BANK",
            details={"course_id": course_id, "available": available, "required": required},
        )


class InvalidQuestionDefinitionError(ExamCoreError):
    """Raised when a question draft breaks the answer-in-options invariant."""

    def __init__(self, message: str, field: str = "", details: Optional[dict[str, Any]] = None):
        error_details = details or {}
        if field:
            error_details["field"] = field
        super().__init__(
            message=message,
            code="INVALID_QUESTION_DEFINITION",
            details=error_details,
        )


class DuplicateCertificateError(ExamCoreError):
    """Raised by the store when the (user, course) certificate already exists."""

    def __init__(self, user_id: str, course_id: str):
        super().__init__(
            message=f"Certificate already issued for user {user_id} on course {course_id}",
            code="DUPLICATE_CERTIFICATE",
            details={"user_id": user_id, "course_id": course_id},
        )


class CertificateIntegrityError(ExamCoreError):
    """A certificate exists without any passing attempt behind it."""

    def __init__(self, user_id: str, course_id: str, certificate_id: str):
        super().__init__(
            message="Certificate has no backing passing exam result",
            code="CERTIFICATE_INTEGRITY_VIOLATION",
            details={
                "user_id": user_id,
                "course_id": course_id,
                "certificate_id": certificate_id,
            },
        )


class AttemptNotFoundError(ExamCoreError):
    """Raised when a submission references an unknown or already used attempt."""

    def __init__(self, attempt_id: str):
        super().__init__(
            message=f"Exam attempt not found or already submitted: {attempt_id}",
            code="ATTEMPT_NOT_FOUND",
            details={"attempt_id": attempt_id},
        )


class AttemptExpiredError(ExamCoreError):
    """Raised when a submission arrives after the attempt window closed."""

    def __init__(self, attempt_id: str, expires_at: str):
        super().__init__(
            message="The time limit for this exam attempt has passed",
            code="ATTEMPT_EXPIRED",
            details={"attempt_id": attempt_id, "expires_at": expires_at},
        )
