"""
certificates.py — Certificate issuance and verified disclosure
==============================================================
CertificateIssuer
    Issues a certificate for a passing attempt, at most once per
    (user, course).  Passing again returns the original certificate
    unchanged.  Two concurrent passing submissions race on the store's
    UNIQUE(user_id, course_id) constraint; the loser fetches and returns
    the winner's row.

CertificateVerifier
    Guards every read of a certificate.  The row alone is not trusted: a
    passing exam result for the same (user, course) must exist as well,
    otherwise the certificate is treated as not found and the anomaly is
    logged for operators.  A store error or an unreadable result row while
    re-validating also denies access.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Optional

from course_exam import database
from course_exam.exceptions import CertificateIntegrityError, DuplicateCertificateError
from course_exam.models import Certificate, ExamAttemptResult, VerifiedCertificate
from course_exam.scorer import MAX_SCORE

logger = logging.getLogger(__name__)


class CertificateIssuer:

    def issue(self, user_id: str, course_id: str,
              attempt: ExamAttemptResult) -> tuple[Certificate, bool]:
        """Return (certificate, newly_issued)."""
        if not attempt.passed:
            raise ValueError(f"Attempt {attempt.id} did not pass; no certificate can be issued")
        if attempt.user_id != user_id or attempt.course_id != course_id:
            raise ValueError(f"Attempt {attempt.id} does not belong to user {user_id} on course {course_id}")

        existing = database.get_certificate(user_id, course_id)
        if existing is not None:
            return existing, False

        course = database.get_course(course_id)
        course_title = course.title if course else course_id
        certificate = Certificate(
            id=database.new_id(),
            user_id=user_id,
            course_id=course_id,
            title=f"Certificate of Completion - {course_title}",
            description=(
                f"Successfully completed {course_title} with a score of "
                f"{attempt.score}/{MAX_SCORE}"
            ),
            exam_score=attempt.score,
            issued_at=database.utcnow(),
        )
        try:
            database.insert_certificate(certificate)
        except DuplicateCertificateError:
            logger.info(
                "Certificate for user %s on course %s was issued concurrently; returning existing",
                user_id, course_id,
            )
            return database.get_certificate(user_id, course_id), False

        logger.info("Issued certificate %s to user %s for course %s (score %d)",
                    certificate.id, user_id, course_id, certificate.exam_score)
        return certificate, True

    def issue_if_passed(self, user_id: str, course_id: str,
                        attempt: ExamAttemptResult) -> Certificate:
        certificate, _ = self.issue(user_id, course_id, attempt)
        return certificate


class CertificateVerifier:

    def get_verified_certificate(self, user_id: str, course_id: str) -> Optional[VerifiedCertificate]:
        """Certificate plus its best passing attempt, or None when disclosure is denied."""
        certificate = database.get_certificate(user_id, course_id)
        if certificate is None:
            return None

        try:
            best = database.get_best_passing_result(user_id, course_id)
        except (sqlite3.Error, ValueError, TypeError, KeyError):
            logger.exception("Could not re-validate certificate %s; denying access", certificate.id)
            return None

        if best is None:
            violation = CertificateIntegrityError(user_id, course_id, certificate.id)
            logger.warning("Security: %s %s", violation.code, violation.details)
            return None

        return VerifiedCertificate(certificate=certificate, best_attempt=best)
