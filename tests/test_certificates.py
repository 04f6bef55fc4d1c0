"""
Tests for certificate issuance and verified disclosure.
Run: python -m pytest tests/ -v
"""
import logging
import sqlite3
import unittest.mock as mock

import pytest

from factories import insert_unreadable_result, make_certificate, make_result

from course_exam import database
from course_exam.certificates import CertificateIssuer, CertificateVerifier
from course_exam.exceptions import DuplicateCertificateError


class TestCertificateIssuer:
    def setup_method(self):
        self.issuer = CertificateIssuer()

    def test_issues_on_passing_attempt(self, course, learner):
        c, _ = course
        attempt = make_result(learner, c.id, correct=42)
        certificate, newly_issued = self.issuer.issue(learner, c.id, attempt)

        assert newly_issued
        assert certificate.exam_score == 840
        assert certificate.title == "Certificate of Completion - Intro to Testing"
        assert certificate.description == \
            "Successfully completed Intro to Testing with a score of 840/1000"
        assert database.get_certificate(learner, c.id) == certificate

    def test_second_pass_returns_original_unchanged(self, course, learner):
        c, _ = course
        first, _ = self.issuer.issue(learner, c.id, make_result(learner, c.id, correct=41))
        again, newly_issued = self.issuer.issue(learner, c.id, make_result(learner, c.id, correct=50))

        assert not newly_issued
        assert again == first
        assert again.exam_score == 820

    def test_failing_attempt_rejected(self, course, learner):
        c, _ = course
        with pytest.raises(ValueError, match="did not pass"):
            self.issuer.issue(learner, c.id, make_result(learner, c.id, correct=20))
        assert database.get_certificate(learner, c.id) is None

    def test_attempt_of_another_user_rejected(self, course, learner):
        c, _ = course
        with pytest.raises(ValueError, match="does not belong"):
            self.issuer.issue("someone-else", c.id, make_result(learner, c.id, correct=45))

    def test_concurrent_issue_returns_winner(self, course, learner):
        """Losing the UNIQUE race yields the certificate that was stored first."""
        c, _ = course
        winner = make_certificate(learner, c.id, exam_score=900)
        with mock.patch.object(database, "get_certificate", side_effect=[None, winner]):
            certificate, newly_issued = self.issuer.issue(
                learner, c.id, make_result(learner, c.id, correct=48))
        assert certificate == winner
        assert not newly_issued

    def test_issue_if_passed(self, course, learner):
        c, _ = course
        certificate = self.issuer.issue_if_passed(learner, c.id, make_result(learner, c.id))
        assert certificate.user_id == learner


class TestCertificateStore:
    def test_duplicate_insert_raises(self, course, learner):
        c, _ = course
        make_certificate(learner, c.id)
        with pytest.raises(DuplicateCertificateError) as exc_info:
            make_certificate(learner, c.id)
        assert exc_info.value.to_dict()["error"] == "DUPLICATE_CERTIFICATE"


class TestCertificateVerifier:
    def setup_method(self):
        self.verifier = CertificateVerifier()

    def test_no_certificate(self, course, learner):
        c, _ = course
        assert self.verifier.get_verified_certificate(learner, c.id) is None

    def test_verified_with_best_attempt(self, course, learner):
        c, _ = course
        first = make_result(learner, c.id, correct=41)
        CertificateIssuer().issue(learner, c.id, first)
        best = make_result(learner, c.id, correct=49)

        verified = self.verifier.get_verified_certificate(learner, c.id)

        assert verified.certificate.exam_score == 820
        assert verified.best_attempt.id == best.id

    def test_certificate_without_passing_result_is_hidden(self, course, learner, caplog):
        c, _ = course
        make_result(learner, c.id, correct=10)
        make_certificate(learner, c.id)

        with caplog.at_level(logging.WARNING, logger="course_exam.certificates"):
            assert self.verifier.get_verified_certificate(learner, c.id) is None
        assert "CERTIFICATE_INTEGRITY_VIOLATION" in caplog.text

    def test_store_failure_denies_access(self, course, learner):
        c, _ = course
        CertificateIssuer().issue(learner, c.id, make_result(learner, c.id, correct=45))
        with mock.patch.object(database, "get_best_passing_result",
                               side_effect=sqlite3.OperationalError("database is locked")):
            assert self.verifier.get_verified_certificate(learner, c.id) is None

    def test_unreadable_result_row_denies_access(self, course, learner, caplog):
        c, _ = course
        insert_unreadable_result(learner, c.id)
        make_certificate(learner, c.id)

        with caplog.at_level(logging.ERROR, logger="course_exam.certificates"):
            assert self.verifier.get_verified_certificate(learner, c.id) is None
        assert "denying access" in caplog.text
