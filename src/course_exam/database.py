"""
course_exam/database.py — SQLite persistence layer for the exam core
====================================================================
Question banks, attempt tickets, exam results and certificates live in a
single SQLite file alongside a minimal copy of the catalogue/progress data
(courses, lessons, enrollments, lesson progress) that the eligibility gate
reads.  In production the catalogue tables are owned by the platform; here
they are filled by `seed.py` and by tests.

Design decisions
----------------
- **One connection per call** — every public function opens and closes its
  own connection, so callers never share cursors across requests.
- **WAL journal mode** — readers are not blocked by the one writer.
- **Bank writes are one IMMEDIATE transaction** — the count check, the
  generation marker upsert and the bulk insert happen under the write lock,
  so two first-time generators cannot both store a bank.
- **UNIQUE(user_id, course_id) on certificates** — the second concurrent
  insert fails with IntegrityError, surfaced as DuplicateCertificateError.
- **exam_results is append-only** — there is no update or delete function.
- Timestamps are stored as ISO-8601 UTC strings with microseconds so text
  ordering equals time ordering.

Public API
----------
  init_db()                                    create tables if missing
  upsert_course(slug, title)                   → course_id
  get_course(course_id) / get_course_by_slug   → Course | None
  add_lesson(course_id, title, …)              → lesson_id
  enroll(user_id, course_id)
  mark_lesson_completed(user_id, lesson_id)
  mark_enrollment_completed(user_id, course_id)
  get_lesson_progress(user_id, course_id)      → LessonProgress | None
  count_questions(course_id)                   → int
  get_questions(course_id)                     → list[Question]
  get_questions_by_ids(course_id, ids)         → list[Question]
  replace_question_bank(course_id, drafts, …)  → bool (False: bank already sufficient)
  get_bank_generation(course_id)               → dict | None
  create_attempt_ticket(…)                     → AttemptTicket
  get_attempt_ticket(ticket_id)                → AttemptTicket | None
  consume_attempt_ticket(ticket_id, at)        → bool
  insert_exam_result(result)
  get_exam_results(user_id, course_id)         → list[ExamAttemptResult] (newest first)
  get_best_passing_result(user_id, course_id)  → ExamAttemptResult | None
  get_certificate(user_id, course_id)          → Certificate | None
  insert_certificate(certificate)              raises DuplicateCertificateError
"""

from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from datetime import datetime, timezone
from typing import Iterable, Optional

from course_exam.config import get_settings
from course_exam.exceptions import DuplicateCertificateError, InvalidQuestionDefinitionError
from course_exam.models import (
    AnswerReview,
    AttemptTicket,
    Certificate,
    Course,
    ExamAttemptResult,
    LessonProgress,
    Question,
    QuestionDraft,
)

logger = logging.getLogger(__name__)


def new_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _ts(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _get_conn(autocommit: bool = False) -> sqlite3.Connection:
    """Return a connection with row_factory set.

    With ``autocommit=True`` the caller drives BEGIN/COMMIT itself.
    """
    db_path = get_settings().storage.db_path
    conn = sqlite3.connect(
        str(db_path),
        check_same_thread=False,
        timeout=10.0,
        isolation_level=None if autocommit else "",
    )
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    return conn


def init_db() -> None:
    """Create tables if they don't exist."""
    conn = _get_conn()
    try:
        conn.executescript("""
        CREATE TABLE IF NOT EXISTS courses (
            id          TEXT PRIMARY KEY,
            slug        TEXT UNIQUE NOT NULL,
            title       TEXT NOT NULL,
            created_at  TEXT NOT NULL
        );
        CREATE TABLE IF NOT EXISTS lessons (
            id            TEXT PRIMARY KEY,
            course_id     TEXT NOT NULL REFERENCES courses(id),
            title         TEXT NOT NULL,
            position      INTEGER NOT NULL DEFAULT 0,
            is_published  INTEGER NOT NULL DEFAULT 1
        );
        CREATE TABLE IF NOT EXISTS enrollments (
            user_id       TEXT NOT NULL,
            course_id     TEXT NOT NULL REFERENCES courses(id),
            progress      INTEGER NOT NULL DEFAULT 0,
            enrolled_at   TEXT NOT NULL,
            completed_at  TEXT,
            PRIMARY KEY (user_id, course_id)
        );
        CREATE TABLE IF NOT EXISTS lesson_progress (
            user_id       TEXT NOT NULL,
            lesson_id     TEXT NOT NULL REFERENCES lessons(id),
            is_completed  INTEGER NOT NULL DEFAULT 0,
            completed_at  TEXT,
            PRIMARY KEY (user_id, lesson_id)
        );
        CREATE TABLE IF NOT EXISTS exam_questions (
            id            TEXT PRIMARY KEY,
            course_id     TEXT NOT NULL REFERENCES courses(id),
            text          TEXT NOT NULL,
            options_json  TEXT NOT NULL,
            answer        TEXT NOT NULL,
            created_at    TEXT NOT NULL
        );
        CREATE INDEX IF NOT EXISTS ix_exam_questions_course ON exam_questions(course_id);
        CREATE TABLE IF NOT EXISTS question_bank_generations (
            course_id       TEXT PRIMARY KEY REFERENCES courses(id),
            source          TEXT NOT NULL,
            question_count  INTEGER NOT NULL,
            generated_at    TEXT NOT NULL
        );
        CREATE TABLE IF NOT EXISTS attempt_tickets (
            id                 TEXT PRIMARY KEY,
            user_id            TEXT NOT NULL,
            course_id          TEXT NOT NULL REFERENCES courses(id),
            question_ids_json  TEXT NOT NULL,
            started_at         TEXT NOT NULL,
            expires_at         TEXT NOT NULL,
            submitted_at       TEXT
        );
        CREATE TABLE IF NOT EXISTS exam_results (
            id                TEXT PRIMARY KEY,
            user_id           TEXT NOT NULL,
            course_id         TEXT NOT NULL REFERENCES courses(id),
            score             INTEGER NOT NULL,
            total_questions   INTEGER NOT NULL,
            correct_answers   INTEGER NOT NULL,
            percentage_score  INTEGER NOT NULL,
            passed            INTEGER NOT NULL,
            answers_json      TEXT NOT NULL DEFAULT '[]',
            created_at        TEXT NOT NULL
        );
        CREATE INDEX IF NOT EXISTS ix_exam_results_user_course ON exam_results(user_id, course_id);
        CREATE TABLE IF NOT EXISTS certificates (
            id           TEXT PRIMARY KEY,
            user_id      TEXT NOT NULL,
            course_id    TEXT NOT NULL REFERENCES courses(id),
            title        TEXT NOT NULL,
            description  TEXT NOT NULL,
            exam_score   INTEGER NOT NULL,
            issued_at    TEXT NOT NULL,
            UNIQUE (user_id, course_id)
        );
        """)
        conn.commit()
    finally:
        conn.close()


# ─── Catalogue & progress ────────────────────────────────────────────────────

def _course_from_row(row: sqlite3.Row) -> Course:
    return Course(id=row["id"], slug=row["slug"], title=row["title"])


def upsert_course(slug: str, title: str, course_id: Optional[str] = None) -> str:
    """Create the course if its slug is new; return the course id either way."""
    existing = get_course_by_slug(slug)
    if existing:
        return existing.id
    course_id = course_id or new_id()
    conn = _get_conn()
    try:
        conn.execute(
            "INSERT INTO courses (id, slug, title, created_at) VALUES (?, ?, ?, ?)",
            (course_id, slug, title, _ts(utcnow())),
        )
        conn.commit()
    finally:
        conn.close()
    return course_id


def get_course(course_id: str) -> Optional[Course]:
    conn = _get_conn()
    try:
        row = conn.execute("SELECT * FROM courses WHERE id = ?", (course_id,)).fetchone()
    finally:
        conn.close()
    return _course_from_row(row) if row else None


def get_course_by_slug(slug: str) -> Optional[Course]:
    conn = _get_conn()
    try:
        row = conn.execute("SELECT * FROM courses WHERE slug = ?", (slug,)).fetchone()
    finally:
        conn.close()
    return _course_from_row(row) if row else None


def add_lesson(course_id: str, title: str, position: int = 0,
               is_published: bool = True, lesson_id: Optional[str] = None) -> str:
    lesson_id = lesson_id or new_id()
    conn = _get_conn()
    try:
        conn.execute(
            "INSERT INTO lessons (id, course_id, title, position, is_published) VALUES (?, ?, ?, ?, ?)",
            (lesson_id, course_id, title, position, int(is_published)),
        )
        conn.commit()
    finally:
        conn.close()
    return lesson_id


def get_lesson_titles(course_id: str) -> list[str]:
    """Published lesson titles in course order."""
    conn = _get_conn()
    try:
        rows = conn.execute(
            "SELECT title FROM lessons WHERE course_id = ? AND is_published = 1 ORDER BY position, title",
            (course_id,),
        ).fetchall()
    finally:
        conn.close()
    return [r["title"] for r in rows]


def enroll(user_id: str, course_id: str) -> None:
    conn = _get_conn()
    try:
        conn.execute(
            "INSERT OR IGNORE INTO enrollments (user_id, course_id, enrolled_at) VALUES (?, ?, ?)",
            (user_id, course_id, _ts(utcnow())),
        )
        conn.commit()
    finally:
        conn.close()


def mark_lesson_completed(user_id: str, lesson_id: str) -> None:
    conn = _get_conn()
    try:
        conn.execute("""
            INSERT INTO lesson_progress (user_id, lesson_id, is_completed, completed_at)
            VALUES (?, ?, 1, ?)
            ON CONFLICT (user_id, lesson_id) DO UPDATE SET
                is_completed = 1,
                completed_at = excluded.completed_at
        """, (user_id, lesson_id, _ts(utcnow())))
        conn.commit()
    finally:
        conn.close()


def mark_enrollment_completed(user_id: str, course_id: str) -> None:
    """Flag the enrollment as finished (progress 100) after a passing exam."""
    conn = _get_conn()
    try:
        conn.execute("""
            UPDATE enrollments SET progress = 100, completed_at = ?
            WHERE user_id = ? AND course_id = ?
        """, (_ts(utcnow()), user_id, course_id))
        conn.commit()
    finally:
        conn.close()


def get_lesson_progress(user_id: str, course_id: str) -> Optional[LessonProgress]:
    """Completed published lessons for an enrolled user.

    Returns None when the course does not exist.  A user who is not
    enrolled has an empty completion set.
    """
    conn = _get_conn()
    try:
        if conn.execute("SELECT 1 FROM courses WHERE id = ?", (course_id,)).fetchone() is None:
            return None
        total = conn.execute(
            "SELECT COUNT(*) FROM lessons WHERE course_id = ? AND is_published = 1",
            (course_id,),
        ).fetchone()[0]
        rows = conn.execute("""
            SELECT lp.lesson_id
              FROM lesson_progress lp
              JOIN lessons l      ON l.id = lp.lesson_id
              JOIN enrollments e  ON e.user_id = lp.user_id AND e.course_id = l.course_id
             WHERE lp.user_id = ?
               AND l.course_id = ?
               AND l.is_published = 1
               AND lp.is_completed = 1
        """, (user_id, course_id)).fetchall()
    finally:
        conn.close()
    return LessonProgress(completed=frozenset(r["lesson_id"] for r in rows), total=total)


# ─── Question bank ───────────────────────────────────────────────────────────

def _question_from_row(row: sqlite3.Row) -> Question:
    return Question(
        id=row["id"],
        course_id=row["course_id"],
        text=row["text"],
        options=tuple(json.loads(row["options_json"])),
        answer=row["answer"],
        created_at=_dt(row["created_at"]),
    )


def count_questions(course_id: str) -> int:
    conn = _get_conn()
    try:
        n = conn.execute(
            "SELECT COUNT(*) FROM exam_questions WHERE course_id = ?", (course_id,)
        ).fetchone()[0]
    finally:
        conn.close()
    return n


def get_questions(course_id: str) -> list[Question]:
    conn = _get_conn()
    try:
        rows = conn.execute(
            "SELECT * FROM exam_questions WHERE course_id = ? ORDER BY created_at, id",
            (course_id,),
        ).fetchall()
    finally:
        conn.close()
    return [_question_from_row(r) for r in rows]


def get_questions_by_ids(course_id: str, question_ids: Iterable[str]) -> list[Question]:
    """Questions of `course_id` among `question_ids`, in the order requested."""
    ids = list(question_ids)
    if not ids:
        return []
    placeholders = ", ".join("?" for _ in ids)
    conn = _get_conn()
    try:
        rows = conn.execute(
            f"SELECT * FROM exam_questions WHERE course_id = ? AND id IN ({placeholders})",
            (course_id, *ids),
        ).fetchall()
    finally:
        conn.close()
    by_id = {r["id"]: _question_from_row(r) for r in rows}
    return [by_id[i] for i in ids if i in by_id]


def replace_question_bank(course_id: str, drafts: list[QuestionDraft], source: str,
                          min_size: Optional[int] = None) -> bool:
    """Atomically replace the bank for `course_id` with `drafts`.

    When `min_size` is given and the stored bank already holds at least that
    many questions, nothing is written and False is returned: another caller
    finished generation first.  A smaller, partial bank is discarded.
    """
    now = _ts(utcnow())
    rows = []
    for d in drafts:
        if d.answer not in d.options:
            raise InvalidQuestionDefinitionError(
                f"Refusing to store question with answer outside its options: {d.text!r}",
                field="answer",
                details={"course_id": course_id},
            )
        rows.append((new_id(), course_id, d.text, json.dumps(d.options), d.answer, now))

    conn = _get_conn(autocommit=True)
    try:
        conn.execute("BEGIN IMMEDIATE")
        existing = conn.execute(
            "SELECT COUNT(*) FROM exam_questions WHERE course_id = ?", (course_id,)
        ).fetchone()[0]
        if min_size is not None and existing >= min_size:
            conn.execute("ROLLBACK")
            return False
        if existing:
            conn.execute("DELETE FROM exam_questions WHERE course_id = ?", (course_id,))
            logger.info("Removed %d existing questions for course %s", existing, course_id)
        conn.execute("""
            INSERT INTO question_bank_generations (course_id, source, question_count, generated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT (course_id) DO UPDATE SET
                source         = excluded.source,
                question_count = excluded.question_count,
                generated_at   = excluded.generated_at
        """, (course_id, source, len(rows), now))
        conn.executemany(
            "INSERT INTO exam_questions (id, course_id, text, options_json, answer, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            rows,
        )
        conn.execute("COMMIT")
        return True
    except Exception:
        if conn.in_transaction:
            conn.execute("ROLLBACK")
        raise
    finally:
        conn.close()


def get_bank_generation(course_id: str) -> Optional[dict]:
    conn = _get_conn()
    try:
        row = conn.execute(
            "SELECT * FROM question_bank_generations WHERE course_id = ?", (course_id,)
        ).fetchone()
    finally:
        conn.close()
    return dict(row) if row else None


# ─── Attempt tickets ─────────────────────────────────────────────────────────

def _ticket_from_row(row: sqlite3.Row) -> AttemptTicket:
    return AttemptTicket(
        id=row["id"],
        user_id=row["user_id"],
        course_id=row["course_id"],
        question_ids=tuple(json.loads(row["question_ids_json"])),
        started_at=_dt(row["started_at"]),
        expires_at=_dt(row["expires_at"]),
        submitted_at=_dt(row["submitted_at"]),
    )


def create_attempt_ticket(user_id: str, course_id: str, question_ids: list[str],
                          started_at: datetime, expires_at: datetime) -> AttemptTicket:
    ticket = AttemptTicket(
        id=new_id(),
        user_id=user_id,
        course_id=course_id,
        question_ids=tuple(question_ids),
        started_at=started_at,
        expires_at=expires_at,
    )
    conn = _get_conn()
    try:
        conn.execute("""
            INSERT INTO attempt_tickets (id, user_id, course_id, question_ids_json, started_at, expires_at)
            VALUES (?, ?, ?, ?, ?, ?)
        """, (ticket.id, user_id, course_id, json.dumps(list(question_ids)),
              _ts(started_at), _ts(expires_at)))
        conn.commit()
    finally:
        conn.close()
    return ticket


def get_attempt_ticket(ticket_id: str) -> Optional[AttemptTicket]:
    conn = _get_conn()
    try:
        row = conn.execute("SELECT * FROM attempt_tickets WHERE id = ?", (ticket_id,)).fetchone()
    finally:
        conn.close()
    return _ticket_from_row(row) if row else None


def consume_attempt_ticket(ticket_id: str, submitted_at: datetime) -> bool:
    """Mark the ticket submitted. False if it was already consumed."""
    conn = _get_conn()
    try:
        cur = conn.execute(
            "UPDATE attempt_tickets SET submitted_at = ? WHERE id = ? AND submitted_at IS NULL",
            (_ts(submitted_at), ticket_id),
        )
        conn.commit()
    finally:
        conn.close()
    return cur.rowcount == 1


# ─── Exam results (append-only) ──────────────────────────────────────────────

def _result_from_row(row: sqlite3.Row) -> ExamAttemptResult:
    return ExamAttemptResult(
        id=row["id"],
        user_id=row["user_id"],
        course_id=row["course_id"],
        score=row["score"],
        correct_answers=row["correct_answers"],
        total_questions=row["total_questions"],
        percentage_score=row["percentage_score"],
        passed=bool(row["passed"]),
        created_at=_dt(row["created_at"]),
        answers=tuple(AnswerReview(**a) for a in json.loads(row["answers_json"])),
    )


def insert_exam_result(result: ExamAttemptResult) -> None:
    answers = [
        {
            "question_id":    a.question_id,
            "user_answer":    a.user_answer,
            "correct_answer": a.correct_answer,
            "is_correct":     a.is_correct,
        }
        for a in result.answers
    ]
    conn = _get_conn()
    try:
        conn.execute("""
            INSERT INTO exam_results
                (id, user_id, course_id, score, total_questions, correct_answers,
                 percentage_score, passed, answers_json, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (result.id, result.user_id, result.course_id, result.score,
              result.total_questions, result.correct_answers, result.percentage_score,
              int(result.passed), json.dumps(answers), _ts(result.created_at)))
        conn.commit()
    finally:
        conn.close()


def get_exam_results(user_id: str, course_id: str) -> list[ExamAttemptResult]:
    """All attempts for the pair, most recent first."""
    conn = _get_conn()
    try:
        rows = conn.execute("""
            SELECT * FROM exam_results
             WHERE user_id = ? AND course_id = ?
             ORDER BY created_at DESC, id DESC
        """, (user_id, course_id)).fetchall()
    finally:
        conn.close()
    return [_result_from_row(r) for r in rows]


def get_best_passing_result(user_id: str, course_id: str) -> Optional[ExamAttemptResult]:
    """Highest-scoring passing attempt; earliest wins a tie."""
    conn = _get_conn()
    try:
        row = conn.execute("""
            SELECT * FROM exam_results
             WHERE user_id = ? AND course_id = ? AND passed = 1
             ORDER BY score DESC, created_at ASC
             LIMIT 1
        """, (user_id, course_id)).fetchone()
    finally:
        conn.close()
    return _result_from_row(row) if row else None


# ─── Certificates ────────────────────────────────────────────────────────────

def _certificate_from_row(row: sqlite3.Row) -> Certificate:
    return Certificate(
        id=row["id"],
        user_id=row["user_id"],
        course_id=row["course_id"],
        title=row["title"],
        description=row["description"],
        exam_score=row["exam_score"],
        issued_at=_dt(row["issued_at"]),
    )


def get_certificate(user_id: str, course_id: str) -> Optional[Certificate]:
    conn = _get_conn()
    try:
        row = conn.execute(
            "SELECT * FROM certificates WHERE user_id = ? AND course_id = ?",
            (user_id, course_id),
        ).fetchone()
    finally:
        conn.close()
    return _certificate_from_row(row) if row else None


def insert_certificate(certificate: Certificate) -> None:
    """Insert a certificate; the (user, course) pair must not have one yet."""
    conn = _get_conn()
    try:
        conn.execute("""
            INSERT INTO certificates
                (id, user_id, course_id, title, description, exam_score, issued_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (certificate.id, certificate.user_id, certificate.course_id,
              certificate.title, certificate.description, certificate.exam_score,
              _ts(certificate.issued_at)))
        conn.commit()
    except sqlite3.IntegrityError as exc:
        conn.rollback()
        if "UNIQUE" not in str(exc):
            raise
        raise DuplicateCertificateError(certificate.user_id, certificate.course_id) from exc
    finally:
        conn.close()
