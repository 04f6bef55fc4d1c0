"""
Shared pytest fixtures for the course exam test suite.
All fixtures use mock mode — no Azure credentials required — and every
test gets its own throwaway SQLite database.
Factory helpers live in tests/factories.py so they can be imported
directly by test modules as well as being used here.
"""
import sys
import os

_tests_dir = os.path.dirname(__file__)
_src_dir   = os.path.join(_tests_dir, "..", "src")
for _p in (_tests_dir, _src_dir):
    if _p not in sys.path:
        sys.path.insert(0, _p)

# Force mock mode; never call Azure during tests
os.environ["FORCE_MOCK_MODE"] = "true"
os.environ.setdefault("AZURE_OPENAI_ENDPOINT", "<placeholder>")
os.environ.setdefault("AZURE_OPENAI_API_KEY",  "<placeholder>")


import pytest

from factories import complete_all_lessons, make_course

from course_exam import database

_EXAM_ENV = (
    "EXAM_QUESTIONS_PER_ATTEMPT",
    "EXAM_MIN_BANK_SIZE",
    "EXAM_DURATION_MINUTES",
    "EXAM_GRACE_SECONDS",
    "EXAM_QUESTION_SOURCE",
)


# ─── pytest fixtures ──────────────────────────────────────────────────────────

@pytest.fixture(autouse=True)
def exam_db(tmp_path, monkeypatch):
    """Fresh database and default exam policy for every test."""
    for key in _EXAM_ENV:
        monkeypatch.delenv(key, raising=False)
    db_path = tmp_path / "exam.db"
    monkeypatch.setenv("EXAM_DB_PATH", str(db_path))
    database.init_db()
    return db_path


@pytest.fixture
def course():
    """A three-lesson course: (Course, [lesson ids])."""
    return make_course()


@pytest.fixture
def learner(course):
    """User id of a learner who has completed every lesson of `course`."""
    c, lesson_ids = course
    complete_all_lessons("learner-1", c.id, lesson_ids)
    return "learner-1"
