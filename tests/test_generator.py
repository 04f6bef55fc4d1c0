"""
Tests for QuestionGenerator and the bank write path.
Run: python -m pytest tests/ -v
"""
import sqlite3
import unittest.mock as mock

import pytest
from openai import OpenAIError

from factories import (
    FailingQuestionSource,
    ListQuestionSource,
    make_bank,
    make_course,
    make_draft,
    make_drafts,
)

from course_exam import database
from course_exam.exceptions import (
    CourseNotFoundError,
    InsufficientQuestionBankError,
    InvalidQuestionDefinitionError,
)
from course_exam.generator import QuestionGenerator
from course_exam.models import QuestionDraft


class TestEnsureQuestionBank:
    def test_generates_minimum_bank(self, course):
        c, _ = course
        bank = QuestionGenerator().ensure_question_bank(c.id)
        assert len(bank) >= 40
        assert database.count_questions(c.id) == len(bank)

    def test_every_stored_answer_is_an_option(self, course):
        c, _ = course
        for q in QuestionGenerator().ensure_question_bank(c.id):
            assert q.answer in q.options

    def test_idempotent_when_bank_is_sufficient(self, course):
        c, _ = course
        source = ListQuestionSource(make_drafts(50))
        generator = QuestionGenerator(source=source)

        first = generator.ensure_question_bank(c.id)
        second = generator.ensure_question_bank(c.id)

        assert [q.id for q in first] == [q.id for q in second]
        assert source.calls == 1

    def test_existing_bank_is_not_regenerated(self, course):
        c, _ = course
        existing = make_bank(c.id, 45)
        source = ListQuestionSource(make_drafts(50, prefix="New"))
        bank = QuestionGenerator(source=source).ensure_question_bank(c.id)
        assert {q.id for q in bank} == {q.id for q in existing}
        assert source.calls == 0

    def test_partial_bank_is_replaced(self, course):
        c, _ = course
        partial = make_bank(c.id, 10)
        bank = QuestionGenerator(source=ListQuestionSource(make_drafts(50, prefix="Fresh"))) \
            .ensure_question_bank(c.id)
        assert len(bank) == 50
        assert not {q.id for q in partial} & {q.id for q in bank}

    def test_invalid_drafts_are_skipped(self, course):
        c, _ = course
        bad = [
            make_draft(text="No right answer?", answer="7"),
            make_draft(text="Too few options?", options=["4"]),
            QuestionDraft(text="", options=["a", "b"], answer="a"),
        ]
        bank = QuestionGenerator(source=ListQuestionSource(make_drafts(42) + bad)) \
            .ensure_question_bank(c.id)
        assert len(bank) == 42
        assert "No right answer?" not in {q.text for q in bank}

    def test_duplicate_texts_are_dropped(self, course):
        c, _ = course
        drafts = make_drafts(41) + make_drafts(5)
        bank = QuestionGenerator(source=ListQuestionSource(drafts)).ensure_question_bank(c.id)
        assert len(bank) == 41

    def test_short_generation_raises_and_stores_nothing(self, course):
        c, _ = course
        generator = QuestionGenerator(source=ListQuestionSource(make_drafts(12)))
        with pytest.raises(InsufficientQuestionBankError) as exc_info:
            generator.ensure_question_bank(c.id)
        assert exc_info.value.details == {"course_id": c.id, "available": 12, "required": 40}
        assert "Only 12 questions found. Minimum 40 required." in str(exc_info.value)
        assert database.count_questions(c.id) == 0

    @pytest.mark.parametrize("exc", [
        OpenAIError("upstream 503"),
        EnvironmentError("Azure OpenAI is not configured."),
        ValueError("model returned malformed JSON"),
    ])
    def test_source_failure_raises_insufficient(self, course, exc):
        c, _ = course
        generator = QuestionGenerator(source=FailingQuestionSource(exc))
        with pytest.raises(InsufficientQuestionBankError) as exc_info:
            generator.ensure_question_bank(c.id)
        assert exc_info.value.details["available"] == 0
        assert database.count_questions(c.id) == 0

    def test_custom_minimum(self, course):
        c, _ = course
        bank = QuestionGenerator(source=ListQuestionSource(make_drafts(12))) \
            .ensure_question_bank(c.id, min_size=10)
        assert len(bank) == 12

    def test_unknown_course(self):
        with pytest.raises(CourseNotFoundError):
            QuestionGenerator().ensure_question_bank("missing-course")

    def test_generation_marker_recorded(self, course):
        c, _ = course
        QuestionGenerator(source=ListQuestionSource(make_drafts(40))).ensure_question_bank(c.id)
        marker = database.get_bank_generation(c.id)
        assert marker["source"] == "list"
        assert marker["question_count"] == 40


class TestCuratedCourses:
    def test_curated_set_used_for_known_slug(self):
        c, _ = make_course(slug="html-css-beginners", title="Complete HTML & CSS for Beginners")
        bank = QuestionGenerator().ensure_question_bank(c.id)
        assert len(bank) == 50
        assert "What does HTML stand for?" in {q.text for q in bank}
        assert database.get_bank_generation(c.id)["source"] == "curated"

    def test_unanswerable_curated_question_never_stored(self):
        c, _ = make_course(slug="javascript-beginners", title="JavaScript for Complete Beginners")
        bank = QuestionGenerator().ensure_question_bank(c.id)
        texts = {q.text for q in bank}
        assert "What is template literal syntax?" not in texts
        assert len(bank) == 50
        assert database.get_bank_generation(c.id)["source"] == "curated+template"


class TestRegenerate:
    def test_regenerate_replaces_bank(self, course):
        c, _ = course
        old = make_bank(c.id, 45)
        new = QuestionGenerator(source=ListQuestionSource(make_drafts(40, prefix="Rev"))) \
            .regenerate_question_bank(c.id)
        assert len(new) == 40
        assert not {q.id for q in old} & {q.id for q in new}

    def test_regenerate_short_keeps_old_bank(self, course):
        c, _ = course
        make_bank(c.id, 45)
        with pytest.raises(InsufficientQuestionBankError):
            QuestionGenerator(source=ListQuestionSource(make_drafts(3))).regenerate_question_bank(c.id)
        assert database.count_questions(c.id) == 45


class TestReplaceQuestionBank:
    def test_concurrent_writer_loses(self, course):
        """Second first-time writer sees a complete bank under the write lock."""
        c, _ = course
        assert database.replace_question_bank(c.id, make_drafts(40), "a", min_size=40)
        assert not database.replace_question_bank(c.id, make_drafts(40, prefix="B"), "b", min_size=40)
        assert database.count_questions(c.id) == 40
        assert database.get_bank_generation(c.id)["source"] == "a"

    def test_answer_outside_options_rejected(self, course):
        c, _ = course
        with pytest.raises(InvalidQuestionDefinitionError) as exc_info:
            database.replace_question_bank(c.id, [make_draft(answer="9")], "test")
        assert exc_info.value.code == "INVALID_QUESTION_DEFINITION"
        assert database.count_questions(c.id) == 0

    def test_questions_by_ids_keeps_order(self, course):
        c, _ = course
        bank = make_bank(c.id, 5)
        wanted = [bank[3].id, bank[0].id, "unknown"]
        assert [q.id for q in database.get_questions_by_ids(c.id, wanted)] == wanted[:2]

    def test_connection_closed_when_query_fails(self):
        conn = mock.MagicMock()
        conn.execute.side_effect = sqlite3.OperationalError("disk I/O error")
        with mock.patch.object(database, "_get_conn", return_value=conn):
            with pytest.raises(sqlite3.OperationalError):
                database.count_questions("course-x")
        conn.close.assert_called_once()
