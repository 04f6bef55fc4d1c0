"""
Smoke tests for config / settings loading.
Run: python -m pytest tests/ -v
"""
from pathlib import Path

import pytest

from course_exam.config import QUESTION_SOURCES, get_settings, _is_placeholder


class TestIsPlaceholder:
    def test_empty_string_is_placeholder(self):
        assert _is_placeholder("")

    def test_angle_bracket_is_placeholder(self):
        assert _is_placeholder("<your-key-here>")

    def test_your_prefix_is_placeholder(self):
        assert _is_placeholder("your-endpoint")

    def test_literal_PLACEHOLDER_is_placeholder(self):
        assert _is_placeholder("PLACEHOLDER")

    def test_real_value_not_placeholder(self):
        assert not _is_placeholder("https://my-resource.openai.azure.com")


class TestExamPolicyDefaults:
    def test_defaults(self):
        exam = get_settings().exam
        assert exam.questions_per_attempt == 50
        assert exam.min_bank_size == 40
        assert exam.duration_minutes == 90
        assert exam.grace_seconds == 60
        assert exam.question_source == "auto"

    def test_attempt_window_includes_grace(self):
        assert get_settings().exam.attempt_window_seconds == 90 * 60 + 60

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("EXAM_QUESTIONS_PER_ATTEMPT", "20")
        monkeypatch.setenv("EXAM_DURATION_MINUTES", "30")
        monkeypatch.setenv("EXAM_GRACE_SECONDS", "0")
        exam = get_settings().exam
        assert exam.questions_per_attempt == 20
        assert exam.attempt_window_seconds == 1800

    @pytest.mark.parametrize("source", QUESTION_SOURCES)
    def test_valid_question_sources(self, monkeypatch, source):
        monkeypatch.setenv("EXAM_QUESTION_SOURCE", source.upper())
        assert get_settings().exam.question_source == source

    def test_unknown_question_source_rejected(self, monkeypatch):
        monkeypatch.setenv("EXAM_QUESTION_SOURCE", "magic")
        with pytest.raises(ValueError, match="EXAM_QUESTION_SOURCE"):
            get_settings()


class TestSettingsLoading:
    def test_db_path_from_env(self, exam_db):
        assert get_settings().storage.db_path == Path(str(exam_db))

    def test_default_db_path(self, monkeypatch):
        monkeypatch.delenv("EXAM_DB_PATH")
        assert get_settings().storage.db_path.name == "course_exam.db"

    def test_force_mock_defaults_false(self, monkeypatch):
        """FORCE_MOCK_MODE should default to False when env var is absent."""
        monkeypatch.delenv("FORCE_MOCK_MODE", raising=False)
        assert not get_settings().app.force_mock_mode

    def test_live_mode_false_without_credentials(self, monkeypatch):
        monkeypatch.delenv("FORCE_MOCK_MODE", raising=False)
        monkeypatch.delenv("AZURE_OPENAI_ENDPOINT", raising=False)
        monkeypatch.delenv("AZURE_OPENAI_API_KEY", raising=False)
        assert not get_settings().live_mode

    def test_live_mode_with_real_credentials(self, monkeypatch):
        monkeypatch.setenv("FORCE_MOCK_MODE", "false")
        monkeypatch.setenv("AZURE_OPENAI_ENDPOINT", "https://my-resource.openai.azure.com/")
        monkeypatch.setenv("AZURE_OPENAI_API_KEY", "abc123defgh456ijkl789mnop")
        s = get_settings()
        assert s.live_mode
        assert s.openai.endpoint == "https://my-resource.openai.azure.com"

    def test_force_mock_overrides_real_credentials(self, monkeypatch):
        monkeypatch.setenv("FORCE_MOCK_MODE", "true")
        monkeypatch.setenv("AZURE_OPENAI_ENDPOINT", "https://my-resource.openai.azure.com")
        monkeypatch.setenv("AZURE_OPENAI_API_KEY", "abc123defgh456ijkl789mnop")
        assert not get_settings().live_mode

    def test_status_summary_keys(self):
        summary = get_settings().status_summary()
        assert set(summary) == {"Azure OpenAI", "Question source", "Database"}
        assert summary["Azure OpenAI"] == "not configured"
