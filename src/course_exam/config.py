"""
config.py — Central settings for the course exam & certification core
======================================================================
All configuration is loaded from environment variables / .env file.
Copy .env.example → .env and fill in your values.

The pass threshold is not configurable: it is a fixed platform policy
(see scorer.PASS_THRESHOLD) and cannot be overridden per deployment or
per course.

Live question generation activates automatically when AZURE_OPENAI_ENDPOINT
and AZURE_OPENAI_API_KEY contain real (non-placeholder) values.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Load .env into os.environ (no-op if already set, safe to call multiple times)
load_dotenv(override=False)

# Default database file lives in the workspace root
_DEFAULT_DB_PATH = Path(__file__).resolve().parent.parent.parent / "course_exam.db"

QUESTION_SOURCES = ("auto", "curated", "template", "openai")


# ─── Helpers ────────────────────────────────────────────────────────────────

def _is_placeholder(value: str) -> bool:
    """Return True if the value looks like an unfilled template placeholder."""
    return not value or "<" in value or value.startswith("your-") or value == "PLACEHOLDER"


# ─── Azure OpenAI ────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class AzureOpenAIConfig:
    endpoint:    str
    api_key:     str
    deployment:  str
    api_version: str

    @property
    def is_configured(self) -> bool:
        """True when both endpoint and key are real (non-placeholder) values."""
        return (
            bool(self.endpoint)
            and bool(self.api_key)
            and not _is_placeholder(self.endpoint)
            and not _is_placeholder(self.api_key)
        )


# ─── Exam policy ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ExamPolicyConfig:
    questions_per_attempt: int   # questions drawn for one attempt
    min_bank_size:         int   # hard minimum; fewer → InsufficientQuestionBank
    duration_minutes:      int   # server-side attempt window
    grace_seconds:         int   # tolerance for the client's auto-submit
    question_source:       str   # auto | curated | template | openai

    @property
    def attempt_window_seconds(self) -> int:
        return self.duration_minutes * 60 + self.grace_seconds


# ─── Storage ─────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class StorageConfig:
    db_path: Path


# ─── App-level settings ──────────────────────────────────────────────────────

@dataclass(frozen=True)
class AppConfig:
    force_mock_mode: bool


# ─── Master settings object ──────────────────────────────────────────────────

@dataclass(frozen=True)
class Settings:
    openai:  AzureOpenAIConfig
    exam:    ExamPolicyConfig
    storage: StorageConfig
    app:     AppConfig

    @property
    def live_mode(self) -> bool:
        """True when Azure OpenAI creds are real and FORCE_MOCK_MODE is false."""
        return self.openai.is_configured and not self.app.force_mock_mode

    def status_summary(self) -> dict[str, str]:
        """Return a dict of component → status string for the seeding CLI."""
        return {
            "Azure OpenAI":    "live" if self.live_mode else "not configured",
            "Question source": self.exam.question_source,
            "Database":        str(self.storage.db_path),
        }


def get_settings() -> Settings:
    """Load all configuration from environment variables."""
    _str  = lambda k, d="": os.getenv(k, d).strip()
    _int  = lambda k, d=0: int(os.getenv(k, str(d)) or d)
    _bool = lambda k, d=False: os.getenv(k, str(d)).lower() in ("1", "true", "yes")

    source = _str("EXAM_QUESTION_SOURCE", "auto").lower()
    if source not in QUESTION_SOURCES:
        raise ValueError(
            f"EXAM_QUESTION_SOURCE must be one of {', '.join(QUESTION_SOURCES)}; got {source!r}"
        )

    return Settings(
        openai=AzureOpenAIConfig(
            endpoint    = _str("AZURE_OPENAI_ENDPOINT").rstrip("/"),
            api_key     = _str("AZURE_OPENAI_API_KEY"),
            deployment  = _str("AZURE_OPENAI_DEPLOYMENT", "gpt-4o"),
            api_version = _str("AZURE_OPENAI_API_VERSION", "2024-12-01-preview"),
        ),
        exam=ExamPolicyConfig(
            questions_per_attempt = _int("EXAM_QUESTIONS_PER_ATTEMPT", 50),
            min_bank_size         = _int("EXAM_MIN_BANK_SIZE", 40),
            duration_minutes      = _int("EXAM_DURATION_MINUTES", 90),
            grace_seconds         = _int("EXAM_GRACE_SECONDS", 60),
            question_source       = source,
        ),
        storage=StorageConfig(
            db_path = Path(_str("EXAM_DB_PATH") or _DEFAULT_DB_PATH),
        ),
        app=AppConfig(
            force_mock_mode = _bool("FORCE_MOCK_MODE", False),
        ),
    )
