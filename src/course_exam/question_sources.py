"""
question_sources.py — Pluggable question generation strategies
===============================================================
Every strategy implements one contract::

    source.generate(course, target) -> list[QuestionDraft]

Drafts are unvalidated; QuestionGenerator runs them through the question
guardrails before anything reaches the bank.  Only the *validity* of the
output is guaranteed, never its content.

Strategies
----------
  CuratedQuestionSource    JSON seed sets shipped in course_exam/data/<slug>.json
  TemplateQuestionSource   Deterministic synthesis from course + lesson titles
  OpenAIQuestionSource     Azure OpenAI JSON-mode generation (live mode only)
  FallbackQuestionSource   Chains sources, topping up until the target is met

Selection
---------
  get_question_source(settings) reads EXAM_QUESTION_SOURCE:
    curated | template | openai | auto
  `auto` = OpenAI (when live) → curated → template.
"""

from __future__ import annotations

import json
import logging
import random
import textwrap
from pathlib import Path
from typing import Any, Callable, Optional

from openai import AzureOpenAI, OpenAIError
from pydantic import BaseModel, Field, ValidationError

from course_exam import database
from course_exam.config import AzureOpenAIConfig, Settings
from course_exam.guardrails import (
    MAX_OPTIONS,
    MIN_OPTIONS,
    QuestionGuardrails,
    clean_draft,
    dedupe_drafts,
)
from course_exam.models import Course, QuestionDraft

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).resolve().parent / "data"


class QuestionSource:
    """Base class for generation strategies."""

    name: str = "base"

    def generate(self, course: Course, target: int) -> list[QuestionDraft]:
        raise NotImplementedError


# ─── Curated seed sets ───────────────────────────────────────────────────────

class CuratedQuestionSource(QuestionSource):
    """Loads the curated set for a course slug; empty when none exists."""

    name = "curated"

    def __init__(self, data_dir: Optional[Path] = None) -> None:
        self.data_dir = Path(data_dir) if data_dir else DATA_DIR

    def available_slugs(self) -> list[str]:
        return sorted(p.stem for p in self.data_dir.glob("*.json"))

    def generate(self, course: Course, target: int) -> list[QuestionDraft]:
        path = self.data_dir / f"{course.slug}.json"
        if not path.exists():
            logger.debug("No curated question set for %s", course.slug)
            return []
        payload = json.loads(path.read_text(encoding="utf-8"))
        return [
            QuestionDraft(
                text=q.get("text", ""),
                options=list(q.get("options") or []),
                answer=q.get("answer", ""),
            )
            for q in payload.get("questions", [])
        ]


# ─── Template synthesis ──────────────────────────────────────────────────────

# (stem, correct option, distractors); "{topic}" and "{course}" are filled in.
_TEMPLATES: list[tuple[str, str, list[str]]] = [
    (
        "When studying '{topic}' in {course}, which approach builds lasting understanding?",
        "Practising the examples and reviewing the fundamental principles",
        ["Skipping the exercises", "Memorising answers without context", "Ignoring the lesson material"],
    ),
    (
        "What should you do first when a concept from '{topic}' is unclear?",
        "Revisit the lesson and work through a small example",
        ["Move on and never return to it", "Assume it will not matter later", "Copy a solution without reading it"],
    ),
    (
        "Which habit best supports applying '{topic}' in a real project?",
        "Following established best practices and guidelines",
        ["Ignoring best practices", "Skipping important steps", "Not following guidelines"],
    ),
    (
        "How can you check that you have mastered '{topic}'?",
        "Explain it in your own words and solve a new problem with it",
        ["Re-read the title of the lesson", "Watch the video at double speed only", "Count the number of slides"],
    ),
    (
        "Why does '{topic}' matter within {course}?",
        "It is a building block for the later lessons of the course",
        ["It is unrelated to the rest of the course", "It is only included as decoration", "It replaces every other lesson"],
    ),
]


class TemplateQuestionSource(QuestionSource):
    """Synthesises questions from the course title and its lesson titles.

    Output is deterministic per course id, so regenerating a course yields
    the same bank.
    """

    name = "template"

    def __init__(self, lesson_titles: Optional[Callable[[str], list[str]]] = None) -> None:
        self._lesson_titles = lesson_titles or database.get_lesson_titles

    def generate(self, course: Course, target: int) -> list[QuestionDraft]:
        titles = [t.strip() for t in self._lesson_titles(course.id) if t.strip()]
        topics = list(dict.fromkeys(titles)) or [course.title]
        drafts: list[QuestionDraft] = []
        i = 0
        while len(drafts) < target:
            stem, correct, distractors = _TEMPLATES[i % len(_TEMPLATES)]
            topic = topics[(i // len(_TEMPLATES)) % len(topics)]
            cycle = i // (len(_TEMPLATES) * len(topics))
            text = stem.format(topic=topic, course=course.title)
            if cycle:
                text = f"{text} (review {cycle + 1})"
            options = [correct, *distractors]
            random.Random(f"{course.id}:{i}").shuffle(options)
            drafts.append(QuestionDraft(text=text, options=options, answer=correct))
            i += 1
        return drafts


# ─── Azure OpenAI ────────────────────────────────────────────────────────────

class GeneratedQuestion(BaseModel):
    text:    str
    options: list[str] = Field(min_length=MIN_OPTIONS, max_length=MAX_OPTIONS)
    answer:  str


class GeneratedQuestionSet(BaseModel):
    questions: list[GeneratedQuestion]


_SYSTEM_PROMPT = textwrap.dedent(f"""
    You write multiple-choice final exam questions for online programming courses.
    Each question has {MIN_OPTIONS}–{MAX_OPTIONS} distinct options and exactly one correct answer,
    and the "answer" field must repeat the correct option verbatim.

    Respond with ONLY a valid JSON object of the form:
    {{"questions": [{{"text": "...", "options": ["...", "..."], "answer": "..."}}]}}
""").strip()


class OpenAIQuestionSource(QuestionSource):
    """Generates a bank with Azure OpenAI JSON-mode completions."""

    name = "openai"

    def __init__(self, config: AzureOpenAIConfig, client: Any = None,
                 lesson_titles: Optional[Callable[[str], list[str]]] = None) -> None:
        self._cfg = config
        self._client = client
        self._lesson_titles = lesson_titles or database.get_lesson_titles
        if self._client is None and self._cfg.is_configured:
            self._client = AzureOpenAI(
                azure_endpoint=self._cfg.endpoint,
                api_key=self._cfg.api_key,
                api_version=self._cfg.api_version,
            )

    def _build_user_message(self, course: Course, target: int) -> str:
        lessons = self._lesson_titles(course.id)
        outline = "\n".join(f"- {t}" for t in lessons) or "- (no lesson outline available)"
        return textwrap.dedent(f"""
            Course: {course.title}
            Lessons:
        """).strip() + "\n" + outline + f"\n\nWrite {target} questions covering these lessons."

    def generate(self, course: Course, target: int) -> list[QuestionDraft]:
        if self._client is None:
            raise EnvironmentError(
                "Azure OpenAI is not configured. Set AZURE_OPENAI_ENDPOINT + AZURE_OPENAI_API_KEY."
            )
        response = self._client.chat.completions.create(
            model=self._cfg.deployment,
            response_format={"type": "json_object"},
            messages=[
                {"role": "system", "content": _SYSTEM_PROMPT},
                {"role": "user",   "content": self._build_user_message(course, target)},
            ],
            temperature=0.7,
            max_tokens=8000,
        )
        raw_json = response.choices[0].message.content
        parsed = GeneratedQuestionSet.model_validate_json(raw_json)
        logger.info("OpenAI produced %d questions for %s", len(parsed.questions), course.slug)
        return [QuestionDraft(text=q.text, options=list(q.options), answer=q.answer)
                for q in parsed.questions]


# ─── Chaining ────────────────────────────────────────────────────────────────

class FallbackQuestionSource(QuestionSource):
    """Tries each source in order, keeping valid unique drafts until `target`.

    A source that raises is logged and skipped.
    """

    def __init__(self, sources: list[QuestionSource]) -> None:
        self.sources = sources
        self._guard = QuestionGuardrails()
        self.last_contributors: list[str] = []

    @property
    def name(self) -> str:  # type: ignore[override]
        return "+".join(self.last_contributors) or "+".join(s.name for s in self.sources)

    def generate(self, course: Course, target: int) -> list[QuestionDraft]:
        collected: list[QuestionDraft] = []
        self.last_contributors = []
        for source in self.sources:
            if len(collected) >= target:
                break
            try:
                drafts = source.generate(course, target - len(collected))
            except (EnvironmentError, OpenAIError, ValidationError, ValueError) as exc:
                logger.warning("Question source %s failed for %s: %s", source.name, course.slug, exc)
                continue
            valid = [d for d in map(clean_draft, drafts) if self._guard.check(d).passed]
            before = len(collected)
            collected = dedupe_drafts(collected + valid)
            if len(collected) > before:
                self.last_contributors.append(source.name)
        return collected


def get_question_source(settings: Settings) -> QuestionSource:
    """Build the strategy selected by EXAM_QUESTION_SOURCE."""
    choice = settings.exam.question_source
    if choice == "curated":
        return CuratedQuestionSource()
    if choice == "template":
        return TemplateQuestionSource()
    if choice == "openai":
        return OpenAIQuestionSource(settings.openai)

    chain: list[QuestionSource] = []
    if settings.live_mode:
        chain.append(OpenAIQuestionSource(settings.openai))
    chain.extend([CuratedQuestionSource(), TemplateQuestionSource()])
    return FallbackQuestionSource(chain)
