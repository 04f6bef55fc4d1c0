"""
guardrails.py – Question bank validation layer
==============================================
Checks every question draft before it may be written to the bank, and the
assembled bank before it is committed.  A question that cannot be answered
correctly must never be stored.

Guardrail levels
----------------
BLOCK   – Hard-stop: the draft is rejected and never stored.
WARN    – Soft-stop: the bank proceeds with a logged warning.

Question guards (per draft):
  Q-01  Question text is non-empty
  Q-02  Option count within [2, MAX_OPTIONS]
  Q-03  No blank options
  Q-04  Options are distinct after normalisation
  Q-05  Correct answer is one of the options

Bank guards (per generated set):
  B-01  No duplicate question texts (later duplicates are dropped)
  B-02  Bank reaches the requested size
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from course_exam.models import QuestionDraft

MIN_OPTIONS = 2
MAX_OPTIONS = 6


def normalise_answer(value: str | None) -> str:
    """Comparison form shared by validation and grading."""
    return (value or "").strip().casefold()


# ─── Enums & data models ─────────────────────────────────────────────────────

class GuardrailLevel(str, Enum):
    BLOCK = "BLOCK"
    WARN  = "WARN"


@dataclass
class GuardrailViolation:
    code:    str
    level:   GuardrailLevel
    message: str
    field:   str = ""   # which field triggered the violation


@dataclass
class GuardrailResult:
    passed:     bool
    violations: list[GuardrailViolation] = field(default_factory=list)

    @property
    def blocked(self) -> bool:
        return any(v.level == GuardrailLevel.BLOCK for v in self.violations)

    @property
    def warnings(self) -> list[GuardrailViolation]:
        return [v for v in self.violations if v.level == GuardrailLevel.WARN]

    def summary(self) -> str:
        if not self.violations:
            return "All guardrails passed."
        return "; ".join(f"[{v.code}] {v.message}" for v in self.violations)


def _result(violations: list[GuardrailViolation]) -> GuardrailResult:
    return GuardrailResult(
        passed=not any(v.level == GuardrailLevel.BLOCK for v in violations),
        violations=violations,
    )


# ─── Question guards ─────────────────────────────────────────────────────────

class QuestionGuardrails:
    """Q-01 – Q-05: validates a single QuestionDraft."""

    def check(self, draft: QuestionDraft) -> GuardrailResult:
        violations: list[GuardrailViolation] = []
        options = list(draft.options or [])

        # Q-01 Non-empty text
        if not (draft.text or "").strip():
            violations.append(GuardrailViolation(
                code="Q-01", level=GuardrailLevel.BLOCK,
                message="Question text is empty.", field="text",
            ))

        # Q-02 Option count
        if not MIN_OPTIONS <= len(options) <= MAX_OPTIONS:
            violations.append(GuardrailViolation(
                code="Q-02", level=GuardrailLevel.BLOCK,
                message=f"Question has {len(options)} options; expected {MIN_OPTIONS}–{MAX_OPTIONS}.",
                field="options",
            ))

        # Q-03 Blank options
        if any(not (o or "").strip() for o in options):
            violations.append(GuardrailViolation(
                code="Q-03", level=GuardrailLevel.BLOCK,
                message="Question has a blank option.", field="options",
            ))

        # Q-04 Distinct options (grading is case/space-insensitive)
        normalised = [normalise_answer(o) for o in options]
        dups = sorted({o for o in normalised if normalised.count(o) > 1})
        if dups:
            violations.append(GuardrailViolation(
                code="Q-04", level=GuardrailLevel.BLOCK,
                message=f"Duplicate options: {dups}.", field="options",
            ))

        # Q-05 Answer must be one of the options
        if (draft.answer or "").strip() not in [(o or "").strip() for o in options]:
            violations.append(GuardrailViolation(
                code="Q-05", level=GuardrailLevel.BLOCK,
                message=f"Correct answer {draft.answer!r} is not one of the options.",
                field="answer",
            ))

        return _result(violations)


# ─── Bank guards ─────────────────────────────────────────────────────────────

class BankGuardrails:
    """B-01 – B-02: validates an assembled list of accepted drafts."""

    def check(self, drafts: list[QuestionDraft], target_size: int) -> GuardrailResult:
        violations: list[GuardrailViolation] = []

        # B-01 Duplicate texts
        texts = [normalise_answer(d.text) for d in drafts]
        dups = {t for t in texts if texts.count(t) > 1}
        if dups:
            violations.append(GuardrailViolation(
                code="B-01", level=GuardrailLevel.WARN,
                message=f"{len(dups)} question text(s) appear more than once.",
                field="text",
            ))

        # B-02 Size
        if len(drafts) < target_size:
            violations.append(GuardrailViolation(
                code="B-02", level=GuardrailLevel.WARN,
                message=f"Bank has {len(drafts)} valid questions; {target_size} requested.",
            ))

        return _result(violations)


def clean_draft(draft: QuestionDraft) -> QuestionDraft:
    """Strip surrounding whitespace from every field of a draft."""
    return QuestionDraft(
        text=(draft.text or "").strip(),
        options=[(o or "").strip() for o in (draft.options or [])],
        answer=(draft.answer or "").strip(),
    )


def dedupe_drafts(drafts: list[QuestionDraft]) -> list[QuestionDraft]:
    """Keep the first draft for each normalised question text."""
    seen: set[str] = set()
    unique: list[QuestionDraft] = []
    for d in drafts:
        key = normalise_answer(d.text)
        if key in seen:
            continue
        seen.add(key)
        unique.append(d)
    return unique
