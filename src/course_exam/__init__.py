"""
course_exam — Final exam & certification core for an e-learning platform
=========================================================================
Package containing the question bank, attempt lifecycle, grading and
certificate components, plus configuration and persistence utilities.

Module map
----------
  models.py             Frozen domain dataclasses and Pydantic wire models.
  config.py             Settings loaded from .env; exam policy + storage.
  exceptions.py         ExamCoreError hierarchy (code + details + to_dict).
  database.py           SQLite persistence layer (banks, tickets, results,
                        certificates, catalogue/progress mirror).
  guardrails.py         Q-01..Q-05 question and B-01..B-02 bank checks.

  question_sources.py   Curated / template / Azure OpenAI / fallback chain.
  generator.py          QuestionGenerator: idempotent bank ensure/regenerate.
  eligibility.py        EligibilityGate: all published lessons completed.
  sampler.py            AttemptSampler: random subset + attempt ticket.
  scorer.py             Scorer: 0–1000 normalised score, pass at 800.
  certificates.py       CertificateIssuer + CertificateVerifier.
  exam_service.py       ExamService: request-style operations with statuses.
  seed.py               CLI: demo catalogue + question banks.

Request flow
------------
  ensure_and_sample → EligibilityGate → QuestionGenerator → AttemptSampler
  submit            → EligibilityGate → ticket → Scorer → CertificateIssuer
  read_certificate  → CertificateVerifier (re-validated against results)
"""
__version__ = "0.1.0"
