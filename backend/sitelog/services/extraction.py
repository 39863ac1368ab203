"""Extraction caching and attempt logging."""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass
from time import perf_counter

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from sitelog.config import get_settings
from sitelog.extraction.extractor_interface import ExtractorInterface
from sitelog.extraction.llm_extractor import LLMExtractor, build_llm_client, validate_extraction_payload
from sitelog.extraction.types import ExtractionContext, ExtractionError, ExtractionResult
from sitelog.models.extraction_attempt import ExtractionAttempt
from sitelog.models.report import Report

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ExtractionOutcome:
    """Attempt row plus the validated result or error it produced."""

    attempt: ExtractionAttempt
    result: ExtractionResult | None
    error: ExtractionError | None
    cache_hit: bool
    external_call: bool


def get_default_extractor() -> ExtractorInterface:
    """Return the LLM extractor for the configured provider."""

    settings = get_settings()
    return LLMExtractor(build_llm_client(settings), prompt_version=settings.extraction_prompt_version)


def compute_input_hash(transcript: str, context: ExtractionContext, prompt_version: str) -> str:
    """Cache key over everything that is sent to the completion service."""

    material = json.dumps(
        {
            "prompt_version": prompt_version,
            "project_name": context.project_name,
            "report_date": context.report_date.isoformat(),
            "transcript": transcript.strip(),
        },
        sort_keys=True,
        ensure_ascii=True,
    )
    return hashlib.sha256(material.encode("utf-8")).hexdigest()


def obtain_extraction(
    db: Session,
    report: Report,
    extractor: ExtractorInterface,
    *,
    bypass_cache: bool = False,
    reason: str | None = None,
) -> ExtractionOutcome:
    """Return a committed-or-new extraction for the report.

    Reuses the report's current attempt, then any cached attempt with the same
    input hash, and only then calls the extractor. With ``bypass_cache`` the
    report's prior attempts are superseded and the service is always called.
    The caller owns the transaction.
    """

    transcript = report.raw_transcript_text or ""
    context = ExtractionContext(project_name=report.project_name, report_date=report.report_date)
    input_hash = compute_input_hash(transcript, context, extractor.prompt_version)

    if not bypass_cache:
        current = get_current_attempt(db, report.id)
        if current is not None and current.input_hash == input_hash:
            return _outcome_from_attempt(current, cache_hit=True)

        cached = db.scalar(
            select(ExtractionAttempt)
            .where(
                ExtractionAttempt.input_hash == input_hash,
                ExtractionAttempt.validation_passed.is_(True),
                ExtractionAttempt.superseded.is_(False),
            )
            .order_by(ExtractionAttempt.id.desc())
            .limit(1)
        )
        if cached is not None:
            _supersede_attempts(db, report.id, reason="replaced by cached extraction")
            attempt = ExtractionAttempt(
                report_id=report.id,
                model_name=cached.model_name,
                prompt_version=cached.prompt_version,
                input_hash=input_hash,
                raw_response=cached.raw_response,
                structured_payload_json=cached.structured_payload_json,
                rejected_items_json=cached.rejected_items_json,
                confidence_score=cached.confidence_score,
                validation_passed=True,
                cache_hit=True,
            )
            db.add(attempt)
            db.flush()
            logger.info(
                "extraction.cache_hit report_id=%s attempt_id=%s source_attempt_id=%s",
                report.id,
                attempt.id,
                cached.id,
            )
            return _outcome_from_attempt(attempt, cache_hit=True)

    started = perf_counter()
    outcome = extractor.extract(transcript, context)
    llm_ms = (perf_counter() - started) * 1000.0
    raw_response = getattr(extractor, "last_raw_response", None)

    _supersede_attempts(db, report.id, reason=reason or "superseded by new extraction")
    if isinstance(outcome, ExtractionError):
        attempt = ExtractionAttempt(
            report_id=report.id,
            model_name=extractor.model_name,
            prompt_version=extractor.prompt_version,
            input_hash=input_hash,
            raw_response=outcome.raw_response or raw_response,
            structured_payload_json={},
            validation_passed=False,
            error_kind=outcome.kind,
            error_message=outcome.message,
        )
    else:
        attempt = ExtractionAttempt(
            report_id=report.id,
            model_name=extractor.model_name,
            prompt_version=extractor.prompt_version,
            input_hash=input_hash,
            raw_response=raw_response,
            structured_payload_json=outcome.to_payload(),
            rejected_items_json=outcome.rejected_items,
            confidence_score=outcome.confidence,
            validation_passed=True,
        )
    db.add(attempt)
    db.flush()
    logger.info(
        "extraction.external_call report_id=%s attempt_id=%s model=%s passed=%s error_kind=%s llm_ms=%.2f",
        report.id,
        attempt.id,
        attempt.model_name,
        attempt.validation_passed,
        attempt.error_kind,
        llm_ms,
    )
    if isinstance(outcome, ExtractionError):
        return ExtractionOutcome(attempt=attempt, result=None, error=outcome, cache_hit=False, external_call=True)
    return ExtractionOutcome(attempt=attempt, result=outcome, error=None, cache_hit=False, external_call=True)


def get_current_attempt(db: Session, report_id: str) -> ExtractionAttempt | None:
    """Latest non-superseded attempt that passed validation."""

    return db.scalar(
        select(ExtractionAttempt)
        .where(
            ExtractionAttempt.report_id == report_id,
            ExtractionAttempt.validation_passed.is_(True),
            ExtractionAttempt.superseded.is_(False),
        )
        .order_by(ExtractionAttempt.id.desc())
        .limit(1)
    )


def list_attempts(db: Session, report_id: str) -> list[ExtractionAttempt]:
    stmt = select(ExtractionAttempt).where(ExtractionAttempt.report_id == report_id).order_by(ExtractionAttempt.id.asc())
    return list(db.scalars(stmt).all())


def _supersede_attempts(db: Session, report_id: str, *, reason: str) -> None:
    db.execute(
        update(ExtractionAttempt)
        .where(ExtractionAttempt.report_id == report_id, ExtractionAttempt.superseded.is_(False))
        .values(superseded=True, superseded_reason=reason[:255])
    )


def _outcome_from_attempt(attempt: ExtractionAttempt, *, cache_hit: bool) -> ExtractionOutcome:
    validated = validate_extraction_payload(attempt.structured_payload_json)
    if isinstance(validated, ExtractionError):
        return ExtractionOutcome(attempt=attempt, result=None, error=validated, cache_hit=cache_hit, external_call=False)
    validated.rejected_items = list(attempt.rejected_items_json or [])
    return ExtractionOutcome(attempt=attempt, result=validated, error=None, cache_hit=cache_hit, external_call=False)
