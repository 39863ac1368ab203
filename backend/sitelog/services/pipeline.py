"""Report orchestration: extraction, resolution, recording and publication.

Status flow is ``pending_analysis -> analyzed -> published`` with ``failed``
reachable from any active state and ``archived`` only from ``published``.
Each step commits on its own so a crash leaves the report in a state that a
later ``process_report`` call can resume from.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from time import perf_counter
from typing import TypeVar

from sqlalchemy import exists, func, or_, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError, InterfaceError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from sitelog.config import Settings, get_settings
from sitelog.entity_resolution import EntityResolver, PersonResolution, ResolutionContext
from sitelog.entity_resolution.resolver import refresh_person_counters, refresh_vendor_counters
from sitelog.entity_resolution.similarity import normalize
from sitelog.extraction.extractor_interface import ExtractorInterface
from sitelog.extraction.types import ExtractedPerson, ExtractionResult
from sitelog.models.constraint_record import ConstraintRecord
from sitelog.models.extraction_attempt import ExtractionAttempt
from sitelog.models.person import PersonHistory
from sitelog.models.report import Report
from sitelog.models.vendor import VendorDelivery
from sitelog.models.work_log import WorkLogEntry
from sitelog.services.aggregation import ALL_TIME, month_window, recompute_project_rollups
from sitelog.services.artifacts import write_daily_summary
from sitelog.services.errors import (
    BlobNotFoundError,
    ClaimLostError,
    InvalidTransitionError,
    ReportBusyError,
    ReportNotFoundError,
    StoreUnavailableError,
)
from sitelog.services.extraction import ExtractionOutcome, get_default_extractor, obtain_extraction
from sitelog.services.recorders import record_constraints, record_work_logs, sync_team_assignments
from sitelog.services.storage import BlobStore, get_default_blob_store, transcript_path

logger = logging.getLogger(__name__)

T = TypeVar("T")

_ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    "pending_analysis": frozenset({"analyzed", "failed"}),
    "analyzed": frozenset({"published", "failed", "pending_analysis"}),
    "published": frozenset({"archived", "failed", "pending_analysis"}),
    "failed": frozenset({"pending_analysis", "analyzed"}),
    "archived": frozenset(),
}


@dataclass(slots=True)
class ProcessReportResult:
    """Outcome of one orchestration call."""

    report_id: str
    status: str
    entities_created: int = 0
    entities_flagged: int = 0
    records_flagged: int = 0
    error_kind: str | None = None
    error_message: str | None = None
    retryable: bool = False
    cache_hit: bool = False
    external_call: bool = False


@dataclass(slots=True)
class BatchItemResult:
    report_id: str
    result: ProcessReportResult | None = None
    error: str | None = None


@dataclass(slots=True)
class _StepCounts:
    entities_created: int = 0
    entities_flagged: int = 0
    records_flagged: int = 0


def build_report_id(report_date: date, submitter_id: str, submitted_at: datetime) -> str:
    """Stable id derived from the report date, submitter and submission time."""

    return f"rpt_{report_date:%Y%m%d}_{submitter_id}_{int(submitted_at.timestamp())}"


def register_report(
    db: Session,
    *,
    project_id: str,
    project_name: str,
    submitter_id: str,
    report_date: date,
    transcript_text: str | None = None,
    transcript_blob_path: str | None = None,
    submitted_at: datetime | None = None,
    blob_store: BlobStore | None = None,
) -> Report:
    """Create a ``pending_analysis`` report; an existing id is returned unchanged.

    Inline transcript text is also written to the blob store when one is given.
    """

    submitted = submitted_at or datetime.now(timezone.utc)
    report_id = build_report_id(report_date, submitter_id, submitted)
    existing = db.get(Report, report_id)
    if existing is not None:
        return existing

    path = transcript_blob_path
    if transcript_text is not None and blob_store is not None:
        path = blob_store.write_text(transcript_path(project_id, report_date, report_id), transcript_text)
    if transcript_text is None and path is None:
        raise ValueError("A report needs transcript text or a transcript path")

    report = Report(
        id=report_id,
        project_id=project_id,
        project_name=project_name,
        submitter_id=submitter_id,
        report_date=report_date,
        raw_transcript_text=transcript_text,
        transcript_path=path,
        status="pending_analysis",
        retryable=True,
        status_changed_at=submitted,
    )
    db.add(report)
    db.commit()
    db.refresh(report)
    logger.info("pipeline.report_registered report_id=%s project_id=%s", report_id, project_id)
    return report


def process_report(
    db: Session,
    report_id: str,
    *,
    extractor: ExtractorInterface | None = None,
    blob_store: BlobStore | None = None,
    settings: Settings | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> ProcessReportResult:
    """Drive one report as far through the state machine as it can go.

    Safe to call repeatedly: published and archived reports are returned as-is,
    and failed reports only resume when their failure is retryable.
    """

    return _run(
        db,
        report_id,
        extractor=extractor,
        blob_store=blob_store,
        settings=settings,
        sleep=sleep,
        bypass_cache=False,
        reason=None,
    )


def reprocess_report(
    db: Session,
    report_id: str,
    reason: str,
    *,
    extractor: ExtractorInterface | None = None,
    blob_store: BlobStore | None = None,
    settings: Settings | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> ProcessReportResult:
    """Supersede the report's derived records and extract again without the cache."""

    if not reason or not reason.strip():
        raise ValueError("A reprocess reason is required")
    resolved_settings = settings or get_settings()
    report = _get_report(db, report_id)
    if report.status == "archived":
        raise InvalidTransitionError(report_id, report.status, "pending_analysis")

    token = _claim(db, report_id, resolved_settings)
    try:
        report = _get_report(db, report_id)
        person_ids, vendor_ids = _supersede_report_records(db, report_id)
        refresh_person_counters(db, person_ids)
        refresh_vendor_counters(db, vendor_ids)
        _recompute_rollups(db, report, resolved_settings)
        if report.status != "pending_analysis":
            _transition(report, "pending_analysis")
        report.failure_kind = None
        report.failure_reason = None
        report.retryable = True
        db.commit()
        logger.info(
            "pipeline.reprocess_requested report_id=%s reason=%r superseded_persons=%d superseded_vendors=%d",
            report_id,
            reason,
            len(person_ids),
            len(vendor_ids),
        )
    finally:
        _release_claim(db, report_id, token)

    return _run(
        db,
        report_id,
        extractor=extractor,
        blob_store=blob_store,
        settings=resolved_settings,
        sleep=sleep,
        bypass_cache=True,
        reason=reason,
    )


def process_reports(
    report_ids: list[str],
    *,
    delay_seconds: float | None = None,
    session_factory: sessionmaker | None = None,
    extractor: ExtractorInterface | None = None,
    blob_store: BlobStore | None = None,
    settings: Settings | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> list[BatchItemResult]:
    """Process reports one at a time with a fixed delay between them.

    Each report gets its own session; an exception is recorded against that
    report and the batch moves on.
    """

    resolved_settings = settings or get_settings()
    delay = resolved_settings.batch_delay_seconds if delay_seconds is None else delay_seconds
    if session_factory is None:
        from sitelog.db.session import SessionLocal

        session_factory = SessionLocal

    total_started = perf_counter()
    results: list[BatchItemResult] = []
    for index, report_id in enumerate(report_ids):
        if index and delay > 0:
            sleep(delay)
        db = session_factory()
        try:
            result = process_report(
                db,
                report_id,
                extractor=extractor,
                blob_store=blob_store,
                settings=resolved_settings,
                sleep=sleep,
            )
            results.append(BatchItemResult(report_id=report_id, result=result))
        except Exception as exc:
            logger.exception("pipeline.batch_item_failed report_id=%s", report_id)
            results.append(BatchItemResult(report_id=report_id, error=f"{type(exc).__name__}: {exc}"))
        finally:
            db.close()

    logger.info(
        "pipeline.batch_timing reports=%d failed=%d total_ms=%.2f",
        len(report_ids),
        sum(1 for item in results if item.error or (item.result and item.result.status == "failed")),
        (perf_counter() - total_started) * 1000.0,
    )
    return results


def mark_report_failed(db: Session, report_id: str, reason: str) -> Report:
    """Operator cancellation for a single report."""

    report = _get_report(db, report_id)
    if report.status != "failed":
        _transition(report, "failed")
    report.failure_kind = "cancelled"
    report.failure_reason = reason
    report.retryable = True
    report.claim_token = None
    report.claimed_at = None
    db.commit()
    db.refresh(report)
    logger.info("pipeline.report_cancelled report_id=%s reason=%r", report_id, reason)
    return report


def archive_report(db: Session, report_id: str) -> Report:
    report = _get_report(db, report_id)
    _transition(report, "archived")
    db.commit()
    db.refresh(report)
    logger.info("pipeline.report_archived report_id=%s", report_id)
    return report


def get_report(db: Session, report_id: str) -> Report:
    return _get_report(db, report_id)


def list_reports(
    db: Session,
    *,
    project_id: str | None = None,
    status: str | None = None,
    limit: int = 100,
) -> list[Report]:
    stmt = select(Report)
    if project_id is not None:
        stmt = stmt.where(Report.project_id == project_id)
    if status is not None:
        stmt = stmt.where(Report.status == status)
    stmt = stmt.order_by(Report.report_date.desc(), Report.id.asc()).limit(limit)
    return list(db.scalars(stmt).all())


def _run(
    db: Session,
    report_id: str,
    *,
    extractor: ExtractorInterface | None,
    blob_store: BlobStore | None,
    settings: Settings | None,
    sleep: Callable[[float], None],
    bypass_cache: bool,
    reason: str | None,
) -> ProcessReportResult:
    resolved_settings = settings or get_settings()
    report = _get_report(db, report_id)
    if report.status in {"published", "archived"}:
        return _settled_result(db, report)
    if report.status == "failed" and not report.retryable:
        return _settled_result(db, report)

    token = _claim(db, report_id, resolved_settings)
    total_started = perf_counter()
    try:
        report = _get_report(db, report_id)
        result = ProcessReportResult(report_id=report_id, status=report.status)

        if report.status == "failed":
            # Resume at aggregation when the failure came after records were committed.
            target = "analyzed" if _has_active_records(db, report_id) else "pending_analysis"
            _advance(db, report_id, token, "failed", target, failure_kind=None, failure_reason=None)
            db.commit()
            report = _get_report(db, report_id)

        if report.status == "pending_analysis":
            store = blob_store or get_default_blob_store()
            try:
                _with_retries(db, lambda: _load_transcript(db, report, store), report_id=report_id, step="load_transcript", settings=resolved_settings, sleep=sleep)
            except BlobNotFoundError as exc:
                return _fail(db, report, result, token, kind="transcript_missing", message=str(exc), retryable=False)
            except StoreUnavailableError as exc:
                return _fail(db, report, result, token, kind="store_unavailable", message=str(exc), retryable=True)

            extraction = _extract_with_retries(
                db,
                report,
                extractor or get_default_extractor(),
                settings=resolved_settings,
                sleep=sleep,
                bypass_cache=bypass_cache,
                reason=reason,
            )
            if isinstance(extraction, StoreUnavailableError):
                return _fail(db, report, result, token, kind="store_unavailable", message=str(extraction), retryable=True)
            result.cache_hit = extraction.cache_hit
            result.external_call = extraction.external_call
            if extraction.error is not None:
                return _fail(
                    db,
                    report,
                    result,
                    token,
                    kind=extraction.error.kind,
                    message=extraction.error.message,
                    retryable=extraction.error.retryable,
                )

            attempt_id = extraction.attempt.id
            prompt_version = extraction.attempt.prompt_version
            try:
                counts = _with_retries(
                    db,
                    lambda: _resolve_and_record(
                        db, report_id, token, attempt_id, prompt_version, extraction.result, resolved_settings
                    ),
                    report_id=report_id,
                    step="resolve",
                    settings=resolved_settings,
                    sleep=sleep,
                )
            except StoreUnavailableError as exc:
                return _fail(db, report, result, token, kind="store_unavailable", message=str(exc), retryable=True)
            except ClaimLostError:
                raise
            except Exception as exc:
                logger.exception("pipeline.resolve_failed report_id=%s", report_id)
                _fail(db, report, result, token, kind="internal_error", message=str(exc), retryable=True)
                raise
            result.entities_created = counts.entities_created
            result.entities_flagged = counts.entities_flagged
            result.records_flagged = counts.records_flagged
            report = _get_report(db, report_id)

        if report.status == "analyzed":
            store = blob_store or get_default_blob_store()
            try:
                _with_retries(
                    db,
                    lambda: _publish(db, report_id, token, store, resolved_settings),
                    report_id=report_id,
                    step="publish",
                    settings=resolved_settings,
                    sleep=sleep,
                )
            except StoreUnavailableError as exc:
                return _fail(db, report, result, token, kind="store_unavailable", message=str(exc), retryable=True)
            except ClaimLostError:
                raise
            except Exception as exc:
                logger.exception("pipeline.publish_failed report_id=%s", report_id)
                _fail(db, report, result, token, kind="internal_error", message=str(exc), retryable=True)
                raise

        report = _get_report(db, report_id)
        result.status = report.status
        if not result.entities_flagged:
            result.entities_flagged = _count_flagged(db, report_id)
        logger.info(
            (
                "pipeline.process_timing report_id=%s status=%s entities_created=%d "
                "entities_flagged=%d records_flagged=%d cache_hit=%s total_ms=%.2f"
            ),
            report_id,
            result.status,
            result.entities_created,
            result.entities_flagged,
            result.records_flagged,
            result.cache_hit,
            (perf_counter() - total_started) * 1000.0,
        )
        return result
    except ClaimLostError:
        db.rollback()
        report = _get_report(db, report_id)
        logger.warning("pipeline.claim_lost report_id=%s status=%s", report_id, report.status)
        return _settled_result(db, report)
    finally:
        _release_claim(db, report_id, token)


def _load_transcript(db: Session, report: Report, store: BlobStore) -> None:
    if report.raw_transcript_text is not None or not report.transcript_path:
        return
    report.raw_transcript_text = store.read_text(report.transcript_path)
    db.commit()


def _extract_with_retries(
    db: Session,
    report: Report,
    extractor: ExtractorInterface,
    *,
    settings: Settings,
    sleep: Callable[[float], None],
    bypass_cache: bool,
    reason: str | None,
) -> ExtractionOutcome | StoreUnavailableError:
    """Retry retryable extraction errors; malformed output is returned at once."""

    def _once() -> ExtractionOutcome:
        outcome = obtain_extraction(db, report, extractor, bypass_cache=bypass_cache, reason=reason)
        db.commit()
        return outcome

    attempt_no = 0
    while True:
        attempt_no += 1
        try:
            outcome = _with_retries(db, _once, report_id=report.id, step="extract", settings=settings, sleep=sleep)
        except StoreUnavailableError as exc:
            return exc
        if outcome.error is None or not outcome.error.retryable or attempt_no >= settings.retry_max_attempts:
            return outcome
        delay = _backoff_delay(attempt_no, settings)
        logger.warning(
            "pipeline.extraction_retry report_id=%s attempt=%d kind=%s delay_s=%.2f",
            report.id,
            attempt_no,
            outcome.error.kind,
            delay,
        )
        sleep(delay)


def _resolve_and_record(
    db: Session,
    report_id: str,
    token: str,
    attempt_id: int,
    prompt_version: str,
    extraction: ExtractionResult | None,
    settings: Settings,
) -> _StepCounts:
    """Resolve entities and write records in one transaction, then mark analyzed."""

    started = perf_counter()
    report = _require_claim(db, report_id, token, "pending_analysis")
    payload = extraction or ExtractionResult()
    ctx = ResolutionContext(
        report_id=report.id,
        project_id=report.project_id,
        report_date=report.report_date,
        extraction_attempt_id=attempt_id,
    )
    resolver = EntityResolver(settings)
    counts = _StepCounts()
    try:
        person_resolutions: list[tuple[ExtractedPerson, PersonResolution]] = []
        person_ids_by_name: dict[str, str] = {}
        for person in payload.personnel:
            if not resolver.name_key("person", person.full_name):
                continue
            resolution = resolver.resolve_person(db, person, ctx)
            person_resolutions.append((person, resolution))
            counts.entities_created += int(resolution.outcome.created)
            counts.entities_flagged += int(resolution.outcome.needs_review)
            for name in (person.full_name, person.go_by_name):
                if name and normalize(name):
                    person_ids_by_name.setdefault(normalize(name), resolution.outcome.entity_id)

        for vendor in payload.vendors:
            if not resolver.name_key("vendor", vendor.company_name):
                continue
            vendor_resolution = resolver.resolve_vendor(db, vendor, ctx)
            counts.entities_created += int(vendor_resolution.outcome.created)
            counts.entities_flagged += int(vendor_resolution.outcome.needs_review)

        sync_team_assignments(db, ctx, person_resolutions)
        _, work_summary = record_work_logs(db, resolver, ctx, payload.work_logs, person_ids_by_name, settings=settings)
        _, constraint_summary = record_constraints(db, resolver, ctx, payload.constraints, settings=settings)
        counts.records_flagged = work_summary.flagged_records + constraint_summary.flagged_records

        _advance(db, report_id, token, "pending_analysis", "analyzed", extraction_version=prompt_version)
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info(
        "pipeline.resolve_timing report_id=%s persons=%d vendors=%d created=%d flagged=%d records_flagged=%d resolve_ms=%.2f",
        report_id,
        len(payload.personnel),
        len(payload.vendors),
        counts.entities_created,
        counts.entities_flagged,
        counts.records_flagged,
        (perf_counter() - started) * 1000.0,
    )
    return counts


def _publish(db: Session, report_id: str, token: str, store: BlobStore, settings: Settings) -> None:
    started = perf_counter()
    report = _require_claim(db, report_id, token, "analyzed")
    try:
        _recompute_rollups(db, report, settings)
        write_daily_summary(db, report, store)
        _advance(db, report_id, token, "analyzed", "published")
        db.commit()
    except IntegrityError as exc:
        # A concurrent recompute wrote the same rollup keys first; retry against its rows.
        db.rollback()
        raise StoreUnavailableError(f"rollup write conflicted: {exc.orig}") from exc
    except Exception:
        db.rollback()
        raise
    logger.info(
        "pipeline.publish_timing report_id=%s project_id=%s publish_ms=%.2f",
        report_id,
        report.project_id,
        (perf_counter() - started) * 1000.0,
    )


def _recompute_rollups(db: Session, report: Report, settings: Settings) -> None:
    recompute_project_rollups(db, report.project_id, ALL_TIME, settings=settings)
    recompute_project_rollups(db, report.project_id, month_window(report.report_date), settings=settings)


def _with_retries(
    db: Session,
    operation: Callable[[], T],
    *,
    report_id: str,
    step: str,
    settings: Settings,
    sleep: Callable[[float], None],
) -> T:
    """Run ``operation`` with bounded exponential backoff on transient store faults."""

    attempt_no = 0
    while True:
        attempt_no += 1
        try:
            return operation()
        except Exception as exc:
            if not _is_transient(exc):
                raise
            db.rollback()
            if attempt_no >= settings.retry_max_attempts:
                logger.error(
                    "pipeline.retries_exhausted report_id=%s step=%s attempts=%d error=%s",
                    report_id,
                    step,
                    attempt_no,
                    exc,
                )
                if isinstance(exc, StoreUnavailableError):
                    raise
                raise StoreUnavailableError(f"{step} failed after {attempt_no} attempts: {exc}") from exc
            delay = _backoff_delay(attempt_no, settings)
            logger.warning(
                "pipeline.store_retry report_id=%s step=%s attempt=%d delay_s=%.2f error=%s",
                report_id,
                step,
                attempt_no,
                delay,
                exc,
            )
            sleep(delay)


def _backoff_delay(attempt_no: int, settings: Settings) -> float:
    return min(settings.retry_max_delay_seconds, settings.retry_base_delay_seconds * (2 ** (attempt_no - 1)))


def _is_transient(exc: Exception) -> bool:
    if isinstance(exc, (StoreUnavailableError, OperationalError, InterfaceError)):
        return True
    return isinstance(exc, DBAPIError) and exc.connection_invalidated


def _fail(
    db: Session,
    report: Report,
    result: ProcessReportResult,
    token: str,
    *,
    kind: str,
    message: str,
    retryable: bool,
) -> ProcessReportResult:
    db.rollback()
    report = _get_report(db, report.id)
    if report.claim_token != token:
        # An operator decision or a takeover owns the report now.
        logger.warning("pipeline.claim_lost report_id=%s status=%s dropped_kind=%s", report.id, report.status, kind)
        return _settled_result(db, report)
    if report.status != "failed":
        _transition(report, "failed")
    report.failure_kind = kind
    report.failure_reason = message
    report.retryable = retryable
    db.commit()
    logger.warning(
        "pipeline.report_failed report_id=%s kind=%s retryable=%s message=%r",
        report.id,
        kind,
        retryable,
        message,
    )
    result.status = "failed"
    result.error_kind = kind
    result.error_message = message
    result.retryable = retryable
    return result


def _settled_result(db: Session, report: Report) -> ProcessReportResult:
    return ProcessReportResult(
        report_id=report.id,
        status=report.status,
        entities_flagged=_count_flagged(db, report.id),
        error_kind=report.failure_kind if report.status == "failed" else None,
        error_message=report.failure_reason if report.status == "failed" else None,
        retryable=report.retryable if report.status == "failed" else False,
    )


def _count_flagged(db: Session, report_id: str) -> int:
    persons = db.scalar(
        select(func.count(PersonHistory.id)).where(
            PersonHistory.report_id == report_id,
            PersonHistory.superseded.is_(False),
            PersonHistory.needs_review.is_(True),
        )
    )
    vendors = db.scalar(
        select(func.count(VendorDelivery.id)).where(
            VendorDelivery.report_id == report_id,
            VendorDelivery.superseded.is_(False),
            VendorDelivery.needs_review.is_(True),
        )
    )
    return int(persons or 0) + int(vendors or 0)


def _has_active_records(db: Session, report_id: str) -> bool:
    models = (PersonHistory, VendorDelivery, WorkLogEntry, ConstraintRecord)
    return any(
        db.scalar(select(exists().where(model.report_id == report_id, model.superseded.is_(False))))
        for model in models
    )


def _supersede_report_records(db: Session, report_id: str) -> tuple[list[str], list[str]]:
    """Mark every active derived record of a report superseded; returns touched entity ids."""

    person_ids = list(
        db.scalars(
            select(PersonHistory.person_id)
            .where(PersonHistory.report_id == report_id, PersonHistory.superseded.is_(False))
            .distinct()
        )
    )
    vendor_ids = list(
        db.scalars(
            select(VendorDelivery.vendor_id)
            .where(VendorDelivery.report_id == report_id, VendorDelivery.superseded.is_(False))
            .distinct()
        )
    )
    for model in (PersonHistory, VendorDelivery, WorkLogEntry, ConstraintRecord):
        db.execute(
            update(model)
            .where(model.report_id == report_id, model.superseded.is_(False))
            .values(superseded=True)
        )
    db.execute(
        update(ExtractionAttempt)
        .where(ExtractionAttempt.report_id == report_id, ExtractionAttempt.superseded.is_(False))
        .values(superseded=True, superseded_reason="reprocess requested")
    )
    db.flush()
    return person_ids, vendor_ids


def _transition(report: Report, to_status: str) -> None:
    if to_status not in _ALLOWED_TRANSITIONS.get(report.status, frozenset()):
        raise InvalidTransitionError(report.id, report.status, to_status)
    logger.info("pipeline.transition report_id=%s from=%s to=%s", report.id, report.status, to_status)
    report.status = to_status
    report.status_changed_at = datetime.now(timezone.utc)


def _require_claim(db: Session, report_id: str, token: str, status: str) -> Report:
    report = _get_report(db, report_id)
    if report.claim_token != token or report.status != status:
        raise ClaimLostError(report_id)
    return report


def _advance(db: Session, report_id: str, token: str, from_status: str, to_status: str, **values: object) -> None:
    """Conditional status change: only while this run holds the claim and the status is unchanged."""

    if to_status not in _ALLOWED_TRANSITIONS.get(from_status, frozenset()):
        raise InvalidTransitionError(report_id, from_status, to_status)
    moved = db.execute(
        update(Report)
        .where(Report.id == report_id, Report.claim_token == token, Report.status == from_status)
        .values(status=to_status, status_changed_at=datetime.now(timezone.utc), **values)
        .execution_options(synchronize_session=False)
    )
    if moved.rowcount != 1:
        db.rollback()
        raise ClaimLostError(report_id)
    logger.info("pipeline.transition report_id=%s from=%s to=%s", report_id, from_status, to_status)


def _claim(db: Session, report_id: str, settings: Settings) -> str:
    """Take the report's processing lease with a conditional update."""

    token = uuid.uuid4().hex
    now = datetime.now(timezone.utc)
    lease_cutoff = now - timedelta(seconds=settings.claim_lease_seconds)
    claimed = db.execute(
        update(Report)
        .where(
            Report.id == report_id,
            or_(Report.claim_token.is_(None), Report.claimed_at < lease_cutoff),
        )
        .values(claim_token=token, claimed_at=now)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    if claimed.rowcount != 1:
        raise ReportBusyError(f"Report {report_id} is being processed by another worker")
    return token


def _release_claim(db: Session, report_id: str, token: str) -> None:
    db.rollback()
    db.execute(
        update(Report)
        .where(Report.id == report_id, Report.claim_token == token)
        .values(claim_token=None, claimed_at=None)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    db.expire_all()


def _get_report(db: Session, report_id: str) -> Report:
    report = db.get(Report, report_id, populate_existing=True)
    if report is None:
        raise ReportNotFoundError(report_id)
    return report
