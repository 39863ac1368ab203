"""Human-in-the-loop review of flagged entity matches."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Literal

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from sitelog.config import Settings, get_settings
from sitelog.entity_resolution import EntityResolver, ResolutionContext
from sitelog.entity_resolution.resolver import follow_merges, refresh_person_counters, refresh_vendor_counters
from sitelog.models.constraint_record import ConstraintRecord
from sitelog.models.entity_name_key import EntityNameKey
from sitelog.models.person import Person, PersonHistory
from sitelog.models.resolution_event import ResolutionEvent
from sitelog.models.review_decision import ReviewDecision
from sitelog.models.team_assignment import TeamAssignment
from sitelog.models.vendor import Vendor, VendorDelivery
from sitelog.models.work_log import WorkLogEntry
from sitelog.services.aggregation import ALL_TIME, RollupWindow, month_window, recompute_project_rollups
from sitelog.services.errors import ReviewDecisionError

logger = logging.getLogger(__name__)

ReviewAction = Literal["confirm", "reject", "mergeInto"]
REVIEW_ACTIONS = ("confirm", "reject", "mergeInto")


@dataclass(slots=True)
class PendingReviewItem:
    kind: str
    record_id: int
    entity_id: str
    canonical_name: str
    observed_name: str
    report_id: str
    project_id: str
    report_date: date
    match_score: float


@dataclass(slots=True)
class FlaggedRecordItem:
    kind: str
    record_id: int
    report_id: str
    project_id: str
    report_date: date
    summary: str
    reasons: list[str] = field(default_factory=list)


@dataclass(slots=True)
class ReviewQueue:
    entities: list[PendingReviewItem] = field(default_factory=list)
    records: list[FlaggedRecordItem] = field(default_factory=list)


@dataclass(slots=True)
class ReviewOutcome:
    entity_id: str
    kind: str
    decision: str
    rows_updated: int
    target_entity_id: str | None = None
    created_entity_ids: list[str] = field(default_factory=list)


def entity_kind_for(entity_id: str) -> str:
    if entity_id.startswith("person_"):
        return "person"
    if entity_id.startswith("vendor_"):
        return "vendor"
    raise ReviewDecisionError(f"Unknown entity id format: {entity_id}")


def list_review_queue(db: Session, project_id: str | None = None) -> ReviewQueue:
    """Pending entity matches plus work logs and constraints flagged for review."""

    queue = ReviewQueue()
    person_stmt = (
        select(PersonHistory, Person.canonical_name)
        .join(Person, Person.id == PersonHistory.person_id)
        .where(PersonHistory.review_state == "pending", PersonHistory.superseded.is_(False))
    )
    vendor_stmt = (
        select(VendorDelivery, Vendor.canonical_company_name)
        .join(Vendor, Vendor.id == VendorDelivery.vendor_id)
        .where(VendorDelivery.review_state == "pending", VendorDelivery.superseded.is_(False))
    )
    if project_id is not None:
        person_stmt = person_stmt.where(PersonHistory.project_id == project_id)
        vendor_stmt = vendor_stmt.where(VendorDelivery.project_id == project_id)

    for row, name in db.execute(person_stmt.order_by(PersonHistory.report_date.asc(), PersonHistory.id.asc())):
        queue.entities.append(
            PendingReviewItem(
                kind="person",
                record_id=row.id,
                entity_id=row.person_id,
                canonical_name=name,
                observed_name=row.observed_name,
                report_id=row.report_id,
                project_id=row.project_id,
                report_date=row.report_date,
                match_score=row.match_score,
            )
        )
    for row, name in db.execute(vendor_stmt.order_by(VendorDelivery.report_date.asc(), VendorDelivery.id.asc())):
        queue.entities.append(
            PendingReviewItem(
                kind="vendor",
                record_id=row.id,
                entity_id=row.vendor_id,
                canonical_name=name,
                observed_name=row.observed_name,
                report_id=row.report_id,
                project_id=row.project_id,
                report_date=row.report_date,
                match_score=row.match_score,
            )
        )

    log_stmt = select(WorkLogEntry).where(WorkLogEntry.needs_review.is_(True), WorkLogEntry.superseded.is_(False))
    constraint_stmt = select(ConstraintRecord).where(
        ConstraintRecord.needs_review.is_(True),
        ConstraintRecord.superseded.is_(False),
    )
    if project_id is not None:
        log_stmt = log_stmt.where(WorkLogEntry.project_id == project_id)
        constraint_stmt = constraint_stmt.where(ConstraintRecord.project_id == project_id)
    for log in db.scalars(log_stmt.order_by(WorkLogEntry.id.asc())):
        queue.records.append(
            FlaggedRecordItem(
                kind="work_log",
                record_id=log.id,
                report_id=log.report_id,
                project_id=log.project_id,
                report_date=log.report_date,
                summary=log.description,
                reasons=[f"unresolved_personnel:{log.unresolved_mentions}"] if log.unresolved_mentions else [],
            )
        )
    for record in db.scalars(constraint_stmt.order_by(ConstraintRecord.id.asc())):
        queue.records.append(
            FlaggedRecordItem(
                kind="constraint",
                record_id=record.id,
                report_id=record.report_id,
                project_id=record.project_id,
                report_date=record.report_date,
                summary=record.title,
                reasons=list(record.review_reasons_json),
            )
        )
    return queue


def resolve_pending_review(
    db: Session,
    entity_id: str,
    decision: str,
    *,
    target_entity_id: str | None = None,
    record_id: int | None = None,
    reviewer: str = "reviewer",
    note: str | None = None,
    settings: Settings | None = None,
) -> ReviewOutcome:
    """Apply a confirm, reject or mergeInto decision and commit it.

    ``record_id`` narrows confirm/reject to one flagged history row; by default
    every pending row attached to the entity is decided.
    """

    if decision not in REVIEW_ACTIONS:
        raise ReviewDecisionError(f"Unsupported review decision: {decision}")
    resolved_settings = settings or get_settings()
    kind = entity_kind_for(entity_id)
    model = Vendor if kind == "vendor" else Person
    entity = db.get(model, entity_id)
    if entity is None:
        raise ReviewDecisionError(f"Entity not found: {entity_id}")

    resolver = EntityResolver(resolved_settings)
    now = datetime.now(timezone.utc)
    try:
        if decision == "confirm":
            outcome, touched = _confirm(db, resolver, kind, entity, record_id=record_id, now=now)
        elif decision == "reject":
            outcome, touched = _reject(db, resolver, kind, entity, record_id=record_id, now=now)
        else:
            if not target_entity_id:
                raise ReviewDecisionError("mergeInto requires a target entity id")
            outcome, touched = _merge(db, resolver, kind, entity, target_entity_id, now=now)
    except ReviewDecisionError:
        db.rollback()
        raise

    _finish(db, kind, outcome, touched, reviewer=reviewer, note=note, settings=resolved_settings)
    db.commit()
    logger.info(
        "review.decision kind=%s entity_id=%s decision=%s rows=%d target=%s created=%d",
        kind,
        entity_id,
        decision,
        outcome.rows_updated,
        outcome.target_entity_id,
        len(outcome.created_entity_ids),
    )
    return outcome


def auto_confirm_stale_reviews(
    db: Session,
    *,
    today: date | None = None,
    settings: Settings | None = None,
) -> int:
    """Confirm pending matches whose report is older than the review window.

    A window of zero days leaves pending rows pending forever.
    """

    resolved_settings = settings or get_settings()
    window_days = resolved_settings.review_auto_confirm_days
    if window_days <= 0:
        return 0
    cutoff = (today or date.today()) - timedelta(days=window_days)
    resolver = EntityResolver(resolved_settings)
    now = datetime.now(timezone.utc)
    confirmed = 0
    for kind, model, history_model, column in (
        ("person", Person, PersonHistory, PersonHistory.person_id),
        ("vendor", Vendor, VendorDelivery, VendorDelivery.vendor_id),
    ):
        entity_ids = list(
            db.scalars(
                select(column)
                .where(
                    history_model.review_state == "pending",
                    history_model.superseded.is_(False),
                    history_model.report_date < cutoff,
                )
                .distinct()
            )
        )
        for entity_id in sorted(entity_ids):
            entity = db.get(model, entity_id)
            if entity is None:
                continue
            outcome, touched = _confirm(db, resolver, kind, entity, record_id=None, now=now, before=cutoff)
            _finish(
                db,
                kind,
                outcome,
                touched,
                reviewer="auto_confirm",
                note=f"pending longer than {window_days} days",
                settings=resolved_settings,
            )
            confirmed += outcome.rows_updated
    db.commit()
    logger.info("review.auto_confirm cutoff=%s confirmed=%d", cutoff.isoformat(), confirmed)
    return confirmed


def _confirm(
    db: Session,
    resolver: EntityResolver,
    kind: str,
    entity: Person | Vendor,
    *,
    record_id: int | None,
    now: datetime,
    before: date | None = None,
) -> tuple[ReviewOutcome, list[PersonHistory | VendorDelivery]]:
    rows = _pending_rows(db, kind, entity.id, record_id=record_id, before=before)
    for row in rows:
        row.review_state = "confirmed"
        row.needs_review = False
        row.reviewed_at = now
        resolver.attach_variant(db, kind, entity, row.observed_name)
        if row.report_date > entity.date_last_seen:
            entity.date_last_seen = row.report_date
    db.flush()
    return ReviewOutcome(entity_id=entity.id, kind=kind, decision="confirm", rows_updated=len(rows)), rows


def _reject(
    db: Session,
    resolver: EntityResolver,
    kind: str,
    entity: Person | Vendor,
    *,
    record_id: int | None,
    now: datetime,
) -> tuple[ReviewOutcome, list[PersonHistory | VendorDelivery]]:
    """Detach flagged rows: each observed spelling becomes (or joins) its own entity."""

    rows = _pending_rows(db, kind, entity.id, record_id=record_id)
    outcome = ReviewOutcome(entity_id=entity.id, kind=kind, decision="reject", rows_updated=len(rows))
    touched: list[PersonHistory | VendorDelivery] = list(rows)
    for row in rows:
        row.review_state = "rejected"
        row.needs_review = False
        row.reviewed_at = now
        row.superseded = True
        db.flush()

        ctx = ResolutionContext(
            report_id=row.report_id,
            project_id=row.project_id,
            report_date=row.report_date,
            extraction_attempt_id=row.extraction_attempt_id,
        )
        created = resolver.create_entity(
            db,
            kind,
            row.observed_name,
            ctx,
            position=row.position if isinstance(row, PersonHistory) else None,
        )
        if created.entity_id == entity.id:
            raise ReviewDecisionError(
                f"Observed name {row.observed_name!r} already resolves to {entity.id}; confirm it or merge instead"
            )
        if created.entity_id not in outcome.created_entity_ids:
            outcome.created_entity_ids.append(created.entity_id)
        if _active_row(db, kind, created.entity_id, row.report_id) is not None:
            continue
        replacement = _copy_row(row, created.entity_id, now)
        db.add(replacement)
        db.flush()
        touched.append(replacement)
    return outcome, touched


def _merge(
    db: Session,
    resolver: EntityResolver,
    kind: str,
    source: Person | Vendor,
    target_entity_id: str,
    *,
    now: datetime,
) -> tuple[ReviewOutcome, list[PersonHistory | VendorDelivery]]:
    """Fold ``source`` into ``target``; history stays on the source and is read through the link."""

    if entity_kind_for(target_entity_id) != kind:
        raise ReviewDecisionError("mergeInto target must be the same kind of entity")
    if source.status == "merged":
        raise ReviewDecisionError(f"Entity {source.id} is already merged into {source.merged_into_id}")
    target = follow_merges(db, kind, target_entity_id)
    if target is None:
        raise ReviewDecisionError(f"Merge target not found: {target_entity_id}")
    if target.id == source.id:
        raise ReviewDecisionError("An entity cannot be merged into itself")

    model = type(source)
    db.execute(
        update(model)
        .where(model.merged_into_id == source.id)
        .values(merged_into_id=target.id)
        .execution_options(synchronize_session="fetch")
    )
    db.execute(
        update(EntityNameKey)
        .where(EntityNameKey.entity_kind == kind, EntityNameKey.entity_id == source.id)
        .values(entity_id=target.id)
    )
    known = {resolver.name_key(kind, variant) for variant in target.name_variants_json}
    known.add(target.name_key)
    added = [variant for variant in source.name_variants_json if resolver.name_key(kind, variant) not in known]
    target.name_variants_json = [*target.name_variants_json, *dict.fromkeys(added)]
    target.date_first_seen = min(target.date_first_seen, source.date_first_seen)
    target.date_last_seen = max(target.date_last_seen, source.date_last_seen)
    source.status = "merged"
    source.merged_into_id = target.id

    if kind == "person":
        _move_team_assignments(db, source.id, target.id)

    rows = _pending_rows(db, kind, source.id, record_id=None)
    for row in rows:
        row.review_state = "merged"
        row.needs_review = False
        row.reviewed_at = now
    db.flush()

    touched = _active_rows(db, kind, source.id)
    outcome = ReviewOutcome(
        entity_id=source.id,
        kind=kind,
        decision="mergeInto",
        rows_updated=len(rows),
        target_entity_id=target.id,
    )
    return outcome, touched


def _finish(
    db: Session,
    kind: str,
    outcome: ReviewOutcome,
    touched: list[PersonHistory | VendorDelivery],
    *,
    reviewer: str,
    note: str | None,
    settings: Settings,
) -> None:
    """Audit the decision, refresh counters and rebuild affected rollups."""

    db.add(
        ReviewDecision(
            entity_kind=kind,
            entity_id=outcome.entity_id,
            decision=outcome.decision,
            target_entity_id=outcome.target_entity_id,
            reviewer=reviewer,
            note=note,
            details_json={
                "rows_updated": outcome.rows_updated,
                "created_entity_ids": outcome.created_entity_ids,
                "record_ids": sorted({row.id for row in touched}),
            },
        )
    )
    db.add(
        ResolutionEvent(
            report_id=None,
            entity_kind=kind,
            entity_id=outcome.target_entity_id or outcome.entity_id,
            event_type=f"review_{outcome.decision.lower()}",
            observed_name=None,
            similarity_score=None,
            rationale=f"reviewer={reviewer}"[:255],
            details_json={"source_entity_id": outcome.entity_id, "created_entity_ids": outcome.created_entity_ids},
        )
    )

    entity_ids = [outcome.entity_id, *outcome.created_entity_ids]
    if outcome.target_entity_id:
        entity_ids.append(outcome.target_entity_id)
    if kind == "vendor":
        refresh_vendor_counters(db, entity_ids)
    else:
        refresh_person_counters(db, entity_ids)

    windows: dict[str, dict[str, RollupWindow]] = {}
    for row in touched:
        month = month_window(row.report_date)
        windows.setdefault(row.project_id, {ALL_TIME.key: ALL_TIME})[month.key] = month
    for project_id in sorted(windows):
        for window in windows[project_id].values():
            recompute_project_rollups(db, project_id, window, settings=settings)


def _pending_rows(
    db: Session,
    kind: str,
    entity_id: str,
    *,
    record_id: int | None,
    before: date | None = None,
) -> list[PersonHistory | VendorDelivery]:
    model, column = _history_model(kind)
    stmt = select(model).where(column == entity_id, model.review_state == "pending", model.superseded.is_(False))
    if record_id is not None:
        stmt = stmt.where(model.id == record_id)
    if before is not None:
        stmt = stmt.where(model.report_date < before)
    rows = list(db.scalars(stmt.order_by(model.id.asc())).all())
    if record_id is not None and not rows:
        raise ReviewDecisionError(f"No pending review row {record_id} for entity {entity_id}")
    return rows


def _active_rows(db: Session, kind: str, entity_id: str) -> list[PersonHistory | VendorDelivery]:
    model, column = _history_model(kind)
    stmt = select(model).where(column == entity_id, model.superseded.is_(False)).order_by(model.id.asc())
    return list(db.scalars(stmt).all())


def _active_row(db: Session, kind: str, entity_id: str, report_id: str) -> PersonHistory | VendorDelivery | None:
    model, column = _history_model(kind)
    return db.scalar(
        select(model)
        .where(column == entity_id, model.report_id == report_id, model.superseded.is_(False))
        .limit(1)
    )


def _copy_row(row: PersonHistory | VendorDelivery, entity_id: str, now: datetime) -> PersonHistory | VendorDelivery:
    if isinstance(row, PersonHistory):
        return PersonHistory(
            person_id=entity_id,
            report_id=row.report_id,
            project_id=row.project_id,
            report_date=row.report_date,
            extraction_attempt_id=row.extraction_attempt_id,
            observed_name=row.observed_name,
            position=row.position,
            team_assignment=row.team_assignment,
            hours_worked=row.hours_worked,
            overtime_hours=row.overtime_hours,
            health_status=row.health_status,
            activities=row.activities,
            source_excerpt=row.source_excerpt,
            match_type="review_split",
            match_score=row.match_score,
            needs_review=False,
            review_state="split",
            reviewed_at=now,
        )
    return VendorDelivery(
        vendor_id=entity_id,
        report_id=row.report_id,
        project_id=row.project_id,
        report_date=row.report_date,
        extraction_attempt_id=row.extraction_attempt_id,
        observed_name=row.observed_name,
        materials=row.materials,
        delivery_time=row.delivery_time,
        received_by=row.received_by,
        delivery_status=row.delivery_status,
        issues=row.issues,
        cost_impact=row.cost_impact,
        source_excerpt=row.source_excerpt,
        match_type="review_split",
        match_score=row.match_score,
        needs_review=False,
        review_state="split",
        reviewed_at=now,
    )


def _move_team_assignments(db: Session, source_id: str, target_id: str) -> None:
    for assignment in db.scalars(select(TeamAssignment).where(TeamAssignment.person_id == source_id)):
        clash = db.scalar(
            select(TeamAssignment).where(
                TeamAssignment.project_id == assignment.project_id,
                TeamAssignment.team_key == assignment.team_key,
                TeamAssignment.person_id == target_id,
            )
        )
        if clash is None:
            assignment.person_id = target_id
        else:
            clash.active = clash.active or assignment.active
            clash.last_seen_date = max(clash.last_seen_date, assignment.last_seen_date)
            assignment.active = False
    db.flush()


def _history_model(kind: str):
    if kind == "vendor":
        return VendorDelivery, VendorDelivery.vendor_id
    return PersonHistory, PersonHistory.person_id
