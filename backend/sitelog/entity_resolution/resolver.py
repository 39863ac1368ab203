"""Registry-backed entity resolution with conditional create."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import date
from typing import Literal

from sqlalchemy import distinct, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from sitelog.config import Settings, get_settings
from sitelog.entity_resolution.similarity import (
    build_nickname_index,
    classify_score,
    company_abbreviations,
    fuzzy_score,
    normalize,
    normalize_company,
)
from sitelog.extraction.types import ExtractedPerson, ExtractedVendor
from sitelog.models.entity_name_key import EntityNameKey
from sitelog.models.person import Person, PersonHistory
from sitelog.models.resolution_event import ResolutionEvent
from sitelog.models.vendor import Vendor, VendorDelivery

logger = logging.getLogger(__name__)

RESOLVER_VERSION = "registry-v1"
EntityKind = Literal["person", "vendor"]
MatchType = Literal["exact", "fuzzy", "review", "created", "race_resolved"]
_VENDOR_TYPES = frozenset({"supplier", "subcontractor", "rental", "other"})
_DELIVERY_STATUSES = frozenset({"on_time", "late", "missed", "unknown"})


@dataclass(slots=True)
class ResolutionContext:
    """Report scope for a resolution decision."""

    report_id: str
    project_id: str
    report_date: date
    extraction_attempt_id: int


@dataclass(slots=True)
class ResolutionOutcome:
    """Result of resolving one extracted name against a registry."""

    entity_id: str
    canonical_name: str
    created: bool
    needs_review: bool
    match_type: MatchType
    score: float


@dataclass(slots=True)
class PersonResolution:
    outcome: ResolutionOutcome
    history: PersonHistory
    history_created: bool


@dataclass(slots=True)
class VendorResolution:
    outcome: ResolutionOutcome
    delivery: VendorDelivery
    delivery_created: bool


class EntityResolver:
    """Resolve names to canonical persons/vendors.

    Lookup order is the name index, then fuzzy scoring over active candidates,
    then a create-if-absent guarded by the ``entity_name_keys`` uniqueness
    constraint. Losing a create race re-reads the winner instead of failing.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        self._nicknames = build_nickname_index(self._settings.extra_nicknames)
        self._abbreviations = company_abbreviations(self._settings)

    def name_key(self, kind: EntityKind, raw_name: str) -> str:
        if kind == "vendor":
            return normalize_company(raw_name, self._abbreviations)
        return normalize(raw_name)

    def score(self, kind: EntityKind, left: str, right: str) -> float:
        if kind == "vendor":
            return fuzzy_score(
                self.name_key(kind, left),
                self.name_key(kind, right),
                nicknames={},
                phonetic_bonus=self._settings.phonetic_match_bonus,
            )
        return fuzzy_score(
            left,
            right,
            nicknames=self._nicknames,
            phonetic_bonus=self._settings.phonetic_match_bonus,
        )

    def resolve(
        self,
        db: Session,
        kind: EntityKind,
        raw_name: str,
        ctx: ResolutionContext,
        *,
        position: str | None = None,
        vendor_type: str | None = None,
    ) -> ResolutionOutcome:
        """Resolve one extracted name, creating a canonical entity when nothing matches."""

        outcome = self._match(db, kind, raw_name, ctx)
        if outcome is not None:
            if outcome.match_type in {"exact", "fuzzy"}:
                self._touch_entity(db, kind, outcome.entity_id, raw_name, ctx, position=position)
            return outcome
        return self._create(db, kind, raw_name, ctx, position=position, vendor_type=vendor_type)

    def lookup(self, db: Session, kind: EntityKind, raw_name: str, ctx: ResolutionContext) -> ResolutionOutcome | None:
        """Resolve without creating; returns None when the name is unknown."""

        return self._match(db, kind, raw_name, ctx, record_events=False)

    def resolve_person(self, db: Session, person: ExtractedPerson, ctx: ResolutionContext) -> PersonResolution:
        """Resolve a personnel mention and append its history row once per report."""

        outcome = self.resolve(db, "person", person.full_name, ctx, position=person.position)
        existing = _active_person_history(db, outcome.entity_id, ctx.report_id)
        if existing is not None:
            return PersonResolution(outcome=outcome, history=existing, history_created=False)

        history = PersonHistory(
            person_id=outcome.entity_id,
            report_id=ctx.report_id,
            project_id=ctx.project_id,
            report_date=ctx.report_date,
            extraction_attempt_id=ctx.extraction_attempt_id,
            observed_name=person.full_name,
            position=person.position,
            team_assignment=person.team_assignment,
            hours_worked=person.hours_worked,
            overtime_hours=person.overtime_hours,
            health_status=person.health_status,
            activities=person.activities_performed,
            source_excerpt=person.extracted_from_text,
            match_type=outcome.match_type,
            match_score=outcome.score,
            needs_review=outcome.needs_review,
            review_state="pending" if outcome.needs_review else None,
        )
        try:
            with db.begin_nested():
                db.add(history)
                db.flush()
        except IntegrityError:
            existing = _active_person_history(db, outcome.entity_id, ctx.report_id)
            if existing is None:
                raise
            return PersonResolution(outcome=outcome, history=existing, history_created=False)
        refresh_person_counters(db, [outcome.entity_id])
        return PersonResolution(outcome=outcome, history=history, history_created=True)

    def resolve_vendor(self, db: Session, vendor: ExtractedVendor, ctx: ResolutionContext) -> VendorResolution:
        """Resolve a vendor mention and append its delivery row once per report."""

        vendor_type = coerce_vendor_type(vendor.vendor_type)
        outcome = self.resolve(db, "vendor", vendor.company_name, ctx, vendor_type=vendor_type)
        existing = _active_vendor_delivery(db, outcome.entity_id, ctx.report_id)
        if existing is not None:
            return VendorResolution(outcome=outcome, delivery=existing, delivery_created=False)

        delivery = VendorDelivery(
            vendor_id=outcome.entity_id,
            report_id=ctx.report_id,
            project_id=ctx.project_id,
            report_date=ctx.report_date,
            extraction_attempt_id=ctx.extraction_attempt_id,
            observed_name=vendor.company_name,
            materials=vendor.materials_delivered,
            delivery_time=vendor.delivery_time,
            received_by=vendor.received_by,
            delivery_status=coerce_delivery_status(vendor.delivery_status),
            issues=vendor.delivery_notes,
            cost_impact=max(0.0, float(vendor.cost_impact or 0.0)),
            source_excerpt=vendor.extracted_from_text,
            match_type=outcome.match_type,
            match_score=outcome.score,
            needs_review=outcome.needs_review,
            review_state="pending" if outcome.needs_review else None,
        )
        try:
            with db.begin_nested():
                db.add(delivery)
                db.flush()
        except IntegrityError:
            existing = _active_vendor_delivery(db, outcome.entity_id, ctx.report_id)
            if existing is None:
                raise
            return VendorResolution(outcome=outcome, delivery=existing, delivery_created=False)
        refresh_vendor_counters(db, [outcome.entity_id])
        return VendorResolution(outcome=outcome, delivery=delivery, delivery_created=True)

    def _match(
        self,
        db: Session,
        kind: EntityKind,
        raw_name: str,
        ctx: ResolutionContext,
        *,
        record_events: bool = True,
    ) -> ResolutionOutcome | None:
        key = self.name_key(kind, raw_name)
        if not key:
            raise ValueError(f"Cannot resolve a blank {kind} name")

        entity = self._find_by_name_key(db, kind, key)
        if entity is not None:
            if record_events:
                _record_event(db, ctx, kind, entity.id, "exact", raw_name, 100.0, "name_index_match")
            return ResolutionOutcome(
                entity_id=entity.id,
                canonical_name=_display_name(entity),
                created=False,
                needs_review=False,
                match_type="exact",
                score=100.0,
            )

        best = self._best_candidate(db, kind, raw_name)
        if best is None:
            return None
        candidate, score = best
        band = classify_score(score, self._settings)
        if band == "new":
            return None
        if band == "review":
            logger.warning(
                "resolution.review_band kind=%s report_id=%s observed=%r candidate_id=%s score=%.2f",
                kind,
                ctx.report_id,
                raw_name,
                candidate.id,
                score,
            )
        if record_events:
            _record_event(
                db,
                ctx,
                kind,
                candidate.id,
                "fuzzy_auto_match" if band == "auto_match" else "review_band",
                raw_name,
                score,
                f"fuzzy_score={score:.2f}",
            )
        return ResolutionOutcome(
            entity_id=candidate.id,
            canonical_name=_display_name(candidate),
            created=False,
            needs_review=band == "review",
            match_type="fuzzy" if band == "auto_match" else "review",
            score=score,
        )

    def _find_by_name_key(self, db: Session, kind: EntityKind, key: str) -> Person | Vendor | None:
        entity_id = db.scalar(
            select(EntityNameKey.entity_id).where(
                EntityNameKey.entity_kind == kind,
                EntityNameKey.name_key == key,
            )
        )
        if entity_id is None:
            return None
        return follow_merges(db, kind, entity_id)

    def _load_candidates(self, db: Session, kind: EntityKind) -> list[Person | Vendor]:
        model = _model_for(kind)
        stmt = (
            select(model)
            .where(model.status != "merged")
            .order_by(model.date_last_seen.desc(), model.id.asc())
            .limit(self._settings.resolution_max_candidates)
        )
        return list(db.scalars(stmt).all())

    def _best_candidate(self, db: Session, kind: EntityKind, raw_name: str) -> tuple[Person | Vendor, float] | None:
        observed_tokens = len(self.name_key(kind, raw_name).split())
        best: tuple[float, date, str, Person | Vendor] | None = None
        for candidate in self._load_candidates(db, kind):
            names = [_display_name(candidate), *candidate.name_variants_json]
            scores = []
            for name in names:
                score = self.score(kind, raw_name, name)
                if score < self._settings.auto_match_threshold and not _comparable(
                    observed_tokens, len(self.name_key(kind, name).split())
                ):
                    continue
                scores.append(score)
            if not scores:
                continue
            score = max(scores)
            # Highest score wins; ties go to the longest-known entity, then the lowest id.
            ranking = (score, candidate.date_first_seen, candidate.id, candidate)
            if best is None or score > best[0] or (
                score == best[0] and (candidate.date_first_seen, candidate.id) < (best[1], best[2])
            ):
                best = ranking
        if best is None:
            return None
        return best[3], best[0]

    def _create(
        self,
        db: Session,
        kind: EntityKind,
        raw_name: str,
        ctx: ResolutionContext,
        *,
        position: str | None,
        vendor_type: str | None,
    ) -> ResolutionOutcome:
        key = self.name_key(kind, raw_name)
        display = " ".join(raw_name.split())
        if kind == "vendor":
            entity: Person | Vendor = Vendor(
                id=f"vendor_{uuid.uuid4().hex}",
                canonical_company_name=display,
                name_key=key,
                name_variants_json=[display],
                vendor_type=vendor_type or "other",
                date_first_seen=ctx.report_date,
                date_last_seen=ctx.report_date,
                total_deliveries_count=0,
                status="active",
            )
        else:
            entity = Person(
                id=f"person_{uuid.uuid4().hex}",
                canonical_name=display,
                name_key=key,
                name_variants_json=[display],
                current_position=position,
                date_first_seen=ctx.report_date,
                date_last_seen=ctx.report_date,
                total_reports_count=0,
                total_hours_worked=0.0,
                status="active",
            )

        try:
            with db.begin_nested():
                db.add(EntityNameKey(entity_kind=kind, name_key=key, entity_id=entity.id))
                db.add(entity)
                db.flush()
        except IntegrityError:
            winner = self._find_by_name_key(db, kind, key)
            if winner is None:
                raise
            logger.info(
                "resolution.race_resolved kind=%s report_id=%s name_key=%r winner_id=%s",
                kind,
                ctx.report_id,
                key,
                winner.id,
            )
            _record_event(db, ctx, kind, winner.id, "race_resolved", raw_name, 100.0, "duplicate_create_reread")
            self._touch_entity(db, kind, winner.id, raw_name, ctx, position=position)
            return ResolutionOutcome(
                entity_id=winner.id,
                canonical_name=_display_name(winner),
                created=False,
                needs_review=False,
                match_type="race_resolved",
                score=100.0,
            )

        _record_event(db, ctx, kind, entity.id, "created", raw_name, None, "no_candidate_above_review_threshold")
        return ResolutionOutcome(
            entity_id=entity.id,
            canonical_name=display,
            created=True,
            needs_review=False,
            match_type="created",
            score=100.0,
        )

    def create_entity(
        self,
        db: Session,
        kind: EntityKind,
        raw_name: str,
        ctx: ResolutionContext,
        *,
        position: str | None = None,
        vendor_type: str | None = None,
    ) -> ResolutionOutcome:
        """Create without fuzzy matching, used when a reviewer rejects a suggested match."""

        return self._create(db, kind, raw_name, ctx, position=position, vendor_type=vendor_type)

    def attach_variant(self, db: Session, kind: EntityKind, entity: Person | Vendor, raw_name: str) -> bool:
        """Record a new spelling on an entity and claim its name key; returns whether it was new."""

        display = " ".join(raw_name.split())
        known = {self.name_key(kind, variant) for variant in entity.name_variants_json}
        known.add(entity.name_key)
        key = self.name_key(kind, display)
        if not key or key in known:
            return False
        if not self._claim_name_key(db, kind, key, entity.id):
            return False
        entity.name_variants_json = [*entity.name_variants_json, display]
        return True

    def _touch_entity(
        self,
        db: Session,
        kind: EntityKind,
        entity_id: str,
        raw_name: str,
        ctx: ResolutionContext,
        *,
        position: str | None = None,
    ) -> None:
        entity = db.get(_model_for(kind), entity_id)
        if entity is None:
            return
        self.attach_variant(db, kind, entity, raw_name)
        if ctx.report_date > entity.date_last_seen:
            entity.date_last_seen = ctx.report_date
        if kind == "person" and position:
            entity.current_position = position
        db.flush()

    def _claim_name_key(self, db: Session, kind: EntityKind, key: str, entity_id: str) -> bool:
        """Insert the name key for ``entity_id``; False when another entity owns it."""

        try:
            with db.begin_nested():
                db.add(EntityNameKey(entity_kind=kind, name_key=key, entity_id=entity_id))
                db.flush()
        except IntegrityError:
            owner = self._find_by_name_key(db, kind, key)
            logger.info(
                "resolution.name_key_taken kind=%s name_key=%r entity_id=%s owner_id=%s",
                kind,
                key,
                entity_id,
                owner.id if owner is not None else None,
            )
            return owner is not None and owner.id == entity_id
        return True


def follow_merges(db: Session, kind: EntityKind, entity_id: str) -> Person | Vendor | None:
    """Load an entity and follow merged_into links to the surviving record."""

    model = _model_for(kind)
    entity = db.get(model, entity_id)
    seen: set[str] = set()
    while entity is not None and entity.status == "merged" and entity.merged_into_id and entity.id not in seen:
        seen.add(entity.id)
        entity = db.get(model, entity.merged_into_id)
    return entity


def refresh_person_counters(db: Session, person_ids: list[str]) -> None:
    """Recompute denormalized person counters from active history.

    A survivor's counters include history attached to persons merged into it.
    """

    for person_id in dict.fromkeys(person_ids):
        person = db.get(Person, person_id)
        if person is None:
            continue
        owner_ids = [person_id, *db.scalars(select(Person.id).where(Person.merged_into_id == person_id))]
        report_count, hours = db.execute(
            select(
                func.count(distinct(PersonHistory.report_id)),
                func.coalesce(func.sum(PersonHistory.hours_worked + PersonHistory.overtime_hours), 0.0),
            ).where(PersonHistory.person_id.in_(owner_ids), PersonHistory.superseded.is_(False))
        ).one()
        person.total_reports_count = int(report_count)
        person.total_hours_worked = float(hours)
    db.flush()


def refresh_vendor_counters(db: Session, vendor_ids: list[str]) -> None:
    """Recompute denormalized delivery counts from active delivery rows."""

    for vendor_id in dict.fromkeys(vendor_ids):
        vendor = db.get(Vendor, vendor_id)
        if vendor is None:
            continue
        owner_ids = [vendor_id, *db.scalars(select(Vendor.id).where(Vendor.merged_into_id == vendor_id))]
        delivery_count = db.scalar(
            select(func.count(distinct(VendorDelivery.report_id))).where(
                VendorDelivery.vendor_id.in_(owner_ids),
                VendorDelivery.superseded.is_(False),
            )
        )
        vendor.total_deliveries_count = int(delivery_count or 0)
    db.flush()


def coerce_vendor_type(value: str | None) -> str:
    cleaned = (value or "").strip().lower().replace(" ", "_")
    return cleaned if cleaned in _VENDOR_TYPES else "other"


def coerce_delivery_status(value: str | None) -> str:
    cleaned = (value or "").strip().lower().replace(" ", "_").replace("-", "_")
    if cleaned in {"ontime", "on_schedule"}:
        cleaned = "on_time"
    return cleaned if cleaned in _DELIVERY_STATUSES else "unknown"


def _active_person_history(db: Session, person_id: str, report_id: str) -> PersonHistory | None:
    return db.scalar(
        select(PersonHistory)
        .where(
            PersonHistory.person_id == person_id,
            PersonHistory.report_id == report_id,
            PersonHistory.superseded.is_(False),
        )
        .order_by(PersonHistory.id.asc())
        .limit(1)
    )


def _active_vendor_delivery(db: Session, vendor_id: str, report_id: str) -> VendorDelivery | None:
    return db.scalar(
        select(VendorDelivery)
        .where(
            VendorDelivery.vendor_id == vendor_id,
            VendorDelivery.report_id == report_id,
            VendorDelivery.superseded.is_(False),
        )
        .order_by(VendorDelivery.id.asc())
        .limit(1)
    )


def _record_event(
    db: Session,
    ctx: ResolutionContext,
    kind: EntityKind,
    entity_id: str | None,
    event_type: str,
    observed_name: str,
    score: float | None,
    rationale: str,
) -> None:
    db.add(
        ResolutionEvent(
            report_id=ctx.report_id,
            entity_kind=kind,
            entity_id=entity_id,
            event_type=event_type,
            observed_name=observed_name[:255],
            similarity_score=score,
            rationale=rationale,
            details_json={"resolver_version": RESOLVER_VERSION},
        )
    )


def _comparable(observed_tokens: int, candidate_tokens: int) -> bool:
    """Below the auto-match band a single-token name only pairs with another single token."""

    if observed_tokens == 0 or candidate_tokens == 0:
        return False
    return (observed_tokens == 1) == (candidate_tokens == 1)


def _display_name(entity: Person | Vendor) -> str:
    if isinstance(entity, Vendor):
        return entity.canonical_company_name
    return entity.canonical_name


def _model_for(kind: EntityKind) -> type[Person] | type[Vendor]:
    return Vendor if kind == "vendor" else Person
