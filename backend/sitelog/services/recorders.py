"""Translate validated extraction arrays into registry-linked records."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.orm import Session

from sitelog.config import Settings, get_settings
from sitelog.entity_resolution import EntityResolver, PersonResolution, ResolutionContext
from sitelog.entity_resolution.similarity import normalize
from sitelog.extraction.types import ExtractedConstraint, ExtractedPerson, ExtractedWorkLog
from sitelog.models.constraint_record import ConstraintRecord
from sitelog.models.team_assignment import TeamAssignment
from sitelog.models.work_log import WorkLogEntry

logger = logging.getLogger(__name__)

CONSTRAINT_CATEGORIES = ("delay", "safety", "material", "weather", "labor", "coordination", "other")
CONSTRAINT_SEVERITIES = ("low", "medium", "high", "critical")
CONSTRAINT_STATUSES = ("open", "in_progress", "resolved")

_CATEGORY_ALIASES = {
    "schedule": "delay",
    "delays": "delay",
    "materials": "material",
    "supply": "material",
    "manpower": "labor",
    "staffing": "labor",
    "labour": "labor",
    "rain": "weather",
    "coordination_issue": "coordination",
    "design": "coordination",
}
_SEVERITY_ALIASES = {
    "minor": "low",
    "med": "medium",
    "moderate": "medium",
    "major": "high",
    "severe": "high",
    "urgent": "critical",
}
_STATUS_ALIASES = {
    "pending": "open",
    "new": "open",
    "ongoing": "in_progress",
    "inprogress": "in_progress",
    "closed": "resolved",
    "done": "resolved",
    "fixed": "resolved",
}


@dataclass(slots=True)
class CoercedValue:
    value: str
    coerced: bool
    original: str | None


@dataclass(slots=True)
class RecorderSummary:
    """Counts from one recorder pass."""

    work_logs: int = 0
    constraints: int = 0
    team_assignments: int = 0
    unresolved_mentions: int = 0
    flagged_records: int = 0
    review_reasons: list[str] = field(default_factory=list)


def coerce_enum(
    value: str | None,
    allowed: tuple[str, ...],
    default: str,
    aliases: dict[str, str] | None = None,
) -> CoercedValue:
    """Map a free-form value onto an enumeration, falling back to ``default``.

    A missing value takes the default without counting as a coercion.
    """

    if value is None or not value.strip():
        return CoercedValue(value=default, coerced=False, original=None)
    cleaned = normalize(value).replace(" ", "_")
    if cleaned in allowed:
        return CoercedValue(value=cleaned, coerced=False, original=value)
    aliased = (aliases or {}).get(cleaned)
    if aliased is not None:
        return CoercedValue(value=aliased, coerced=False, original=value)
    return CoercedValue(value=default, coerced=True, original=value)


def team_key(label: str | None) -> str:
    return normalize(label or "") or "unassigned"


def sync_team_assignments(
    db: Session,
    ctx: ResolutionContext,
    resolutions: list[tuple[ExtractedPerson, PersonResolution]],
) -> int:
    """Upsert roster membership for confidently resolved personnel."""

    touched = 0
    for person, resolution in resolutions:
        if not person.team_assignment or resolution.outcome.needs_review:
            continue
        key = team_key(person.team_assignment)
        row = db.scalar(
            select(TeamAssignment).where(
                TeamAssignment.project_id == ctx.project_id,
                TeamAssignment.team_key == key,
                TeamAssignment.person_id == resolution.outcome.entity_id,
            )
        )
        if row is None:
            db.add(
                TeamAssignment(
                    project_id=ctx.project_id,
                    team_key=key,
                    team_label=person.team_assignment,
                    person_id=resolution.outcome.entity_id,
                    active=True,
                    last_seen_date=ctx.report_date,
                )
            )
        else:
            row.active = True
            row.team_label = person.team_assignment
            if ctx.report_date > row.last_seen_date:
                row.last_seen_date = ctx.report_date
        touched += 1
    db.flush()
    return touched


def team_roster(db: Session, project_id: str, label: str | None) -> list[str]:
    """Active person ids known to belong to a project team."""

    stmt = (
        select(TeamAssignment.person_id)
        .where(
            TeamAssignment.project_id == project_id,
            TeamAssignment.team_key == team_key(label),
            TeamAssignment.active.is_(True),
        )
        .order_by(TeamAssignment.person_id.asc())
    )
    return list(db.scalars(stmt).all())


def record_work_logs(
    db: Session,
    resolver: EntityResolver,
    ctx: ResolutionContext,
    work_logs: list[ExtractedWorkLog],
    person_ids_by_name: dict[str, str],
    *,
    settings: Settings | None = None,
) -> tuple[list[WorkLogEntry], RecorderSummary]:
    """Persist one work log per (team, level), storing resolved person ids only."""

    resolved_settings = settings or get_settings()
    summary = RecorderSummary()
    grouped: dict[tuple[str, str], list[ExtractedWorkLog]] = {}
    for item in work_logs:
        grouped.setdefault((team_key(item.team_id), normalize(item.level or "") or "general"), []).append(item)

    entries: list[WorkLogEntry] = []
    for (group_team_key, level_key), items in grouped.items():
        first = items[0]
        personnel_ids: list[str] = []
        unresolved = 0
        needs_review = False
        for name in (name for item in items for name in item.personnel_assigned):
            person_id = person_ids_by_name.get(normalize(name))
            if person_id is None and normalize(name):
                outcome = resolver.lookup(db, "person", name, ctx)
                if outcome is not None:
                    person_id = outcome.entity_id
                    needs_review = needs_review or outcome.needs_review
            if person_id is None:
                unresolved += 1
                continue
            if person_id not in personnel_ids:
                personnel_ids.append(person_id)

        roster_expanded = False
        if resolved_settings.expand_team_rosters and first.team_id:
            for person_id in team_roster(db, ctx.project_id, first.team_id):
                if person_id not in personnel_ids:
                    personnel_ids.append(person_id)
                    roster_expanded = True

        if unresolved:
            needs_review = True
            summary.unresolved_mentions += unresolved
            logger.warning(
                "recorder.unresolved_personnel report_id=%s team=%s level=%s unresolved=%d",
                ctx.report_id,
                group_team_key,
                level_key,
                unresolved,
            )

        entry = WorkLogEntry(
            report_id=ctx.report_id,
            extraction_attempt_id=ctx.extraction_attempt_id,
            project_id=ctx.project_id,
            report_date=ctx.report_date,
            team_id=first.team_id,
            team_key=group_team_key,
            level=first.level,
            level_key=level_key,
            description="; ".join(dict.fromkeys(item.task_description for item in items)),
            personnel_ids_json=personnel_ids,
            personnel_count=max(len(personnel_ids), max(item.personnel_count for item in items)),
            hours_worked=sum(item.hours_worked for item in items),
            overtime_hours=sum(item.overtime_hours for item in items),
            materials_json=list(dict.fromkeys(m for item in items for m in item.materials_used)),
            equipment_json=list(dict.fromkeys(e for item in items for e in item.equipment_used)),
            roster_expanded=roster_expanded,
            unresolved_mentions=unresolved,
            needs_review=needs_review,
            source_excerpt="\n".join(dict.fromkeys(item.extracted_from_text for item in items)),
        )
        db.add(entry)
        entries.append(entry)
        if needs_review:
            summary.flagged_records += 1
    db.flush()
    summary.work_logs = len(entries)
    return entries, summary


def record_constraints(
    db: Session,
    resolver: EntityResolver,
    ctx: ResolutionContext,
    constraints: list[ExtractedConstraint],
    *,
    settings: Settings | None = None,
) -> tuple[list[ConstraintRecord], RecorderSummary]:
    """Persist constraints, coercing enumerations instead of rejecting them."""

    resolved_settings = settings or get_settings()
    summary = RecorderSummary()
    records: list[ConstraintRecord] = []
    for ordinal, item in enumerate(constraints):
        category = coerce_enum(item.category, CONSTRAINT_CATEGORIES, "other", _CATEGORY_ALIASES)
        severity = coerce_enum(item.severity, CONSTRAINT_SEVERITIES, "medium", _SEVERITY_ALIASES)
        status = coerce_enum(item.status, CONSTRAINT_STATUSES, "open", _STATUS_ALIASES)
        reasons = [
            f"{name}:{coerced.original}"
            for name, coerced in (("category", category), ("severity", severity), ("status", status))
            if coerced.coerced
        ]
        if reasons:
            logger.warning(
                "recorder.schema_violation report_id=%s ordinal=%d coerced=%s",
                ctx.report_id,
                ordinal,
                ",".join(reasons),
            )

        vendor_id: str | None = None
        if item.vendor_name and normalize(item.vendor_name):
            outcome = resolver.lookup(db, "vendor", item.vendor_name, ctx)
            if outcome is None:
                reasons.append(f"vendor_unresolved:{item.vendor_name}")
            else:
                vendor_id = outcome.entity_id
                if outcome.needs_review:
                    reasons.append(f"vendor_review_band:{item.vendor_name}")

        cost_impact, cost_source = constraint_cost(item, resolved_settings)

        record = ConstraintRecord(
            report_id=ctx.report_id,
            extraction_attempt_id=ctx.extraction_attempt_id,
            ordinal=ordinal,
            project_id=ctx.project_id,
            report_date=ctx.report_date,
            category=category.value,
            severity=severity.value,
            status=status.value,
            resolution_status="resolved" if status.value == "resolved" else "unresolved",
            level=item.level,
            title=item.title[:255],
            description=item.description,
            cost_impact=cost_impact,
            cost_source=cost_source,
            hours_lost=item.hours_lost or 0.0,
            crew_size=item.crew_size or 1,
            vendor_id=vendor_id,
            needs_review=bool(reasons),
            review_reasons_json=reasons,
            source_excerpt=item.extracted_from_text,
        )
        db.add(record)
        records.append(record)
        if reasons:
            summary.flagged_records += 1
            summary.review_reasons.extend(reasons)
    db.flush()
    summary.constraints = len(records)
    return records, summary


def constraint_cost(item: ExtractedConstraint, settings: Settings | None = None) -> tuple[float, str]:
    """Reported dollar impact, else lost hours costed at the blended labor rate."""

    resolved = settings or get_settings()
    if item.cost_impact is not None and item.cost_impact > 0:
        return round(float(item.cost_impact), 2), "reported"
    if item.hours_lost:
        crew = item.crew_size or 1
        return round(item.hours_lost * crew * resolved.blended_labor_rate, 2), "estimated"
    return 0.0, "none"
