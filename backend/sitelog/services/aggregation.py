"""Recomputable hours, vendor and constraint-cost rollups.

Every rollup is rebuilt from the append-only history tables. Prior rollup rows
for the same (project, window) are deleted first and never read.
"""

from __future__ import annotations

import calendar
import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, timezone
from time import perf_counter

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from sitelog.config import Settings, get_settings
from sitelog.models.constraint_record import ConstraintRecord
from sitelog.models.person import Person, PersonHistory
from sitelog.models.report import Report
from sitelog.models.rollups import ConstraintCostRollup, LaborRollup, RollupLock, VendorRollup
from sitelog.models.vendor import Vendor, VendorDelivery

logger = logging.getLogger(__name__)

_SEVERITY_ORDER = ("low", "medium", "high", "critical")


@dataclass(frozen=True, slots=True)
class RollupWindow:
    """Inclusive date window; open-ended bounds are None."""

    key: str
    start: date | None = None
    end: date | None = None

    def contains(self, day: date) -> bool:
        return (self.start is None or day >= self.start) and (self.end is None or day <= self.end)


ALL_TIME = RollupWindow(key="all")


def month_window(day: date) -> RollupWindow:
    last_day = calendar.monthrange(day.year, day.month)[1]
    return RollupWindow(
        key=f"{day.year:04d}-{day.month:02d}",
        start=day.replace(day=1),
        end=day.replace(day=last_day),
    )


@dataclass(slots=True)
class HoursSplit:
    regular: float
    overtime: float
    double_time: float

    @property
    def total(self) -> float:
        return self.regular + self.overtime + self.double_time


@dataclass(slots=True)
class RollupSummary:
    project_id: str
    window_key: str
    labor_rows: int
    vendor_rows: int
    constraint_rows: int
    total_hours: float
    labor_cost: float
    constraint_cost: float


def split_daily_hours(total_hours: float, day: date, settings: Settings | None = None) -> HoursSplit:
    """Split one person's hours for one day into regular/overtime/double-time."""

    resolved = settings or get_settings()
    hours = max(0.0, total_hours)
    if resolved.weekend_is_double_time and day.weekday() >= 5:
        return HoursSplit(regular=0.0, overtime=0.0, double_time=hours)
    regular = min(hours, resolved.overtime_after_hours)
    overtime = min(max(hours - resolved.overtime_after_hours, 0.0), resolved.double_time_after_hours - resolved.overtime_after_hours)
    double_time = max(hours - resolved.double_time_after_hours, 0.0)
    return HoursSplit(regular=regular, overtime=overtime, double_time=double_time)


def labor_cost(split: HoursSplit, settings: Settings | None = None) -> float:
    resolved = settings or get_settings()
    return (
        split.regular * resolved.regular_rate
        + split.overtime * resolved.overtime_rate
        + split.double_time * resolved.double_time_rate
    )


def vendor_score(
    *,
    on_time_rate: float,
    incident_severities: list[str],
    chargeback_count: int,
    settings: Settings | None = None,
) -> float:
    """Weighted 0-100 performance score from timeliness, incidents and chargebacks."""

    resolved = settings or get_settings()
    penalties = {
        "low": resolved.grade_penalty_low,
        "medium": resolved.grade_penalty_medium,
        "high": resolved.grade_penalty_high,
        "critical": resolved.grade_penalty_critical,
    }
    score = on_time_rate * resolved.grade_weight_on_time
    score -= sum(penalties.get(severity, resolved.grade_penalty_medium) for severity in incident_severities)
    score -= min(chargeback_count * resolved.grade_penalty_per_chargeback, resolved.grade_chargeback_penalty_cap)
    return round(max(0.0, min(100.0, score)), 2)


def grade_vendor(score: float, settings: Settings | None = None) -> str:
    resolved = settings or get_settings()
    if score >= resolved.grade_cutoff_a:
        return "A"
    if score >= resolved.grade_cutoff_b:
        return "B"
    if score >= resolved.grade_cutoff_c:
        return "C"
    return "D"


def recompute_project_rollups(
    db: Session,
    project_id: str,
    window: RollupWindow = ALL_TIME,
    *,
    settings: Settings | None = None,
) -> RollupSummary:
    """Rebuild every rollup for one project window. The caller owns the transaction.

    The project's lock row is held until that transaction ends, so a concurrent
    recompute of the same project waits and then sees these rows when it deletes.
    """

    resolved = settings or get_settings()
    started = perf_counter()
    lock_project_rollups(db, project_id)
    for model in (LaborRollup, VendorRollup, ConstraintCostRollup):
        db.execute(delete(model).where(model.project_id == project_id, model.window_key == window.key))

    labor_rows = _build_labor_rollups(db, project_id, window, resolved)
    vendor_rows = _build_vendor_rollups(db, project_id, window, resolved)
    constraint_rows = _build_constraint_rollups(db, project_id, window)
    db.add_all([*labor_rows, *vendor_rows, *constraint_rows])
    db.flush()

    project_total = next((row for row in labor_rows if row.person_id is None), None)
    summary = RollupSummary(
        project_id=project_id,
        window_key=window.key,
        labor_rows=len(labor_rows),
        vendor_rows=len(vendor_rows),
        constraint_rows=len(constraint_rows),
        total_hours=project_total.total_hours if project_total else 0.0,
        labor_cost=project_total.labor_cost if project_total else 0.0,
        constraint_cost=sum(row.total_cost_impact for row in constraint_rows),
    )
    logger.info(
        "aggregation.recompute project_id=%s window=%s labor_rows=%d vendor_rows=%d constraint_rows=%d elapsed_ms=%.2f",
        project_id,
        window.key,
        summary.labor_rows,
        summary.vendor_rows,
        summary.constraint_rows,
        (perf_counter() - started) * 1000.0,
    )
    return summary


def lock_project_rollups(db: Session, project_id: str) -> RollupLock:
    """Take the project's rollup lock row FOR UPDATE, creating it on first use."""

    stmt = select(RollupLock).where(RollupLock.project_id == project_id).with_for_update()
    lock = db.scalar(stmt)
    if lock is None:
        try:
            with db.begin_nested():
                db.add(RollupLock(project_id=project_id))
                db.flush()
        except IntegrityError:
            logger.info("aggregation.lock_row_exists project_id=%s", project_id)
        lock = db.scalar(stmt.execution_options(populate_existing=True))
    lock.recomputed_at = datetime.now(timezone.utc)
    return lock


def recompute_all_rollups(db: Session, *, settings: Settings | None = None) -> list[RollupSummary]:
    """Full recompute over every project with reports, all-time and per month."""

    summaries: list[RollupSummary] = []
    rows = db.execute(select(Report.project_id, Report.report_date).distinct()).all()
    windows_by_project: dict[str, dict[str, RollupWindow]] = defaultdict(dict)
    for project_id, report_date in rows:
        windows_by_project[project_id][ALL_TIME.key] = ALL_TIME
        month = month_window(report_date)
        windows_by_project[project_id][month.key] = month
    for project_id in sorted(windows_by_project):
        for window in windows_by_project[project_id].values():
            summaries.append(recompute_project_rollups(db, project_id, window, settings=settings))
    return summaries


def _survivor_map(db: Session, model: type[Person] | type[Vendor], ids: set[str]) -> dict[str, tuple[str, str]]:
    """Map entity ids to (survivor id, survivor display name) through merge links."""

    rows = {entity.id: entity for entity in db.scalars(select(model).where(model.id.in_(ids)))}
    pending = {entity.merged_into_id for entity in rows.values() if entity.merged_into_id} - rows.keys()
    while pending:
        loaded = list(db.scalars(select(model).where(model.id.in_(pending))))
        for entity in loaded:
            rows[entity.id] = entity
        pending = {entity.merged_into_id for entity in loaded if entity.merged_into_id} - rows.keys()

    result: dict[str, tuple[str, str]] = {}
    for entity_id in ids:
        entity = rows.get(entity_id)
        seen: set[str] = set()
        while entity is not None and entity.merged_into_id and entity.id not in seen:
            seen.add(entity.id)
            entity = rows.get(entity.merged_into_id)
        if entity is None:
            continue
        name = entity.canonical_company_name if isinstance(entity, Vendor) else entity.canonical_name
        result[entity_id] = (entity.id, name)
    return result


def _build_labor_rollups(db: Session, project_id: str, window: RollupWindow, settings: Settings) -> list[LaborRollup]:
    stmt = (
        select(PersonHistory)
        .where(PersonHistory.project_id == project_id, PersonHistory.superseded.is_(False))
        .order_by(PersonHistory.id.asc())
    )
    history = [row for row in db.scalars(stmt) if window.contains(row.report_date)]
    survivors = _survivor_map(db, Person, {row.person_id for row in history})

    # One observation per (person, report); the earliest row wins after merges.
    per_report: dict[tuple[str, str], PersonHistory] = {}
    for row in history:
        survivor = survivors.get(row.person_id)
        if survivor is None:
            continue
        per_report.setdefault((survivor[0], row.report_id), row)

    # Reports from several submitters on one day may describe the same shift.
    daily: dict[tuple[str, date], float] = {}
    reports_by_person: dict[str, set[str]] = defaultdict(set)
    for (person_id, report_id), row in per_report.items():
        hours = row.hours_worked + row.overtime_hours
        key = (person_id, row.report_date)
        daily[key] = max(daily.get(key, 0.0), hours)
        reports_by_person[person_id].add(report_id)

    totals: dict[str, HoursSplit] = defaultdict(lambda: HoursSplit(0.0, 0.0, 0.0))
    for (person_id, day), hours in daily.items():
        split = split_daily_hours(hours, day, settings)
        current = totals[person_id]
        current.regular += split.regular
        current.overtime += split.overtime
        current.double_time += split.double_time

    names = {survivor_id: name for survivor_id, name in survivors.values()}
    rows: list[LaborRollup] = []
    project_split = HoursSplit(0.0, 0.0, 0.0)
    project_reports: set[str] = set()
    for person_id in sorted(totals):
        split = totals[person_id]
        project_split.regular += split.regular
        project_split.overtime += split.overtime
        project_split.double_time += split.double_time
        project_reports.update(reports_by_person[person_id])
        rows.append(_labor_row(project_id, window, person_id, names[person_id], len(reports_by_person[person_id]), split, settings))
    rows.append(_labor_row(project_id, window, None, "Project total", len(project_reports), project_split, settings))
    return rows


def _labor_row(
    project_id: str,
    window: RollupWindow,
    person_id: str | None,
    display_name: str,
    report_count: int,
    split: HoursSplit,
    settings: Settings,
) -> LaborRollup:
    return LaborRollup(
        project_id=project_id,
        window_key=window.key,
        person_id=person_id,
        display_name=display_name,
        report_count=report_count,
        regular_hours=round(split.regular, 2),
        overtime_hours=round(split.overtime, 2),
        double_time_hours=round(split.double_time, 2),
        total_hours=round(split.total, 2),
        labor_cost=round(labor_cost(split, settings), 2),
    )


def _build_vendor_rollups(db: Session, project_id: str, window: RollupWindow, settings: Settings) -> list[VendorRollup]:
    deliveries = [
        row
        for row in db.scalars(
            select(VendorDelivery)
            .where(VendorDelivery.project_id == project_id, VendorDelivery.superseded.is_(False))
            .order_by(VendorDelivery.id.asc())
        )
        if window.contains(row.report_date)
    ]
    incidents = [
        row
        for row in db.scalars(
            select(ConstraintRecord)
            .where(
                ConstraintRecord.project_id == project_id,
                ConstraintRecord.superseded.is_(False),
                ConstraintRecord.vendor_id.is_not(None),
            )
            .order_by(ConstraintRecord.id.asc())
        )
        if window.contains(row.report_date)
    ]
    survivors = _survivor_map(
        db,
        Vendor,
        {row.vendor_id for row in deliveries} | {row.vendor_id for row in incidents if row.vendor_id},
    )

    per_report: dict[tuple[str, str], VendorDelivery] = {}
    for row in deliveries:
        survivor = survivors.get(row.vendor_id)
        if survivor is not None:
            per_report.setdefault((survivor[0], row.report_id), row)

    stats: dict[str, dict[str, object]] = defaultdict(
        lambda: {"deliveries": 0, "on_time": 0, "late": 0, "missed": 0, "cost": 0.0, "chargebacks": 0, "severities": []}
    )
    for (vendor_id, _), row in per_report.items():
        entry = stats[vendor_id]
        entry["deliveries"] += 1
        if row.delivery_status in ("on_time", "late", "missed"):
            entry[row.delivery_status] += 1
        if row.cost_impact > 0:
            entry["chargebacks"] += 1
            entry["cost"] += row.cost_impact
    for row in incidents:
        survivor = survivors.get(row.vendor_id or "")
        if survivor is None:
            continue
        entry = stats[survivor[0]]
        entry["severities"].append(row.severity)
        entry["cost"] += row.cost_impact

    names = {survivor_id: name for survivor_id, name in survivors.values()}
    rows: list[VendorRollup] = []
    for vendor_id in sorted(stats):
        entry = stats[vendor_id]
        known = entry["on_time"] + entry["late"] + entry["missed"]
        on_time_rate = entry["on_time"] / known if known else 1.0
        score = vendor_score(
            on_time_rate=on_time_rate,
            incident_severities=list(entry["severities"]),
            chargeback_count=entry["chargebacks"],
            settings=settings,
        )
        rows.append(
            VendorRollup(
                project_id=project_id,
                window_key=window.key,
                vendor_id=vendor_id,
                display_name=names[vendor_id],
                delivery_count=entry["deliveries"],
                on_time_count=entry["on_time"],
                late_count=entry["late"],
                missed_count=entry["missed"],
                on_time_rate=round(on_time_rate, 4),
                incident_count=len(entry["severities"]),
                incident_cost=round(entry["cost"], 2),
                chargeback_count=entry["chargebacks"],
                performance_score=score,
                grade=grade_vendor(score, settings),
            )
        )
    return rows


def _build_constraint_rollups(db: Session, project_id: str, window: RollupWindow) -> list[ConstraintCostRollup]:
    records = [
        row
        for row in db.scalars(
            select(ConstraintRecord).where(
                ConstraintRecord.project_id == project_id,
                ConstraintRecord.superseded.is_(False),
            )
        )
        if window.contains(row.report_date)
    ]
    grouped: dict[tuple[str, str], list[ConstraintRecord]] = defaultdict(list)
    for row in records:
        grouped[(row.category, row.severity)].append(row)

    def _order(key: tuple[str, str]) -> tuple[str, int]:
        category, severity = key
        return category, _SEVERITY_ORDER.index(severity) if severity in _SEVERITY_ORDER else len(_SEVERITY_ORDER)

    return [
        ConstraintCostRollup(
            project_id=project_id,
            window_key=window.key,
            category=category,
            severity=severity,
            constraint_count=len(items),
            open_count=sum(1 for item in items if item.status != "resolved"),
            total_cost_impact=round(sum(item.cost_impact for item in items), 2),
            total_hours_lost=round(sum(item.hours_lost * item.crew_size for item in items), 2),
        )
        for (category, severity), items in sorted(grouped.items(), key=lambda pair: _order(pair[0]))
    ]
