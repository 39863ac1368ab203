"""Human-facing daily summary artifact built from resolved registry data."""

from __future__ import annotations

from dataclasses import dataclass, field
from html import escape

from sqlalchemy import select
from sqlalchemy.orm import Session

from sitelog.models.constraint_record import ConstraintRecord
from sitelog.models.person import Person, PersonHistory
from sitelog.models.report import Report
from sitelog.models.vendor import Vendor, VendorDelivery
from sitelog.models.work_log import WorkLogEntry
from sitelog.services.storage import BlobStore, summary_path


@dataclass(slots=True)
class DailySummary:
    report_id: str
    project_name: str
    report_date: str
    personnel: list[dict[str, object]] = field(default_factory=list)
    work_logs: list[dict[str, object]] = field(default_factory=list)
    constraints: list[dict[str, object]] = field(default_factory=list)
    deliveries: list[dict[str, object]] = field(default_factory=list)


def build_daily_summary(db: Session, report: Report) -> DailySummary:
    """Collect canonical names and records for one report."""

    summary = DailySummary(
        report_id=report.id,
        project_name=report.project_name,
        report_date=report.report_date.isoformat(),
    )
    person_rows = db.execute(
        select(PersonHistory, Person.canonical_name)
        .join(Person, Person.id == PersonHistory.person_id)
        .where(PersonHistory.report_id == report.id, PersonHistory.superseded.is_(False))
        .order_by(Person.canonical_name.asc())
    ).all()
    names_by_id: dict[str, str] = {}
    for history, canonical_name in person_rows:
        names_by_id[history.person_id] = canonical_name
        summary.personnel.append(
            {
                "name": canonical_name,
                "team": history.team_assignment or "",
                "hours": history.hours_worked,
                "overtime": history.overtime_hours,
                "needs_review": history.needs_review,
            }
        )

    logs = db.scalars(
        select(WorkLogEntry)
        .where(WorkLogEntry.report_id == report.id, WorkLogEntry.superseded.is_(False))
        .order_by(WorkLogEntry.team_key.asc(), WorkLogEntry.level_key.asc())
    ).all()
    missing = {pid for log in logs for pid in log.personnel_ids_json} - names_by_id.keys()
    if missing:
        names_by_id.update(db.execute(select(Person.id, Person.canonical_name).where(Person.id.in_(missing))).tuples())
    for log in logs:
        summary.work_logs.append(
            {
                "team": log.team_id or "",
                "level": log.level or "",
                "description": log.description,
                "personnel": [names_by_id.get(pid, pid) for pid in log.personnel_ids_json],
                "hours": log.hours_worked,
            }
        )

    for record in db.scalars(
        select(ConstraintRecord)
        .where(ConstraintRecord.report_id == report.id, ConstraintRecord.superseded.is_(False))
        .order_by(ConstraintRecord.ordinal.asc())
    ):
        summary.constraints.append(
            {
                "title": record.title,
                "category": record.category,
                "severity": record.severity,
                "status": record.status,
                "cost_impact": record.cost_impact,
            }
        )

    for delivery, company in db.execute(
        select(VendorDelivery, Vendor.canonical_company_name)
        .join(Vendor, Vendor.id == VendorDelivery.vendor_id)
        .where(VendorDelivery.report_id == report.id, VendorDelivery.superseded.is_(False))
        .order_by(Vendor.canonical_company_name.asc())
    ).all():
        summary.deliveries.append(
            {
                "vendor": company,
                "materials": delivery.materials or "",
                "time": delivery.delivery_time or "",
                "status": delivery.delivery_status,
            }
        )
    return summary


def render_daily_summary_html(summary: DailySummary) -> str:
    title = f"{summary.project_name} daily report {summary.report_date}"
    sections = [
        _table("Personnel", ["Name", "Team", "Hours", "Overtime", "Review"], [
            [p["name"], p["team"], p["hours"], p["overtime"], "yes" if p["needs_review"] else ""] for p in summary.personnel
        ]),
        _table("Work", ["Team", "Level", "Description", "Personnel", "Hours"], [
            [w["team"], w["level"], w["description"], ", ".join(w["personnel"]), w["hours"]] for w in summary.work_logs
        ]),
        _table("Constraints", ["Title", "Category", "Severity", "Status", "Cost"], [
            [c["title"], c["category"], c["severity"], c["status"], f"{c['cost_impact']:.2f}"] for c in summary.constraints
        ]),
        _table("Deliveries", ["Vendor", "Materials", "Time", "Status"], [
            [d["vendor"], d["materials"], d["time"], d["status"]] for d in summary.deliveries
        ]),
    ]
    return (
        "<!DOCTYPE html>\n<html><head><meta charset=\"utf-8\">"
        f"<title>{escape(title)}</title></head><body>\n"
        f"<h1>{escape(title)}</h1>\n<p>Report {escape(summary.report_id)}</p>\n"
        + "\n".join(sections)
        + "\n</body></html>\n"
    )


def write_daily_summary(db: Session, report: Report, store: BlobStore) -> str:
    """Render and store the summary next to the transcript; returns its path."""

    html = render_daily_summary_html(build_daily_summary(db, report))
    return store.write_text(summary_path(report.project_id, report.report_date, report.id), html)


def _table(heading: str, columns: list[str], rows: list[list[object]]) -> str:
    head = "".join(f"<th>{escape(column)}</th>" for column in columns)
    body = "".join(
        "<tr>" + "".join(f"<td>{escape(str(value))}</td>" for value in row) + "</tr>" for row in rows
    )
    if not rows:
        body = f"<tr><td colspan=\"{len(columns)}\">None reported</td></tr>"
    return f"<h2>{escape(heading)}</h2>\n<table><thead><tr>{head}</tr></thead><tbody>{body}</tbody></table>"
