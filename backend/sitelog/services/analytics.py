"""Read-side queries over registries, rollups and the resolution log."""

from __future__ import annotations

import calendar
from datetime import date

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from sitelog.models.person import Person
from sitelog.models.resolution_event import ResolutionEvent
from sitelog.models.rollups import ConstraintCostRollup, LaborRollup, VendorRollup
from sitelog.models.vendor import Vendor
from sitelog.schemas.analytics import (
    ConstraintCostRollupRead,
    LaborRollupRead,
    PersonRead,
    PersonsListResponse,
    ProjectRollupsRead,
    VendorRead,
    VendorRollupRead,
    VendorsListResponse,
)
from sitelog.services.aggregation import ALL_TIME, RollupWindow


def parse_window_key(window_key: str) -> RollupWindow:
    """Accept ``all`` or a ``YYYY-MM`` month key."""

    if window_key == ALL_TIME.key:
        return ALL_TIME
    try:
        year_text, month_text = window_key.split("-", 1)
        year, month = int(year_text), int(month_text)
        start = date(year, month, 1)
    except ValueError as exc:
        raise ValueError(f"Invalid rollup window: {window_key}") from exc
    end = date(year, month, calendar.monthrange(year, month)[1])
    return RollupWindow(key=f"{year:04d}-{month:02d}", start=start, end=end)


def get_project_rollups(db: Session, project_id: str, window_key: str = ALL_TIME.key) -> ProjectRollupsRead:
    window = parse_window_key(window_key)
    labor = db.scalars(
        select(LaborRollup)
        .where(LaborRollup.project_id == project_id, LaborRollup.window_key == window.key)
        .order_by(LaborRollup.person_id.is_(None).asc(), LaborRollup.display_name.asc())
    ).all()
    vendors = db.scalars(
        select(VendorRollup)
        .where(VendorRollup.project_id == project_id, VendorRollup.window_key == window.key)
        .order_by(VendorRollup.performance_score.desc(), VendorRollup.display_name.asc())
    ).all()
    constraints = db.scalars(
        select(ConstraintCostRollup)
        .where(ConstraintCostRollup.project_id == project_id, ConstraintCostRollup.window_key == window.key)
        .order_by(ConstraintCostRollup.total_cost_impact.desc(), ConstraintCostRollup.category.asc())
    ).all()
    return ProjectRollupsRead(
        project_id=project_id,
        window_key=window.key,
        labor=[LaborRollupRead.model_validate(row) for row in labor],
        vendors=[VendorRollupRead.model_validate(row) for row in vendors],
        constraints=[ConstraintCostRollupRead.model_validate(row) for row in constraints],
    )


def list_persons(
    db: Session,
    *,
    limit: int,
    offset: int,
    query: str | None = None,
    include_merged: bool = False,
) -> PersonsListResponse:
    stmt = select(Person)
    if not include_merged:
        stmt = stmt.where(Person.status != "merged")
    if query:
        pattern = f"%{query.strip().lower()}%"
        stmt = stmt.where(or_(func.lower(Person.canonical_name).like(pattern), Person.name_key.like(pattern)))
    total = db.scalar(select(func.count()).select_from(stmt.subquery())) or 0
    rows = db.scalars(stmt.order_by(Person.canonical_name.asc(), Person.id.asc()).limit(limit).offset(offset)).all()
    return PersonsListResponse(items=[PersonRead.model_validate(row) for row in rows], total=int(total))


def list_vendors(
    db: Session,
    *,
    limit: int,
    offset: int,
    query: str | None = None,
    include_merged: bool = False,
) -> VendorsListResponse:
    stmt = select(Vendor)
    if not include_merged:
        stmt = stmt.where(Vendor.status != "merged")
    if query:
        pattern = f"%{query.strip().lower()}%"
        stmt = stmt.where(or_(func.lower(Vendor.canonical_company_name).like(pattern), Vendor.name_key.like(pattern)))
    total = db.scalar(select(func.count()).select_from(stmt.subquery())) or 0
    rows = db.scalars(
        stmt.order_by(Vendor.canonical_company_name.asc(), Vendor.id.asc()).limit(limit).offset(offset)
    ).all()
    return VendorsListResponse(items=[VendorRead.model_validate(row) for row in rows], total=int(total))


def list_resolution_events(db: Session, report_id: str) -> list[ResolutionEvent]:
    stmt = select(ResolutionEvent).where(ResolutionEvent.report_id == report_id).order_by(ResolutionEvent.id.asc())
    return list(db.scalars(stmt).all())
