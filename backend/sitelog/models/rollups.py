"""Derived aggregation rollup models.

Rows in these tables are rebuilt wholesale by the aggregation engine and are
never read back as inputs to a later computation.
"""

from datetime import datetime

from sqlalchemy import DateTime, Float, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from sitelog.models.base import Base, CreatedAtMixin, IdMixin


class LaborRollup(Base, IdMixin, CreatedAtMixin):
    """Hours and labor cost per person (or project total when person_id is null)."""

    __tablename__ = "labor_rollups"
    __table_args__ = (
        Index("ix_labor_rollups_project_window", "project_id", "window_key"),
        UniqueConstraint("project_id", "window_key", "person_id", name="uq_labor_rollups_project_window_person"),
    )

    project_id: Mapped[str] = mapped_column(String(128), nullable=False)
    window_key: Mapped[str] = mapped_column(String(32), nullable=False)
    person_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    report_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    regular_hours: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    overtime_hours: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    double_time_hours: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    total_hours: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    labor_cost: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)


class VendorRollup(Base, IdMixin, CreatedAtMixin):
    """Delivery performance and letter grade per vendor."""

    __tablename__ = "vendor_rollups"
    __table_args__ = (
        Index("ix_vendor_rollups_project_window", "project_id", "window_key"),
        UniqueConstraint("project_id", "window_key", "vendor_id", name="uq_vendor_rollups_project_window_vendor"),
    )

    project_id: Mapped[str] = mapped_column(String(128), nullable=False)
    window_key: Mapped[str] = mapped_column(String(32), nullable=False)
    vendor_id: Mapped[str] = mapped_column(String(64), nullable=False)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    delivery_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    on_time_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    late_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    missed_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    on_time_rate: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    incident_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    incident_cost: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    chargeback_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    performance_score: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    grade: Mapped[str] = mapped_column(String(1), nullable=False)


class ConstraintCostRollup(Base, IdMixin, CreatedAtMixin):
    """Constraint counts and cost impact per category and severity."""

    __tablename__ = "constraint_cost_rollups"
    __table_args__ = (
        Index("ix_constraint_cost_rollups_project_window", "project_id", "window_key"),
        UniqueConstraint(
            "project_id",
            "window_key",
            "category",
            "severity",
            name="uq_constraint_cost_rollups_project_window_bucket",
        ),
    )

    project_id: Mapped[str] = mapped_column(String(128), nullable=False)
    window_key: Mapped[str] = mapped_column(String(32), nullable=False)
    category: Mapped[str] = mapped_column(String(32), nullable=False)
    severity: Mapped[str] = mapped_column(String(16), nullable=False)
    constraint_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    open_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_cost_impact: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    total_hours_lost: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)


class RollupLock(Base):
    """One row per project, taken FOR UPDATE so recomputes of a project run one at a time."""

    __tablename__ = "rollup_locks"

    project_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    recomputed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
