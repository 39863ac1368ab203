"""Constraint ORM model."""

from datetime import date

from sqlalchemy import JSON, Boolean, Date, Float, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from sitelog.models.base import Base, IdMixin, TimestampMixin


class ConstraintRecord(Base, IdMixin, TimestampMixin):
    """Issue, delay or constraint reported on one report."""

    __tablename__ = "constraint_records"
    __table_args__ = (
        UniqueConstraint(
            "report_id",
            "extraction_attempt_id",
            "ordinal",
            name="uq_constraint_records_report_attempt_ordinal",
        ),
        Index("ix_constraint_records_project_id_report_date", "project_id", "report_date"),
    )

    report_id: Mapped[str] = mapped_column(ForeignKey("reports.id"), index=True, nullable=False)
    extraction_attempt_id: Mapped[int] = mapped_column(ForeignKey("extraction_attempts.id"), nullable=False)
    ordinal: Mapped[int] = mapped_column(Integer, nullable=False)
    project_id: Mapped[str] = mapped_column(String(128), nullable=False)
    report_date: Mapped[date] = mapped_column(Date, nullable=False)
    category: Mapped[str] = mapped_column(String(32), nullable=False)
    severity: Mapped[str] = mapped_column(String(16), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    resolution_status: Mapped[str] = mapped_column(String(16), default="unresolved", nullable=False)
    level: Mapped[str | None] = mapped_column(String(128), nullable=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    cost_impact: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    cost_source: Mapped[str] = mapped_column(String(16), default="none", nullable=False)
    hours_lost: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    crew_size: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    vendor_id: Mapped[str | None] = mapped_column(ForeignKey("vendors.id"), index=True, nullable=True)
    needs_review: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    review_reasons_json: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    source_excerpt: Mapped[str] = mapped_column(Text, nullable=False)
    superseded: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
