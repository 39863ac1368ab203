"""Canonical vendor registry and per-report delivery models."""

from datetime import date, datetime

from sqlalchemy import JSON, Boolean, Date, DateTime, Float, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from sitelog.models.base import Base, CreatedAtMixin, IdMixin, TimestampMixin


class Vendor(Base, TimestampMixin):
    """One supplier, subcontractor or rental company after deduplication."""

    __tablename__ = "vendors"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    canonical_company_name: Mapped[str] = mapped_column(String(255), nullable=False)
    name_key: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    name_variants_json: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    vendor_type: Mapped[str] = mapped_column(String(32), default="other", nullable=False)
    date_first_seen: Mapped[date] = mapped_column(Date, nullable=False)
    date_last_seen: Mapped[date] = mapped_column(Date, nullable=False)
    total_deliveries_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    status: Mapped[str] = mapped_column(String(16), default="active", index=True, nullable=False)
    merged_into_id: Mapped[str | None] = mapped_column(
        ForeignKey("vendors.id", ondelete="SET NULL"),
        index=True,
        nullable=True,
    )


class VendorDelivery(Base, IdMixin, CreatedAtMixin):
    """Append-only delivery fact linking one vendor to one report."""

    __tablename__ = "vendor_deliveries"
    __table_args__ = (
        UniqueConstraint(
            "vendor_id",
            "report_id",
            "extraction_attempt_id",
            name="uq_vendor_deliveries_vendor_report_attempt",
        ),
        Index("ix_vendor_deliveries_project_id_report_date", "project_id", "report_date"),
    )

    vendor_id: Mapped[str] = mapped_column(ForeignKey("vendors.id"), index=True, nullable=False)
    report_id: Mapped[str] = mapped_column(ForeignKey("reports.id"), index=True, nullable=False)
    project_id: Mapped[str] = mapped_column(String(128), nullable=False)
    report_date: Mapped[date] = mapped_column(Date, nullable=False)
    extraction_attempt_id: Mapped[int] = mapped_column(ForeignKey("extraction_attempts.id"), nullable=False)
    observed_name: Mapped[str] = mapped_column(String(255), nullable=False)
    materials: Mapped[str | None] = mapped_column(Text, nullable=True)
    delivery_time: Mapped[str | None] = mapped_column(String(64), nullable=True)
    received_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    delivery_status: Mapped[str] = mapped_column(String(16), default="unknown", nullable=False)
    issues: Mapped[str | None] = mapped_column(Text, nullable=True)
    cost_impact: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    source_excerpt: Mapped[str] = mapped_column(Text, nullable=False)
    match_type: Mapped[str] = mapped_column(String(32), nullable=False)
    match_score: Mapped[float] = mapped_column(Float, default=100.0, nullable=False)
    needs_review: Mapped[bool] = mapped_column(Boolean, default=False, index=True, nullable=False)
    review_state: Mapped[str | None] = mapped_column(String(16), nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    superseded: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
