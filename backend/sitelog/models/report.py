"""Report ORM model."""

from datetime import date, datetime

from sqlalchemy import Boolean, Date, DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from sitelog.models.base import Base, TimestampMixin

REPORT_STATUSES = ("pending_analysis", "analyzed", "published", "archived", "failed")


class Report(Base, TimestampMixin):
    """One submitted daily report transcript and its lifecycle state."""

    __tablename__ = "reports"
    __table_args__ = (Index("ix_reports_project_id_report_date", "project_id", "report_date"),)

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    project_id: Mapped[str] = mapped_column(String(128), nullable=False)
    project_name: Mapped[str] = mapped_column(String(255), nullable=False)
    submitter_id: Mapped[str] = mapped_column(String(128), index=True, nullable=False)
    report_date: Mapped[date] = mapped_column(Date, nullable=False)
    raw_transcript_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    transcript_path: Mapped[str | None] = mapped_column(String(512), nullable=True)
    status: Mapped[str] = mapped_column(String(32), default="pending_analysis", index=True, nullable=False)
    extraction_version: Mapped[str | None] = mapped_column(String(64), nullable=True)
    failure_kind: Mapped[str | None] = mapped_column(String(64), nullable=True)
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    retryable: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    claim_token: Mapped[str | None] = mapped_column(String(64), nullable=True)
    claimed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    status_changed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
