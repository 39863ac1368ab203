"""Work log ORM model."""

from datetime import date

from sqlalchemy import JSON, Boolean, Date, Float, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from sitelog.models.base import Base, CreatedAtMixin, IdMixin


class WorkLogEntry(Base, IdMixin, CreatedAtMixin):
    """Work performed by one team on one level for one report."""

    __tablename__ = "work_log_entries"
    __table_args__ = (
        UniqueConstraint(
            "report_id",
            "extraction_attempt_id",
            "team_key",
            "level_key",
            name="uq_work_log_entries_report_attempt_team_level",
        ),
        Index("ix_work_log_entries_project_id_report_date", "project_id", "report_date"),
    )

    report_id: Mapped[str] = mapped_column(ForeignKey("reports.id"), index=True, nullable=False)
    extraction_attempt_id: Mapped[int] = mapped_column(ForeignKey("extraction_attempts.id"), nullable=False)
    project_id: Mapped[str] = mapped_column(String(128), nullable=False)
    report_date: Mapped[date] = mapped_column(Date, nullable=False)
    team_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    team_key: Mapped[str] = mapped_column(String(128), nullable=False)
    level: Mapped[str | None] = mapped_column(String(128), nullable=True)
    level_key: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    personnel_ids_json: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    personnel_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    hours_worked: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    overtime_hours: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    materials_json: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    equipment_json: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    roster_expanded: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    unresolved_mentions: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    needs_review: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    source_excerpt: Mapped[str] = mapped_column(Text, nullable=False)
    superseded: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
