"""Team roster side table."""

from datetime import date

from sqlalchemy import Boolean, Date, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from sitelog.models.base import Base, IdMixin, TimestampMixin


class TeamAssignment(Base, IdMixin, TimestampMixin):
    """Known membership of a person in a project team."""

    __tablename__ = "team_assignments"
    __table_args__ = (
        UniqueConstraint("project_id", "team_key", "person_id", name="uq_team_assignments_project_team_person"),
    )

    project_id: Mapped[str] = mapped_column(String(128), index=True, nullable=False)
    team_key: Mapped[str] = mapped_column(String(128), nullable=False)
    team_label: Mapped[str] = mapped_column(String(128), nullable=False)
    person_id: Mapped[str] = mapped_column(ForeignKey("persons.id"), index=True, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_seen_date: Mapped[date] = mapped_column(Date, nullable=False)
