"""Entity resolution event log model."""

from sqlalchemy import JSON, Float, String
from sqlalchemy.orm import Mapped, mapped_column

from sitelog.models.base import Base, CreatedAtMixin, IdMixin


class ResolutionEvent(Base, IdMixin, CreatedAtMixin):
    """Resolution decisions emitted while attaching extracted names to registries."""

    __tablename__ = "resolution_events"

    report_id: Mapped[str | None] = mapped_column(String(128), index=True, nullable=True)
    entity_kind: Mapped[str] = mapped_column(String(16), nullable=False)
    entity_id: Mapped[str | None] = mapped_column(String(64), index=True, nullable=True)
    event_type: Mapped[str] = mapped_column(String(32), nullable=False)
    observed_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    similarity_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    rationale: Mapped[str] = mapped_column(String(255), nullable=False)
    details_json: Mapped[dict[str, object]] = mapped_column(JSON, default=dict, nullable=False)
