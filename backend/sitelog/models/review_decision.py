"""Human review decision audit log model."""

from sqlalchemy import JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from sitelog.models.base import Base, CreatedAtMixin, IdMixin


class ReviewDecision(Base, IdMixin, CreatedAtMixin):
    """Immutable record of a confirm, reject or merge decision on a flagged entity."""

    __tablename__ = "review_decisions"

    entity_kind: Mapped[str] = mapped_column(String(16), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    decision: Mapped[str] = mapped_column(String(16), nullable=False)
    target_entity_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    reviewer: Mapped[str] = mapped_column(String(128), nullable=False)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    details_json: Mapped[dict[str, object]] = mapped_column(JSON, default=dict, nullable=False)
