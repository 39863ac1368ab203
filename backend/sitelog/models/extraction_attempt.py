"""Extraction attempt audit log model."""

from sqlalchemy import JSON, Boolean, Float, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from sitelog.models.base import Base, CreatedAtMixin, IdMixin


class ExtractionAttempt(Base, IdMixin, CreatedAtMixin):
    """Stores the raw and validated payload for each extraction of a report."""

    __tablename__ = "extraction_attempts"

    report_id: Mapped[str] = mapped_column(ForeignKey("reports.id"), index=True, nullable=False)
    model_name: Mapped[str] = mapped_column(String(128), nullable=False)
    prompt_version: Mapped[str] = mapped_column(String(64), nullable=False)
    input_hash: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    raw_response: Mapped[str | None] = mapped_column(Text, nullable=True)
    structured_payload_json: Mapped[dict[str, object]] = mapped_column(JSON, default=dict, nullable=False)
    rejected_items_json: Mapped[list[dict[str, object]]] = mapped_column(JSON, default=list, nullable=False)
    confidence_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    validation_passed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    error_kind: Mapped[str | None] = mapped_column(String(64), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    cache_hit: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    superseded: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    superseded_reason: Mapped[str | None] = mapped_column(String(255), nullable=True)
