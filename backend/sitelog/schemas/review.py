"""Review queue and decision schemas."""

from datetime import date
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator


class PendingReviewItemRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    kind: str
    record_id: int
    entity_id: str
    canonical_name: str
    observed_name: str
    report_id: str
    project_id: str
    report_date: date
    match_score: float


class FlaggedRecordRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    kind: str
    record_id: int
    report_id: str
    project_id: str
    report_date: date
    summary: str
    reasons: list[str]


class ReviewQueueRead(BaseModel):
    """Flagged entity matches and flagged records for one project or all projects."""

    model_config = ConfigDict(from_attributes=True)

    entities: list[PendingReviewItemRead]
    records: list[FlaggedRecordRead]


class ReviewDecisionRequest(BaseModel):
    """Reviewer decision on a flagged entity match."""

    decision: Literal["confirm", "reject", "mergeInto"]
    target_entity_id: str | None = None
    record_id: int | None = Field(default=None, ge=1)
    reviewer: str = Field(default="reviewer", min_length=1, max_length=128)
    note: str | None = None

    @model_validator(mode="after")
    def _merge_needs_target(self) -> "ReviewDecisionRequest":
        if self.decision == "mergeInto" and not self.target_entity_id:
            raise ValueError("target_entity_id is required for mergeInto")
        return self


class ReviewOutcomeRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    entity_id: str
    kind: str
    decision: str
    rows_updated: int
    target_entity_id: str | None
    created_entity_ids: list[str]


class AutoConfirmResult(BaseModel):
    confirmed: int
