"""Resolution event response schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class ResolutionEventRead(BaseModel):
    """Serialized resolution event record."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    report_id: str | None
    entity_kind: str
    entity_id: str | None
    event_type: str
    observed_name: str | None
    similarity_score: float | None
    rationale: str
    details_json: dict[str, object]
    created_at: datetime


class ResolutionEventsListResponse(BaseModel):
    items: list[ResolutionEventRead]
