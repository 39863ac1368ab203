"""Report lifecycle request/response schemas."""

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ReportCreateRequest(BaseModel):
    """Register a new transcript for processing."""

    project_id: str = Field(min_length=1, max_length=128)
    project_name: str = Field(min_length=1, max_length=255)
    submitter_id: str = Field(min_length=1, max_length=128)
    report_date: date
    transcript_text: str | None = None
    transcript_path: str | None = None
    submitted_at: datetime | None = None

    @model_validator(mode="after")
    def _require_transcript(self) -> "ReportCreateRequest":
        if self.transcript_text is None and not self.transcript_path:
            raise ValueError("transcript_text or transcript_path is required")
        return self


class ReportRead(BaseModel):
    """Serialized report without the transcript body."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    project_id: str
    project_name: str
    submitter_id: str
    report_date: date
    transcript_path: str | None
    status: str
    extraction_version: str | None
    failure_kind: str | None
    failure_reason: str | None
    retryable: bool
    status_changed_at: datetime | None
    created_at: datetime
    updated_at: datetime


class ReportsListResponse(BaseModel):
    items: list[ReportRead]


class ProcessReportRead(BaseModel):
    """Outcome of a process or reprocess call."""

    model_config = ConfigDict(from_attributes=True)

    report_id: str
    status: str
    entities_created: int
    entities_flagged: int
    records_flagged: int
    error_kind: str | None
    error_message: str | None
    retryable: bool
    cache_hit: bool
    external_call: bool


class ReprocessRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=255)


class FailReportRequest(BaseModel):
    reason: str = Field(min_length=1)


class ExtractionAttemptRead(BaseModel):
    """Serialized extraction attempt audit row."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    report_id: str
    model_name: str
    prompt_version: str
    input_hash: str
    confidence_score: float | None
    validation_passed: bool
    error_kind: str | None
    error_message: str | None
    cache_hit: bool
    superseded: bool
    superseded_reason: str | None
    rejected_items_json: list[dict[str, object]]
    created_at: datetime


class ExtractionAttemptsListResponse(BaseModel):
    items: list[ExtractionAttemptRead]
