"""LLM-backed extractor for structured daily report extraction."""

from __future__ import annotations

import json
import logging
import re
import socket
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Protocol
from urllib import error as urllib_error
from urllib import request as urllib_request

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from sitelog.config import Settings, get_settings
from sitelog.entity_resolution.similarity import normalize, normalize_company
from sitelog.extraction.extractor_interface import ExtractorInterface
from sitelog.extraction.types import (
    ExtractedConstraint,
    ExtractedPerson,
    ExtractedVendor,
    ExtractedWorkLog,
    ExtractionContext,
    ExtractionError,
    ExtractionErrorKind,
    ExtractionResult,
    TimeSummary,
)

logger = logging.getLogger(__name__)

LLM_EXTRACTION_PROMPT_VERSION = "daily_report.v1"
_PROMPT_FILES: dict[str, Path] = {
    "daily_report.v1": Path(__file__).resolve().parent / "prompts" / "daily_report_v1.txt",
}
CONTRACT_KEYS = ("personnel", "workLogs", "constraints", "vendors", "timeSummary")
_ARRAY_KEYS = ("personnel", "workLogs", "constraints", "vendors")
_FENCE_RE = re.compile(r"^```[a-zA-Z0-9_-]*\s*\n?(.*?)\n?```\s*$", re.DOTALL)
_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?")


class LLMExtractionError(RuntimeError):
    """Raised by clients when the provider call fails or is misconfigured."""

    def __init__(self, message: str, *, kind: ExtractionErrorKind = "provider_error", retryable: bool = False) -> None:
        super().__init__(message)
        self.kind = kind
        self.retryable = retryable


class LLMClient(Protocol):
    """Protocol for pluggable completion clients used by the extractor."""

    model: str

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        """Return the raw completion text."""


def _post_json(url: str, payload: dict[str, Any], headers: dict[str, str], timeout_seconds: int, provider: str) -> dict[str, Any]:
    req = urllib_request.Request(
        url=url,
        data=json.dumps(payload).encode("utf-8"),
        method="POST",
        headers={"Content-Type": "application/json", **headers},
    )
    try:
        with urllib_request.urlopen(req, timeout=timeout_seconds) as resp:
            raw = resp.read().decode("utf-8")
    except urllib_error.HTTPError as exc:
        detail = exc.read().decode("utf-8", errors="replace")
        retryable = exc.code == 429 or exc.code >= 500
        raise LLMExtractionError(f"{provider} HTTP {exc.code}: {detail}", retryable=retryable) from exc
    except urllib_error.URLError as exc:
        if isinstance(exc.reason, (socket.timeout, TimeoutError)):
            raise LLMExtractionError(f"{provider} request timed out", kind="timeout", retryable=True) from exc
        raise LLMExtractionError(f"{provider} request failed: {exc.reason}", retryable=True) from exc
    except (socket.timeout, TimeoutError) as exc:
        raise LLMExtractionError(f"{provider} request timed out", kind="timeout", retryable=True) from exc

    try:
        decoded = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise LLMExtractionError(f"{provider} returned a non-JSON envelope") from exc
    if not isinstance(decoded, dict):
        raise LLMExtractionError(f"{provider} returned an unexpected envelope")
    return decoded


@dataclass(slots=True)
class OpenAIChatCompletionsClient:
    """Minimal OpenAI Chat Completions client using stdlib HTTP."""

    api_key: str
    model: str
    base_url: str = "https://api.openai.com/v1"
    timeout_seconds: int = 90

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        payload = {
            "model": self.model,
            "temperature": 0,
            "response_format": {"type": "json_object"},
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
        }
        decoded = _post_json(
            f"{self.base_url.rstrip('/')}/chat/completions",
            payload,
            {"Authorization": f"Bearer {self.api_key}"},
            self.timeout_seconds,
            "OpenAI",
        )
        try:
            message = decoded["choices"][0]["message"]
            refusal = message.get("refusal")
            if isinstance(refusal, str) and refusal.strip():
                raise LLMExtractionError(f"OpenAI refused extraction request: {refusal.strip()}")
            content = message["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise LLMExtractionError("OpenAI returned an unexpected response shape") from exc
        if not isinstance(content, str):
            raise LLMExtractionError("OpenAI response content is not a string")
        return content


@dataclass(slots=True)
class AnthropicMessagesClient:
    """Minimal Anthropic Messages client using stdlib HTTP."""

    api_key: str
    model: str
    base_url: str = "https://api.anthropic.com/v1"
    max_tokens: int = 8000
    timeout_seconds: int = 90

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        payload = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": 0,
            "system": system_prompt,
            "messages": [{"role": "user", "content": user_prompt}],
        }
        decoded = _post_json(
            f"{self.base_url.rstrip('/')}/messages",
            payload,
            {"x-api-key": self.api_key, "anthropic-version": "2023-06-01"},
            self.timeout_seconds,
            "Anthropic",
        )
        try:
            blocks = decoded["content"]
            text = "".join(block["text"] for block in blocks if block.get("type") == "text")
        except (KeyError, TypeError) as exc:
            raise LLMExtractionError("Anthropic returned an unexpected response shape") from exc
        if not text:
            raise LLMExtractionError("Anthropic response contained no text content")
        return text


def build_llm_client(settings: Settings | None = None) -> LLMClient:
    """Build the configured completion client."""

    resolved = settings or get_settings()
    if resolved.llm_provider == "anthropic":
        if not resolved.anthropic_api_key:
            raise LLMExtractionError("ANTHROPIC_API_KEY is required when LLM_PROVIDER=anthropic")
        return AnthropicMessagesClient(
            api_key=resolved.anthropic_api_key,
            model=resolved.anthropic_model,
            base_url=resolved.anthropic_base_url,
            max_tokens=resolved.anthropic_max_tokens,
            timeout_seconds=resolved.llm_timeout_seconds,
        )
    if not resolved.openai_api_key:
        raise LLMExtractionError("OPENAI_API_KEY is required when LLM_PROVIDER=openai")
    return OpenAIChatCompletionsClient(
        api_key=resolved.openai_api_key,
        model=resolved.openai_model,
        base_url=resolved.openai_base_url,
        timeout_seconds=resolved.llm_timeout_seconds,
    )


@lru_cache(maxsize=8)
def get_extraction_system_prompt(version: str = LLM_EXTRACTION_PROMPT_VERSION) -> str:
    prompt_file = _PROMPT_FILES.get(version)
    if prompt_file is None:
        raise LLMExtractionError(f"Extraction prompt version is not registered: {version}")
    try:
        prompt_text = prompt_file.read_text(encoding="utf-8").strip()
    except OSError as exc:
        raise LLMExtractionError(f"Failed to load extraction prompt file: {prompt_file}") from exc
    if not prompt_text:
        raise LLMExtractionError(f"Extraction prompt file is empty: {prompt_file}")
    return prompt_text


def strip_code_fences(text: str) -> str:
    """Remove a surrounding markdown code fence, if any."""

    stripped = text.strip()
    match = _FENCE_RE.match(stripped)
    if match:
        return match.group(1).strip()
    return stripped


def parse_completion_text(text: str) -> Any | None:
    """Parse completion text as JSON, falling back to the outermost brace span.

    Returns None when neither attempt yields JSON.
    """

    candidate = strip_code_fences(text)
    try:
        return json.loads(candidate)
    except json.JSONDecodeError:
        pass
    start = candidate.find("{")
    end = candidate.rfind("}")
    if start == -1 or end <= start:
        return None
    try:
        return json.loads(candidate[start : end + 1])
    except json.JSONDecodeError:
        return None


def _coerce_number(value: Any) -> Any:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        match = _NUMBER_RE.search(value.replace(",", "").replace("$", ""))
        return float(match.group(0)) if match else None
    return value


def _coerce_text(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    if isinstance(value, str):
        cleaned = re.sub(r"\s+", " ", value).strip()
        return cleaned or None
    return value


def _coerce_text_list(value: Any) -> Any:
    if value is None:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if isinstance(value, list):
        return [str(item).strip() for item in value if item is not None and str(item).strip()]
    return value


class _RawItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    extracted_from_text: str = Field(alias="extractedFromText", min_length=1)

    @field_validator("extracted_from_text", mode="before")
    @classmethod
    def _clean_quote(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value


class _RawPerson(_RawItem):
    full_name: str = Field(alias="fullName", min_length=1)
    go_by_name: str | None = Field(default=None, alias="goByName")
    position: str | None = None
    team_assignment: str | None = Field(default=None, alias="teamAssignment")
    hours_worked: float | None = Field(default=None, alias="hoursWorked")
    overtime_hours: float | None = Field(default=None, alias="overtimeHours")
    health_status: str | None = Field(default=None, alias="healthStatus")
    activities_performed: str | None = Field(default=None, alias="activitiesPerformed")

    _numbers = field_validator("hours_worked", "overtime_hours", mode="before")(_coerce_number)
    _texts = field_validator(
        "full_name", "go_by_name", "position", "team_assignment", "health_status", "activities_performed", mode="before"
    )(_coerce_text)


class _RawWorkLog(_RawItem):
    task_description: str = Field(alias="taskDescription", min_length=1)
    team_id: str | None = Field(default=None, alias="teamId")
    level: str | None = None
    personnel_assigned: list[str] = Field(default_factory=list, alias="personnelAssigned")
    personnel_count: float | None = Field(default=None, alias="personnelCount")
    hours_worked: float | None = Field(default=None, alias="hoursWorked")
    overtime_hours: float | None = Field(default=None, alias="overtimeHours")
    materials_used: list[str] = Field(default_factory=list, alias="materialsUsed")
    equipment_used: list[str] = Field(default_factory=list, alias="equipmentUsed")

    _numbers = field_validator("personnel_count", "hours_worked", "overtime_hours", mode="before")(_coerce_number)
    _texts = field_validator("task_description", "team_id", "level", mode="before")(_coerce_text)
    _lists = field_validator("personnel_assigned", "materials_used", "equipment_used", mode="before")(_coerce_text_list)


class _RawConstraint(_RawItem):
    title: str | None = None
    description: str | None = None
    category: str | None = None
    severity: str | None = None
    status: str | None = None
    level: str | None = None
    cost_impact: float | None = Field(default=None, alias="costImpact")
    vendor_name: str | None = Field(default=None, alias="vendorName")
    hours_lost: float | None = Field(default=None, alias="hoursLost")
    crew_size: float | None = Field(default=None, alias="crewSize")

    _numbers = field_validator("cost_impact", "hours_lost", "crew_size", mode="before")(_coerce_number)
    _texts = field_validator(
        "title", "description", "category", "severity", "status", "level", "vendor_name", mode="before"
    )(_coerce_text)


class _RawVendor(_RawItem):
    company_name: str = Field(alias="companyName", min_length=1)
    vendor_type: str | None = Field(default=None, alias="vendorType")
    materials_delivered: str | None = Field(default=None, alias="materialsDelivered")
    delivery_time: str | None = Field(default=None, alias="deliveryTime")
    received_by: str | None = Field(default=None, alias="receivedBy")
    delivery_notes: str | None = Field(default=None, alias="deliveryNotes")
    delivery_status: str | None = Field(default=None, alias="deliveryStatus")
    cost_impact: float | None = Field(default=None, alias="costImpact")

    _numbers = field_validator("cost_impact", mode="before")(_coerce_number)
    _texts = field_validator(
        "company_name",
        "vendor_type",
        "materials_delivered",
        "delivery_time",
        "received_by",
        "delivery_notes",
        "delivery_status",
        mode="before",
    )(_coerce_text)


class _RawTimeSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    total_personnel_count: float | None = Field(default=None, alias="totalPersonnelCount")
    total_regular_hours: float | None = Field(default=None, alias="totalRegularHours")
    total_overtime_hours: float | None = Field(default=None, alias="totalOvertimeHours")
    arrival_time: str | None = Field(default=None, alias="arrivalTime")
    departure_time: str | None = Field(default=None, alias="departureTime")

    _numbers = field_validator(
        "total_personnel_count", "total_regular_hours", "total_overtime_hours", mode="before"
    )(_coerce_number)
    _texts = field_validator("arrival_time", "departure_time", mode="before")(_coerce_text)


_ITEM_MODELS: dict[str, type[_RawItem]] = {
    "personnel": _RawPerson,
    "workLogs": _RawWorkLog,
    "constraints": _RawConstraint,
    "vendors": _RawVendor,
}


class LLMExtractor(ExtractorInterface):
    """AI-powered extractor that validates untrusted completion output at the edge."""

    def __init__(self, client: LLMClient, *, prompt_version: str = LLM_EXTRACTION_PROMPT_VERSION) -> None:
        self._client = client
        self._prompt_version = prompt_version
        self._last_raw_response: str | None = None

    def extract(self, transcript: str, context: ExtractionContext) -> ExtractionResult | ExtractionError:
        """Call the completion service and return validated records or an error value."""

        self._last_raw_response = None
        if not transcript or not transcript.strip():
            return ExtractionError(kind="empty_transcript", message="Transcript is empty")

        try:
            system_prompt = get_extraction_system_prompt(self._prompt_version)
            raw_text = self._client.complete(system_prompt, build_user_prompt(transcript, context))
        except LLMExtractionError as exc:
            logger.warning("extraction.provider_error kind=%s retryable=%s error=%s", exc.kind, exc.retryable, exc)
            return ExtractionError(kind=exc.kind, message=str(exc), retryable=exc.retryable)

        self._last_raw_response = raw_text
        return validate_extraction_text(raw_text)

    @property
    def prompt_version(self) -> str:
        return self._prompt_version

    @property
    def model_name(self) -> str:
        return str(getattr(self._client, "model", self._client.__class__.__name__))

    @property
    def last_raw_response(self) -> str | None:
        return self._last_raw_response


def build_user_prompt(transcript: str, context: ExtractionContext) -> str:
    return (
        "CONTEXT:\n"
        f"- Project: {context.project_name}\n"
        f"- Date: {context.report_date.isoformat()}\n\n"
        "TRANSCRIPT:\n"
        f"{transcript.strip()}"
    )


def validate_extraction_text(raw_text: str) -> ExtractionResult | ExtractionError:
    """Parse and validate raw completion text. Never raises."""

    parsed = parse_completion_text(raw_text or "")
    if parsed is None:
        return ExtractionError(
            kind="malformed_response",
            message="Completion was not parseable JSON",
            raw_response=raw_text,
        )
    return validate_extraction_payload(parsed, raw_response=raw_text)


def validate_extraction_payload(payload: Any, *, raw_response: str | None = None) -> ExtractionResult | ExtractionError:
    """Validate a decoded payload against the five-key contract."""

    if not isinstance(payload, dict):
        return ExtractionError(
            kind="malformed_response",
            message="Completion JSON is not an object",
            raw_response=raw_response,
        )
    if not any(key in payload for key in CONTRACT_KEYS):
        return ExtractionError(
            kind="malformed_response",
            message="Completion JSON has none of the required keys",
            raw_response=raw_response,
        )
    for key in _ARRAY_KEYS:
        value = payload.get(key)
        if value is not None and not isinstance(value, list):
            return ExtractionError(
                kind="schema_violation",
                message=f"{key} must be an array",
                raw_response=raw_response,
            )
    summary_value = payload.get("timeSummary")
    if summary_value is not None and not isinstance(summary_value, dict):
        return ExtractionError(
            kind="schema_violation",
            message="timeSummary must be an object",
            raw_response=raw_response,
        )

    rejected: list[dict[str, Any]] = []
    validated: dict[str, list[Any]] = {}
    for key, model in _ITEM_MODELS.items():
        items: list[Any] = []
        for index, item in enumerate(payload.get(key) or []):
            try:
                items.append(model.model_validate(item))
            except ValidationError as exc:
                rejected.append(
                    {
                        "section": key,
                        "index": index,
                        "errors": [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()],
                    }
                )
        validated[key] = items
    if rejected:
        logger.warning("extraction.items_rejected count=%s sections=%s", len(rejected), sorted({r["section"] for r in rejected}))

    try:
        summary = _RawTimeSummary.model_validate(summary_value or {})
    except ValidationError:
        summary = _RawTimeSummary()

    confidence = _coerce_number(payload.get("extractionConfidence"))
    if isinstance(confidence, (int, float)):
        confidence = max(0.0, min(1.0, float(confidence)))
    else:
        confidence = None

    return ExtractionResult(
        personnel=_merge_personnel(validated["personnel"]),
        work_logs=[_to_work_log(item) for item in validated["workLogs"]],
        constraints=[_to_constraint(item) for item in validated["constraints"]],
        vendors=_merge_vendors(validated["vendors"]),
        time_summary=TimeSummary(
            total_personnel_count=int(summary.total_personnel_count or 0),
            total_regular_hours=float(summary.total_regular_hours or 0.0),
            total_overtime_hours=float(summary.total_overtime_hours or 0.0),
            arrival_time=summary.arrival_time,
            departure_time=summary.departure_time,
        ),
        confidence=confidence,
        rejected_items=rejected,
    )


def _merge_personnel(items: list[_RawPerson]) -> list[ExtractedPerson]:
    """Collapse repeated mentions of the same spoken name within one report."""

    merged: dict[str, ExtractedPerson] = {}
    for item in items:
        key = normalize(item.full_name)
        if not key:
            continue
        existing = merged.get(key)
        if existing is None:
            merged[key] = ExtractedPerson(
                full_name=item.full_name,
                extracted_from_text=item.extracted_from_text,
                go_by_name=item.go_by_name,
                position=item.position,
                team_assignment=item.team_assignment,
                hours_worked=max(0.0, float(item.hours_worked or 0.0)),
                overtime_hours=max(0.0, float(item.overtime_hours or 0.0)),
                health_status=item.health_status,
                activities_performed=item.activities_performed,
            )
            continue
        existing.hours_worked = max(existing.hours_worked, float(item.hours_worked or 0.0))
        existing.overtime_hours = max(existing.overtime_hours, float(item.overtime_hours or 0.0))
        existing.go_by_name = existing.go_by_name or item.go_by_name
        existing.position = existing.position or item.position
        existing.team_assignment = existing.team_assignment or item.team_assignment
        existing.health_status = existing.health_status or item.health_status
        existing.activities_performed = existing.activities_performed or item.activities_performed
    return list(merged.values())


def _merge_vendors(items: list[_RawVendor]) -> list[ExtractedVendor]:
    merged: dict[str, ExtractedVendor] = {}
    for item in items:
        key = normalize_company(item.company_name)
        if not key:
            continue
        existing = merged.get(key)
        if existing is None:
            merged[key] = ExtractedVendor(
                company_name=item.company_name,
                extracted_from_text=item.extracted_from_text,
                vendor_type=item.vendor_type,
                materials_delivered=item.materials_delivered,
                delivery_time=item.delivery_time,
                received_by=item.received_by,
                delivery_notes=item.delivery_notes,
                delivery_status=item.delivery_status,
                cost_impact=item.cost_impact,
            )
            continue
        if item.materials_delivered and item.materials_delivered != existing.materials_delivered:
            existing.materials_delivered = "; ".join(
                part for part in (existing.materials_delivered, item.materials_delivered) if part
            )
        if item.cost_impact:
            existing.cost_impact = (existing.cost_impact or 0.0) + item.cost_impact
        existing.delivery_notes = existing.delivery_notes or item.delivery_notes
        existing.delivery_status = existing.delivery_status or item.delivery_status
    return list(merged.values())


def _to_work_log(item: _RawWorkLog) -> ExtractedWorkLog:
    return ExtractedWorkLog(
        task_description=item.task_description,
        extracted_from_text=item.extracted_from_text,
        team_id=item.team_id,
        level=item.level,
        personnel_assigned=list(item.personnel_assigned),
        personnel_count=int(item.personnel_count or len(item.personnel_assigned)),
        hours_worked=max(0.0, float(item.hours_worked or 0.0)),
        overtime_hours=max(0.0, float(item.overtime_hours or 0.0)),
        materials_used=list(item.materials_used),
        equipment_used=list(item.equipment_used),
    )


def _to_constraint(item: _RawConstraint) -> ExtractedConstraint:
    title = item.title or (item.description or item.extracted_from_text)[:80]
    return ExtractedConstraint(
        title=title,
        extracted_from_text=item.extracted_from_text,
        description=item.description or title,
        category=item.category,
        severity=item.severity,
        status=item.status,
        level=item.level,
        cost_impact=item.cost_impact,
        vendor_name=item.vendor_name,
        hours_lost=max(0.0, float(item.hours_lost)) if item.hours_lost is not None else None,
        crew_size=max(1, int(item.crew_size)) if item.crew_size else None,
    )
