"""Typed extraction outputs independent of persistence."""

from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any, Literal

ExtractionErrorKind = Literal[
    "malformed_response",
    "schema_violation",
    "provider_error",
    "timeout",
    "empty_transcript",
]


@dataclass(slots=True)
class ExtractionContext:
    """Project/date context sent alongside a transcript."""

    project_name: str
    report_date: date


@dataclass(slots=True)
class ExtractedPerson:
    """Person mention extracted from a transcript."""

    full_name: str
    extracted_from_text: str
    go_by_name: str | None = None
    position: str | None = None
    team_assignment: str | None = None
    hours_worked: float = 0.0
    overtime_hours: float = 0.0
    health_status: str | None = None
    activities_performed: str | None = None


@dataclass(slots=True)
class ExtractedWorkLog:
    """Work performed by one team on one level."""

    task_description: str
    extracted_from_text: str
    team_id: str | None = None
    level: str | None = None
    personnel_assigned: list[str] = field(default_factory=list)
    personnel_count: int = 0
    hours_worked: float = 0.0
    overtime_hours: float = 0.0
    materials_used: list[str] = field(default_factory=list)
    equipment_used: list[str] = field(default_factory=list)


@dataclass(slots=True)
class ExtractedConstraint:
    """Issue or constraint as reported; enumerations are not yet coerced."""

    title: str
    extracted_from_text: str
    description: str = ""
    category: str | None = None
    severity: str | None = None
    status: str | None = None
    level: str | None = None
    cost_impact: float | None = None
    vendor_name: str | None = None
    hours_lost: float | None = None
    crew_size: int | None = None


@dataclass(slots=True)
class ExtractedVendor:
    """Delivery or vendor mention."""

    company_name: str
    extracted_from_text: str
    vendor_type: str | None = None
    materials_delivered: str | None = None
    delivery_time: str | None = None
    received_by: str | None = None
    delivery_notes: str | None = None
    delivery_status: str | None = None
    cost_impact: float | None = None


@dataclass(slots=True)
class TimeSummary:
    total_personnel_count: int = 0
    total_regular_hours: float = 0.0
    total_overtime_hours: float = 0.0
    arrival_time: str | None = None
    departure_time: str | None = None


@dataclass(slots=True)
class ExtractionResult:
    """Container for validated extractor outputs."""

    personnel: list[ExtractedPerson] = field(default_factory=list)
    work_logs: list[ExtractedWorkLog] = field(default_factory=list)
    constraints: list[ExtractedConstraint] = field(default_factory=list)
    vendors: list[ExtractedVendor] = field(default_factory=list)
    time_summary: TimeSummary = field(default_factory=TimeSummary)
    confidence: float | None = None
    rejected_items: list[dict[str, Any]] = field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        """Serialize to the camelCase contract shape used for caching."""

        return {
            "personnel": [_camel(asdict(item)) for item in self.personnel],
            "workLogs": [_camel(asdict(item)) for item in self.work_logs],
            "constraints": [_camel(asdict(item)) for item in self.constraints],
            "vendors": [_camel(asdict(item)) for item in self.vendors],
            "timeSummary": _camel(asdict(self.time_summary)),
            "extractionConfidence": self.confidence,
        }


@dataclass(slots=True)
class ExtractionError:
    """Non-exceptional extraction failure value."""

    kind: ExtractionErrorKind
    message: str
    retryable: bool = False
    raw_response: str | None = None


def _camel(values: dict[str, Any]) -> dict[str, Any]:
    converted: dict[str, Any] = {}
    for key, value in values.items():
        head, *rest = key.split("_")
        converted[head + "".join(part.title() for part in rest)] = value
    return converted
