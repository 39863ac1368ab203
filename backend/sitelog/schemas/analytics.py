"""Registry and rollup response schemas."""

from datetime import date

from pydantic import BaseModel, ConfigDict


class PersonRead(BaseModel):
    """Serialized canonical person."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    canonical_name: str
    name_variants_json: list[str]
    current_position: str | None
    date_first_seen: date
    date_last_seen: date
    total_reports_count: int
    total_hours_worked: float
    status: str
    merged_into_id: str | None


class VendorRead(BaseModel):
    """Serialized canonical vendor."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    canonical_company_name: str
    name_variants_json: list[str]
    vendor_type: str
    date_first_seen: date
    date_last_seen: date
    total_deliveries_count: int
    status: str
    merged_into_id: str | None


class PersonsListResponse(BaseModel):
    items: list[PersonRead]
    total: int


class VendorsListResponse(BaseModel):
    items: list[VendorRead]
    total: int


class LaborRollupRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    person_id: str | None
    display_name: str
    report_count: int
    regular_hours: float
    overtime_hours: float
    double_time_hours: float
    total_hours: float
    labor_cost: float


class VendorRollupRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    vendor_id: str
    display_name: str
    delivery_count: int
    on_time_count: int
    late_count: int
    missed_count: int
    on_time_rate: float
    incident_count: int
    incident_cost: float
    chargeback_count: int
    performance_score: float
    grade: str


class ConstraintCostRollupRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    category: str
    severity: str
    constraint_count: int
    open_count: int
    total_cost_impact: float
    total_hours_lost: float


class ProjectRollupsRead(BaseModel):
    """All rollups for one project window."""

    project_id: str
    window_key: str
    labor: list[LaborRollupRead]
    vendors: list[VendorRollupRead]
    constraints: list[ConstraintCostRollupRead]
