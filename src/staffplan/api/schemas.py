import math
from datetime import date
from typing import Annotated, List, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator

from staffplan.engine.models import (
    ConflictKind,
    ConflictSeverity,
    ResolutionKind,
    ResolutionStatus,
    UtilizationBand,
)


def _finite(value):
    # JSON has no infinity; a zero-capacity day with demand is reported as null
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


Rate = Annotated[Optional[float], BeforeValidator(_finite)]

# --- Allocations ---

class AllocationBase(BaseModel):
    employee_id: str = Field(..., description="Employee the time belongs to")
    project_id: str = Field(..., description="Project the time is committed to")
    start_date: date
    end_date: date
    allocated_hours: float = Field(..., description="Total hours over the inclusive date range")
    role: str = ""
    hourly_rate: Optional[float] = None
    actual_hours: Optional[float] = None
    notes: Optional[str] = None

class AllocationCreate(AllocationBase):
    force: bool = Field(False, description="Write despite overlap or capacity conflicts")

class AllocationUpdate(BaseModel):
    employee_id: Optional[str] = None
    project_id: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    allocated_hours: Optional[float] = None
    role: Optional[str] = None
    hourly_rate: Optional[float] = None
    actual_hours: Optional[float] = None
    notes: Optional[str] = None
    force: bool = False

    @field_validator("employee_id", "project_id", "start_date", "end_date", "allocated_hours", "role")
    @classmethod
    def reject_null(cls, value):
        # Omit a field to keep it; only hourly_rate, actual_hours and notes can be cleared
        if value is None:
            raise ValueError("field cannot be null")
        return value

class AllocationResponse(AllocationBase):
    model_config = ConfigDict(from_attributes=True)

    id: str
    daily_hours: float
    is_active: bool
    version: int

# --- Capacity ---

class DailyCapacityResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    date: date
    available_hours: float
    allocated_hours: float
    utilization_rate: Rate
    is_over_capacity: bool

class CapacityValidationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    is_valid: bool
    warnings: List[str]
    max_capacity_hours: float
    current_allocated_hours: float
    requested_daily_hours: float
    utilization_rate: Rate
    severity: Optional[ConflictSeverity] = None
    violations: List[DailyCapacityResponse] = Field(default_factory=list)

# --- Conflicts ---

class SuggestedResolutionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    kind: ResolutionKind
    description: str
    new_start_date: Optional[date] = None
    new_end_date: Optional[date] = None
    new_allocated_hours: Optional[float] = None

class ConflictResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    kind: ConflictKind
    severity: ConflictSeverity
    employee_id: str
    allocation_ids: List[str]
    description: str
    window_start: Optional[date] = None
    window_end: Optional[date] = None
    utilization_rate: Rate = None
    subject_allocation_id: Optional[str] = None
    violations: List[DailyCapacityResponse] = Field(default_factory=list)
    can_auto_resolve: bool = False
    suggested_resolution: Optional[SuggestedResolutionResponse] = None
    acknowledged: bool = False

class ConflictReportResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    has_conflicts: bool
    conflicts: List[ConflictResponse]
    suggestions: List[str]

class ResolutionRequest(BaseModel):
    kind: ResolutionKind
    new_start_date: Optional[date] = None
    new_end_date: Optional[date] = None
    new_allocated_hours: Optional[float] = None
    new_employee_id: Optional[str] = None
    split_date: Optional[date] = None
    allocation_id: Optional[str] = Field(None, description="Defaults to the conflict's subject allocation")
    reason: Optional[str] = None
    resolved_by: Optional[str] = None

class AutoResolveRequest(BaseModel):
    reason: Optional[str] = None

class ResolutionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    success: bool
    status: ResolutionStatus
    conflict_id: str
    kind: ResolutionKind
    remaining_conflicts: List[ConflictResponse] = Field(default_factory=list)
    applied_allocations: List[AllocationResponse] = Field(default_factory=list)
    error: Optional[str] = None

# --- Utilization ---

class EmployeeUtilizationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    employee_id: str
    employee_name: str
    department: Optional[str] = None
    allocated_hours: float
    available_hours: float
    utilization_rate: Rate
    band: UtilizationBand
    active_allocations: int
    conflict_days: int

class UtilizationSummaryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    start_date: date
    end_date: date
    department: Optional[str] = None
    total_employees: int
    overutilized_count: int
    underutilized_count: int
    balanced_count: int
    average_utilization: float
    conflicts_count: int
    total_allocations: int
    employees: List[EmployeeUtilizationResponse] = Field(default_factory=list)
