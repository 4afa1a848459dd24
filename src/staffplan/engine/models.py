"""
Domain types for the allocation conflict & capacity engine.

Allocations are the unit of truth. Daily capacity rows, conflicts and
utilization summaries are computed views that can always be rebuilt from the
active allocations of an employee.
"""

import math
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .errors import ValidationError
from .intervals import day_count, daily_hours, validate_range


class ConflictKind(str, Enum):
    """Types of conflicts."""
    OVERLAP = "overlap"
    OVER_CAPACITY = "over_capacity"


class ConflictSeverity(str, Enum):
    """Severity levels for conflicts."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ResolutionKind(str, Enum):
    """Ways a conflict can be acted on."""
    RESCHEDULE = "reschedule"
    REDUCE_HOURS = "reduce_hours"
    REASSIGN = "reassign"
    SPLIT_ALLOCATION = "split_allocation"
    IGNORE = "ignore"


class ResolutionStatus(str, Enum):
    PENDING = "pending"
    RESOLVING = "resolving"
    RESOLVED = "resolved"
    FAILED = "failed"


class UtilizationBand(str, Enum):
    OVERUTILIZED = "overutilized"
    BALANCED = "balanced"
    UNDERUTILIZED = "underutilized"


def exceeds_capacity(utilization_rate: float) -> bool:
    """Strictly above 100%. A rate within float tolerance of 1.0 is full, not over."""
    return utilization_rate > 1.0 and not math.isclose(utilization_rate, 1.0)


# Fields a caller may change on an existing allocation
MUTABLE_ALLOCATION_FIELDS = frozenset({
    "employee_id",
    "project_id",
    "start_date",
    "end_date",
    "allocated_hours",
    "role",
    "hourly_rate",
    "actual_hours",
    "notes",
})


@dataclass(frozen=True)
class Allocation:
    """A block of an employee's time committed to a project.

    ``allocated_hours`` is the total over the inclusive date range, spread
    evenly across its calendar days. ``id`` is None until the store assigns
    one on first write.
    """
    employee_id: str
    project_id: str
    start_date: date
    end_date: date
    allocated_hours: float
    id: Optional[str] = None
    role: str = ""
    hourly_rate: Optional[float] = None
    actual_hours: Optional[float] = None
    notes: Optional[str] = None
    is_active: bool = True
    version: int = 0

    @property
    def day_count(self) -> int:
        return day_count(self.start_date, self.end_date)

    @property
    def daily_hours(self) -> float:
        return daily_hours(self.allocated_hours, self.start_date, self.end_date)

    def covers(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date

    def validate(self, max_range_days: Optional[int] = None) -> None:
        """Raise ValidationError when the allocation breaks a record invariant."""
        if not self.employee_id:
            raise ValidationError("Employee ID is required", field="employee_id")
        if not self.project_id:
            raise ValidationError("Project ID is required", field="project_id")
        if self.role is None:
            raise ValidationError("Role cannot be null; use an empty string", field="role")
        validate_range(self.start_date, self.end_date, max_range_days)
        if self.allocated_hours is None or self.allocated_hours <= 0:
            raise ValidationError(
                "Allocated hours must be greater than 0", field="allocated_hours"
            )
        if self.hourly_rate is not None and self.hourly_rate < 0:
            raise ValidationError("Hourly rate cannot be negative", field="hourly_rate")
        if self.actual_hours is not None and self.actual_hours < 0:
            raise ValidationError("Actual hours cannot be negative", field="actual_hours")


@dataclass(frozen=True)
class Employee:
    id: str
    name: str
    department: Optional[str] = None
    is_active: bool = True


@dataclass(frozen=True)
class DailyCapacity:
    """Capacity snapshot of one employee on one date."""
    date: date
    available_hours: float
    allocated_hours: float
    candidate_hours: float = 0.0

    @property
    def utilization_rate(self) -> float:
        if self.available_hours <= 0:
            return math.inf if self.allocated_hours > 0 else 0.0
        return self.allocated_hours / self.available_hours

    @property
    def is_over_capacity(self) -> bool:
        return exceeds_capacity(self.utilization_rate)

    @property
    def existing_hours(self) -> float:
        return self.allocated_hours - self.candidate_hours


@dataclass(frozen=True)
class CapacityValidationResult:
    is_valid: bool
    warnings: List[str]
    max_capacity_hours: float
    current_allocated_hours: float
    requested_daily_hours: float
    utilization_rate: float
    severity: Optional[ConflictSeverity]
    daily: List[DailyCapacity] = field(default_factory=list)

    @property
    def violations(self) -> List[DailyCapacity]:
        return [day for day in self.daily if day.is_over_capacity]


@dataclass(frozen=True)
class SuggestedResolution:
    kind: ResolutionKind
    description: str
    new_start_date: Optional[date] = None
    new_end_date: Optional[date] = None
    new_allocated_hours: Optional[float] = None


@dataclass(frozen=True)
class Conflict:
    """Represents a detected conflict."""
    id: str
    kind: ConflictKind
    severity: ConflictSeverity
    employee_id: str
    allocation_ids: Tuple[str, ...]
    description: str
    window_start: Optional[date] = None
    window_end: Optional[date] = None
    utilization_rate: float = 0.0
    subject_allocation_id: Optional[str] = None
    violations: Tuple[DailyCapacity, ...] = ()
    can_auto_resolve: bool = False
    suggested_resolution: Optional[SuggestedResolution] = None
    acknowledged: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "severity": self.severity.value,
            "employee_id": self.employee_id,
            "allocation_ids": list(self.allocation_ids),
            "description": self.description,
            "window_start": self.window_start.isoformat() if self.window_start else None,
            "window_end": self.window_end.isoformat() if self.window_end else None,
            "utilization_rate": self.utilization_rate,
            "violation_dates": [day.date.isoformat() for day in self.violations],
            "can_auto_resolve": self.can_auto_resolve,
            "acknowledged": self.acknowledged,
        }


@dataclass(frozen=True)
class ConflictReport:
    has_conflicts: bool
    conflicts: List[Conflict]
    suggestions: List[str]


@dataclass(frozen=True)
class ConflictResolution:
    """A user's or automation's decision about one conflict.

    Only the parameters of the chosen ``kind`` are read. ``allocation_id``
    picks which affected allocation to act on; it defaults to the conflict's
    subject allocation.
    """
    conflict: Conflict
    kind: ResolutionKind
    new_start_date: Optional[date] = None
    new_end_date: Optional[date] = None
    new_allocated_hours: Optional[float] = None
    new_employee_id: Optional[str] = None
    split_date: Optional[date] = None
    allocation_id: Optional[str] = None
    reason: Optional[str] = None
    resolved_by: Optional[str] = None


@dataclass(frozen=True)
class ResolutionOutcome:
    success: bool
    status: ResolutionStatus
    conflict_id: str
    kind: ResolutionKind
    remaining_conflicts: List[Conflict] = field(default_factory=list)
    applied_allocations: List[Allocation] = field(default_factory=list)
    original_allocations: List[Allocation] = field(default_factory=list)
    error: Optional[str] = None


@dataclass(frozen=True)
class EmployeeUtilization:
    employee_id: str
    employee_name: str
    department: Optional[str]
    allocated_hours: float
    available_hours: float
    utilization_rate: float
    band: UtilizationBand
    active_allocations: int
    conflict_days: int


@dataclass(frozen=True)
class UtilizationSummary:
    start_date: date
    end_date: date
    department: Optional[str]
    total_employees: int
    overutilized_count: int
    underutilized_count: int
    balanced_count: int
    average_utilization: float
    conflicts_count: int
    total_allocations: int
    employees: List[EmployeeUtilization] = field(default_factory=list)
