"""StaffPlan Engine - Allocation overlap, capacity, conflict and utilization rules."""

from .allocation_engine import AllocationEngine
from .config import EngineConfig
from .errors import (
    AllocationEngineError,
    CapacityExceededError,
    ConcurrencyConflictError,
    NotFoundError,
    OverlapConflictError,
    ValidationError,
)
from .models import (
    Allocation,
    CapacityValidationResult,
    Conflict,
    ConflictKind,
    ConflictReport,
    ConflictResolution,
    ConflictSeverity,
    DailyCapacity,
    Employee,
    ResolutionKind,
    ResolutionOutcome,
    ResolutionStatus,
    UtilizationBand,
    UtilizationSummary,
)

__all__ = [
    "AllocationEngine",
    "EngineConfig",
    "AllocationEngineError",
    "CapacityExceededError",
    "ConcurrencyConflictError",
    "NotFoundError",
    "OverlapConflictError",
    "ValidationError",
    "Allocation",
    "CapacityValidationResult",
    "Conflict",
    "ConflictKind",
    "ConflictReport",
    "ConflictResolution",
    "ConflictSeverity",
    "DailyCapacity",
    "Employee",
    "ResolutionKind",
    "ResolutionOutcome",
    "ResolutionStatus",
    "UtilizationBand",
    "UtilizationSummary",
]
