"""
Error taxonomy for the allocation engine.

Overlap and capacity checks return structured results; these exceptions are
raised only at commit points (create/update/resolve) or on malformed input.
"""

from typing import Any, Dict, List, Optional, Sequence, TYPE_CHECKING

if TYPE_CHECKING:
    from .models import Allocation, CapacityValidationResult, Conflict


class AllocationEngineError(Exception):
    """Base class for every error the engine surfaces to its callers."""

    code = "allocation_engine_error"
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "retryable": self.retryable,
        }


class ValidationError(AllocationEngineError):
    """Malformed input: missing dates, non-positive hours, end before start."""

    code = "validation_error"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["field"] = self.field
        return data


class NotFoundError(AllocationEngineError):
    """A referenced allocation, employee or conflict does not exist."""

    code = "not_found"

    def __init__(self, entity: str, entity_id: str):
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({"entity": self.entity, "entity_id": self.entity_id})
        return data


class OverlapConflictError(AllocationEngineError):
    """A write would overlap existing allocations and ``force`` was not set."""

    code = "overlap_conflict"

    def __init__(
        self,
        overlapping: Sequence["Allocation"],
        conflicts: Sequence["Conflict"] = (),
    ):
        windows = ", ".join(
            f"{a.project_id} ({a.start_date.isoformat()} to {a.end_date.isoformat()})"
            for a in overlapping
        )
        super().__init__(
            f"Allocation overlaps {len(overlapping)} existing allocation(s): {windows}. "
            "Use force to override or resolve the conflict."
        )
        self.overlapping: List["Allocation"] = list(overlapping)
        self.conflicts: List["Conflict"] = list(conflicts)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["overlapping_allocation_ids"] = [a.id for a in self.overlapping]
        data["conflicts"] = [c.to_dict() for c in self.conflicts]
        return data


class CapacityExceededError(AllocationEngineError):
    """Utilization reaches 100% on at least one date and ``force`` was not set."""

    code = "capacity_exceeded"

    def __init__(self, result: "CapacityValidationResult"):
        violations = result.violations
        super().__init__(
            f"Capacity exceeded on {len(violations)} day(s), peak utilization "
            f"{result.utilization_rate:.0%}: " + "; ".join(result.warnings)
        )
        self.result = result

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["utilization_rate"] = self.result.utilization_rate
        data["violations"] = [
            {
                "date": day.date.isoformat(),
                "available_hours": day.available_hours,
                "allocated_hours": day.allocated_hours,
                "utilization_rate": day.utilization_rate,
            }
            for day in self.result.violations
        ]
        return data


class ConcurrencyConflictError(AllocationEngineError):
    """The store rejected a write because the employee's allocations changed.

    Callers retry the whole validate-then-write sequence from scratch.
    """

    code = "concurrency_conflict"
    retryable = True
