"""
Router for conflict scans and resolution.
"""

from typing import Annotated, List, Optional

from fastapi import APIRouter, Body, Depends, Query

from staffplan.api import schemas
from staffplan.api.dependencies import get_allocation_engine
from staffplan.engine.allocation_engine import AllocationEngine
from staffplan.engine.models import ConflictResolution
from staffplan.platform.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()


@router.get("/employees/{employee_id}", response_model=List[schemas.ConflictResponse])
def list_conflicts(
    employee_id: str,
    engine: Annotated[AllocationEngine, Depends(get_allocation_engine)],
    include_acknowledged: bool = Query(True, description="Include conflicts marked as ignored"),
):
    """
    Scan an employee's active allocations for overlap and capacity conflicts.
    """
    conflicts = engine.detect_conflicts(employee_id, include_acknowledged=include_acknowledged)
    return [schemas.ConflictResponse.model_validate(c) for c in conflicts]


@router.post(
    "/employees/{employee_id}/{conflict_id}/resolve",
    response_model=schemas.ResolutionResponse,
)
def resolve_conflict(
    employee_id: str,
    conflict_id: str,
    request: schemas.ResolutionRequest,
    engine: Annotated[AllocationEngine, Depends(get_allocation_engine)],
):
    """
    Apply a resolution to a conflict found by the latest scan.

    New conflicts produced by the change are returned as
    ``remaining_conflicts``; the change is committed either way.
    """
    conflict = engine.find_conflict(employee_id, conflict_id)
    resolution = ConflictResolution(conflict=conflict, **request.model_dump())
    outcome = engine.resolve_conflict(resolution)
    logger.info(
        "Conflict resolution applied",
        conflict_id=conflict_id,
        kind=request.kind.value,
        remaining=len(outcome.remaining_conflicts),
    )
    return schemas.ResolutionResponse.model_validate(outcome)


@router.post(
    "/employees/{employee_id}/auto-resolve",
    response_model=List[schemas.ResolutionResponse],
)
def auto_resolve_conflicts(
    employee_id: str,
    engine: Annotated[AllocationEngine, Depends(get_allocation_engine)],
    request: Optional[schemas.AutoResolveRequest] = Body(None),
):
    """
    Reschedule every auto-resolvable conflict of an employee to its suggestion.
    """
    reason = request.reason if request else None
    outcomes = engine.auto_resolve_conflicts(employee_id, reason=reason)
    return [schemas.ResolutionResponse.model_validate(o) for o in outcomes]
