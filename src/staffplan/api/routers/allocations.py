"""
Router for allocation endpoints: create/update/remove and pre-write checks.

Engine errors propagate to the exception handlers registered in main.py.
"""

from datetime import date
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from staffplan.api import schemas
from staffplan.api.dependencies import get_allocation_engine
from staffplan.engine.allocation_engine import AllocationEngine
from staffplan.engine.models import Allocation

router = APIRouter()


@router.post("/", response_model=schemas.AllocationResponse, status_code=status.HTTP_201_CREATED)
def create_allocation(
    payload: schemas.AllocationCreate,
    engine: Annotated[AllocationEngine, Depends(get_allocation_engine)],
):
    """
    Create an allocation. Rejected with 409 on overlap or capacity conflicts
    unless ``force`` is set.
    """
    data = payload.model_dump(exclude={"force"})
    created = engine.create_allocation(Allocation(**data), force=payload.force)
    return schemas.AllocationResponse.model_validate(created)


@router.patch("/{allocation_id}", response_model=schemas.AllocationResponse)
def update_allocation(
    allocation_id: str,
    updates: schemas.AllocationUpdate,
    engine: Annotated[AllocationEngine, Depends(get_allocation_engine)],
):
    """
    Update an allocation (reschedule, change hours, reassign).
    """
    changes = updates.model_dump(exclude_unset=True, exclude={"force"})
    if not changes:
        raise HTTPException(status_code=400, detail="No fields to update")
    updated = engine.update_allocation(allocation_id, force=updates.force, **changes)
    return schemas.AllocationResponse.model_validate(updated)


@router.delete("/{allocation_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_allocation(
    allocation_id: str,
    engine: Annotated[AllocationEngine, Depends(get_allocation_engine)],
):
    """
    Delete (soft delete) an allocation.
    """
    engine.remove_allocation(allocation_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/conflicts", response_model=schemas.ConflictReportResponse)
def check_conflicts(
    engine: Annotated[AllocationEngine, Depends(get_allocation_engine)],
    employee_id: str = Query(..., description="Employee to check"),
    start_date: date = Query(...),
    end_date: date = Query(...),
    exclude_allocation_id: Optional[str] = Query(None, description="Allocation being edited"),
    allocated_hours: Optional[float] = Query(None, description="Adds the capacity check"),
    include_acknowledged: bool = Query(True),
):
    report = engine.check_conflicts(
        employee_id,
        start_date,
        end_date,
        exclude_allocation_id=exclude_allocation_id,
        allocated_hours=allocated_hours,
        include_acknowledged=include_acknowledged,
    )
    return schemas.ConflictReportResponse.model_validate(report)


@router.get("/capacity", response_model=schemas.CapacityValidationResponse)
def validate_capacity(
    engine: Annotated[AllocationEngine, Depends(get_allocation_engine)],
    employee_id: str = Query(...),
    allocated_hours: float = Query(..., description="Total hours over the range"),
    start_date: date = Query(...),
    end_date: date = Query(...),
    exclude_allocation_id: Optional[str] = Query(None),
):
    result = engine.validate_capacity(
        employee_id,
        allocated_hours,
        start_date,
        end_date,
        exclude_allocation_id=exclude_allocation_id,
    )
    return schemas.CapacityValidationResponse.model_validate(result)
