"""
Router for utilization reporting.
"""

from datetime import date
from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, Query

from staffplan.api import schemas
from staffplan.api.dependencies import get_allocation_engine
from staffplan.engine.allocation_engine import AllocationEngine

router = APIRouter()


@router.get("/summary", response_model=schemas.UtilizationSummaryResponse)
def utilization_summary(
    engine: Annotated[AllocationEngine, Depends(get_allocation_engine)],
    start_date: date = Query(...),
    end_date: date = Query(...),
    department: Optional[str] = Query(None),
):
    summary = engine.get_utilization_summary(start_date, end_date, department=department)
    return schemas.UtilizationSummaryResponse.model_validate(summary)


@router.get("/employees/{employee_id}/capacity", response_model=List[schemas.DailyCapacityResponse])
def employee_capacity(
    employee_id: str,
    engine: Annotated[AllocationEngine, Depends(get_allocation_engine)],
    start_date: date = Query(...),
    end_date: date = Query(...),
):
    """
    Per-day available vs. allocated hours for one employee.
    """
    days = engine.get_capacity_snapshots(employee_id, start_date, end_date)
    return [schemas.DailyCapacityResponse.model_validate(d) for d in days]
