"""
Utilization Aggregator

Rolls allocated vs. available hours up per employee over a date window and
summarizes the population (optionally one department).
"""

import math
from datetime import date
from typing import List, Optional, TYPE_CHECKING

from staffplan.platform.logging import get_logger

from .capacity_validator import CapacityValidator, daily_breakdown
from .config import EngineConfig
from .intervals import overlaps, validate_range
from .models import (
    Employee,
    EmployeeUtilization,
    UtilizationBand,
    UtilizationSummary,
)

if TYPE_CHECKING:
    from staffplan.storage.base import AllocationStore

logger = get_logger(__name__)


class UtilizationAggregator:
    """Summarizes utilization for reporting."""

    def __init__(
        self,
        store: "AllocationStore",
        capacity_validator: CapacityValidator,
        config: Optional[EngineConfig] = None,
    ):
        self.store = store
        self.capacity = capacity_validator
        self.config = config or EngineConfig()

    def classify(self, utilization_rate: float) -> UtilizationBand:
        over = self.config.overutilized_threshold
        if utilization_rate > over and not math.isclose(utilization_rate, over):
            return UtilizationBand.OVERUTILIZED
        if utilization_rate < self.config.underutilized_threshold:
            return UtilizationBand.UNDERUTILIZED
        return UtilizationBand.BALANCED

    def employee_utilization(
        self, employee: Employee, start: date, end: date
    ) -> EmployeeUtilization:
        allocations = [
            a for a in self.store.find_active_allocations_for_employee(employee.id)
            if overlaps(a.start_date, a.end_date, start, end)
        ]
        calendar = self.capacity.capacity_calendar(employee.id, start, end)
        daily = daily_breakdown(start, end, allocations, calendar)

        allocated = sum(day.allocated_hours for day in daily)
        available = sum(day.available_hours for day in daily)
        if available > 0:
            rate = allocated / available
        else:
            rate = math.inf if allocated > 0 else 0.0

        return EmployeeUtilization(
            employee_id=employee.id,
            employee_name=employee.name,
            department=employee.department,
            allocated_hours=allocated,
            available_hours=available,
            utilization_rate=rate,
            band=self.classify(rate),
            active_allocations=len(allocations),
            conflict_days=sum(1 for day in daily if day.is_over_capacity),
        )

    def summarize(
        self, start: date, end: date, department: Optional[str] = None
    ) -> UtilizationSummary:
        """
        Summarize utilization of every active employee over [start, end].

        Args:
            start: Window start (inclusive)
            end: Window end (inclusive)
            department: Restrict to one department

        Returns:
            UtilizationSummary with population counts and per-employee rows
        """
        validate_range(start, end, self.config.max_range_days)

        employees = [e for e in self.store.list_employees(department) if e.is_active]
        rows = [self.employee_utilization(e, start, end) for e in employees]

        finite_rates = [r.utilization_rate for r in rows if math.isfinite(r.utilization_rate)]
        average = sum(finite_rates) / len(finite_rates) if finite_rates else 0.0

        summary = UtilizationSummary(
            start_date=start,
            end_date=end,
            department=department,
            total_employees=len(rows),
            overutilized_count=sum(1 for r in rows if r.band == UtilizationBand.OVERUTILIZED),
            underutilized_count=sum(1 for r in rows if r.band == UtilizationBand.UNDERUTILIZED),
            balanced_count=sum(1 for r in rows if r.band == UtilizationBand.BALANCED),
            average_utilization=average,
            conflicts_count=sum(r.conflict_days for r in rows),
            total_allocations=sum(r.active_allocations for r in rows),
            employees=rows,
        )
        logger.info(
            "Utilization summarized",
            employees=summary.total_employees,
            overutilized=summary.overutilized_count,
            underutilized=summary.underutilized_count,
            conflicts=summary.conflicts_count,
        )
        return summary
