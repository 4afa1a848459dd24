"""
Capacity Validator

Expands allocations into daily hour contributions and compares each day's
total against the employee's available hours for that day.

Severity bands (worst utilization rate across the checked range):
- up to 1.0        -> no capacity conflict (a fully booked day is valid)
- (1.0, high)      -> medium
- [high, critical) -> high
- critical and up  -> critical
"""

from collections import defaultdict
from datetime import date
from typing import Dict, Iterable, List, Optional, TYPE_CHECKING

from staffplan.platform.logging import get_logger

from .config import EngineConfig
from .errors import ValidationError
from .intervals import consecutive_windows, days_in_range, overlaps, validate_range
from .models import (
    Allocation,
    CapacityValidationResult,
    ConflictSeverity,
    DailyCapacity,
    exceeds_capacity,
)

if TYPE_CHECKING:
    from staffplan.storage.base import AllocationStore

logger = get_logger(__name__)


class CapacityCalendar:
    """Available hours per day: a default with per-day overrides."""

    def __init__(self, default_hours: float, overrides: Optional[Dict[date, float]] = None):
        self.default_hours = default_hours
        self.overrides = dict(overrides or {})

    def __call__(self, day: date) -> float:
        return self.overrides.get(day, self.default_hours)


def classify_severity(
    utilization_rate: float,
    high_threshold: float = 1.1,
    critical_threshold: float = 1.3,
) -> Optional[ConflictSeverity]:
    """Map a utilization rate to a conflict severity; None up to 100%."""
    if not exceeds_capacity(utilization_rate):
        return None
    if utilization_rate >= critical_threshold:
        return ConflictSeverity.CRITICAL
    if utilization_rate >= high_threshold:
        return ConflictSeverity.HIGH
    return ConflictSeverity.MEDIUM


def daily_breakdown(
    start: date,
    end: date,
    allocations: Iterable[Allocation],
    calendar: CapacityCalendar,
    candidate: Optional[Allocation] = None,
) -> List[DailyCapacity]:
    """
    Sum the daily contributions of ``allocations`` (and the candidate) over
    every day of [start, end].

    Allocations are clipped to the window; inactive ones contribute nothing.
    """
    allocated: Dict[date, float] = defaultdict(float)
    from_candidate: Dict[date, float] = defaultdict(float)

    def spread(allocation: Allocation, into: List[Dict[date, float]]) -> None:
        lo = max(allocation.start_date, start)
        hi = min(allocation.end_date, end)
        if lo > hi:
            return
        rate = allocation.daily_hours
        for day in days_in_range(lo, hi):
            for totals in into:
                totals[day] += rate

    for allocation in allocations:
        if allocation.is_active:
            spread(allocation, [allocated])
    if candidate is not None:
        spread(candidate, [allocated, from_candidate])

    return [
        DailyCapacity(
            date=day,
            available_hours=calendar(day),
            allocated_hours=allocated.get(day, 0.0),
            candidate_hours=from_candidate.get(day, 0.0),
        )
        for day in days_in_range(start, end)
    ]


class CapacityValidator:
    """Checks whether an allocation pushes any day past the employee's capacity."""

    def __init__(self, store: "AllocationStore", config: Optional[EngineConfig] = None):
        self.store = store
        self.config = config or EngineConfig()

    def capacity_calendar(self, employee_id: str, start: date, end: date) -> CapacityCalendar:
        overrides = self.store.find_daily_capacity_overrides(employee_id, start, end)
        return CapacityCalendar(self.config.default_daily_capacity_hours, overrides)

    def classify(self, utilization_rate: float) -> Optional[ConflictSeverity]:
        return classify_severity(
            utilization_rate,
            self.config.severity_high_threshold,
            self.config.severity_critical_threshold,
        )

    def validate(
        self,
        candidate: Allocation,
        exclude_allocation_id: Optional[str] = None,
        force: bool = False,
    ) -> CapacityValidationResult:
        """
        Validate a candidate allocation against the employee's current load.

        Args:
            candidate: Allocation to check (persisted or not)
            exclude_allocation_id: Allocation being edited, left out of the sum
            force: Report the violations but keep ``is_valid`` true

        Returns:
            CapacityValidationResult with the worst day and the full breakdown
        """
        validate_range(candidate.start_date, candidate.end_date, self.config.max_range_days)
        if candidate.allocated_hours is None or candidate.allocated_hours <= 0:
            raise ValidationError(
                "Allocated hours must be greater than 0", field="allocated_hours"
            )

        siblings = self.store.find_active_allocations_for_employee(candidate.employee_id)
        calendar = self.capacity_calendar(
            candidate.employee_id, candidate.start_date, candidate.end_date
        )
        result = self.evaluate(candidate, siblings, calendar, exclude_allocation_id, force)

        logger.info(
            "Capacity validated",
            employee_id=candidate.employee_id,
            utilization_rate=round(result.utilization_rate, 4),
            violations=len(result.violations),
            is_valid=result.is_valid,
        )
        return result

    def evaluate(
        self,
        candidate: Allocation,
        siblings: Iterable[Allocation],
        calendar: CapacityCalendar,
        exclude_allocation_id: Optional[str] = None,
        force: bool = False,
    ) -> CapacityValidationResult:
        """Pure capacity check of ``candidate`` against already-fetched siblings."""
        skip = {candidate.id, exclude_allocation_id} - {None}
        others = [
            sibling
            for sibling in siblings
            if sibling.is_active
            and sibling.id not in skip
            and overlaps(sibling.start_date, sibling.end_date, candidate.start_date, candidate.end_date)
        ]

        daily = daily_breakdown(
            candidate.start_date, candidate.end_date, others, calendar, candidate
        )
        worst = max(daily, key=lambda day: day.utilization_rate)
        violations = [day for day in daily if day.is_over_capacity]

        return CapacityValidationResult(
            is_valid=force or not violations,
            warnings=self._warnings(violations, worst),
            max_capacity_hours=worst.available_hours,
            current_allocated_hours=worst.existing_hours,
            requested_daily_hours=candidate.daily_hours,
            utilization_rate=worst.utilization_rate,
            severity=self.classify(worst.utilization_rate) if violations else None,
            daily=daily,
        )

    def _warnings(
        self,
        violations: List[DailyCapacity],
        worst: DailyCapacity,
    ) -> List[str]:
        warnings = []
        by_date = {day.date: day for day in violations}
        for start, end in consecutive_windows(by_date):
            peak = max(
                by_date[day].utilization_rate for day in days_in_range(start, end)
            )
            span = start.isoformat() if start == end else f"{start.isoformat()} to {end.isoformat()}"
            warnings.append(f"Over-allocation on {span}: peak {peak:.0%} of capacity")

        if not violations and worst.utilization_rate >= self.config.high_utilization_warning:
            warnings.append(
                f"High utilization: {worst.utilization_rate:.0%} of capacity "
                f"on {worst.date.isoformat()}"
            )
        return warnings
