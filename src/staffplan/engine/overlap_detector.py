"""
Overlap Detector

Finds the active allocations of an employee whose date ranges intersect a
candidate range. The result is advisory: callers may still force a write.
"""

from datetime import date
from typing import Iterable, List, Optional, Tuple, TYPE_CHECKING

from staffplan.platform.logging import get_logger

from .intervals import overlaps
from .models import Allocation

if TYPE_CHECKING:
    from staffplan.storage.base import AllocationStore

logger = get_logger(__name__)


def _ordering(allocation: Allocation) -> Tuple[date, str]:
    return allocation.start_date, allocation.id or ""


class OverlapDetector:
    """Detects double-booking of an employee's calendar days."""

    def __init__(self, store: "AllocationStore"):
        self.store = store

    def find_overlaps(
        self,
        employee_id: str,
        start: date,
        end: date,
        exclude_allocation_id: Optional[str] = None,
    ) -> List[Allocation]:
        """
        Fetch the employee's active allocations and return the ones that
        intersect [start, end], ordered by start date then id.

        Args:
            employee_id: Employee whose calendar is checked
            start: Candidate start date (inclusive)
            end: Candidate end date (inclusive)
            exclude_allocation_id: Allocation being edited, ignored in the check

        Returns:
            Overlapping allocations; empty when there is no overlap
        """
        allocations = self.store.find_active_allocations_for_employee(employee_id)
        found = self.overlapping(allocations, start, end, exclude_allocation_id)
        logger.debug(
            "Overlap check complete",
            employee_id=employee_id,
            start=start.isoformat(),
            end=end.isoformat(),
            overlaps=len(found),
        )
        return found

    @staticmethod
    def overlapping(
        allocations: Iterable[Allocation],
        start: date,
        end: date,
        exclude_allocation_id: Optional[str] = None,
    ) -> List[Allocation]:
        found = [
            allocation
            for allocation in allocations
            if allocation.is_active
            and (exclude_allocation_id is None or allocation.id != exclude_allocation_id)
            and overlaps(allocation.start_date, allocation.end_date, start, end)
        ]
        return sorted(found, key=_ordering)

    @staticmethod
    def overlap_pairs(
        allocations: Iterable[Allocation],
    ) -> List[Tuple[Allocation, Allocation]]:
        """
        All overlapping pairs among active allocations as (earlier, later).

        "Later" is the allocation that starts later (ties broken by id), which
        is the one a resolution moves by default.
        """
        ordered = sorted((a for a in allocations if a.is_active), key=_ordering)
        pairs = []
        for i, later in enumerate(ordered):
            for earlier in ordered[:i]:
                if overlaps(earlier.start_date, earlier.end_date, later.start_date, later.end_date):
                    pairs.append((earlier, later))
        return pairs
