from abc import ABC, abstractmethod
from datetime import date
from typing import Dict, Generator, List, Mapping, Optional, Sequence, Set

from sqlalchemy.orm import Session

from staffplan.engine.intervals import days_in_range
from staffplan.engine.models import Allocation, Employee


class StorageAdapter(ABC):
    """Abstract base class for storage adapters."""

    @abstractmethod
    def connect(self) -> None:
        """Establish connection to the storage backend."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close the connection."""
        pass

    @abstractmethod
    def health_check(self) -> bool:
        """Check if the backend is reachable."""
        pass

    @abstractmethod
    def get_session(self) -> Generator[Session, None, None]:
        """Provide a contextual session."""
        pass


class AllocationStore(ABC):
    """
    Persistence collaborator consumed by the allocation engine.

    Implementations must make ``write_allocations`` atomic and raise
    ``ConcurrencyConflictError`` when an employee's revision no longer matches
    ``expected_revisions`` or the backend reports a serialization failure.
    """

    @abstractmethod
    def find_active_allocations_for_employee(self, employee_id: str) -> List[Allocation]:
        pass

    @abstractmethod
    def get_allocation(self, allocation_id: str) -> Optional[Allocation]:
        pass

    @abstractmethod
    def find_daily_capacity_override(self, employee_id: str, day: date) -> Optional[float]:
        pass

    def find_daily_capacity_overrides(
        self, employee_id: str, start: date, end: date
    ) -> Dict[date, float]:
        """Overrides for every day of a range. Backends should batch this."""
        overrides = {}
        for day in days_in_range(start, end):
            hours = self.find_daily_capacity_override(employee_id, day)
            if hours is not None:
                overrides[day] = hours
        return overrides

    @abstractmethod
    def write_allocations(
        self,
        allocations: Sequence[Allocation],
        expected_revisions: Optional[Mapping[str, int]] = None,
    ) -> List[Allocation]:
        """Insert or update all allocations in one transaction."""
        pass

    def write_allocation(
        self, allocation: Allocation, expected_revision: Optional[int] = None
    ) -> Allocation:
        expected = None
        if expected_revision is not None:
            expected = {allocation.employee_id: expected_revision}
        return self.write_allocations([allocation], expected)[0]

    @abstractmethod
    def get_employee_revision(self, employee_id: str) -> int:
        """Counter bumped by every allocation write touching the employee."""
        pass

    @abstractmethod
    def get_employee(self, employee_id: str) -> Optional[Employee]:
        pass

    @abstractmethod
    def list_employees(self, department: Optional[str] = None) -> List[Employee]:
        pass

    @abstractmethod
    def acknowledge_conflict(
        self,
        conflict_id: str,
        employee_id: str,
        reason: Optional[str] = None,
        acknowledged_by: Optional[str] = None,
    ) -> None:
        pass

    @abstractmethod
    def find_acknowledged_conflict_ids(self, employee_id: str) -> Set[str]:
        pass
