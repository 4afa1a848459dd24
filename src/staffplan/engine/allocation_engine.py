"""
Allocation Engine

Entry point for the service/API layer. Wires the overlap detector, capacity
validator, conflict detector/resolver and utilization aggregator around one
injected AllocationStore. The engine holds no state between calls: every
operation reads the current allocations afresh.

Usage:
    engine = AllocationEngine(store, EngineConfig.from_settings())

    report = engine.check_conflicts("emp_1", date(2024, 1, 15), date(2024, 2, 15))
    result = engine.validate_capacity("emp_1", 91.4, date(2024, 1, 15), date(2024, 2, 15))
    saved = engine.create_allocation(allocation)           # raises on conflicts
    outcome = engine.resolve_conflict(resolution)
    summary = engine.get_utilization_summary(date(2024, 1, 1), date(2024, 3, 31))
"""

from dataclasses import replace
from datetime import date
from typing import Any, Iterable, List, Optional, TYPE_CHECKING

from prometheus_client import Counter

from staffplan.platform.logging import get_logger

from .capacity_validator import CapacityValidator, daily_breakdown
from .config import EngineConfig
from .conflict_detector import ConflictDetector
from .conflict_resolver import ConflictResolver
from .errors import (
    AllocationEngineError,
    CapacityExceededError,
    NotFoundError,
    OverlapConflictError,
    ValidationError,
)
from .intervals import validate_range
from .models import (
    MUTABLE_ALLOCATION_FIELDS,
    Allocation,
    CapacityValidationResult,
    Conflict,
    ConflictReport,
    ConflictResolution,
    DailyCapacity,
    ResolutionOutcome,
    ResolutionStatus,
    UtilizationSummary,
)
from .overlap_detector import OverlapDetector
from .utilization import UtilizationAggregator

if TYPE_CHECKING:
    from staffplan.storage.base import AllocationStore

logger = get_logger(__name__)

CONFLICTS_DETECTED = Counter(
    "staffplan_conflicts_detected_total",
    "Conflicts reported by conflict checks and scans",
    ["kind", "severity"],
)
RESOLUTIONS = Counter(
    "staffplan_conflict_resolutions_total",
    "Conflict resolution attempts",
    ["kind", "status"],
)


class AllocationEngine:
    """Conflict and capacity rules for employee allocations."""

    def __init__(self, store: "AllocationStore", config: Optional[EngineConfig] = None):
        self.store = store
        self.config = config or EngineConfig()
        self.overlaps = OverlapDetector(store)
        self.capacity = CapacityValidator(store, self.config)
        self.detector = ConflictDetector(self.capacity)
        self.resolver = ConflictResolver(store, self.detector, self.config)
        self.utilization = UtilizationAggregator(store, self.capacity, self.config)

    # =========================================================================
    # CHECKS
    # =========================================================================

    def check_conflicts(
        self,
        employee_id: str,
        start: date,
        end: date,
        exclude_allocation_id: Optional[str] = None,
        allocated_hours: Optional[float] = None,
        include_acknowledged: bool = True,
    ) -> ConflictReport:
        """
        Report the conflicts a date range would have for an employee.

        Args:
            employee_id: Employee to check
            start: Candidate start (inclusive)
            end: Candidate end (inclusive)
            exclude_allocation_id: Allocation being edited
            allocated_hours: Candidate hours; adds the capacity check
            include_acknowledged: Keep conflicts previously ignored

        Returns:
            ConflictReport with conflicts and human-readable suggestions
        """
        validate_range(start, end, self.config.max_range_days)
        if allocated_hours is not None and allocated_hours <= 0:
            raise ValidationError(
                "Allocated hours must be greater than 0", field="allocated_hours"
            )

        overlapping = self.overlaps.find_overlaps(employee_id, start, end, exclude_allocation_id)
        calendar = self.capacity.capacity_calendar(employee_id, start, end)
        acknowledged = self.store.find_acknowledged_conflict_ids(employee_id)

        conflicts = self.detector.for_candidate(
            employee_id,
            start,
            end,
            overlapping,
            calendar,
            subject_id=exclude_allocation_id,
            allocated_hours=allocated_hours,
            acknowledged_ids=acknowledged,
        )
        if not include_acknowledged:
            conflicts = [c for c in conflicts if not c.acknowledged]

        self._record(conflicts)
        return ConflictReport(
            has_conflicts=bool(conflicts),
            conflicts=conflicts,
            suggestions=self.detector.suggestions(start, end, overlapping),
        )

    def validate_capacity(
        self,
        employee_id: str,
        allocated_hours: float,
        start: date,
        end: date,
        exclude_allocation_id: Optional[str] = None,
        force: bool = False,
    ) -> CapacityValidationResult:
        candidate = Allocation(
            employee_id=employee_id,
            project_id="",
            start_date=start,
            end_date=end,
            allocated_hours=allocated_hours,
        )
        return self.capacity.validate(candidate, exclude_allocation_id, force)

    def get_capacity_snapshots(
        self, employee_id: str, start: date, end: date
    ) -> List[DailyCapacity]:
        """Per-day available vs. allocated hours for an employee."""
        validate_range(start, end, self.config.max_range_days)
        allocations = self.store.find_active_allocations_for_employee(employee_id)
        calendar = self.capacity.capacity_calendar(employee_id, start, end)
        return daily_breakdown(start, end, allocations, calendar)

    # =========================================================================
    # COMMIT POINTS
    # =========================================================================

    def create_allocation(self, allocation: Allocation, force: bool = False) -> Allocation:
        """
        Validate and store a new allocation.

        Raises:
            ValidationError: Malformed allocation
            NotFoundError: Unknown employee
            OverlapConflictError: Overlaps existing allocations and not forced
            CapacityExceededError: Reaches 100% utilization and not forced
            ConcurrencyConflictError: Employee's allocations changed meanwhile
        """
        allocation.validate(self.config.max_range_days)
        if allocation.id is not None and self.store.get_allocation(allocation.id) is not None:
            raise ValidationError(f"Allocation {allocation.id} already exists", field="id")
        self._require_employee(allocation.employee_id)

        revision = self.store.get_employee_revision(allocation.employee_id)
        self._enforce(allocation, force)
        saved = self.store.write_allocation(
            replace(allocation, is_active=True, version=0), expected_revision=revision
        )

        logger.info(
            "Allocation created",
            allocation_id=saved.id,
            employee_id=saved.employee_id,
            project_id=saved.project_id,
            forced=force,
        )
        return saved

    def update_allocation(
        self, allocation_id: str, force: bool = False, **changes: Any
    ) -> Allocation:
        """Apply field changes to an active allocation (reschedule, hours, reassign...)."""
        unknown = set(changes) - MUTABLE_ALLOCATION_FIELDS
        if unknown:
            raise ValidationError(
                f"Cannot update field(s): {', '.join(sorted(unknown))}",
                field=sorted(unknown)[0],
            )

        current = self._require_allocation(allocation_id)
        updated = replace(current, **changes)
        updated.validate(self.config.max_range_days)
        if updated.employee_id != current.employee_id:
            self._require_employee(updated.employee_id)

        employees = sorted({current.employee_id, updated.employee_id})
        revisions = {e: self.store.get_employee_revision(e) for e in employees}
        self._enforce(updated, force)
        saved = self.store.write_allocations([updated], expected_revisions=revisions)[0]

        logger.info(
            "Allocation updated",
            allocation_id=allocation_id,
            fields=sorted(changes),
            forced=force,
        )
        return saved

    def remove_allocation(self, allocation_id: str) -> Allocation:
        """Soft-delete: the allocation stays stored with ``is_active`` cleared."""
        current = self._require_allocation(allocation_id)
        revision = self.store.get_employee_revision(current.employee_id)
        removed = self.store.write_allocation(
            replace(current, is_active=False), expected_revision=revision
        )
        logger.info("Allocation removed", allocation_id=allocation_id)
        return removed

    # =========================================================================
    # CONFLICTS
    # =========================================================================

    def detect_conflicts(
        self, employee_id: str, include_acknowledged: bool = True
    ) -> List[Conflict]:
        """Scan all active allocations of an employee for conflicts."""
        allocations = self.store.find_active_allocations_for_employee(employee_id)
        if not allocations:
            return []

        calendar = self.capacity.capacity_calendar(
            employee_id,
            min(a.start_date for a in allocations),
            max(a.end_date for a in allocations),
        )
        acknowledged = self.store.find_acknowledged_conflict_ids(employee_id)
        conflicts = self.detector.for_employee(employee_id, allocations, calendar, acknowledged)
        if not include_acknowledged:
            conflicts = [c for c in conflicts if not c.acknowledged]

        self._record(conflicts)
        return conflicts

    def find_conflict(self, employee_id: str, conflict_id: str) -> Conflict:
        for conflict in self.detect_conflicts(employee_id):
            if conflict.id == conflict_id:
                return conflict
        raise NotFoundError("Conflict", conflict_id)

    def resolve_conflict(self, resolution: ConflictResolution) -> ResolutionOutcome:
        try:
            outcome = self.resolver.resolve(resolution)
        except AllocationEngineError:
            RESOLUTIONS.labels(resolution.kind.value, ResolutionStatus.FAILED.value).inc()
            raise
        RESOLUTIONS.labels(resolution.kind.value, outcome.status.value).inc()
        return outcome

    def revert_resolution(self, outcome: ResolutionOutcome) -> List[Allocation]:
        return self.resolver.revert(outcome)

    def auto_resolve_conflicts(
        self, employee_id: str, reason: Optional[str] = None
    ) -> List[ResolutionOutcome]:
        """Resolve every unacknowledged, auto-resolvable conflict of an employee."""
        conflicts = [
            c for c in self.detect_conflicts(employee_id, include_acknowledged=False)
            if c.can_auto_resolve
        ]
        outcomes = self.resolver.auto_resolve(conflicts, reason)
        for outcome in outcomes:
            RESOLUTIONS.labels(outcome.kind.value, outcome.status.value).inc()
        return outcomes

    # =========================================================================
    # REPORTING
    # =========================================================================

    def get_utilization_summary(
        self, start: date, end: date, department: Optional[str] = None
    ) -> UtilizationSummary:
        return self.utilization.summarize(start, end, department)

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _enforce(self, allocation: Allocation, force: bool) -> CapacityValidationResult:
        siblings = self.store.find_active_allocations_for_employee(allocation.employee_id)
        calendar = self.capacity.capacity_calendar(
            allocation.employee_id, allocation.start_date, allocation.end_date
        )
        overlapping = OverlapDetector.overlapping(
            siblings, allocation.start_date, allocation.end_date, allocation.id
        )
        result = self.capacity.evaluate(allocation, siblings, calendar, force=force)

        if not overlapping and not result.violations:
            return result
        if force:
            logger.warning(
                "Writing allocation despite conflicts",
                employee_id=allocation.employee_id,
                overlaps=len(overlapping),
                violation_days=len(result.violations),
                utilization_rate=round(result.utilization_rate, 4),
            )
            return result

        conflicts = self.detector.for_candidate(
            allocation.employee_id,
            allocation.start_date,
            allocation.end_date,
            siblings,
            calendar,
            subject_id=allocation.id,
            allocated_hours=allocation.allocated_hours,
        )
        self._record(conflicts)
        if overlapping:
            raise OverlapConflictError(overlapping, conflicts)
        raise CapacityExceededError(result)

    def _require_allocation(self, allocation_id: str) -> Allocation:
        allocation = self.store.get_allocation(allocation_id)
        if allocation is None or not allocation.is_active:
            raise NotFoundError("Allocation", allocation_id)
        return allocation

    def _require_employee(self, employee_id: str) -> None:
        if self.store.get_employee(employee_id) is None:
            raise NotFoundError("Employee", employee_id)

    @staticmethod
    def _record(conflicts: Iterable[Conflict]) -> None:
        for conflict in conflicts:
            CONFLICTS_DETECTED.labels(conflict.kind.value, conflict.severity.value).inc()
