"""
Conflict Resolver

Applies one resolution to one conflict as a single atomic step:

    pending -> resolving -> resolved | failed

A resolution is validated, turned into a mutation plan, re-checked against
the projected allocation set and written in one store transaction. Nothing is
written when any step fails. New conflicts found by the re-check are returned
as ``remaining_conflicts``; they are a normal outcome, not a failure.
"""

import uuid
from collections import defaultdict
from dataclasses import replace
from datetime import timedelta
from typing import Dict, Iterable, List, Optional, Set, TYPE_CHECKING

from staffplan.platform.logging import get_logger

from .config import EngineConfig
from .conflict_detector import ConflictDetector
from .errors import AllocationEngineError, NotFoundError, ValidationError
from .intervals import validate_range
from .models import (
    Allocation,
    Conflict,
    ConflictResolution,
    ResolutionKind,
    ResolutionOutcome,
    ResolutionStatus,
)

if TYPE_CHECKING:
    from staffplan.storage.base import AllocationStore

logger = get_logger(__name__)


class ConflictResolver:
    """Turns a ConflictResolution into allocation changes, or an acknowledgement."""

    def __init__(
        self,
        store: "AllocationStore",
        detector: ConflictDetector,
        config: Optional[EngineConfig] = None,
    ):
        self.store = store
        self.detector = detector
        self.capacity = detector.capacity
        self.config = config or EngineConfig()

    def resolve(self, resolution: ConflictResolution) -> ResolutionOutcome:
        """
        Apply a resolution.

        Args:
            resolution: The conflict and the chosen resolution with its parameters

        Returns:
            ResolutionOutcome with the written allocations, the originals they
            replaced and any conflicts the new state still has

        Raises:
            ValidationError: Missing or inconsistent resolution parameters
            NotFoundError: Target allocation or new employee does not exist
            ConcurrencyConflictError: The employee's allocations changed meanwhile
        """
        conflict = resolution.conflict
        log = logger.bind(conflict_id=conflict.id, kind=resolution.kind.value)
        log.info("Resolving conflict", status=ResolutionStatus.RESOLVING.value)

        if resolution.kind == ResolutionKind.IGNORE:
            self.store.acknowledge_conflict(
                conflict.id,
                conflict.employee_id,
                reason=resolution.reason,
                acknowledged_by=resolution.resolved_by,
            )
            log.info("Conflict acknowledged", status=ResolutionStatus.RESOLVED.value)
            return ResolutionOutcome(
                success=True,
                status=ResolutionStatus.RESOLVED,
                conflict_id=conflict.id,
                kind=resolution.kind,
            )

        target = self._target(resolution)
        plan = self._plan(resolution, target)

        # Read revisions before the re-check reads siblings
        employees = sorted({a.employee_id for a in plan} | {target.employee_id})
        revisions = {e: self.store.get_employee_revision(e) for e in employees}

        remaining = self._recheck(plan)
        applied = self.store.write_allocations(plan, expected_revisions=revisions)

        log.info(
            "Conflict resolved",
            status=ResolutionStatus.RESOLVED.value,
            allocation_id=target.id,
            written=len(applied),
            remaining_conflicts=len(remaining),
            reason=resolution.reason,
        )
        return ResolutionOutcome(
            success=True,
            status=ResolutionStatus.RESOLVED,
            conflict_id=conflict.id,
            kind=resolution.kind,
            remaining_conflicts=remaining,
            applied_allocations=applied,
            original_allocations=[target],
        )

    def auto_resolve(
        self,
        conflicts: Iterable[Conflict],
        reason: Optional[str] = None,
    ) -> List[ResolutionOutcome]:
        """
        Resolve every auto-resolvable conflict with its suggested reschedule.

        Each conflict is resolved on its own; a failure is recorded as a failed
        outcome and the batch moves on. A conflict whose allocation was already
        moved earlier in the same batch is skipped as failed, since its
        suggestion was computed from the old dates.
        """
        outcomes = []
        touched: Set[str] = set()
        for conflict in conflicts:
            suggestion = conflict.suggested_resolution
            if (
                not conflict.can_auto_resolve
                or suggestion is None
                or suggestion.kind != ResolutionKind.RESCHEDULE
            ):
                continue

            if conflict.subject_allocation_id in touched:
                outcomes.append(self._failed(
                    conflict, ResolutionKind.RESCHEDULE,
                    f"Allocation {conflict.subject_allocation_id} was already "
                    "rescheduled in this batch",
                ))
                continue

            resolution = ConflictResolution(
                conflict=conflict,
                kind=ResolutionKind.RESCHEDULE,
                new_start_date=suggestion.new_start_date,
                new_end_date=suggestion.new_end_date,
                reason=reason or self.config.auto_resolve_reason,
                resolved_by="system",
            )
            try:
                outcome = self.resolve(resolution)
            except AllocationEngineError as e:
                logger.warning(
                    "Auto-resolution failed", conflict_id=conflict.id, error=str(e)
                )
                outcomes.append(self._failed(conflict, resolution.kind, str(e)))
                continue

            touched.update(a.id for a in outcome.applied_allocations)
            outcomes.append(outcome)

        logger.info(
            "Auto-resolution complete",
            attempted=len(outcomes),
            resolved=sum(1 for o in outcomes if o.success),
        )
        return outcomes

    def revert(self, outcome: ResolutionOutcome) -> List[Allocation]:
        """
        Undo an applied resolution: restore the originals and deactivate the
        allocations the resolution created.

        Raises ConcurrencyConflictError when any allocation changed after the
        resolution was applied.
        """
        originals = {a.id: a for a in outcome.original_allocations}
        restore = []
        for applied in outcome.applied_allocations:
            if applied.id in originals:
                restore.append(replace(originals[applied.id], version=applied.version))
            else:
                restore.append(replace(applied, is_active=False))
        if not restore:
            return []

        reverted = self.store.write_allocations(restore)
        logger.info(
            "Resolution reverted", conflict_id=outcome.conflict_id, written=len(reverted)
        )
        return reverted

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    def _target(self, resolution: ConflictResolution) -> Allocation:
        conflict = resolution.conflict
        target_id = resolution.allocation_id or conflict.subject_allocation_id
        if not target_id:
            raise ValidationError(
                "Conflict has no stored allocation to act on; pass allocation_id",
                field="allocation_id",
            )
        if target_id not in conflict.allocation_ids:
            raise ValidationError(
                f"Allocation {target_id} is not part of conflict {conflict.id}",
                field="allocation_id",
            )

        target = self.store.get_allocation(target_id)
        if target is None or not target.is_active:
            raise NotFoundError("Allocation", target_id)
        return target

    def _plan(self, resolution: ConflictResolution, target: Allocation) -> List[Allocation]:
        kind = resolution.kind

        if kind == ResolutionKind.RESCHEDULE:
            if resolution.new_start_date is None or resolution.new_end_date is None:
                raise ValidationError(
                    "Reschedule requires new_start_date and new_end_date",
                    field="new_start_date",
                )
            validate_range(
                resolution.new_start_date, resolution.new_end_date, self.config.max_range_days
            )
            return [replace(
                target,
                start_date=resolution.new_start_date,
                end_date=resolution.new_end_date,
            )]

        if kind == ResolutionKind.REDUCE_HOURS:
            hours = resolution.new_allocated_hours
            if hours is None or hours <= 0:
                raise ValidationError(
                    "Reduce hours requires new_allocated_hours greater than 0",
                    field="new_allocated_hours",
                )
            return [replace(target, allocated_hours=hours)]

        if kind == ResolutionKind.REASSIGN:
            new_employee_id = (resolution.new_employee_id or "").strip()
            if not new_employee_id:
                raise ValidationError(
                    "Reassign requires new_employee_id", field="new_employee_id"
                )
            if new_employee_id == target.employee_id:
                raise ValidationError(
                    "Allocation is already assigned to this employee",
                    field="new_employee_id",
                )
            if self.store.get_employee(new_employee_id) is None:
                raise NotFoundError("Employee", new_employee_id)
            return [replace(target, employee_id=new_employee_id)]

        if kind == ResolutionKind.SPLIT_ALLOCATION:
            return self._split(target, resolution)

        raise ValidationError(f"Unsupported resolution kind: {kind}", field="kind")

    def _split(self, target: Allocation, resolution: ConflictResolution) -> List[Allocation]:
        split_date = resolution.split_date
        if split_date is None:
            raise ValidationError("Split requires split_date", field="split_date")
        if not target.start_date < split_date < target.end_date:
            raise ValidationError(
                f"Split date must fall strictly between {target.start_date.isoformat()} "
                f"and {target.end_date.isoformat()}",
                field="split_date",
            )

        first_days = (split_date - target.start_date).days
        first_hours = target.allocated_hours * first_days / target.day_count
        first = replace(
            target,
            id=str(uuid.uuid4()),
            end_date=split_date - timedelta(days=1),
            allocated_hours=first_hours,
            version=0,
        )
        second = replace(
            target,
            id=str(uuid.uuid4()),
            start_date=split_date,
            # remainder keeps the total exact
            allocated_hours=target.allocated_hours - first_hours,
            version=0,
        )
        return [replace(target, is_active=False), first, second]

    def _recheck(self, plan: List[Allocation]) -> List[Conflict]:
        """Run overlap and capacity checks on the state the plan would produce."""
        changed_ids = {a.id for a in plan}
        by_employee: Dict[str, List[Allocation]] = defaultdict(list)
        for allocation in plan:
            if allocation.is_active:
                by_employee[allocation.employee_id].append(allocation)

        remaining: Dict[str, Conflict] = {}
        for employee_id, changes in by_employee.items():
            current = self.store.find_active_allocations_for_employee(employee_id)
            projected = [a for a in current if a.id not in changed_ids] + changes
            acknowledged = self.store.find_acknowledged_conflict_ids(employee_id)

            for allocation in changes:
                calendar = self.capacity.capacity_calendar(
                    employee_id, allocation.start_date, allocation.end_date
                )
                for conflict in self.detector.for_candidate(
                    employee_id,
                    allocation.start_date,
                    allocation.end_date,
                    projected,
                    calendar,
                    subject_id=allocation.id,
                    allocated_hours=allocation.allocated_hours,
                    acknowledged_ids=acknowledged,
                ):
                    remaining.setdefault(conflict.id, conflict)
        return list(remaining.values())

    @staticmethod
    def _failed(conflict: Conflict, kind: ResolutionKind, error: str) -> ResolutionOutcome:
        return ResolutionOutcome(
            success=False,
            status=ResolutionStatus.FAILED,
            conflict_id=conflict.id,
            kind=kind,
            error=error,
        )
