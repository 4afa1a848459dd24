"""
Conflict Detector

Turns overlap and capacity findings into Conflict records.

Conflict Types:
- Overlap (same employee, intersecting date ranges)
- Over capacity (utilization above 100% on one or more days)

Usage:
    detector = ConflictDetector(capacity_validator)

    # Check a candidate range before writing it
    conflicts = detector.for_candidate(employee_id, start, end, siblings, calendar,
                                       subject_id=allocation_id, allocated_hours=hours)

    # Scan every active allocation of an employee
    conflicts = detector.for_employee(employee_id, allocations, calendar)
"""

import uuid
from dataclasses import replace
from datetime import date, timedelta
from typing import Collection, Iterable, List, Optional, Sequence, Tuple

from staffplan.platform.logging import get_logger

from .capacity_validator import CapacityCalendar, CapacityValidator, daily_breakdown
from .intervals import consecutive_windows, day_count, days_in_range, overlap_window, overlaps
from .models import (
    Allocation,
    Conflict,
    ConflictKind,
    ConflictSeverity,
    DailyCapacity,
    ResolutionKind,
    SuggestedResolution,
)
from .overlap_detector import OverlapDetector

logger = get_logger(__name__)

_CONFLICT_NAMESPACE = uuid.UUID("5b0f2d8e-7c1a-4f3b-9d6e-2a8c4e1f7b90")


def conflict_id(
    kind: ConflictKind,
    employee_id: str,
    allocation_ids: Iterable[str],
    qualifier: str = "",
) -> str:
    """Stable id: the same conflict found twice gets the same id."""
    key = "|".join([kind.value, employee_id, ",".join(sorted(allocation_ids)), qualifier])
    return str(uuid.uuid5(_CONFLICT_NAMESPACE, key))


def _run_key(window: Tuple[date, date], qualifier: str = "") -> str:
    # Same run of over-capacity days, same id, on scans and candidate checks
    start, end = window
    return f"{qualifier}run:{start.isoformat()}:{end.isoformat()}"


def _peak(days: Sequence[DailyCapacity]) -> DailyCapacity:
    return max(days, key=lambda day: day.utilization_rate)


class ConflictDetector:
    """
    Detects overlap and over-capacity conflicts for one employee.

    The detector is pure: callers fetch allocations, capacity calendars and
    acknowledgements, so the same code serves live checks and the projected
    state of a pending resolution.
    """

    def __init__(self, capacity_validator: CapacityValidator):
        self.capacity = capacity_validator

    # ------------------------------------------------------------------
    # Candidate checks
    # ------------------------------------------------------------------

    def for_candidate(
        self,
        employee_id: str,
        start: date,
        end: date,
        siblings: Iterable[Allocation],
        calendar: CapacityCalendar,
        subject_id: Optional[str] = None,
        allocated_hours: Optional[float] = None,
        acknowledged_ids: Collection[str] = (),
    ) -> List[Conflict]:
        """
        Conflicts a candidate range would have with the employee's allocations.

        Args:
            employee_id: Employee the candidate belongs to
            start: Candidate start (inclusive)
            end: Candidate end (inclusive)
            siblings: Active allocations of the employee
            calendar: Available hours per day
            subject_id: Id of the allocation being checked, when persisted
            allocated_hours: Candidate hours; without them only existing load
                grades the overlaps and no capacity conflict is produced
            acknowledged_ids: Conflict ids previously marked as ignored

        Returns:
            Overlap conflicts ordered like the overlapping allocations, then
            one capacity conflict per run of consecutive over-capacity days
        """
        overlapping = OverlapDetector.overlapping(siblings, start, end, subject_id)

        candidate = None
        if allocated_hours is not None:
            candidate = Allocation(
                employee_id=employee_id,
                project_id="",
                start_date=start,
                end_date=end,
                allocated_hours=allocated_hours,
                id=subject_id,
            )
        daily = daily_breakdown(start, end, overlapping, calendar, candidate)
        by_date = {day.date: day for day in daily}
        qualifier = "" if subject_id else f"candidate:{start.isoformat()}:{end.isoformat()}"

        conflicts = []
        for other in overlapping:
            window_start, window_end = overlap_window(start, end, other.start_date, other.end_date)
            peak = _peak([by_date[day] for day in days_in_range(window_start, window_end)])
            conflicts.append(self._overlap_conflict(
                employee_id, subject_id, (start, end), other,
                (window_start, window_end), peak, qualifier,
            ))

        if candidate is not None:
            violation_days = [day.date for day in daily if day.is_over_capacity]
            for window in consecutive_windows(violation_days):
                participants = [
                    a for a in overlapping if overlaps(a.start_date, a.end_date, *window)
                ]
                conflicts.append(self._capacity_conflict(
                    employee_id,
                    subject=candidate,
                    participants=participants,
                    violations=[by_date[day] for day in days_in_range(*window)],
                    qualifier=_run_key(window, qualifier),
                ))

        return self._mark_acknowledged(conflicts, acknowledged_ids)

    def suggestions(
        self,
        start: date,
        end: date,
        overlapping: Sequence[Allocation],
    ) -> List[str]:
        """Human-readable hints for a candidate range, most general first."""
        if not overlapping:
            return []

        total_daily = sum(a.daily_hours for a in overlapping)
        suggestions = [
            f"Found {len(overlapping)} conflicting allocation(s) totaling "
            f"{total_daily:.2f}h/day"
        ]
        for other in overlapping:
            window_start, window_end = overlap_window(start, end, other.start_date, other.end_date)
            suggestions.append(
                f'Conflict with project "{other.project_id}" '
                f"({other.start_date.isoformat()} to {other.end_date.isoformat()}, "
                f"{day_count(window_start, window_end)} days overlap, "
                f"{other.daily_hours:.2f}h/day)"
            )
        latest_end = max(a.end_date for a in overlapping)
        suggestions.append(
            f"Consider starting after {latest_end.isoformat()} "
            f"(on or after {(latest_end + timedelta(days=1)).isoformat()})"
        )
        return suggestions

    # ------------------------------------------------------------------
    # Full scans
    # ------------------------------------------------------------------

    def for_employee(
        self,
        employee_id: str,
        allocations: Iterable[Allocation],
        calendar: CapacityCalendar,
        acknowledged_ids: Collection[str] = (),
    ) -> List[Conflict]:
        """
        Every conflict among an employee's active allocations.

        Each overlapping pair yields one overlap conflict whose subject is the
        later-starting allocation. Each maximal run of over-capacity days
        yields one capacity conflict whose subject is the latest-starting
        allocation active in that run.
        """
        active = [a for a in allocations if a.is_active]
        if not active:
            return []

        span_start = min(a.start_date for a in active)
        span_end = max(a.end_date for a in active)
        by_date = {
            day.date: day
            for day in daily_breakdown(span_start, span_end, active, calendar)
        }

        conflicts = []
        for earlier, later in OverlapDetector.overlap_pairs(active):
            window = overlap_window(
                earlier.start_date, earlier.end_date, later.start_date, later.end_date
            )
            peak = _peak([by_date[day] for day in days_in_range(*window)])
            conflicts.append(self._overlap_conflict(
                employee_id, later.id, (later.start_date, later.end_date),
                earlier, window, peak,
            ))

        violation_days = [day for day in by_date if by_date[day].is_over_capacity]
        for window_start, window_end in consecutive_windows(violation_days):
            participants = sorted(
                (
                    a for a in active
                    if overlaps(a.start_date, a.end_date, window_start, window_end)
                ),
                key=lambda a: (a.start_date, a.id or ""),
            )
            subject = participants[-1]
            conflicts.append(self._capacity_conflict(
                employee_id,
                subject=subject,
                participants=participants[:-1],
                violations=[by_date[day] for day in days_in_range(window_start, window_end)],
                qualifier=_run_key((window_start, window_end)),
            ))

        logger.info(
            "Conflict scan complete",
            employee_id=employee_id,
            allocations=len(active),
            conflicts=len(conflicts),
        )
        return self._mark_acknowledged(conflicts, acknowledged_ids)

    # ------------------------------------------------------------------
    # Builders
    # ------------------------------------------------------------------

    def _overlap_conflict(
        self,
        employee_id: str,
        subject_id: Optional[str],
        subject_range: Tuple[date, date],
        other: Allocation,
        window: Tuple[date, date],
        peak: DailyCapacity,
        qualifier: str = "",
    ) -> Conflict:
        window_start, window_end = window
        rate = peak.utilization_rate
        severity = self.capacity.classify(rate) or ConflictSeverity.LOW
        allocation_ids = tuple(i for i in (subject_id, other.id) if i)

        suggestion = self._reschedule_after(subject_range, other.end_date)
        return Conflict(
            id=conflict_id(ConflictKind.OVERLAP, employee_id, allocation_ids, qualifier),
            kind=ConflictKind.OVERLAP,
            severity=severity,
            employee_id=employee_id,
            allocation_ids=allocation_ids,
            description=(
                f"Overlaps allocation {other.id} on project {other.project_id} "
                f"from {window_start.isoformat()} to {window_end.isoformat()} "
                f"({day_count(window_start, window_end)} days, peak {rate:.0%} of capacity)"
            ),
            window_start=window_start,
            window_end=window_end,
            utilization_rate=rate,
            subject_allocation_id=subject_id,
            can_auto_resolve=subject_id is not None,
            suggested_resolution=suggestion,
        )

    def _capacity_conflict(
        self,
        employee_id: str,
        subject: Allocation,
        participants: Sequence[Allocation],
        violations: Sequence[DailyCapacity],
        qualifier: str = "",
    ) -> Conflict:
        peak = _peak(violations)
        rate = peak.utilization_rate
        window_start = violations[0].date
        window_end = violations[-1].date
        allocation_ids = tuple(
            i for i in [subject.id] + [p.id for p in participants] if i
        )

        if participants:
            suggestion = self._reschedule_after(
                (subject.start_date, subject.end_date),
                max(p.end_date for p in participants),
            )
        else:
            fitted = int(subject.allocated_hours / rate * 100) / 100 if rate > 0 else 0.0
            suggestion = SuggestedResolution(
                kind=ResolutionKind.REDUCE_HOURS,
                description=f"Reduce allocated hours to {fitted:.2f} to fit capacity",
                new_allocated_hours=fitted if fitted > 0 else None,
            )

        return Conflict(
            id=conflict_id(ConflictKind.OVER_CAPACITY, employee_id, allocation_ids, qualifier),
            kind=ConflictKind.OVER_CAPACITY,
            severity=self.capacity.classify(rate) or ConflictSeverity.MEDIUM,
            employee_id=employee_id,
            allocation_ids=allocation_ids,
            description=(
                f"Over capacity on {len(violations)} day(s) between "
                f"{window_start.isoformat()} and {window_end.isoformat()}: peak "
                f"{rate:.0%} on {peak.date.isoformat()} "
                f"({peak.allocated_hours:.2f}h of {peak.available_hours:.2f}h)"
            ),
            window_start=window_start,
            window_end=window_end,
            utilization_rate=rate,
            subject_allocation_id=subject.id,
            violations=tuple(violations),
            can_auto_resolve=(
                subject.id is not None
                and suggestion.kind == ResolutionKind.RESCHEDULE
            ),
            suggested_resolution=suggestion,
        )

    @staticmethod
    def _reschedule_after(
        subject_range: Tuple[date, date], blocked_until: date
    ) -> SuggestedResolution:
        start, end = subject_range
        new_start = blocked_until + timedelta(days=1)
        new_end = new_start + (end - start)
        return SuggestedResolution(
            kind=ResolutionKind.RESCHEDULE,
            description=(
                f"Reschedule to {new_start.isoformat()} - {new_end.isoformat()}"
            ),
            new_start_date=new_start,
            new_end_date=new_end,
        )

    @staticmethod
    def _mark_acknowledged(
        conflicts: List[Conflict], acknowledged_ids: Collection[str]
    ) -> List[Conflict]:
        if not acknowledged_ids:
            return conflicts
        return [
            replace(c, acknowledged=True) if c.id in acknowledged_ids else c
            for c in conflicts
        ]
