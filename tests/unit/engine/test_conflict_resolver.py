"""
Unit tests for conflict resolution against an in-memory SQLite store.
"""

from datetime import date

import pytest

from staffplan.engine.errors import NotFoundError, ValidationError
from staffplan.engine.models import (
    ConflictKind,
    ConflictResolution,
    ConflictSeverity,
    ResolutionKind,
    ResolutionStatus,
)

from conftest import weekly


@pytest.fixture
def booked(seed):
    """E1 at 30h/week in January plus 20h/week from mid-January: over capacity Jan 15-31."""
    january = seed("E1", date(2024, 1, 1), date(2024, 1, 31), 30, project_id="P1", allocation_id="a")
    mid = seed("E1", date(2024, 1, 15), date(2024, 2, 15), 20, project_id="P2", allocation_id="b")
    return january, mid


def overlap_conflict(engine):
    return next(c for c in engine.detect_conflicts("E1") if c.kind == ConflictKind.OVERLAP)


class TestResolve:

    def test_reschedule_clears_conflicts(self, engine, store, booked):
        conflict = overlap_conflict(engine)
        suggestion = conflict.suggested_resolution

        outcome = engine.resolve_conflict(ConflictResolution(
            conflict=conflict,
            kind=ResolutionKind.RESCHEDULE,
            new_start_date=suggestion.new_start_date,
            new_end_date=suggestion.new_end_date,
        ))

        assert outcome.success is True
        assert outcome.status == ResolutionStatus.RESOLVED
        assert outcome.remaining_conflicts == []
        moved = store.get_allocation("b")
        assert (moved.start_date, moved.end_date) == (date(2024, 2, 1), date(2024, 3, 3))
        assert moved.version == booked[1].version + 1
        assert engine.detect_conflicts("E1") == []

    def test_reduce_hours_leaves_low_overlap(self, engine, store, seed):
        seed("E1", date(2024, 1, 1), date(2024, 1, 31), 20, allocation_id="a")
        seed("E1", date(2024, 1, 15), date(2024, 2, 15), 30, project_id="P2", allocation_id="b")
        capacity = next(c for c in engine.detect_conflicts("E1") if c.kind == ConflictKind.OVER_CAPACITY)

        outcome = engine.resolve_conflict(ConflictResolution(
            conflict=capacity,
            kind=ResolutionKind.REDUCE_HOURS,
            new_allocated_hours=weekly(10, date(2024, 1, 15), date(2024, 2, 15)),
        ))

        assert outcome.success is True
        assert [c.kind for c in outcome.remaining_conflicts] == [ConflictKind.OVERLAP]
        assert outcome.remaining_conflicts[0].severity == ConflictSeverity.LOW

    def test_reassign_to_idle_employee(self, engine, store, booked):
        revision_before = store.get_employee_revision("E2")
        outcome = engine.resolve_conflict(ConflictResolution(
            conflict=overlap_conflict(engine),
            kind=ResolutionKind.REASSIGN,
            new_employee_id="E2",
        ))

        assert outcome.remaining_conflicts == []
        assert store.get_allocation("b").employee_id == "E2"
        assert store.get_employee_revision("E2") == revision_before + 1
        assert engine.detect_conflicts("E1") == []

    def test_reassign_to_unknown_employee_writes_nothing(self, engine, store, booked):
        with pytest.raises(NotFoundError):
            engine.resolve_conflict(ConflictResolution(
                conflict=overlap_conflict(engine),
                kind=ResolutionKind.REASSIGN,
                new_employee_id="E404",
            ))
        assert store.get_allocation("b") == booked[1]

    def test_reassign_to_same_employee_is_rejected(self, engine, booked):
        with pytest.raises(ValidationError) as exc_info:
            engine.resolve_conflict(ConflictResolution(
                conflict=overlap_conflict(engine),
                kind=ResolutionKind.REASSIGN,
                new_employee_id="E1",
            ))
        assert exc_info.value.field == "new_employee_id"

    def test_reschedule_requires_dates(self, engine, booked):
        with pytest.raises(ValidationError):
            engine.resolve_conflict(ConflictResolution(
                conflict=overlap_conflict(engine),
                kind=ResolutionKind.RESCHEDULE,
                new_start_date=date(2024, 3, 1),
            ))

    def test_target_must_belong_to_conflict(self, engine, seed, booked):
        seed("E1", date(2024, 6, 1), date(2024, 6, 30), 10, allocation_id="other")
        with pytest.raises(ValidationError) as exc_info:
            engine.resolve_conflict(ConflictResolution(
                conflict=overlap_conflict(engine),
                kind=ResolutionKind.REDUCE_HOURS,
                new_allocated_hours=1.0,
                allocation_id="other",
            ))
        assert exc_info.value.field == "allocation_id"


class TestSplit:

    def test_split_shares_hours_by_day_count(self, engine, store, booked):
        original = booked[1]
        outcome = engine.resolve_conflict(ConflictResolution(
            conflict=overlap_conflict(engine),
            kind=ResolutionKind.SPLIT_ALLOCATION,
            split_date=date(2024, 2, 1),
        ))

        deactivated, first, second = outcome.applied_allocations
        assert deactivated.id == "b" and deactivated.is_active is False
        assert (first.start_date, first.end_date) == (date(2024, 1, 15), date(2024, 1, 31))
        assert (second.start_date, second.end_date) == (date(2024, 2, 1), date(2024, 2, 15))
        assert first.allocated_hours == pytest.approx(original.allocated_hours * 17 / 32)
        assert first.allocated_hours + second.allocated_hours == pytest.approx(original.allocated_hours)
        # The January piece still collides with allocation "a"
        assert outcome.remaining_conflicts

    def test_revert_restores_original(self, engine, store, booked):
        before = engine.detect_conflicts("E1")
        outcome = engine.resolve_conflict(ConflictResolution(
            conflict=overlap_conflict(engine),
            kind=ResolutionKind.SPLIT_ALLOCATION,
            split_date=date(2024, 2, 1),
        ))

        engine.revert_resolution(outcome)

        active = store.find_active_allocations_for_employee("E1")
        assert sorted(a.id for a in active) == ["a", "b"]
        restored = store.get_allocation("b")
        assert (restored.start_date, restored.end_date) == (date(2024, 1, 15), date(2024, 2, 15))
        assert [c.id for c in engine.detect_conflicts("E1")] == [c.id for c in before]

    @pytest.mark.parametrize("split_date", [date(2024, 1, 15), date(2024, 2, 15), date(2024, 3, 1)])
    def test_split_date_must_be_inside(self, engine, booked, split_date):
        with pytest.raises(ValidationError) as exc_info:
            engine.resolve_conflict(ConflictResolution(
                conflict=overlap_conflict(engine),
                kind=ResolutionKind.SPLIT_ALLOCATION,
                split_date=split_date,
            ))
        assert exc_info.value.field == "split_date"


class TestIgnore:

    def test_ignore_acknowledges_without_changes(self, engine, store, booked):
        conflict = overlap_conflict(engine)
        outcome = engine.resolve_conflict(ConflictResolution(
            conflict=conflict,
            kind=ResolutionKind.IGNORE,
            reason="Planned overtime",
            resolved_by="manager",
        ))

        assert outcome.success is True
        assert outcome.applied_allocations == []
        assert store.get_allocation("b") == booked[1]

        scanned = {c.id: c for c in engine.detect_conflicts("E1")}
        assert scanned[conflict.id].acknowledged is True
        unacknowledged = engine.detect_conflicts("E1", include_acknowledged=False)
        assert conflict.id not in [c.id for c in unacknowledged]


    def test_ignored_capacity_conflict_stays_acknowledged_on_checks(self, engine, booked):
        mid = booked[1]
        capacity = next(c for c in engine.detect_conflicts("E1") if c.kind == ConflictKind.OVER_CAPACITY)
        engine.resolve_conflict(ConflictResolution(conflict=capacity, kind=ResolutionKind.IGNORE))

        report = engine.check_conflicts(
            "E1", mid.start_date, mid.end_date,
            exclude_allocation_id="b", allocated_hours=mid.allocated_hours,
        )
        checked = next(c for c in report.conflicts if c.kind == ConflictKind.OVER_CAPACITY)
        assert checked.id == capacity.id
        assert checked.acknowledged is True

        outcome = engine.resolve_conflict(ConflictResolution(
            conflict=overlap_conflict(engine),
            kind=ResolutionKind.REDUCE_HOURS,
            new_allocated_hours=weekly(15, mid.start_date, mid.end_date),
        ))
        remaining = next(c for c in outcome.remaining_conflicts if c.kind == ConflictKind.OVER_CAPACITY)
        assert remaining.id == capacity.id
        assert remaining.acknowledged is True

class TestAutoResolve:

    def test_reschedules_once_and_fails_stale_suggestions(self, engine, store, booked):
        outcomes = engine.auto_resolve_conflicts("E1")

        assert [o.status for o in outcomes] == [ResolutionStatus.RESOLVED, ResolutionStatus.FAILED]
        assert "already rescheduled" in outcomes[1].error
        assert store.get_allocation("b").start_date == date(2024, 2, 1)
        assert engine.detect_conflicts("E1") == []

    def test_skips_acknowledged_conflicts(self, engine, booked):
        for conflict in engine.detect_conflicts("E1"):
            engine.resolve_conflict(ConflictResolution(conflict=conflict, kind=ResolutionKind.IGNORE))
        assert engine.auto_resolve_conflicts("E1") == []
