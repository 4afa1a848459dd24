"""
Unit tests for the Overlap Detector.
"""

from datetime import date
from unittest.mock import MagicMock

from staffplan.engine.models import Allocation
from staffplan.engine.overlap_detector import OverlapDetector
from staffplan.storage.base import AllocationStore


def allocation(allocation_id, start, end, active=True):
    return Allocation(
        id=allocation_id,
        employee_id="E1",
        project_id=f"P-{allocation_id}",
        start_date=start,
        end_date=end,
        allocated_hours=10.0,
        is_active=active,
    )


JANUARY = allocation("a", date(2024, 1, 1), date(2024, 1, 31))
MID_JAN = allocation("b", date(2024, 1, 15), date(2024, 2, 15))
FEBRUARY = allocation("c", date(2024, 2, 1), date(2024, 2, 29))


class TestFindOverlaps:

    def setup_method(self):
        self.store = MagicMock(spec=AllocationStore)
        self.store.find_active_allocations_for_employee.return_value = [FEBRUARY, MID_JAN, JANUARY]
        self.detector = OverlapDetector(self.store)

    def test_orders_by_start_date(self):
        found = self.detector.find_overlaps("E1", date(2024, 1, 20), date(2024, 2, 5))
        assert [a.id for a in found] == ["a", "b", "c"]
        self.store.find_active_allocations_for_employee.assert_called_once_with("E1")

    def test_excludes_edited_allocation(self):
        found = self.detector.find_overlaps(
            "E1", date(2024, 1, 20), date(2024, 2, 5), exclude_allocation_id="b"
        )
        assert [a.id for a in found] == ["a", "c"]

    def test_no_overlap(self):
        assert self.detector.find_overlaps("E1", date(2024, 3, 1), date(2024, 3, 31)) == []


def test_inactive_allocations_are_ignored():
    inactive = allocation("x", date(2024, 1, 1), date(2024, 1, 31), active=False)
    assert OverlapDetector.overlapping([inactive], date(2024, 1, 1), date(2024, 1, 2)) == []


def test_overlap_pairs_put_later_start_second():
    pairs = OverlapDetector.overlap_pairs([FEBRUARY, MID_JAN, JANUARY])
    assert [(e.id, l.id) for e, l in pairs] == [("a", "b"), ("b", "c")]
