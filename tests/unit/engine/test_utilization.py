"""
Unit tests for utilization roll-ups.
"""

from datetime import date

import pytest

from staffplan.engine.errors import ValidationError
from staffplan.engine.models import Employee, UtilizationBand

JAN_1, JAN_31 = date(2024, 1, 1), date(2024, 1, 31)


@pytest.fixture
def staffed(seed):
    seed("E1", JAN_1, JAN_31, 30)
    seed("E3", JAN_1, JAN_31, 50, project_id="P3")


def test_summary_bands(engine, staffed):
    summary = engine.get_utilization_summary(JAN_1, JAN_31)

    assert summary.total_employees == 3
    assert summary.overutilized_count == 1
    assert summary.underutilized_count == 1
    assert summary.balanced_count == 1
    assert summary.total_allocations == 2
    assert summary.average_utilization == pytest.approx((0.75 + 0.0 + 1.25) / 3)
    assert summary.conflicts_count == 31

    bands = {row.employee_id: row.band for row in summary.employees}
    assert bands == {
        "E1": UtilizationBand.BALANCED,
        "E2": UtilizationBand.UNDERUTILIZED,
        "E3": UtilizationBand.OVERUTILIZED,
    }


def test_department_filter(engine, staffed):
    summary = engine.get_utilization_summary(JAN_1, JAN_31, department="Design")

    assert summary.total_employees == 1
    assert summary.employees[0].employee_name == "Dieter Rams"
    assert summary.employees[0].utilization_rate == pytest.approx(1.25)


def test_partial_window_clips_allocations(engine, seed):
    seed("E1", date(2023, 12, 1), JAN_31, 40)
    row = engine.get_utilization_summary(JAN_1, date(2024, 1, 14)).employees[0]

    assert row.allocated_hours == pytest.approx(40.0 * 2)
    assert row.active_allocations == 1


def test_inactive_employees_are_skipped(engine, store):
    store.save_employee(Employee(id="E9", name="Former", department="Design", is_active=False))

    assert engine.get_utilization_summary(JAN_1, JAN_31, department="Design").total_employees == 1


def test_empty_population(engine):
    summary = engine.get_utilization_summary(JAN_1, JAN_31, department="Finance")
    assert summary.total_employees == 0
    assert summary.average_utilization == 0.0


def test_range_is_validated(engine):
    with pytest.raises(ValidationError):
        engine.get_utilization_summary(JAN_31, JAN_1)
