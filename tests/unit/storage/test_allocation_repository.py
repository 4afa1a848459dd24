import pytest
from dataclasses import replace
from datetime import date
from unittest.mock import MagicMock

from sqlalchemy.exc import IntegrityError, OperationalError

from staffplan.engine.errors import ConcurrencyConflictError
from staffplan.engine.models import Allocation, Employee
from staffplan.storage.repositories.allocation_repository import SqlAllocationStore


def allocation(**overrides):
    fields = dict(
        employee_id="E1",
        project_id="P1",
        start_date=date(2024, 1, 1),
        end_date=date(2024, 1, 31),
        allocated_hours=120.0,
        role="Developer",
    )
    fields.update(overrides)
    return Allocation(**fields)


def test_insert_assigns_id_and_version(store):
    saved = store.write_allocation(allocation(notes="kickoff"))

    assert saved.id is not None
    assert saved.version == 1
    fetched = store.get_allocation(saved.id)
    assert fetched == saved
    assert fetched.notes == "kickoff"
    assert fetched.hourly_rate is None


def test_update_bumps_version(store):
    saved = store.write_allocation(allocation())
    updated = store.write_allocation(replace(saved, allocated_hours=60.0))

    assert updated.version == 2
    assert store.get_allocation(saved.id).allocated_hours == 60.0


def test_stale_version_is_rejected(store):
    saved = store.write_allocation(allocation())
    store.write_allocation(replace(saved, allocated_hours=60.0))

    with pytest.raises(ConcurrencyConflictError):
        store.write_allocation(replace(saved, allocated_hours=90.0))
    assert store.get_allocation(saved.id).allocated_hours == 60.0


def test_active_allocations_exclude_soft_deleted(store):
    kept = store.write_allocation(allocation(id="a1"))
    removed = store.write_allocation(allocation(id="a2", start_date=date(2024, 2, 1), end_date=date(2024, 2, 2)))
    store.write_allocation(replace(removed, is_active=False))

    assert store.find_active_allocations_for_employee("E1") == [kept]
    assert store.find_active_allocations_for_employee("E2") == []


def test_revision_compare_and_set(store):
    assert store.get_employee_revision("E1") == 0
    store.write_allocation(allocation(id="a1"), expected_revision=0)
    assert store.get_employee_revision("E1") == 1

    with pytest.raises(ConcurrencyConflictError):
        store.write_allocation(allocation(id="a2"), expected_revision=0)
    assert store.get_allocation("a2") is None
    assert store.get_employee_revision("E1") == 1


def test_batch_is_atomic(store):
    first = store.write_allocation(allocation(id="a1"))
    stale = replace(first, version=7)

    with pytest.raises(ConcurrencyConflictError):
        store.write_allocations([allocation(id="a2"), stale])
    assert store.get_allocation("a2") is None


def test_reassignment_bumps_both_employees(store):
    saved = store.write_allocation(allocation(id="a1"))
    store.write_allocation(replace(saved, employee_id="E2"))

    assert store.get_employee_revision("E1") == 2
    assert store.get_employee_revision("E2") == 1


def test_capacity_overrides(store):
    store.set_capacity_override("E1", date(2024, 12, 25), 0.0)
    store.set_capacity_override("E1", date(2024, 12, 26), 4.0)
    store.set_capacity_override("E1", date(2024, 12, 26), 2.0)

    assert store.find_daily_capacity_override("E1", date(2024, 12, 25)) == 0.0
    assert store.find_daily_capacity_override("E1", date(2024, 12, 27)) is None
    assert store.find_daily_capacity_overrides("E1", date(2024, 12, 20), date(2024, 12, 31)) == {
        date(2024, 12, 25): 0.0,
        date(2024, 12, 26): 2.0,
    }


def test_employees(store):
    assert store.get_employee("E1").name == "Ada Lovelace"
    assert store.get_employee("E404") is None
    assert [e.id for e in store.list_employees()] == ["E1", "E2", "E3"]
    assert [e.id for e in store.list_employees(department="Design")] == ["E3"]

    store.save_employee(Employee(id="E3", name="Dieter Rams", department="Industrial Design"))
    assert store.list_employees(department="Design") == []


def test_acknowledgements_are_idempotent(store):
    store.acknowledge_conflict("c1", "E1", reason="expected")
    store.acknowledge_conflict("c1", "E1", reason="still expected", acknowledged_by="pm")
    store.acknowledge_conflict("c2", "E2")

    assert store.find_acknowledged_conflict_ids("E1") == {"c1"}
    assert store.find_acknowledged_conflict_ids("E3") == set()


class TestErrorTranslation:
    """Driver errors raised inside the write transaction."""

    def _failing_store(self, error):
        adapter = MagicMock()
        adapter.get_session.return_value.__enter__.return_value.get.side_effect = error
        return SqlAllocationStore(adapter)

    def test_integrity_error(self):
        store = self._failing_store(IntegrityError("INSERT", {}, Exception("duplicate key")))
        with pytest.raises(ConcurrencyConflictError):
            store.write_allocation(allocation(id="a1"))

    def test_serialization_failure(self):
        orig = Exception("could not serialize access")
        orig.pgcode = "40001"
        store = self._failing_store(OperationalError("UPDATE", {}, orig))
        with pytest.raises(ConcurrencyConflictError) as exc_info:
            store.write_allocation(allocation(id="a1"))
        assert exc_info.value.retryable is True

    def test_other_driver_errors_propagate(self):
        orig = Exception("connection reset")
        orig.pgcode = "08006"
        store = self._failing_store(OperationalError("SELECT", {}, orig))
        with pytest.raises(OperationalError):
            store.write_allocation(allocation(id="a1"))
