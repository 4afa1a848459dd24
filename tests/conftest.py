"""
Pytest configuration and shared fixtures.
"""

import os
from datetime import date
from typing import Optional

import pytest

from staffplan.engine.allocation_engine import AllocationEngine
from staffplan.engine.config import EngineConfig
from staffplan.engine.models import Allocation, Employee
from staffplan.storage.postgres_adapter import PostgresAdapter, PostgresConfig
from staffplan.storage.repositories.allocation_repository import SqlAllocationStore

DAILY_CAPACITY = 40.0 / 7.0


def weekly(hours_per_week: float, start: date, end: date) -> float:
    """Total hours for an allocation at ``hours_per_week`` over [start, end]."""
    return hours_per_week / 7.0 * ((end - start).days + 1)


@pytest.fixture(scope="session", autouse=True)
def setup_test_environment() -> None:
    """Set up test environment variables."""
    os.environ.setdefault("APP_ENV", "test")
    os.environ.setdefault("DEBUG", "true")


# Use in-memory SQLite for unit testing without an external database
@pytest.fixture
def adapter():
    adapter = PostgresAdapter(PostgresConfig(), url="sqlite://")
    adapter.connect()
    adapter.create_schema()
    yield adapter
    adapter.close()


@pytest.fixture
def store(adapter) -> SqlAllocationStore:
    store = SqlAllocationStore(adapter)
    store.save_employee(Employee(id="E1", name="Ada Lovelace", department="Engineering"))
    store.save_employee(Employee(id="E2", name="Grace Hopper", department="Engineering"))
    store.save_employee(Employee(id="E3", name="Dieter Rams", department="Design"))
    return store


@pytest.fixture
def engine(store) -> AllocationEngine:
    return AllocationEngine(store, EngineConfig())


@pytest.fixture
def seed(store):
    """Write an allocation straight to the store, bypassing engine checks."""

    def _seed(
        employee_id: str,
        start: date,
        end: date,
        hours_per_week: float,
        project_id: str = "P1",
        allocation_id: Optional[str] = None,
    ) -> Allocation:
        return store.write_allocation(Allocation(
            id=allocation_id,
            employee_id=employee_id,
            project_id=project_id,
            start_date=start,
            end_date=end,
            allocated_hours=weekly(hours_per_week, start, end),
        ))

    return _seed
