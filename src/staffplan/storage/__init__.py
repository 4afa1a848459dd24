"""StaffPlan Storage Layer - SQLAlchemy adapter and the allocation store contract."""

from .base import AllocationStore, StorageAdapter
from .postgres_adapter import PostgresAdapter, PostgresConfig
from .models import (
    AllocationModel,
    CapacityOverrideModel,
    ConflictAcknowledgementModel,
    EmployeeModel,
    EmployeeRevisionModel,
)

__all__ = [
    "AllocationStore",
    "StorageAdapter",
    "PostgresAdapter",
    "PostgresConfig",
    "AllocationModel",
    "CapacityOverrideModel",
    "ConflictAcknowledgementModel",
    "EmployeeModel",
    "EmployeeRevisionModel",
]
