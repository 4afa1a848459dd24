from datetime import date
from typing import Dict, List, Mapping, Optional, Sequence, Set
import logging
import uuid

from sqlalchemy import select, update
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from staffplan.engine.errors import ConcurrencyConflictError
from staffplan.engine.models import Allocation, Employee
from staffplan.storage.base import AllocationStore
from staffplan.storage.models import (
    AllocationModel,
    CapacityOverrideModel,
    ConflictAcknowledgementModel,
    EmployeeModel,
    EmployeeRevisionModel,
)
from staffplan.storage.postgres_adapter import PostgresAdapter

logger = logging.getLogger(__name__)

SERIALIZATION_FAILURE = "40001"


class SqlAllocationStore(AllocationStore):
    """AllocationStore backed by SQLAlchemy sessions from a PostgresAdapter."""

    def __init__(self, adapter: PostgresAdapter):
        self.adapter = adapter

    # --- Allocations ---

    def find_active_allocations_for_employee(self, employee_id: str) -> List[Allocation]:
        with self.adapter.get_session() as session:
            stmt = select(AllocationModel).where(
                AllocationModel.employee_id == employee_id,
                AllocationModel.is_active.is_(True),
            ).order_by(AllocationModel.start_date, AllocationModel.id)
            return [self._to_domain(m) for m in session.scalars(stmt).all()]

    def get_allocation(self, allocation_id: str) -> Optional[Allocation]:
        with self.adapter.get_session() as session:
            model = session.get(AllocationModel, allocation_id)
            return self._to_domain(model) if model else None

    def write_allocations(
        self,
        allocations: Sequence[Allocation],
        expected_revisions: Optional[Mapping[str, int]] = None,
    ) -> List[Allocation]:
        """
        Insert or update allocations and bump the revision of every employee
        they touch, all in one transaction.

        Raises ConcurrencyConflictError when an expected revision or row
        version no longer matches, or the database reports a conflicting
        concurrent transaction.
        """
        expected = dict(expected_revisions or {})
        try:
            with self.adapter.get_session() as session:
                existing = {
                    a.id: session.get(AllocationModel, a.id)
                    for a in allocations
                    if a.id is not None
                }

                touched: Set[str] = set(expected)
                for allocation in allocations:
                    touched.add(allocation.employee_id)
                    current = existing.get(allocation.id)
                    if current is not None:
                        touched.add(current.employee_id)
                for employee_id in sorted(touched):
                    self._bump_revision(session, employee_id, expected.get(employee_id))

                models = []
                for allocation in allocations:
                    model = existing.get(allocation.id)
                    if model is None:
                        if allocation.version:
                            raise ConcurrencyConflictError(
                                f"Allocation {allocation.id} no longer exists"
                            )
                        model = AllocationModel(id=allocation.id or str(uuid.uuid4()))
                        session.add(model)
                    elif model.version != allocation.version:
                        raise ConcurrencyConflictError(
                            f"Allocation {allocation.id} was modified concurrently "
                            f"(version {allocation.version}, stored {model.version})"
                        )
                    self._apply(model, allocation)
                    models.append(model)

                session.flush()
                written = [self._to_domain(m) for m in models]
        except (IntegrityError, StaleDataError) as e:
            logger.warning(f"Allocation write rejected: {e}")
            raise ConcurrencyConflictError(
                "Allocations were modified concurrently; retry the operation"
            ) from e
        except DBAPIError as e:
            if getattr(e.orig, "pgcode", None) == SERIALIZATION_FAILURE:
                logger.warning("Serialization failure while writing allocations")
                raise ConcurrencyConflictError(
                    "Concurrent transaction conflict; retry the operation"
                ) from e
            raise

        logger.debug(f"Wrote {len(written)} allocation(s) for employees {sorted(touched)}")
        return written

    def get_employee_revision(self, employee_id: str) -> int:
        with self.adapter.get_session() as session:
            revision = session.scalar(
                select(EmployeeRevisionModel.revision).where(
                    EmployeeRevisionModel.employee_id == employee_id
                )
            )
            return revision or 0

    def _bump_revision(
        self, session: Session, employee_id: str, expected_revision: Optional[int]
    ) -> None:
        stmt = update(EmployeeRevisionModel).where(
            EmployeeRevisionModel.employee_id == employee_id
        )
        if expected_revision is not None:
            stmt = stmt.where(EmployeeRevisionModel.revision == expected_revision)
        result = session.execute(
            stmt.values(revision=EmployeeRevisionModel.revision + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            return

        current = session.scalar(
            select(EmployeeRevisionModel.revision).where(
                EmployeeRevisionModel.employee_id == employee_id
            )
        )
        if current is not None or expected_revision not in (None, 0):
            raise ConcurrencyConflictError(
                f"Allocations of employee {employee_id} changed since they were "
                f"validated (expected revision {expected_revision}, found {current or 0})"
            )
        # First write for this employee; a concurrent first write fails the flush
        session.add(EmployeeRevisionModel(employee_id=employee_id, revision=1))
        session.flush()

    # --- Capacity overrides ---

    def find_daily_capacity_override(self, employee_id: str, day: date) -> Optional[float]:
        with self.adapter.get_session() as session:
            return session.scalar(
                select(CapacityOverrideModel.available_hours).where(
                    CapacityOverrideModel.employee_id == employee_id,
                    CapacityOverrideModel.date == day,
                )
            )

    def find_daily_capacity_overrides(
        self, employee_id: str, start: date, end: date
    ) -> Dict[date, float]:
        with self.adapter.get_session() as session:
            stmt = select(CapacityOverrideModel).where(
                CapacityOverrideModel.employee_id == employee_id,
                CapacityOverrideModel.date >= start,
                CapacityOverrideModel.date <= end,
            )
            return {o.date: o.available_hours for o in session.scalars(stmt).all()}

    def set_capacity_override(self, employee_id: str, day: date, available_hours: float) -> None:
        with self.adapter.get_session() as session:
            override = session.scalar(
                select(CapacityOverrideModel).where(
                    CapacityOverrideModel.employee_id == employee_id,
                    CapacityOverrideModel.date == day,
                )
            )
            if override:
                override.available_hours = available_hours
            else:
                session.add(CapacityOverrideModel(
                    employee_id=employee_id, date=day, available_hours=available_hours
                ))

    # --- Employees ---

    def get_employee(self, employee_id: str) -> Optional[Employee]:
        with self.adapter.get_session() as session:
            model = session.get(EmployeeModel, employee_id)
            return self._employee_to_domain(model) if model else None

    def list_employees(self, department: Optional[str] = None) -> List[Employee]:
        with self.adapter.get_session() as session:
            stmt = select(EmployeeModel).order_by(EmployeeModel.id)
            if department is not None:
                stmt = stmt.where(EmployeeModel.department == department)
            return [self._employee_to_domain(m) for m in session.scalars(stmt).all()]

    def save_employee(self, employee: Employee) -> Employee:
        with self.adapter.get_session() as session:
            model = session.get(EmployeeModel, employee.id)
            if model is None:
                model = EmployeeModel(id=employee.id)
                session.add(model)
            model.name = employee.name
            model.department = employee.department
            model.is_active = employee.is_active
        return employee

    # --- Conflict acknowledgements ---

    def acknowledge_conflict(
        self,
        conflict_id: str,
        employee_id: str,
        reason: Optional[str] = None,
        acknowledged_by: Optional[str] = None,
    ) -> None:
        with self.adapter.get_session() as session:
            ack = session.scalar(
                select(ConflictAcknowledgementModel).where(
                    ConflictAcknowledgementModel.conflict_id == conflict_id,
                    ConflictAcknowledgementModel.employee_id == employee_id,
                )
            )
            if ack:
                ack.reason = reason
                ack.acknowledged_by = acknowledged_by
            else:
                session.add(ConflictAcknowledgementModel(
                    conflict_id=conflict_id,
                    employee_id=employee_id,
                    reason=reason,
                    acknowledged_by=acknowledged_by,
                ))
        logger.info(f"Conflict {conflict_id} acknowledged for employee {employee_id}")

    def find_acknowledged_conflict_ids(self, employee_id: str) -> Set[str]:
        with self.adapter.get_session() as session:
            stmt = select(ConflictAcknowledgementModel.conflict_id).where(
                ConflictAcknowledgementModel.employee_id == employee_id
            )
            return set(session.scalars(stmt).all())

    # --- Mapping ---

    @staticmethod
    def _apply(model: AllocationModel, allocation: Allocation) -> None:
        model.employee_id = allocation.employee_id
        model.project_id = allocation.project_id
        model.start_date = allocation.start_date
        model.end_date = allocation.end_date
        model.allocated_hours = allocation.allocated_hours
        model.role = allocation.role
        model.hourly_rate = allocation.hourly_rate
        model.actual_hours = allocation.actual_hours
        model.notes = allocation.notes
        model.is_active = allocation.is_active

    @staticmethod
    def _to_domain(model: AllocationModel) -> Allocation:
        return Allocation(
            id=model.id,
            employee_id=model.employee_id,
            project_id=model.project_id,
            start_date=model.start_date,
            end_date=model.end_date,
            allocated_hours=model.allocated_hours,
            role=model.role or "",
            hourly_rate=model.hourly_rate,
            actual_hours=model.actual_hours,
            notes=model.notes,
            is_active=model.is_active,
            version=model.version,
        )

    @staticmethod
    def _employee_to_domain(model: EmployeeModel) -> Employee:
        return Employee(
            id=model.id,
            name=model.name,
            department=model.department,
            is_active=model.is_active,
        )
