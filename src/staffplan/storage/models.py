from datetime import date, datetime
from typing import Optional

from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy import (
    String, Integer, Boolean, Text, Float, Date, DateTime, ForeignKey,
    CheckConstraint, Index, UniqueConstraint, func
)
from sqlalchemy.dialects.postgresql import TIMESTAMP

class Base(DeclarativeBase):
    pass

TIMESTAMP_TYPE = DateTime(timezone=True).with_variant(TIMESTAMP(timezone=True), 'postgresql')

# --- Employees ---

class EmployeeModel(Base):
    __tablename__ = "employees"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    department: Mapped[Optional[str]] = mapped_column(String, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, server_default='true')
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP_TYPE, server_default=func.now())

# --- Allocation revision counter (one row per employee) ---

class EmployeeRevisionModel(Base):
    """
    Bumped by every allocation write touching the employee.

    Writers compare the value read before validation with the current one, so
    two concurrent writes for the same employee cannot both succeed.
    """
    __tablename__ = "employee_allocation_revisions"

    employee_id: Mapped[str] = mapped_column(ForeignKey("employees.id"), primary_key=True)
    revision: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP_TYPE, server_default=func.now(), onupdate=func.now())

# --- Allocations ---

class AllocationModel(Base):
    __tablename__ = "resource_allocations"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    employee_id: Mapped[str] = mapped_column(ForeignKey("employees.id"), nullable=False, index=True)
    project_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    allocated_hours: Mapped[float] = mapped_column(Float, nullable=False)
    role: Mapped[str] = mapped_column(String, server_default='')
    hourly_rate: Mapped[Optional[float]] = mapped_column(Float)
    actual_hours: Mapped[Optional[float]] = mapped_column(Float)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, server_default='true', index=True)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP_TYPE, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP_TYPE, server_default=func.now(), onupdate=func.now())
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint('start_date <= end_date', name='ck_allocation_date_order'),
        CheckConstraint('allocated_hours > 0', name='ck_allocation_hours_positive'),
        Index('idx_allocations_employee_active', 'employee_id', 'is_active'),
    )

# --- Capacity overrides ---

class CapacityOverrideModel(Base):
    """Available hours of one employee on one date (leave, part-time, holidays)."""
    __tablename__ = "capacity_overrides"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    employee_id: Mapped[str] = mapped_column(ForeignKey("employees.id"), nullable=False, index=True)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    available_hours: Mapped[float] = mapped_column(Float, nullable=False)

    __table_args__ = (
        UniqueConstraint('employee_id', 'date', name='uq_capacity_override_employee_date'),
        CheckConstraint('available_hours >= 0', name='ck_capacity_override_hours'),
    )

# --- Conflict acknowledgements ---

class ConflictAcknowledgementModel(Base):
    __tablename__ = "conflict_acknowledgements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    conflict_id: Mapped[str] = mapped_column(String, nullable=False)
    employee_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    reason: Mapped[Optional[str]] = mapped_column(Text)
    acknowledged_by: Mapped[Optional[str]] = mapped_column(String)
    acknowledged_at: Mapped[datetime] = mapped_column(TIMESTAMP_TYPE, server_default=func.now())

    __table_args__ = (
        UniqueConstraint('conflict_id', 'employee_id', name='uq_conflict_ack'),
    )
