"""
StaffPlan - Allocation Conflict & Capacity Engine

This package contains the staffing engine and its adapters:
- engine: interval math, overlap detection, capacity validation,
  conflict detection/resolution and utilization roll-ups
- storage: the persistence collaborator contract and its SQLAlchemy store
- api: thin FastAPI adapter over the engine
- platform: cross-cutting concerns (configuration, logging)
"""

__version__ = "0.1.0"
