from typing import Annotated
from fastapi import Depends

from staffplan.api.database import get_postgres_adapter, close_postgres_adapter
from staffplan.engine.allocation_engine import AllocationEngine
from staffplan.engine.config import EngineConfig
from staffplan.platform.config import settings
from staffplan.storage.base import AllocationStore
from staffplan.storage.repositories.allocation_repository import SqlAllocationStore

# Singletons
_engine_config: EngineConfig | None = None


def get_engine_config() -> EngineConfig:
    global _engine_config
    if not _engine_config:
        _engine_config = EngineConfig.from_settings(settings)
    return _engine_config


def get_allocation_store() -> AllocationStore:
    return SqlAllocationStore(get_postgres_adapter())


def get_allocation_engine(
    store: Annotated[AllocationStore, Depends(get_allocation_store)],
    config: Annotated[EngineConfig, Depends(get_engine_config)],
) -> AllocationEngine:
    return AllocationEngine(store, config)


def init_resources() -> None:
    """Initialize the database pool and, when configured, the schema."""
    adapter = get_postgres_adapter()
    adapter.connect()
    if settings.AUTO_CREATE_SCHEMA:
        adapter.create_schema()
    get_engine_config()


def close_resources() -> None:
    global _engine_config
    close_postgres_adapter()
    _engine_config = None
