from staffplan.platform.config import settings
from staffplan.storage.postgres_adapter import PostgresAdapter, PostgresConfig

# Singletons
_postgres_adapter: PostgresAdapter | None = None

def get_postgres_adapter() -> PostgresAdapter:
    global _postgres_adapter
    if not _postgres_adapter:
        config = PostgresConfig()
        _postgres_adapter = PostgresAdapter(config, url=settings.DATABASE_URL)
    return _postgres_adapter

def close_postgres_adapter():
    global _postgres_adapter
    if _postgres_adapter:
        _postgres_adapter.close()
        _postgres_adapter = None
