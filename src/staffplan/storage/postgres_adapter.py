from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from typing import Generator, Optional
from contextlib import contextmanager
import logging

from pydantic import SecretStr
from pydantic_settings import BaseSettings
from .base import StorageAdapter
from .models import Base

logger = logging.getLogger(__name__)

class PostgresConfig(BaseSettings):
    """Configuration for Postgres Storage."""
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: SecretStr = "postgres"
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "staffplan"
    POSTGRES_POOL_SIZE: int = 5
    POSTGRES_MAX_OVERFLOW: int = 10

    model_config = {"env_file": ".env", "extra": "ignore"}

    @property
    def connection_string(self) -> str:
        return f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD.get_secret_value()}@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

class PostgresAdapter(StorageAdapter):
    """
    SQLAlchemy-based Postgres adapter.

    Transactions run at SERIALIZABLE isolation so concurrent allocation writes
    for one employee fail with SQLSTATE 40001 instead of interleaving.
    ``url`` overrides the Postgres connection string; SQLite URLs are used by
    tests and local development.
    """

    def __init__(self, config: PostgresConfig, url: Optional[str] = None):
        self.config = config
        self.url = url or config.connection_string
        self._engine = None
        self._session_factory = None

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")

    def connect(self) -> None:
        if self._engine:
            return

        try:
            if self.is_sqlite:
                logger.info(f"Connecting to SQLite at {self.url}")
                # One shared connection so in-memory databases survive across sessions
                self._engine = create_engine(
                    self.url,
                    connect_args={"check_same_thread": False},
                    poolclass=StaticPool,
                )
            else:
                logger.info(f"Connecting to Postgres at {self.config.POSTGRES_HOST}:{self.config.POSTGRES_PORT}")
                self._engine = create_engine(
                    self.url,
                    pool_size=self.config.POSTGRES_POOL_SIZE,
                    max_overflow=self.config.POSTGRES_MAX_OVERFLOW,
                    pool_pre_ping=True,
                    isolation_level="SERIALIZABLE",
                )

            self._session_factory = sessionmaker(bind=self._engine, expire_on_commit=False)
            logger.info("Database connection pool established.")

        except Exception as e:
            logger.error(f"Failed to connect to database: {e}")
            raise

    def close(self) -> None:
        if self._engine:
            self._engine.dispose()
            self._engine = None
            self._session_factory = None
            logger.info("Database connection pool closed.")

    def health_check(self) -> bool:
        if not self._engine:
            return False
        try:
            with self._engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except Exception:
            logger.exception("database unhealthy")
            return False

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """
        Provide a transactional scope around a series of operations.
        """
        if not self._session_factory:
            raise ConnectionError("Database is not connected. Call connect() first.")

        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def create_schema(self) -> None:
        """Create missing tables. Production schemas are managed outside the service."""
        if not self._engine:
            raise ConnectionError("Database is not connected. Call connect() first.")
        Base.metadata.create_all(self._engine)
        logger.info("Database schema ensured.")
