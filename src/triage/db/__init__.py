"""Database connection management with connection pooling."""

import logging
from contextlib import contextmanager
from typing import Generator, Optional

from psycopg import Connection
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from triage.config import settings

logger = logging.getLogger(__name__)


class DatabaseManager:
    """Manages PostgreSQL connection pool."""

    def __init__(self, conninfo: Optional[str] = None):
        self._conninfo = conninfo
        self._pool: Optional[ConnectionPool] = None

    @property
    def conninfo(self) -> str:
        return self._conninfo or settings.database_url

    def initialize(self, min_size: Optional[int] = None, max_size: int = 10):
        """Initialize connection pool."""
        if self._pool is not None:
            logger.warning("Connection pool already initialized")
            return

        min_size = min(settings.db_pool_min_size if min_size is None else min_size, max_size)
        logger.info("Initializing database connection pool (min=%d, max=%d)", min_size, max_size)

        self._pool = ConnectionPool(
            conninfo=self.conninfo,
            min_size=min_size,
            max_size=max_size,
            timeout=30,
            kwargs={
                "row_factory": dict_row,  # Return rows as dictionaries
                "autocommit": False,
            },
            open=True,
        )

        logger.info("Database connection pool initialized successfully")

    def close(self):
        """Close connection pool."""
        if self._pool:
            logger.info("Closing database connection pool")
            self._pool.close()
            self._pool = None

    @contextmanager
    def get_connection(self) -> Generator[Connection, None, None]:
        """Get a connection from the pool (context manager)."""
        if self._pool is None:
            self.initialize()

        with self._pool.connection() as conn:
            yield conn


# Global database manager instance
db = DatabaseManager()
