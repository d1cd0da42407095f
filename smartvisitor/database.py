# =======================================================================================
# smartvisitor/database.py - Database Management
# =======================================================================================
import logging
from contextlib import contextmanager
from typing import Optional, Iterator

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.pool import QueuePool

from .config import config
from .models.tables import metadata

log = logging.getLogger("smartvisitor.database")


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class DatabaseManager:
    """Manages database connections and transactions."""

    def __init__(self, url: Optional[str] = None):
        self.url = url or config.DB_URL
        if self.url.startswith("sqlite"):
            # local runs and tests; the threadpool shares connections across threads
            self.engine: Engine = create_engine(
                self.url,
                connect_args={"check_same_thread": False},
                future=True,
            )
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)
        else:
            self.engine = create_engine(
                self.url,
                poolclass=QueuePool,
                pool_size=config.DB_POOL_SIZE,
                max_overflow=config.DB_MAX_OVERFLOW,
                pool_pre_ping=True,
                isolation_level="READ COMMITTED",
                future=True,
            )

    @contextmanager
    def get_connection(self) -> Iterator[Connection]:
        """Get a database connection inside a transaction, committed on exit."""
        with self.engine.begin() as conn:
            yield conn

    def fetch_one(self, query: str, params: dict = None):
        """Fetch a single result."""
        with self.get_connection() as conn:
            result = conn.execute(text(query), params or {})
            return result.mappings().first()

    def create_schema(self) -> None:
        """Create any missing tables."""
        metadata.create_all(self.engine)
        log.info("Database schema ready (%s)", self.engine.url.render_as_string(hide_password=True))

    def dispose(self) -> None:
        self.engine.dispose()
