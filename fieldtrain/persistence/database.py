"""
Database management and connection handling.
"""

import logging
import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

from ..core.exceptions import PersistenceError, ConfigurationError


logger = logging.getLogger(__name__)

MEMORY_DATABASE = ":memory:"


class DatabaseManager(ABC):
    """Abstract base class for database management."""

    @abstractmethod
    def execute_query(self, query: str, params: Optional[tuple] = None) -> List[Dict[str, Any]]:
        """Execute a query and return results."""
        pass

    @abstractmethod
    def execute_update(self, query: str, params: Optional[tuple] = None) -> int:
        """Execute an update query and return affected rows."""
        pass

    @abstractmethod
    def execute_transaction(self, queries: List[tuple]) -> bool:
        """Execute multiple queries in a transaction."""
        pass

    @abstractmethod
    def table_exists(self, table_name: str) -> bool:
        """Check if a table exists."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Release database resources."""
        pass


class SQLiteDatabase(DatabaseManager):
    """SQLite database implementation.

    A single connection is shared between threads and serialized with a
    re-entrant lock, which also lets ``:memory:`` databases survive across
    calls.
    """

    def __init__(self, database_path: str = "fieldtrain.db"):
        self._database_path = database_path
        self._lock = threading.RLock()
        try:
            self._conn = sqlite3.connect(database_path, check_same_thread=False)
        except sqlite3.Error as e:
            raise ConfigurationError(f"Cannot open database {database_path}: {e}")
        self._conn.row_factory = sqlite3.Row
        self._initialize_database()
        logger.info("SQLite database ready at %s", database_path)

    @property
    def database_path(self) -> str:
        return self._database_path

    def _initialize_database(self) -> None:
        """Initialize the database with basic schema."""
        with self._get_connection() as conn:
            cursor = conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS entities (
                    id TEXT PRIMARY KEY,
                    type TEXT NOT NULL,
                    data TEXT NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    version INTEGER DEFAULT 1,
                    status TEXT
                )
            """)
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_entities_type ON entities (type)")

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS activity_log (
                    id TEXT PRIMARY KEY,
                    action TEXT NOT NULL,
                    resource_type TEXT NOT NULL,
                    resource_id TEXT,
                    actor_id TEXT,
                    data TEXT NOT NULL,
                    created_at TIMESTAMP NOT NULL
                )
            """)

            conn.commit()

    @contextmanager
    def _get_connection(self):
        """Yield the shared connection, rolling back on failure."""
        with self._lock:
            try:
                yield self._conn
            except sqlite3.Error as e:
                self._conn.rollback()
                raise PersistenceError(f"Database error: {str(e)}")

    def execute_query(self, query: str, params: Optional[tuple] = None) -> List[Dict[str, Any]]:
        """Execute a query and return results."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params or ())
            columns = [description[0] for description in cursor.description]
            return [dict(zip(columns, row)) for row in cursor.fetchall()]

    def execute_update(self, query: str, params: Optional[tuple] = None) -> int:
        """Execute an update query and return affected rows."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params or ())
            conn.commit()
            return cursor.rowcount

    def execute_transaction(self, queries: List[tuple]) -> bool:
        """Execute multiple queries in a transaction."""
        with self._get_connection() as conn:
            try:
                cursor = conn.cursor()
                for query, params in queries:
                    cursor.execute(query, params or ())
                conn.commit()
                return True
            except sqlite3.Error as e:
                conn.rollback()
                raise PersistenceError(f"Transaction failed: {str(e)}")

    def table_exists(self, table_name: str) -> bool:
        """Check if a table exists."""
        query = "SELECT name FROM sqlite_master WHERE type='table' AND name=?"
        return len(self.execute_query(query, (table_name,))) > 0

    def close(self) -> None:
        with self._lock:
            self._conn.close()


class DatabaseFactory:
    """Factory for creating database instances."""

    @staticmethod
    def create_database(database_type: str, **kwargs) -> DatabaseManager:
        """Create a database instance based on type."""
        if database_type.lower() == "sqlite":
            return SQLiteDatabase(**kwargs)
        raise ConfigurationError(f"Unsupported database type: {database_type}")
