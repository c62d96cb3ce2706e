"""
Activity log store implementations.

Every successful state transition is appended as one ActivityEvent; the
log is append-only and read back oldest first.
"""

import json
import logging
import os
import threading
from datetime import datetime
from typing import List, Optional

from ..core.entities import ActivityEvent
from ..core.enums import ActivityStoreType
from ..core.interfaces import ActivityLogStore
from ..core.exceptions import ConfigurationError, PersistenceError
from .database import DatabaseManager


logger = logging.getLogger(__name__)


def _matches(event: ActivityEvent, resource_type: Optional[str], resource_id: Optional[str],
             since: Optional[datetime]) -> bool:
    if resource_type is not None and event.resource_type != resource_type:
        return False
    if resource_id is not None and event.resource_id != resource_id:
        return False
    if since is not None and event.timestamp < since:
        return False
    return True


class InMemoryActivityLogStore(ActivityLogStore):
    """Keeps events in a list; used by tests and the demo."""

    def __init__(self):
        self._events: List[ActivityEvent] = []
        self._lock = threading.RLock()

    def append_event(self, event: ActivityEvent) -> None:
        with self._lock:
            self._events.append(event)

    def get_events(self, resource_type: Optional[str] = None, resource_id: Optional[str] = None,
                   since: Optional[datetime] = None) -> List[ActivityEvent]:
        with self._lock:
            return [e for e in self._events if _matches(e, resource_type, resource_id, since)]

    def count(self) -> int:
        with self._lock:
            return len(self._events)


class FileActivityLogStore(ActivityLogStore):
    """JSON-lines activity log, one event per line."""

    def __init__(self, base_path: str = "activity", file_name: str = "activity.jsonl"):
        self._base_path = base_path
        self._lock = threading.RLock()
        os.makedirs(self._base_path, exist_ok=True)
        self._log_path = os.path.join(self._base_path, file_name)

    @property
    def log_path(self) -> str:
        return self._log_path

    def append_event(self, event: ActivityEvent) -> None:
        """Append an event to the log file."""
        with self._lock:
            try:
                with open(self._log_path, "a", encoding="utf-8") as f:
                    f.write(json.dumps(event.to_dict()) + "\n")
            except OSError as e:
                raise PersistenceError(f"Failed to append activity event: {str(e)}")

    def get_events(self, resource_type: Optional[str] = None, resource_id: Optional[str] = None,
                   since: Optional[datetime] = None) -> List[ActivityEvent]:
        """Read events back, skipping malformed lines."""
        with self._lock:
            if not os.path.exists(self._log_path):
                return []

            events = []
            try:
                with open(self._log_path, "r", encoding="utf-8") as f:
                    for line_num, line in enumerate(f, 1):
                        if not line.strip():
                            continue
                        try:
                            event = ActivityEvent.from_dict(json.loads(line))
                        except (json.JSONDecodeError, KeyError, ValueError) as e:
                            logger.warning("Skipping malformed activity event at line %d: %s", line_num, e)
                            continue
                        if _matches(event, resource_type, resource_id, since):
                            events.append(event)
            except OSError as e:
                raise PersistenceError(f"Failed to read activity log: {str(e)}")

            return events

    def count(self) -> int:
        return len(self.get_events())


class DatabaseActivityLogStore(ActivityLogStore):
    """Activity log kept in the ``activity_log`` table."""

    def __init__(self, database: DatabaseManager):
        self._database = database
        self._lock = threading.RLock()

    def append_event(self, event: ActivityEvent) -> None:
        with self._lock:
            query = """
                INSERT INTO activity_log (id, action, resource_type, resource_id, actor_id, data, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """
            params = (
                event.id,
                event.action.value,
                event.resource_type,
                event.resource_id,
                event.actor_id,
                json.dumps(event.to_dict()),
                event.timestamp.isoformat(),
            )
            self._database.execute_update(query, params)

    def get_events(self, resource_type: Optional[str] = None, resource_id: Optional[str] = None,
                   since: Optional[datetime] = None) -> List[ActivityEvent]:
        with self._lock:
            query = "SELECT data FROM activity_log WHERE 1 = 1"
            params = []
            if resource_type is not None:
                query += " AND resource_type = ?"
                params.append(resource_type)
            if resource_id is not None:
                query += " AND resource_id = ?"
                params.append(resource_id)
            query += " ORDER BY created_at ASC"

            results = self._database.execute_query(query, tuple(params))

        events = [ActivityEvent.from_dict(json.loads(row["data"])) for row in results]
        if since is not None:
            events = [e for e in events if e.timestamp >= since]
        return events

    def count(self) -> int:
        results = self._database.execute_query("SELECT COUNT(*) AS total FROM activity_log")
        return results[0]["total"]


class ActivityLogStoreFactory:
    """Factory for creating activity log stores."""

    @staticmethod
    def create_store(store_type, **kwargs) -> ActivityLogStore:
        """Create an activity log store based on type."""
        try:
            store_type = ActivityStoreType(store_type.value if hasattr(store_type, 'value')
                                           else str(store_type).lower())
        except ValueError:
            raise ConfigurationError(f"Unsupported activity store type: {store_type}")

        if store_type == ActivityStoreType.MEMORY:
            return InMemoryActivityLogStore()
        if store_type == ActivityStoreType.FILE:
            return FileActivityLogStore(**kwargs)
        return DatabaseActivityLogStore(**kwargs)
