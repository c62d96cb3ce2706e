"""
Core interfaces and abstract base classes for the Fieldtrain platform.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Generic, List, Optional, TypeVar


T = TypeVar('T')


class Repository(ABC, Generic[T]):
    """Abstract base class for repositories."""

    @abstractmethod
    def save(self, entity: T) -> T:
        """Save an entity."""
        pass

    @abstractmethod
    def find_by_id(self, entity_id: str) -> Optional[T]:
        """Find entity by ID."""
        pass

    @abstractmethod
    def find_all(self, filters: Optional[Dict[str, Any]] = None) -> List[T]:
        """Find all entities matching filters."""
        pass

    @abstractmethod
    def delete(self, entity_id: str) -> bool:
        """Delete an entity by ID."""
        pass


class EventHandler(ABC):
    """Abstract base class for activity event handlers."""

    @abstractmethod
    def handle_event(self, event: 'ActivityEvent') -> None:
        """Handle an event."""
        pass

    @abstractmethod
    def can_handle(self, action: str) -> bool:
        """Check if this handler can handle the action."""
        pass


class ActivityLogStore(ABC):
    """Abstract base class for activity log stores."""

    @abstractmethod
    def append_event(self, event: 'ActivityEvent') -> None:
        """Append an event to the log."""
        pass

    @abstractmethod
    def get_events(self, resource_type: Optional[str] = None, resource_id: Optional[str] = None,
                   since: Optional[datetime] = None) -> List['ActivityEvent']:
        """Get events, oldest first, optionally filtered."""
        pass

    @abstractmethod
    def count(self) -> int:
        """Number of stored events."""
        pass
