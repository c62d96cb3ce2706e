"""
Activity event publishing and subscription.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Set

from ..core.access import Actor
from ..core.entities import ActivityEvent
from ..core.enums import ActivityAction
from ..core.interfaces import ActivityLogStore, EventHandler
from ..persistence.activity_store import InMemoryActivityLogStore


logger = logging.getLogger(__name__)


@dataclass
class EventSubscription:
    """Event subscription information."""
    subscriber_id: str
    actions: Set[ActivityAction]
    handler: Callable[[ActivityEvent], None]
    created_at: float = field(default_factory=time.time)


class EventService:
    """Records activity events and fans them out to handlers and subscribers.

    The log write happens first and is required; handler failures are
    logged and never undo the transition that produced the event.
    """

    def __init__(self, store: Optional[ActivityLogStore] = None):
        self._store = store or InMemoryActivityLogStore()
        self._handlers: List[EventHandler] = []
        self._subscriptions: Dict[str, EventSubscription] = {}
        self._lock = threading.RLock()
        self._stats = {'published': 0, 'handler_errors': 0}

    @property
    def store(self) -> ActivityLogStore:
        return self._store

    def add_event_handler(self, handler: EventHandler) -> None:
        """Add an event handler."""
        with self._lock:
            self._handlers.append(handler)

    def subscribe(self, subscriber_id: str, actions: Set[ActivityAction],
                  handler: Callable[[ActivityEvent], None]) -> None:
        """Subscribe a callback to a set of actions."""
        with self._lock:
            self._subscriptions[subscriber_id] = EventSubscription(
                subscriber_id=subscriber_id,
                actions=set(actions),
                handler=handler,
            )

    def unsubscribe(self, subscriber_id: str) -> None:
        with self._lock:
            self._subscriptions.pop(subscriber_id, None)

    def record(self, action: ActivityAction, resource_type: str, resource_id: Optional[str],
               actor: Optional[Actor] = None, **details: Any) -> ActivityEvent:
        """Build an ActivityEvent for a transition and publish it."""
        event = ActivityEvent(
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            actor_id=actor.user_id if actor else None,
            actor_role=actor.role if actor else None,
            details=details,
        )
        self.publish_event(event)
        return event

    def publish_event(self, event: ActivityEvent) -> None:
        """Store the event, then notify handlers and subscribers."""
        self._store.append_event(event)
        with self._lock:
            self._stats['published'] += 1
            handlers = [h for h in self._handlers if h.can_handle(event.action.value)]
            subscriptions = [s for s in self._subscriptions.values() if event.action in s.actions]

        logger.debug("Activity %s on %s %s", event.action.value, event.resource_type, event.resource_id)

        for handler in handlers:
            try:
                handler.handle_event(event)
            except Exception:
                self._stats['handler_errors'] += 1
                logger.exception("Error in event handler %s", handler.__class__.__name__)

        for subscription in subscriptions:
            try:
                subscription.handler(event)
            except Exception:
                self._stats['handler_errors'] += 1
                logger.exception("Error notifying subscriber %s", subscription.subscriber_id)

    def get_events(self, resource_type: Optional[str] = None, resource_id: Optional[str] = None,
                   since: Optional[datetime] = None) -> List[ActivityEvent]:
        return self._store.get_events(resource_type, resource_id, since)

    def get_statistics(self) -> Dict[str, Any]:
        with self._lock:
            return {
                'published': self._stats['published'],
                'handler_errors': self._stats['handler_errors'],
                'stored_events': self._store.count(),
                'handlers': len(self._handlers),
                'subscriptions': len(self._subscriptions),
            }
