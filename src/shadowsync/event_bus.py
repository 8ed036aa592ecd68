"""
EventBus for in-process hook dispatch.

Delivers record lifecycle events from the repositories to the sync trigger
handlers. Dispatch is synchronous: every subscriber runs on the thread that
published the event, before publish() returns.

Usage:
    bus = EventBus()

    # Subscribe to specific event types
    bus.subscribe('source.upserted', handler)

    # Subscribe to all events
    bus.subscribe('*', lambda event: log_event(event))

    # Publish events
    from shadowsync.events import SourceUpsertedEvent
    bus.publish(SourceUpsertedEvent(record_id="123", kind="staff"))
"""

from typing import Callable, Dict, List, Any
from threading import Lock
import logging

logger = logging.getLogger(__name__)


class EventBus:
    """
    Thread-safe in-process event bus for hook dispatch.

    Supports:
    - subscribe(event_type, callback): Register callbacks for specific event types
    - publish(event): Deliver events to all matching subscribers
    - Wildcard subscription: subscribe('*', callback) receives all events

    A subscriber that raises stops delivery of that event; the error is
    logged and propagates to the publisher.
    """

    def __init__(self):
        """Initialize empty event bus with thread safety."""
        # Dictionary mapping event_type -> list of callbacks
        self._subscribers: Dict[str, List[Callable[[Any], Any]]] = {}
        self._lock = Lock()

    def subscribe(self, event_type: str, callback: Callable[[Any], Any]) -> bool:
        """
        Subscribe to events of a specific type.

        Args:
            event_type: Event type to listen for (e.g., 'source.upserted')
                       Use '*' to subscribe to all event types
            callback: Called with the event object when the event occurs

        Returns:
            True if subscribed, False if the callback was already subscribed
        """
        with self._lock:
            callbacks = self._subscribers.setdefault(event_type, [])
            if callback in callbacks:
                return False

            callbacks.append(callback)
            logger.debug(f"Subscribed to {event_type}: {getattr(callback, '__name__', repr(callback))}")
            return True

    def unsubscribe(self, event_type: str, callback: Callable[[Any], Any]) -> bool:
        """
        Unsubscribe a callback from an event type.

        Args:
            event_type: Event type to unsubscribe from
            callback: The callback to remove

        Returns:
            True if callback was found and removed, False otherwise
        """
        with self._lock:
            if event_type in self._subscribers:
                try:
                    self._subscribers[event_type].remove(callback)
                    if not self._subscribers[event_type]:
                        # Clean up empty subscriber lists
                        del self._subscribers[event_type]
                    logger.debug(f"Unsubscribed from {event_type}")
                    return True
                except ValueError:
                    pass
        return False

    def publish(self, event: Any) -> None:
        """
        Publish an event to all matching subscribers.

        Notifies:
        1. Subscribers to the specific event type
        2. Wildcard subscribers ('*')

        Args:
            event: Event object (must have 'event_type' attribute)

        Raises:
            Whatever a subscriber raises, after logging it
        """
        if not hasattr(event, 'event_type'):
            logger.warning(f"Event missing 'event_type' attribute: {type(event).__name__}")
            return

        event_type = event.event_type

        # Copy so callbacks run without holding the lock (they may publish)
        with self._lock:
            subscribers = self._subscribers.get(event_type, []).copy()
            subscribers += self._subscribers.get('*', [])

        for callback in subscribers:
            try:
                callback(event)
            except Exception as e:
                logger.error(f"Error in subscriber callback for {event_type}: {e}", exc_info=True)
                raise

        logger.debug(f"Published {event_type} to {len(subscribers)} subscribers")

    def clear(self) -> None:
        """
        Clear all subscriptions.

        Useful for testing and cleanup.
        """
        with self._lock:
            self._subscribers.clear()
            logger.debug("Cleared all subscriptions")

    def subscriber_count(self, event_type: str = None) -> int:
        """
        Get count of subscribers.

        Args:
            event_type: Optional event type to count. If None, returns total.

        Returns:
            Number of subscribers
        """
        with self._lock:
            if event_type:
                return len(self._subscribers.get(event_type, []))
            else:
                return sum(len(subs) for subs in self._subscribers.values())


# Global event bus instance
_global_bus = None


def get_event_bus() -> EventBus:
    """
    Get or create global EventBus instance.

    Returns:
        Global EventBus singleton
    """
    global _global_bus
    if _global_bus is None:
        _global_bus = EventBus()
    return _global_bus


def reset_event_bus() -> None:
    """
    Reset global event bus (mainly for testing).

    Creates a fresh EventBus instance.
    """
    global _global_bus
    _global_bus = EventBus()


__all__ = ['EventBus', 'get_event_bus', 'reset_event_bus']
