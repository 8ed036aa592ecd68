"""Unit Tests for EventBus

Tests: EventBus subscribe/publish, error propagation, thread safety, wildcard subscriptions
"""
import pytest
import threading
from unittest.mock import Mock


def _event(record_id="s1"):
    from shadowsync.events import SourceUpsertedEvent

    return SourceUpsertedEvent(record_id=record_id, kind="staff")


class TestEventBusBasics:
    """Tests for core EventBus functionality."""

    def test_instantiation(self):
        """Can instantiate EventBus."""
        from shadowsync.event_bus import EventBus

        bus = EventBus()
        assert bus._subscribers == {}

    def test_subscribe_creates_subscription(self):
        """Subscribe adds callback to subscription list."""
        from shadowsync.event_bus import EventBus

        bus = EventBus()
        callback = Mock()

        assert bus.subscribe('source.upserted', callback) is True
        assert callback in bus._subscribers['source.upserted']

    def test_duplicate_subscription_ignored(self):
        """Subscribing the same callback twice registers it once."""
        from shadowsync.event_bus import EventBus

        bus = EventBus()
        callback = Mock()

        bus.subscribe('source.upserted', callback)
        assert bus.subscribe('source.upserted', callback) is False
        assert bus.subscriber_count('source.upserted') == 1

    def test_subscriber_count_total(self):
        """subscriber_count without a type counts every subscription."""
        from shadowsync.event_bus import EventBus

        bus = EventBus()
        bus.subscribe('source.upserted', Mock())
        bus.subscribe('mirror.created', Mock())

        assert bus.subscriber_count() == 2


class TestEventBusPublish:
    """Tests for event publishing."""

    def test_publish_calls_subscriber(self):
        """Published event reaches its subscribers."""
        from shadowsync.event_bus import EventBus

        bus = EventBus()
        callback = Mock()
        bus.subscribe('source.upserted', callback)

        event = _event()
        bus.publish(event)

        callback.assert_called_once_with(event)

    def test_publish_other_type_not_delivered(self):
        """Subscribers only see their event type."""
        from shadowsync.event_bus import EventBus

        bus = EventBus()
        callback = Mock()
        bus.subscribe('mirror.created', callback)

        bus.publish(_event())

        callback.assert_not_called()

    def test_publish_missing_event_type_attribute(self):
        """Objects without event_type are dropped."""
        from shadowsync.event_bus import EventBus

        bus = EventBus()
        callback = Mock()
        bus.subscribe('*', callback)

        bus.publish(object())

        callback.assert_not_called()

    def test_publish_propagates_callback_exception(self):
        """A failing subscriber's error reaches the publisher."""
        from shadowsync.event_bus import EventBus

        bus = EventBus()

        def failing_callback(event):
            raise ValueError("Callback error")

        callback2 = Mock()
        bus.subscribe('source.upserted', failing_callback)
        bus.subscribe('source.upserted', callback2)

        with pytest.raises(ValueError):
            bus.publish(_event())

        callback2.assert_not_called()

    def test_subscriber_may_publish(self):
        """Callbacks run outside the bus lock, so nested publishes work."""
        from shadowsync.event_bus import EventBus
        from shadowsync.events import MirrorCreatedEvent

        bus = EventBus()
        nested = Mock()
        bus.subscribe('mirror.created', nested)
        bus.subscribe('source.upserted',
                      lambda event: bus.publish(MirrorCreatedEvent(record_id="m1", kind="offices")))

        bus.publish(_event())

        nested.assert_called_once()


class TestEventBusWildcard:
    """Tests for wildcard subscriptions."""

    def test_wildcard_and_specific_both_called(self):
        """Wildcard subscribers see every event alongside specific ones."""
        from shadowsync.event_bus import EventBus

        bus = EventBus()
        specific = Mock()
        wildcard = Mock()
        bus.subscribe('source.upserted', specific)
        bus.subscribe('*', wildcard)

        bus.publish(_event())

        specific.assert_called_once()
        wildcard.assert_called_once()


class TestEventBusUnsubscribe:
    """Tests for unsubscribing."""

    def test_unsubscribe_removes_callback(self):
        """Unsubscribed callbacks stop receiving events."""
        from shadowsync.event_bus import EventBus

        bus = EventBus()
        callback = Mock()
        bus.subscribe('source.upserted', callback)

        assert bus.unsubscribe('source.upserted', callback) is True
        bus.publish(_event())

        callback.assert_not_called()
        assert 'source.upserted' not in bus._subscribers

    def test_unsubscribe_nonexistent_returns_false(self):
        """Unsubscribing an unknown callback returns False."""
        from shadowsync.event_bus import EventBus

        bus = EventBus()
        assert bus.unsubscribe('source.upserted', Mock()) is False

    def test_clear_removes_all_subscriptions(self):
        """clear() drops every subscriber."""
        from shadowsync.event_bus import EventBus

        bus = EventBus()
        bus.subscribe('source.upserted', Mock())
        bus.subscribe('*', Mock())

        bus.clear()

        assert bus.subscriber_count() == 0


class TestEventBusThreadSafety:
    """Tests for thread safety."""

    def test_concurrent_publish(self):
        """Multiple threads can publish concurrently."""
        from shadowsync.event_bus import EventBus

        bus = EventBus()
        callback = Mock()
        bus.subscribe('source.upserted', callback)

        threads = [threading.Thread(target=bus.publish, args=(_event(f"s{i}"),)) for i in range(10)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert callback.call_count == 10


class TestGlobalEventBus:
    """Tests for global event bus singleton."""

    def test_get_event_bus_returns_singleton(self):
        """get_event_bus returns same instance."""
        from shadowsync.event_bus import get_event_bus

        assert get_event_bus() is get_event_bus()

    def test_reset_event_bus_creates_new_instance(self):
        """reset_event_bus creates fresh instance."""
        from shadowsync.event_bus import get_event_bus, reset_event_bus

        bus1 = get_event_bus()
        bus1.subscribe('source.upserted', Mock())

        reset_event_bus()
        bus2 = get_event_bus()

        assert bus2.subscriber_count() == 0
        assert bus1 is not bus2
