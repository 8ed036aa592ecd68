"""Unit Tests for record lifecycle event types"""
from datetime import datetime


class TestSourceUpsertedEvent:
    """Tests for SourceUpsertedEvent."""

    def test_creation_with_required_fields(self):
        """Defaults: not created, no origin, type source.upserted."""
        from shadowsync.events import SourceUpsertedEvent

        event = SourceUpsertedEvent(record_id="s1", kind="staff")

        assert event.event_type == "source.upserted"
        assert event.created is False
        assert event.origin is None
        assert isinstance(event.timestamp, datetime)

    def test_to_dict_serialization(self):
        """to_dict includes every field, timestamp as ISO string."""
        from shadowsync.events import SourceUpsertedEvent, SYNC_ORIGIN

        event = SourceUpsertedEvent(record_id="s1", kind="staff", created=True, origin=SYNC_ORIGIN)
        data = event.to_dict()

        assert data["event_type"] == "source.upserted"
        assert data["record_id"] == "s1"
        assert data["kind"] == "staff"
        assert data["created"] is True
        assert data["origin"] == SYNC_ORIGIN
        assert datetime.fromisoformat(data["timestamp"]) == event.timestamp


class TestSourceDeletingEvent:
    """Tests for SourceDeletingEvent."""

    def test_to_dict_serialization(self):
        """to_dict carries the record and type."""
        from shadowsync.events import SourceDeletingEvent

        data = SourceDeletingEvent(record_id="s1", kind="staff").to_dict()

        assert data["event_type"] == "source.deleting"
        assert data["record_id"] == "s1"


class TestMirrorCreatedEvent:
    """Tests for MirrorCreatedEvent."""

    def test_to_dict_serialization(self):
        """to_dict carries the record and type."""
        from shadowsync.events import MirrorCreatedEvent

        data = MirrorCreatedEvent(record_id="m1", kind="offices", origin="importer").to_dict()

        assert data["event_type"] == "mirror.created"
        assert data["kind"] == "offices"
        assert data["origin"] == "importer"
