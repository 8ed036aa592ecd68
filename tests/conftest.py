"""Pytest fixtures for shadowsync tests"""
import pytest


@pytest.fixture
def bus():
    """A private EventBus, so tests never share subscribers."""
    from shadowsync.event_bus import EventBus

    return EventBus()


@pytest.fixture
def store(bus):
    """In-memory record store with one source kind and one mirror kind.

    Kinds: staff (source), offices (mirror). No handlers are subscribed.
    """
    from shadowsync.record_store import RecordStore

    store = RecordStore(":memory:", event_bus=bus)
    store.register_kinds(source=["staff"], mirror=["offices"])
    yield store
    store.close()


@pytest.fixture
def registry(store):
    """Registry with the staff -> offices relationship registered."""
    from shadowsync.registry import RelationshipRegistry

    registry = RelationshipRegistry(store.sources, store.mirrors, store.associations, store.event_bus)
    registry.register("staff", "offices")
    return registry


@pytest.fixture
def engine(store):
    """Reconciliation engine for staff -> offices, without handlers."""
    from shadowsync.reconcile import ReconciliationEngine
    from shadowsync.storage.models import Relationship

    return ReconciliationEngine(
        Relationship("staff", "offices"), store.sources, store.mirrors, store.associations
    )


@pytest.fixture
def workspace(tmp_path):
    """Base directory holding a config.yaml for staff -> offices.

    Returns the base path; the database is created on first use.
    """
    base_path = tmp_path / "shadowsync"
    base_path.mkdir()
    (base_path / "config.yaml").write_text(
        "storage:\n"
        "  db_path: shadow.sqlite\n"
        "kinds:\n"
        "  source: [staff, projects]\n"
        "  mirror: [offices]\n"
        "relationships:\n"
        "  - source: staff\n"
        "    mirror: offices\n"
        "reconcile:\n"
        "  page_size: 2\n"
        "  fail_fast: true\n"
    )
    return base_path
