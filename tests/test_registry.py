"""Tests for RelationshipRegistry"""
import pytest


@pytest.fixture
def empty_registry(store):
    from shadowsync.registry import RelationshipRegistry

    return RelationshipRegistry(store.sources, store.mirrors, store.associations, store.event_bus)


class TestRegister:
    """Tests for register()."""

    def test_register_subscribes_three_handlers(self, empty_registry, bus):
        """One handler per trigger is wired to the bus."""
        relationship = empty_registry.register("staff", "offices")

        assert str(relationship) == "staff -> offices"
        assert len(empty_registry.handlers(relationship)) == 3
        assert bus.subscriber_count("source.upserted") == 1
        assert bus.subscriber_count("source.deleting") == 1
        assert bus.subscriber_count("mirror.created") == 1

    def test_register_twice_is_noop(self, empty_registry, bus):
        """Re-registration neither duplicates handlers nor fails."""
        first = empty_registry.register("staff", "offices")
        second = empty_registry.register("staff", "offices")

        assert first is second
        assert len(empty_registry) == 1
        assert bus.subscriber_count() == 3

    def test_unknown_source_kind(self, empty_registry, bus):
        """Unknown kinds fail before anything is wired."""
        from shadowsync.errors import ConfigurationError

        with pytest.raises(ConfigurationError, match="Unknown source kind"):
            empty_registry.register("nope", "offices")
        assert bus.subscriber_count() == 0

    def test_unknown_mirror_kind(self, empty_registry):
        """A source kind is not accepted as a mirror kind."""
        from shadowsync.errors import ConfigurationError

        with pytest.raises(ConfigurationError, match="Unknown mirror kind"):
            empty_registry.register("staff", "staff")

    def test_kind_bound_to_one_relationship(self, store, empty_registry):
        """A kind cannot be paired with a second partner."""
        from shadowsync.errors import ConfigurationError

        store.mirrors.register_kind("teams")
        empty_registry.register("staff", "offices")

        with pytest.raises(ConfigurationError, match="already bound"):
            empty_registry.register("staff", "teams")

    def test_registered_handlers_react(self, store, empty_registry):
        """Once registered, source writes create mirrors."""
        empty_registry.register("staff", "offices")

        store.sources.create({"kind": "staff", "title": "Jane Doe", "status": "published"})

        assert store.mirrors.count("offices") == 1


class TestLookup:
    """Tests for get/unregister/engine."""

    def test_get_unregistered_raises(self, empty_registry):
        """get() fails for pairs never registered."""
        from shadowsync.errors import ConfigurationError

        with pytest.raises(ConfigurationError):
            empty_registry.get("staff", "offices")

    def test_contains(self, registry):
        """Membership is by (source kind, mirror kind)."""
        assert ("staff", "offices") in registry
        assert ("offices", "staff") not in registry

    def test_unregister_removes_handlers(self, store, registry, bus):
        """Unregistered relationships stop syncing."""
        assert registry.unregister("staff", "offices") is True
        assert registry.unregister("staff", "offices") is False
        assert bus.subscriber_count() == 0

        store.sources.create({"kind": "staff", "title": "Jane Doe", "status": "published"})
        assert store.mirrors.count() == 0

    def test_engine_uses_options(self, registry):
        """engine() builds a configured engine for the pair."""
        engine = registry.engine("staff", "offices", page_size=10, fail_fast=False)

        assert engine.relationship == registry.get("staff", "offices")
        assert engine.page_size == 10
        assert engine.fail_fast is False


class TestSideBySide:
    """Tests for two relationships registered on the same store."""

    @pytest.fixture
    def both(self, store, empty_registry):
        store.sources.register_kind("projects")
        store.mirrors.register_kind("teams")
        empty_registry.register("staff", "offices")
        empty_registry.register("projects", "teams")
        return empty_registry

    def test_writes_stay_within_their_relationship(self, store, both):
        """Each relationship mirrors only its own kinds."""
        jane = store.sources.create({"kind": "staff", "title": "Jane Doe", "status": "published"})
        apollo = store.sources.create({"kind": "projects", "title": "Apollo", "status": "published"})
        platform = store.mirrors.create({"kind": "teams", "name": "Platform"})

        assert store.mirrors.count("offices") == 1
        assert store.mirrors.count("teams") == 2
        assert store.sources.count("staff") == 1
        assert store.sources.count("projects") == 2
        assert store.associations.get_mirror(jane.id, "offices") is not None
        assert store.associations.get_mirror(apollo.id, "teams") is not None
        assert store.associations.get_source(platform.id, "projects").slug == "platform"

    def test_delete_and_reconcile_leave_the_other_alone(self, store, both):
        """Deleting a staff record or reconciling staff never touches teams."""
        from shadowsync.reconcile import ReconcileStatus

        jane = store.sources.create({"kind": "staff", "title": "Jane Doe", "status": "published"})
        apollo = store.sources.create({"kind": "projects", "title": "Apollo", "status": "published"})
        team_id = store.associations.get_mirror_id(apollo.id)

        store.sources.delete(jane.id)

        assert store.mirrors.count("offices") == 0
        assert store.mirrors.get(team_id) is not None
        assert both.engine("staff", "offices").run().status == ReconcileStatus.IN_SYNC
        assert both.engine("projects", "teams").run().status == ReconcileStatus.IN_SYNC
        assert store.associations.get_link(source_id=apollo.id).mirror_id == team_id
