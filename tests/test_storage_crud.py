"""Unit Tests for the SQLite record repositories

Tests: create/get/update/delete, validation, paging, metadata, lifecycle events
"""
import pytest
from unittest.mock import Mock


class TestSourceRepositoryCreate:
    """Tests for SourceRepository.create()."""

    def test_create_returns_stored_record(self, store):
        """Created record is readable by ID."""
        source = store.sources.create({"kind": "staff", "title": "Jane Doe", "status": "published"})

        fetched = store.sources.get(source.id)
        assert fetched.title == "Jane Doe"
        assert fetched.slug == "jane-doe"
        assert fetched.status == "published"
        assert fetched.is_published

    def test_create_defaults_to_draft(self, store):
        """Status defaults to draft."""
        source = store.sources.create({"kind": "staff", "title": "Draft Person"})
        assert source.status == "draft"
        assert not source.is_published

    def test_create_keeps_explicit_slug(self, store):
        """An explicit slug is stored as given."""
        source = store.sources.create({"kind": "staff", "title": "Jane Doe", "slug": "jdoe"})
        assert source.slug == "jdoe"

    def test_create_unknown_kind_rejected(self, store):
        """Unknown kinds raise ValidationError."""
        from shadowsync.errors import ValidationError

        with pytest.raises(ValidationError):
            store.sources.create({"kind": "nope", "title": "X"})

    def test_create_blank_title_rejected(self, store):
        """Blank titles raise ValidationError."""
        from shadowsync.errors import ValidationError

        with pytest.raises(ValidationError):
            store.sources.create({"kind": "staff", "title": "   "})

    def test_create_malformed_slug_rejected(self, store):
        """Slugs must be lowercase words joined by hyphens."""
        from shadowsync.errors import ValidationError

        with pytest.raises(ValidationError):
            store.sources.create({"kind": "staff", "title": "X", "slug": "Not A Slug"})

    def test_create_invalid_status_rejected(self, store):
        """Unknown statuses raise ValidationError."""
        from shadowsync.errors import ValidationError

        with pytest.raises(ValidationError):
            store.sources.create({"kind": "staff", "title": "X", "status": "archived"})

    def test_create_unknown_field_rejected(self, store):
        """Fields outside the record shape raise ValidationError."""
        from shadowsync.errors import ValidationError

        with pytest.raises(ValidationError):
            store.sources.create({"kind": "staff", "title": "X", "colour": "red"})

    def test_duplicate_slug_in_kind_rejected(self, store):
        """Slugs are unique per kind."""
        from shadowsync.errors import ValidationError

        store.sources.create({"kind": "staff", "title": "Jane Doe"})
        with pytest.raises(ValidationError):
            store.sources.create({"kind": "staff", "title": "Jane Doe"})


class TestSourceRepositoryUpdateDelete:
    """Tests for SourceRepository.update() and delete()."""

    def test_update_changes_fields(self, store):
        """Update writes only the given fields."""
        source = store.sources.create({"kind": "staff", "title": "Jane Doe"})

        updated = store.sources.update(source.id, {"title": "Jane Smith"})

        assert updated.title == "Jane Smith"
        assert updated.slug == "jane-doe"

    def test_update_missing_record_raises(self, store):
        """Updating an unknown ID raises NotFoundError."""
        from shadowsync.errors import NotFoundError

        with pytest.raises(NotFoundError) as exc_info:
            store.sources.update("missing", {"title": "X"})
        assert exc_info.value.record_id == "missing"

    def test_update_cannot_change_kind(self, store):
        """Kind is fixed at creation."""
        from shadowsync.errors import ValidationError

        store.sources.register_kind("projects")
        source = store.sources.create({"kind": "staff", "title": "Jane Doe"})
        with pytest.raises(ValidationError):
            store.sources.update(source.id, {"kind": "projects"})

    def test_delete_removes_record_and_metadata(self, store):
        """Delete removes the record; its metadata goes with it."""
        source = store.sources.create({"kind": "staff", "title": "Jane Doe"})
        store.sources.set_meta(source.id, "shadow_mirror_id", "m1")

        store.sources.delete(source.id)

        assert store.sources.get(source.id) is None
        assert store.sources.get_meta(source.id, "shadow_mirror_id") is None

    def test_delete_missing_record_raises(self, store):
        """Deleting an unknown ID raises NotFoundError."""
        from shadowsync.errors import NotFoundError

        with pytest.raises(NotFoundError):
            store.sources.delete("missing")


class TestListPublished:
    """Tests for paged listing."""

    def test_lists_only_published_sources(self, store):
        """Drafts are excluded from the published listing."""
        store.sources.create({"kind": "staff", "title": "A", "status": "published"})
        store.sources.create({"kind": "staff", "title": "B", "status": "draft"})

        records = store.sources.list_published("staff")
        assert [r.title for r in records] == ["A"]

    def test_pages_are_stable_and_complete(self, store):
        """Pages cover every record exactly once, in insertion order."""
        for i in range(5):
            store.sources.create({"kind": "staff", "title": f"Person {i}", "status": "published"})

        pages = [store.sources.list_published("staff", page, 2) for page in (1, 2, 3, 4)]

        assert [len(p) for p in pages] == [2, 2, 1, 0]
        titles = [r.title for page in pages for r in page]
        assert titles == [f"Person {i}" for i in range(5)]

    def test_mirrors_are_always_listed(self, store):
        """Mirrors have no status; every mirror of the kind is listed."""
        store.mirrors.create({"kind": "offices", "name": "Jane Doe"})
        assert len(store.mirrors.list_published("offices")) == 1

    def test_invalid_page_rejected(self, store):
        """Pages are 1-based."""
        with pytest.raises(ValueError):
            store.sources.list_published("staff", page=0)

    def test_count_by_kind(self, store):
        """count() filters on kind when given."""
        store.sources.register_kind("projects")
        store.sources.create({"kind": "staff", "title": "A"})
        store.sources.create({"kind": "projects", "title": "B"})

        assert store.sources.count() == 2
        assert store.sources.count("staff") == 1


class TestMetadata:
    """Tests for per-record metadata."""

    def test_set_and_get(self, store):
        """Metadata round-trips and overwrites."""
        mirror = store.mirrors.create({"kind": "offices", "name": "Jane Doe"})

        store.mirrors.set_meta(mirror.id, "shadow_source_id", "s1")
        store.mirrors.set_meta(mirror.id, "shadow_source_id", "s2")

        assert store.mirrors.get_meta(mirror.id, "shadow_source_id") == "s2"

    def test_set_on_missing_record_raises(self, store):
        """Metadata needs an existing record."""
        from shadowsync.errors import NotFoundError

        with pytest.raises(NotFoundError):
            store.mirrors.set_meta("missing", "shadow_source_id", "s1")

    def test_delete_meta_reports_removal(self, store):
        """delete_meta returns whether a value was removed."""
        mirror = store.mirrors.create({"kind": "offices", "name": "Jane Doe"})
        store.mirrors.set_meta(mirror.id, "k", "v")

        assert store.mirrors.delete_meta(mirror.id, "k") is True
        assert store.mirrors.delete_meta(mirror.id, "k") is False

    def test_find_ids_by_meta(self, store):
        """Records can be found by metadata value."""
        a = store.mirrors.create({"kind": "offices", "name": "A"})
        b = store.mirrors.create({"kind": "offices", "name": "B"})
        store.mirrors.set_meta(a.id, "k", "x")
        store.mirrors.set_meta(b.id, "k", "y")

        assert store.mirrors.find_ids_by_meta("k", "x") == [a.id]


class TestKinds:
    """Tests for kind registration."""

    def test_register_is_idempotent(self, store):
        """Registering a kind twice is harmless."""
        store.sources.register_kind("staff")
        assert store.sources.kinds() == ["staff"]

    def test_sides_are_separate(self, store):
        """A source kind is not a mirror kind."""
        assert store.sources.kind_exists("staff")
        assert not store.mirrors.kind_exists("staff")

    def test_invalid_kind_name_rejected(self, store):
        """Kind names follow slug rules (underscores allowed)."""
        from shadowsync.errors import ValidationError

        store.sources.register_kind("post_type")
        with pytest.raises(ValidationError):
            store.sources.register_kind("Bad Kind")


class TestLifecycleEvents:
    """Tests for events emitted by repository writes."""

    def test_source_create_emits_upserted(self, store, bus):
        """Creating a source publishes source.upserted with created=True."""
        callback = Mock()
        bus.subscribe("source.upserted", callback)

        source = store.sources.create({"kind": "staff", "title": "Jane Doe"}, origin="importer")

        event = callback.call_args[0][0]
        assert event.record_id == source.id
        assert event.kind == "staff"
        assert event.created is True
        assert event.origin == "importer"

    def test_source_update_emits_upserted(self, store, bus):
        """Updating a source publishes source.upserted with created=False."""
        source = store.sources.create({"kind": "staff", "title": "Jane Doe"})
        callback = Mock()
        bus.subscribe("source.upserted", callback)

        store.sources.update(source.id, {"title": "Jane Smith"})

        assert callback.call_args[0][0].created is False

    def test_source_delete_emits_deleting_before_removal(self, store, bus):
        """source.deleting fires while the record is still readable."""
        source = store.sources.create({"kind": "staff", "title": "Jane Doe"})
        seen = []
        bus.subscribe("source.deleting", lambda event: seen.append(store.sources.get(event.record_id)))

        store.sources.delete(source.id)

        assert seen[0] is not None
        assert seen[0].id == source.id

    def test_mirror_create_emits_created(self, store, bus):
        """Creating a mirror publishes mirror.created."""
        callback = Mock()
        bus.subscribe("mirror.created", callback)

        mirror = store.mirrors.create({"kind": "offices", "name": "Jane Doe"})

        assert callback.call_args[0][0].record_id == mirror.id

    def test_metadata_writes_emit_nothing(self, store, bus):
        """Metadata writes never publish events."""
        source = store.sources.create({"kind": "staff", "title": "Jane Doe"})
        callback = Mock()
        bus.subscribe("*", callback)

        store.sources.set_meta(source.id, "k", "v")
        store.sources.delete_meta(source.id, "k")

        callback.assert_not_called()


class TestPersistence:
    """Tests for file-backed stores."""

    def test_records_survive_reopen(self, tmp_path):
        """Data written through one store is visible from the next."""
        from shadowsync.event_bus import EventBus
        from shadowsync.record_store import RecordStore

        db_path = tmp_path / "shadow.sqlite"
        with RecordStore(db_path, event_bus=EventBus()) as store:
            store.register_kinds(source=["staff"])
            source = store.sources.create({"kind": "staff", "title": "Jane Doe"})

        with RecordStore(db_path, event_bus=EventBus()) as store:
            assert store.sources.get(source.id).title == "Jane Doe"
