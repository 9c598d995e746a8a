"""Tests for hoophub_sync.observer module.

Validates change events, entity tags and the observer list every accessor
carries: duplicate-free registration, snapshot dispatch, and containment of
observer failures.
"""

import logging

import pytest

from hoophub_sync.observer import ChangeEvent, DaoObserver, DaoOperation, EntityType, ObservableDao


class ExplodingObserver(DaoObserver):
    def on_after_insert(self, entity_type, entity_id, entity):
        raise RuntimeError("observer bug")

    def on_after_update(self, entity_type, entity_id, entity):
        raise RuntimeError("observer bug")

    def on_after_delete(self, entity_type, entity_id):
        raise RuntimeError("observer bug")


class TestChangeEvent:
    """Verify the payload invariant."""

    def test_insert_requires_payload(self):
        with pytest.raises(ValueError):
            ChangeEvent(DaoOperation.INSERT, EntityType.VENUE, "7", None)

    def test_update_requires_payload(self):
        with pytest.raises(ValueError):
            ChangeEvent(DaoOperation.UPDATE, EntityType.VENUE, "7")

    def test_delete_rejects_payload(self):
        with pytest.raises(ValueError):
            ChangeEvent(DaoOperation.DELETE, EntityType.VENUE, "7", object())

    def test_valid_events(self):
        insert = ChangeEvent(DaoOperation.INSERT, EntityType.BOOKING, "3", object())
        delete = ChangeEvent(DaoOperation.DELETE, "Stadium", "3")
        assert insert.tag == "Booking"
        assert delete.tag == "Stadium"


class TestEntityType:
    """Verify tag resolution."""

    def test_known_tags(self):
        assert EntityType.from_tag("VenueManager") is EntityType.VENUE_MANAGER
        assert EntityType.from_tag("User") is EntityType.USER

    def test_enum_passthrough(self):
        assert EntityType.from_tag(EntityType.FAN) is EntityType.FAN

    def test_unknown_tag_is_none(self):
        assert EntityType.from_tag("Stadium") is None


class TestObservableDao:
    """Test observer registration and dispatch."""

    def test_add_is_duplicate_free(self, recorder):
        dao = ObservableDao()
        dao.add_observer(recorder)
        dao.add_observer(recorder)
        assert dao.observers == [recorder]

    def test_remove_observer(self, recorder):
        dao = ObservableDao()
        dao.add_observer(recorder)
        dao.remove_observer(recorder)
        dao.remove_observer(recorder)
        assert dao.observers == []

    def test_dispatch_by_operation(self, recorder):
        dao = ObservableDao()
        dao.add_observer(recorder)
        dao.notify(DaoOperation.INSERT, EntityType.VENUE, 7, object())
        dao.notify(DaoOperation.UPDATE, EntityType.VENUE, 7, object())
        dao.notify(DaoOperation.DELETE, EntityType.VENUE, 7)
        assert recorder.events == [
            ("insert", "Venue", "7"),
            ("update", "Venue", "7"),
            ("delete", "Venue", "7"),
        ]

    def test_bad_payload_raises_before_dispatch(self, recorder):
        dao = ObservableDao()
        dao.add_observer(recorder)
        with pytest.raises(ValueError):
            dao.notify(DaoOperation.DELETE, EntityType.BOOKING, 1, object())
        assert recorder.events == []

    def test_observer_failure_is_contained(self, recorder, caplog):
        """A raising observer is logged and the next observer still runs."""
        dao = ObservableDao()
        dao.add_observer(ExplodingObserver())
        dao.add_observer(recorder)

        with caplog.at_level(logging.ERROR, logger="hoophub_sync.observer"):
            dao.notify(DaoOperation.INSERT, EntityType.BOOKING, 1, object())

        assert recorder.events == [("insert", "Booking", "1")]
        assert "ExplodingObserver failed on INSERT Booking 1" in caplog.text

    def test_dispatch_uses_snapshot(self, recorder):
        """Observers added during dispatch only see later events."""
        dao = ObservableDao()
        late = type(recorder)()

        class Registering(DaoObserver):
            def on_after_insert(self, entity_type, entity_id, entity):
                dao.add_observer(late)

            def on_after_update(self, entity_type, entity_id, entity):
                pass

            def on_after_delete(self, entity_type, entity_id):
                pass

        dao.add_observer(Registering())
        dao.notify(DaoOperation.INSERT, EntityType.FAN, "fan1", object())
        assert late.events == []

        dao.notify(DaoOperation.INSERT, EntityType.FAN, "fan2", object())
        assert late.events == [("insert", "Fan", "fan2")]
