"""Contract tests run against every storage backend.

Each test runs three times: relational (in-memory SQLite), file (CSV in a
temp directory) and volatile in-memory. The backends must agree on ids,
credentials, cascades and the booking upsert.
"""

from dataclasses import replace
from unittest.mock import patch

import pytest

from hoophub_sync.backends import get_factory
from hoophub_sync.beans import BookingBean, UserBean, VenueBean
from hoophub_sync.config import PersistenceType, SyncConfig
from hoophub_sync.exceptions import DuplicateEntityError, EntityNotFoundError, PersistenceError
from hoophub_sync.models import BookingStatus, TeamNBA, UserType, VenueType
from hoophub_sync.observer import DaoOperation, EntityType


@pytest.fixture(params=["relational", "file", "in_memory"])
def factory(request, tmp_path):
    config = SyncConfig(csv_dir=tmp_path / "csv", database_url="sqlite://")
    factory = get_factory(PersistenceType(request.param), config)
    yield factory
    factory.close()


class TestUsers:
    """Base user records and role records."""

    def test_save_and_retrieve_fan(self, factory, fan_bean):
        factory.fan_accessor().save(fan_bean)
        fan = factory.fan_accessor().retrieve("fan1")
        assert fan.full_name == "Alice Hoops"
        assert fan.fav_team is TeamNBA.CHICAGO_BULLS
        assert fan.user_type is UserType.FAN

    def test_retrieve_missing_returns_none(self, factory):
        assert factory.fan_accessor().retrieve("ghost") is None
        assert factory.user_accessor().retrieve("ghost") is None

    def test_raw_user_exposes_credential(self, factory, manager_bean):
        factory.venue_manager_accessor().save(manager_bean)
        user = factory.user_accessor().retrieve("mj23")
        assert user.password_hash == "hash-mj23"
        assert user.user_type is UserType.VENUE_MANAGER
        assert factory.user_accessor().is_username_taken("mj23") is True

    def test_duplicate_username_raises(self, factory, fan_bean, manager_bean):
        factory.fan_accessor().save(fan_bean)
        manager_bean.username = "fan1"
        with pytest.raises(DuplicateEntityError):
            factory.venue_manager_accessor().save(manager_bean)

    def test_save_without_credential_raises(self, factory):
        with pytest.raises(PersistenceError):
            factory.user_accessor().save(UserBean("nopass", "No Pass", "Male", UserType.FAN))

    def test_update_without_credential_keeps_it(self, factory, fan_bean):
        fans = factory.fan_accessor()
        fan = fans.save(fan_bean)
        fans.update(replace(fan, full_name="Alice B. Hoops"))

        assert fans.retrieve("fan1").full_name == "Alice B. Hoops"
        assert factory.user_accessor().retrieve("fan1").password_hash == "hash-fan1"

    def test_update_with_credential_changes_it(self, factory, fan_bean):
        fans = factory.fan_accessor()
        fan = fans.save(fan_bean)
        fans.update(fan, UserBean("fan1", fan.full_name, fan.gender, UserType.FAN, "hash-new"))
        assert factory.user_accessor().retrieve("fan1").password_hash == "hash-new"

    def test_update_missing_raises(self, factory, fan_bean):
        with pytest.raises(EntityNotFoundError):
            factory.fan_accessor().update(fan_bean.to_fan())

    def test_user_delete_removes_role(self, factory, fan_bean):
        factory.fan_accessor().save(fan_bean)
        factory.user_accessor().delete("fan1")
        assert factory.fan_accessor().retrieve("fan1") is None
        assert factory.user_accessor().retrieve("fan1") is None


class TestVenuesAndBookings:
    """Ids, upserts and cascades."""

    def test_explicit_venue_id_honoured(self, factory, seed_backend):
        venue, _ = seed_backend(factory)
        assert venue.id == 7
        stored = factory.venue_accessor().retrieve(7)
        assert stored.type is VenueType.FAN_CLUB
        assert stored.max_capacity == 150
        assert set(stored.associated_teams) == {TeamNBA.CHICAGO_BULLS, TeamNBA.BOSTON_CELTICS}

    def test_auto_venue_id(self, factory, seed_backend, venue_bean):
        seed_backend(factory)
        second = factory.venue_accessor().save(replace(venue_bean, id=None, name="Madhouse Pub"))
        assert second.id == 8

    def test_duplicate_venue_id_raises(self, factory, seed_backend, venue_bean):
        seed_backend(factory)
        with pytest.raises(DuplicateEntityError):
            factory.venue_accessor().save(replace(venue_bean, name="Impostor"))

    def test_retrieve_by_manager(self, factory, seed_backend):
        seed_backend(factory)
        assert [v.id for v in factory.venue_accessor().retrieve_by_manager("mj23")] == [7]
        assert factory.venue_accessor().retrieve_by_manager("nobody") == []

    def test_booking_save_is_upsert(self, factory, seed_backend, booking_bean):
        _, booking = seed_backend(factory)
        confirmed = BookingBean.from_booking(booking)
        confirmed.status = BookingStatus.CONFIRMED
        factory.booking_accessor().save(confirmed)

        bookings = factory.booking_accessor().retrieve_all()
        assert len(bookings) == 1
        assert bookings[0].id == booking.id
        assert bookings[0].status is BookingStatus.CONFIRMED

    def test_booking_lookups(self, factory, seed_backend):
        _, booking = seed_backend(factory)
        accessor = factory.booking_accessor()
        assert [b.id for b in accessor.retrieve_by_fan("fan1")] == [booking.id]
        assert [b.id for b in accessor.retrieve_by_venue(7)] == [booking.id]

    def test_venue_delete_cascades(self, factory, seed_backend):
        venue, booking = seed_backend(factory)
        factory.venue_accessor().delete(venue)

        assert factory.venue_accessor().retrieve(7) is None
        assert factory.booking_accessor().retrieve(booking.id) is None
        notification = factory.notification_accessor().retrieve_all()[0]
        assert notification.related_booking_id is None

    def test_fan_delete_cascades_bookings(self, factory, seed_backend):
        _, booking = seed_backend(factory)
        fan = factory.fan_accessor().retrieve("fan1")
        factory.fan_accessor().delete(fan)
        assert factory.booking_accessor().retrieve(booking.id) is None
        assert factory.venue_accessor().retrieve(7) is not None

    def test_manager_delete_cascades_venues(self, factory, seed_backend):
        seed_backend(factory)
        manager = factory.venue_manager_accessor().retrieve("mj23")
        factory.venue_manager_accessor().delete(manager)
        assert factory.venue_accessor().retrieve_all() == []
        assert factory.booking_accessor().retrieve_all() == []
        assert factory.notification_accessor().retrieve_all() == []

    def test_delete_missing_booking_raises(self, factory, seed_backend):
        _, booking = seed_backend(factory)
        with pytest.raises(EntityNotFoundError):
            factory.booking_accessor().delete(replace(booking, id=999))


class TestNotifications:
    """Notification reads and the bulk read flag."""

    def test_mark_all_as_read(self, factory, seed_backend):
        seed_backend(factory)
        notifications = factory.notification_accessor()
        assert notifications.unread_count("mj23", UserType.VENUE_MANAGER) == 1
        assert notifications.mark_all_as_read("mj23", UserType.VENUE_MANAGER) == 1
        assert notifications.unread_count("mj23", UserType.VENUE_MANAGER) == 0
        assert notifications.mark_all_as_read("mj23", UserType.VENUE_MANAGER) == 0

    def test_mark_all_as_read_scoped_to_user_type(self, factory, seed_backend):
        seed_backend(factory)
        assert factory.notification_accessor().mark_all_as_read("mj23", UserType.FAN) == 0

    def test_delete_by_booking(self, factory, seed_backend):
        _, booking = seed_backend(factory)
        assert factory.notification_accessor().delete_by_booking(booking.id) == 1
        assert factory.notification_accessor().retrieve_all() == []


class TestChangeNotification:
    """Accessors notify after each committed mutation."""

    def test_insert_update_delete_events(self, factory, seed_backend, venue_bean, recorder):
        seed_backend(factory)
        venues = factory.venue_accessor()
        venues.add_observer(recorder)

        stored = venues.save(VenueBean(
            name="Madhouse Pub", type=VenueType.PUB, address="1 Main St", city="Chicago",
            max_capacity=80, venue_manager_username="mj23",
        ))
        venues.update(replace(stored, max_capacity=90))
        venues.delete(stored)

        key = str(stored.id)
        assert recorder.events == [
            ("insert", "Venue", key),
            ("update", "Venue", key),
            ("delete", "Venue", key),
        ]

    def test_insert_payload_carries_assigned_id(self, factory, seed_backend, booking_bean):
        """The payload of an INSERT holds the id the backend assigned."""
        seed_backend(factory, with_notification=False)
        bookings = factory.booking_accessor()
        fresh = replace(booking_bean, id=None)

        with patch.object(bookings, "notify") as notify:
            stored = bookings.save(fresh)

        notify.assert_called_once_with(DaoOperation.INSERT, EntityType.BOOKING, stored.id, fresh)
        assert fresh.id == stored.id

    def test_failed_write_does_not_notify(self, factory, recorder):
        users = factory.user_accessor()
        users.add_observer(recorder)
        with pytest.raises(EntityNotFoundError):
            users.delete("ghost")
        assert recorder.events == []
