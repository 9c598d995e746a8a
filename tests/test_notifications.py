"""Tests for hoophub_sync.notifications module.

A new booking notifies the venue's manager; an approval or rejection
notifies the fan; nothing is generated while a replay is propagating.
"""

import logging
from dataclasses import replace

import pytest

from hoophub_sync.config import PersistenceType
from hoophub_sync.models import BookingStatus, NotificationType, UserType
from hoophub_sync.observer import EntityType
from hoophub_sync.sync.context import SyncContext


@pytest.fixture
def booked(memory_facade, manager_bean, fan_bean, venue_bean, booking_bean):
    """In-memory facade holding one pending booking."""
    memory_facade.get_venue_manager_accessor().save(manager_bean)
    memory_facade.get_fan_accessor().save(fan_bean)
    memory_facade.get_venue_accessor().save(venue_bean)
    booking = memory_facade.get_booking_accessor().save(booking_bean)
    return memory_facade, booking


def notifications_for(facade, username, user_type):
    return facade.get_notification_accessor().retrieve_for_user(username, user_type)


class TestBookingRequested:
    """New bookings notify the venue manager."""

    def test_manager_notified(self, booked):
        facade, booking = booked
        [notification] = notifications_for(facade, "mj23", UserType.VENUE_MANAGER)
        assert notification.type is NotificationType.BOOKING_REQUESTED
        assert notification.message == (
            "New booking request for Chicago Bulls vs Boston Celtics on 2026-11-03"
        )
        assert notification.related_booking_id == booking.id
        assert notification.is_read is False

    def test_fan_not_notified_on_request(self, booked):
        facade, _ = booked
        assert notifications_for(facade, "fan1", UserType.FAN) == []

    def test_missing_venue_logged(self, memory_facade, booking_bean, caplog):
        observer = memory_facade.registry.get_notification_observer()
        with caplog.at_level(logging.ERROR, logger="hoophub_sync.notifications"):
            observer.on_after_insert(EntityType.BOOKING, "1", replace(booking_bean, id=1, venue_id=999))
        assert "Venue 999 not found" in caplog.text
        assert memory_facade.get_notification_accessor().retrieve_all() == []


class TestBookingDecision:
    """Approvals and rejections notify the fan."""

    def test_confirmed(self, booked):
        facade, booking = booked
        facade.get_booking_accessor().update(replace(booking, status=BookingStatus.CONFIRMED))

        [notification] = notifications_for(facade, "fan1", UserType.FAN)
        assert notification.type is NotificationType.BOOKING_APPROVED
        assert notification.message == (
            "Great news! Your booking for Chicago Bulls vs Boston Celtics has been APPROVED!"
        )

    def test_rejected(self, booked):
        facade, booking = booked
        facade.get_booking_accessor().update(replace(booking, status=BookingStatus.REJECTED))

        [notification] = notifications_for(facade, "fan1", UserType.FAN)
        assert notification.type is NotificationType.BOOKING_REJECTED
        assert "REJECTED" in notification.message

    def test_other_status_ignored(self, booked):
        facade, booking = booked
        facade.get_booking_accessor().update(replace(booking, status=BookingStatus.CANCELLED))
        assert notifications_for(facade, "fan1", UserType.FAN) == []


class TestSuppression:
    """Replays and bootstrap writes generate nothing."""

    def test_silent_while_syncing(self, booked):
        facade, booking = booked
        with SyncContext.propagating():
            facade.get_booking_accessor().update(replace(booking, status=BookingStatus.CONFIRMED))
        assert notifications_for(facade, "fan1", UserType.FAN) == []

    def test_other_families_ignored(self, memory_facade, venue_bean):
        observer = memory_facade.registry.get_notification_observer()
        observer.on_after_insert(EntityType.VENUE, "7", venue_bean)
        observer.on_after_update("Stadium", "7", venue_bean)
        assert memory_facade.get_notification_accessor().retrieve_all() == []

    def test_one_notification_per_event_across_backends(
        self, facade, manager_bean, fan_bean, venue_bean, booking_bean
    ):
        """The replica write of a replicated booking does not notify again."""
        facade.get_venue_manager_accessor().save(manager_bean)
        facade.get_fan_accessor().save(fan_bean)
        facade.get_venue_accessor().save(venue_bean)
        facade.get_booking_accessor().save(booking_bean)

        [master] = facade.get_notification_accessor(PersistenceType.RELATIONAL).retrieve_all()
        [replica] = facade.get_notification_accessor(PersistenceType.FILE).retrieve_all()
        assert replica.id == master.id
