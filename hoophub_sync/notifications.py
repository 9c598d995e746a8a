"""Notification generation driven by booking changes.

A new booking notifies the venue's manager; a booking confirmed or rejected
notifies the fan. Notifications are written to the active backend and are
never generated while a replay or bootstrap is propagating, so each user
event produces exactly one notification.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from .exceptions import PersistenceError
from .models import BookingStatus, Notification, NotificationType, UserType
from .observer import DaoObserver, EntityType
from .sync.context import SyncContext

if TYPE_CHECKING:
    from .facade import PersistenceFacade

logger = logging.getLogger(__name__)


class NotificationBookingObserver(DaoObserver):
    """Creates notifications for booking requests and decisions."""

    def __init__(self, facade: "PersistenceFacade"):
        self.facade = facade

    def on_after_insert(self, entity_type, entity_id: str, entity: Any) -> None:
        if EntityType.from_tag(entity_type) is not EntityType.BOOKING or SyncContext.is_syncing():
            return
        try:
            self._notify_venue_manager(entity)
        except PersistenceError as e:
            logger.error(f"Failed to create notification for new booking {entity_id}: {e}")

    def on_after_update(self, entity_type, entity_id: str, entity: Any) -> None:
        if EntityType.from_tag(entity_type) is not EntityType.BOOKING or SyncContext.is_syncing():
            return
        if entity.status not in (BookingStatus.CONFIRMED, BookingStatus.REJECTED):
            return
        try:
            self._notify_fan(entity)
        except PersistenceError as e:
            logger.error(f"Failed to create notification for booking update {entity_id}: {e}")

    def on_after_delete(self, entity_type, entity_id: str) -> None:
        pass

    def _notify_venue_manager(self, booking) -> Notification:
        venue = self.facade.get_venue_accessor().retrieve(booking.venue_id)
        if venue is None:
            raise PersistenceError(f"Venue {booking.venue_id} not found")

        message = (
            f"New booking request for {booking.home_team.display_name} vs "
            f"{booking.away_team.display_name} on {booking.game_date.isoformat()}"
        )
        notification = self.facade.get_notification_accessor().save(Notification(
            id=None,
            username=venue.venue_manager_username,
            user_type=UserType.VENUE_MANAGER,
            type=NotificationType.BOOKING_REQUESTED,
            message=message,
            related_booking_id=booking.id,
            created_at=datetime.now(),
        ))
        logger.info(f"Notified venue manager '{venue.venue_manager_username}' of booking {booking.id}")
        return notification

    def _notify_fan(self, booking) -> Notification:
        teams = f"{booking.home_team.display_name} vs {booking.away_team.display_name}"
        if booking.status is BookingStatus.CONFIRMED:
            kind = NotificationType.BOOKING_APPROVED
            message = f"Great news! Your booking for {teams} has been APPROVED!"
        else:
            kind = NotificationType.BOOKING_REJECTED
            message = f"Sorry, your booking for {teams} has been REJECTED."

        notification = self.facade.get_notification_accessor().save(Notification(
            id=None,
            username=booking.fan_username,
            user_type=UserType.FAN,
            type=kind,
            message=message,
            related_booking_id=booking.id,
            created_at=datetime.now(),
        ))
        logger.info(f"Notified fan '{booking.fan_username}' of booking {booking.id} ({booking.status.name})")
        return notification
