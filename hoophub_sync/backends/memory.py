"""Volatile in-memory backend.

Data lives for the lifetime of the factory and is never synchronized with
the other backends. Objects are copied on the way in and out so callers
cannot mutate stored state by accident.
"""

import copy
import threading
from typing import Dict, List, Optional

from ..beans import BookingBean, FanBean, UserBean, VenueBean, VenueManagerBean
from ..config import PersistenceType
from ..exceptions import DuplicateEntityError, EntityNotFoundError, PersistenceError
from ..models import (
    Booking,
    Fan,
    Notification,
    User,
    UserType,
    Venue,
    VenueManager,
)
from ..observer import DaoOperation, EntityType
from .base import (
    BackendFactory,
    BookingAccessor,
    FanAccessor,
    NotificationAccessor,
    UserAccessor,
    VenueAccessor,
    VenueManagerAccessor,
)


class InMemoryDataStore:
    """Dictionaries keyed by primary key, shared by one factory's accessors."""

    def __init__(self):
        self.lock = threading.RLock()
        self.users: Dict[str, User] = {}
        self.fans: Dict[str, Fan] = {}
        self.venue_managers: Dict[str, VenueManager] = {}
        self.venues: Dict[int, Venue] = {}
        self.bookings: Dict[int, Booking] = {}
        self.notifications: Dict[int, Notification] = {}

    def clear(self) -> None:
        with self.lock:
            for table in (self.users, self.fans, self.venue_managers,
                          self.venues, self.bookings, self.notifications):
                table.clear()

    @staticmethod
    def next_id(table: Dict[int, object]) -> int:
        return max(table, default=0) + 1

    def insert_user(self, user: UserBean) -> None:
        if not user.password_hash:
            raise PersistenceError(f"User '{user.username}' has no password hash")
        if user.username in self.users:
            raise DuplicateEntityError(f"Username '{user.username}' is already taken")
        self.users[user.username] = User(
            user.username, user.full_name, user.gender, user.user_type, user.password_hash
        )

    def update_user(self, user: UserBean) -> None:
        stored = self.users.get(user.username)
        if stored is None:
            raise EntityNotFoundError(f"User '{user.username}' not found")
        stored.full_name = user.full_name
        stored.gender = user.gender
        if user.password_hash:
            stored.password_hash = user.password_hash

    def remove_venue(self, venue_id: int) -> None:
        self.venues.pop(venue_id, None)
        for booking_id in [b.id for b in self.bookings.values() if b.venue_id == venue_id]:
            self.remove_booking(booking_id)

    def remove_booking(self, booking_id: int) -> None:
        self.bookings.pop(booking_id, None)
        for notification in self.notifications.values():
            if notification.related_booking_id == booking_id:
                notification.related_booking_id = None

    def remove_user(self, username: str) -> None:
        for booking_id in [b.id for b in self.bookings.values() if b.fan_username == username]:
            self.remove_booking(booking_id)
        for venue_id in [v.id for v in self.venues.values() if v.venue_manager_username == username]:
            self.remove_venue(venue_id)
        for notification_id in [n.id for n in self.notifications.values() if n.username == username]:
            del self.notifications[notification_id]
        self.fans.pop(username, None)
        self.venue_managers.pop(username, None)
        self.users.pop(username, None)


class InMemoryAccessor:

    backend = PersistenceType.IN_MEMORY

    def __init__(self, store: InMemoryDataStore):
        super().__init__()
        self.store = store


class InMemoryUserAccessor(InMemoryAccessor, UserAccessor):

    def save(self, user: UserBean) -> User:
        with self.store.lock:
            self.store.insert_user(user)
            stored = copy.deepcopy(self.store.users[user.username])
        self.notify(DaoOperation.INSERT, EntityType.USER, user.username, user)
        return stored

    def retrieve(self, username: str) -> Optional[User]:
        return copy.deepcopy(self.store.users.get(username))

    def retrieve_all(self) -> List[User]:
        return copy.deepcopy(list(self.store.users.values()))

    def update(self, user: UserBean) -> None:
        with self.store.lock:
            self.store.update_user(user)
        updated = User(user.username, user.full_name, user.gender, user.user_type)
        self.notify(DaoOperation.UPDATE, EntityType.USER, user.username, updated)

    def delete(self, username: str) -> None:
        with self.store.lock:
            if username not in self.store.users:
                raise EntityNotFoundError(f"User '{username}' not found")
            self.store.remove_user(username)
        self.notify(DaoOperation.DELETE, EntityType.USER, username)


class InMemoryFanAccessor(InMemoryAccessor, FanAccessor):

    def save(self, fan: FanBean) -> Fan:
        with self.store.lock:
            self.store.insert_user(fan)
            self.store.fans[fan.username] = fan.to_fan()
        self.notify(DaoOperation.INSERT, EntityType.FAN, fan.username, fan)
        return fan.to_fan()

    def retrieve(self, username: str) -> Optional[Fan]:
        return copy.deepcopy(self.store.fans.get(username))

    def retrieve_all(self) -> List[Fan]:
        return copy.deepcopy(list(self.store.fans.values()))

    def update(self, fan: Fan, user: Optional[UserBean] = None) -> None:
        user = user or UserBean(fan.username, fan.full_name, fan.gender, UserType.FAN)
        with self.store.lock:
            if fan.username not in self.store.fans:
                raise EntityNotFoundError(f"Fan '{fan.username}' not found")
            self.store.update_user(user)
            self.store.fans[fan.username] = copy.deepcopy(fan)
        self.notify(DaoOperation.UPDATE, EntityType.FAN, fan.username, fan)

    def delete(self, fan: Fan) -> None:
        with self.store.lock:
            if fan.username not in self.store.fans:
                raise EntityNotFoundError(f"Fan '{fan.username}' not found")
            self.store.remove_user(fan.username)
        self.notify(DaoOperation.DELETE, EntityType.FAN, fan.username)


class InMemoryVenueManagerAccessor(InMemoryAccessor, VenueManagerAccessor):

    def save(self, manager: VenueManagerBean) -> VenueManager:
        with self.store.lock:
            self.store.insert_user(manager)
            self.store.venue_managers[manager.username] = manager.to_venue_manager()
        self.notify(DaoOperation.INSERT, EntityType.VENUE_MANAGER, manager.username, manager)
        return manager.to_venue_manager()

    def retrieve(self, username: str) -> Optional[VenueManager]:
        return copy.deepcopy(self.store.venue_managers.get(username))

    def retrieve_all(self) -> List[VenueManager]:
        return copy.deepcopy(list(self.store.venue_managers.values()))

    def update(self, manager: VenueManager, user: Optional[UserBean] = None) -> None:
        user = user or UserBean(
            manager.username, manager.full_name, manager.gender, UserType.VENUE_MANAGER
        )
        with self.store.lock:
            if manager.username not in self.store.venue_managers:
                raise EntityNotFoundError(f"Venue manager '{manager.username}' not found")
            self.store.update_user(user)
            self.store.venue_managers[manager.username] = copy.deepcopy(manager)
        self.notify(DaoOperation.UPDATE, EntityType.VENUE_MANAGER, manager.username, manager)

    def delete(self, manager: VenueManager) -> None:
        with self.store.lock:
            if manager.username not in self.store.venue_managers:
                raise EntityNotFoundError(f"Venue manager '{manager.username}' not found")
            self.store.remove_user(manager.username)
        self.notify(DaoOperation.DELETE, EntityType.VENUE_MANAGER, manager.username)


class InMemoryVenueAccessor(InMemoryAccessor, VenueAccessor):

    def save(self, venue: VenueBean) -> Venue:
        with self.store.lock:
            if venue.venue_manager_username not in self.store.venue_managers:
                raise PersistenceError(f"Unknown venue manager '{venue.venue_manager_username}'")
            if venue.id is None:
                venue.id = self.store.next_id(self.store.venues)
            elif venue.id in self.store.venues:
                raise DuplicateEntityError(f"Venue {venue.id} already exists")
            stored = venue.to_venue(venue.id)
            self.store.venues[venue.id] = copy.deepcopy(stored)
        self.notify(DaoOperation.INSERT, EntityType.VENUE, venue.id, venue)
        return stored

    def retrieve(self, venue_id: int) -> Optional[Venue]:
        return copy.deepcopy(self.store.venues.get(venue_id))

    def retrieve_all(self) -> List[Venue]:
        return copy.deepcopy(list(self.store.venues.values()))

    def update(self, venue: Venue) -> None:
        with self.store.lock:
            if venue.id not in self.store.venues:
                raise EntityNotFoundError(f"Venue {venue.id} not found")
            self.store.venues[venue.id] = copy.deepcopy(venue)
        self.notify(DaoOperation.UPDATE, EntityType.VENUE, venue.id, venue)

    def delete(self, venue: Venue) -> None:
        with self.store.lock:
            if venue.id not in self.store.venues:
                raise EntityNotFoundError(f"Venue {venue.id} not found")
            self.store.remove_venue(venue.id)
        self.notify(DaoOperation.DELETE, EntityType.VENUE, venue.id)


class InMemoryBookingAccessor(InMemoryAccessor, BookingAccessor):

    def save(self, booking: BookingBean) -> Booking:
        with self.store.lock:
            if booking.venue_id not in self.store.venues:
                raise PersistenceError(f"Unknown venue {booking.venue_id}")
            if booking.fan_username not in self.store.fans:
                raise PersistenceError(f"Unknown fan '{booking.fan_username}'")
            if booking.id is None:
                booking.id = self.store.next_id(self.store.bookings)
            stored = booking.to_booking(booking.id)
            self.store.bookings[booking.id] = copy.deepcopy(stored)
        self.notify(DaoOperation.INSERT, EntityType.BOOKING, booking.id, booking)
        return stored

    def retrieve(self, booking_id: int) -> Optional[Booking]:
        return copy.deepcopy(self.store.bookings.get(booking_id))

    def retrieve_all(self) -> List[Booking]:
        return copy.deepcopy(list(self.store.bookings.values()))

    def update(self, booking: Booking) -> None:
        with self.store.lock:
            if booking.id not in self.store.bookings:
                raise EntityNotFoundError(f"Booking {booking.id} not found")
            self.store.bookings[booking.id] = copy.deepcopy(booking)
        self.notify(DaoOperation.UPDATE, EntityType.BOOKING, booking.id, booking)

    def delete(self, booking: Booking) -> None:
        with self.store.lock:
            if booking.id not in self.store.bookings:
                raise EntityNotFoundError(f"Booking {booking.id} not found")
            self.store.remove_booking(booking.id)
        self.notify(DaoOperation.DELETE, EntityType.BOOKING, booking.id)


class InMemoryNotificationAccessor(InMemoryAccessor, NotificationAccessor):

    def save(self, notification: Notification) -> Notification:
        with self.store.lock:
            if notification.id is None:
                notification.id = self.store.next_id(self.store.notifications)
            elif notification.id in self.store.notifications:
                raise DuplicateEntityError(f"Notification {notification.id} already exists")
            self.store.notifications[notification.id] = copy.deepcopy(notification)
        self.notify(DaoOperation.INSERT, EntityType.NOTIFICATION, notification.id, notification)
        return notification

    def retrieve(self, notification_id: int) -> Optional[Notification]:
        return copy.deepcopy(self.store.notifications.get(notification_id))

    def retrieve_all(self) -> List[Notification]:
        return copy.deepcopy(list(self.store.notifications.values()))

    def update(self, notification: Notification) -> None:
        with self.store.lock:
            if notification.id not in self.store.notifications:
                raise EntityNotFoundError(f"Notification {notification.id} not found")
            self.store.notifications[notification.id] = copy.deepcopy(notification)
        self.notify(DaoOperation.UPDATE, EntityType.NOTIFICATION, notification.id, notification)

    def mark_all_as_read(self, username: str, user_type: UserType) -> int:
        changed = 0
        with self.store.lock:
            for notification in self.store.notifications.values():
                if (notification.username == username and notification.user_type is user_type
                        and not notification.is_read):
                    notification.is_read = True
                    changed += 1
        return changed

    def delete(self, notification: Notification) -> None:
        with self.store.lock:
            if self.store.notifications.pop(notification.id, None) is None:
                raise EntityNotFoundError(f"Notification {notification.id} not found")
        self.notify(DaoOperation.DELETE, EntityType.NOTIFICATION, notification.id)


class InMemoryBackendFactory(BackendFactory):

    backend = PersistenceType.IN_MEMORY

    def __init__(self, store: Optional[InMemoryDataStore] = None):
        super().__init__()
        self.store = store or InMemoryDataStore()

    def user_accessor(self) -> InMemoryUserAccessor:
        return InMemoryUserAccessor(self.store)

    def fan_accessor(self) -> InMemoryFanAccessor:
        return InMemoryFanAccessor(self.store)

    def venue_manager_accessor(self) -> InMemoryVenueManagerAccessor:
        return InMemoryVenueManagerAccessor(self.store)

    def venue_accessor(self) -> InMemoryVenueAccessor:
        return InMemoryVenueAccessor(self.store)

    def booking_accessor(self) -> InMemoryBookingAccessor:
        return InMemoryBookingAccessor(self.store)

    def notification_accessor(self) -> InMemoryNotificationAccessor:
        return InMemoryNotificationAccessor(self.store)

    def reset(self) -> List:
        self.store.clear()
        return []
