"""Abstract accessor contracts implemented by every storage backend.

One accessor per entity family. Each accessor is an ``ObservableDao`` and
notifies its observers after every successful mutation. Reads return
domain objects, or None when the record is absent; failures raise
``PersistenceError``.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional
import logging

from ..beans import BookingBean, FanBean, UserBean, VenueBean, VenueManagerBean
from ..config import PersistenceType
from ..models import (
    Booking,
    Fan,
    Notification,
    User,
    UserType,
    Venue,
    VenueManager,
)
from ..observer import ObservableDao


class BaseAccessor(ObservableDao, ABC):
    """Common state for accessors: observer list and a per-class logger."""

    backend: PersistenceType

    def __init__(self):
        """Initialize the observer list and logger."""
        super().__init__()
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")


class UserAccessor(BaseAccessor):
    """Base user records, including the credential secret."""

    @abstractmethod
    def save(self, user: UserBean) -> User:
        """Insert a user record.

        Args:
            user: Bean with a non-empty ``password_hash``

        Returns:
            The stored record

        Raises:
            DuplicateEntityError: If the username is taken
            PersistenceError: On storage failure or missing credential
        """

    @abstractmethod
    def retrieve(self, username: str) -> Optional[User]:
        pass

    @abstractmethod
    def retrieve_all(self) -> List[User]:
        pass

    def is_username_taken(self, username: str) -> bool:
        return self.retrieve(username) is not None

    @abstractmethod
    def update(self, user: UserBean) -> None:
        """Update name, gender and, when present, the credential.

        A ``password_hash`` of None leaves the stored credential unchanged.
        """

    @abstractmethod
    def delete(self, username: str) -> None:
        """Delete the user and whichever role record wraps it.

        Notifies with the generic ``User`` tag.
        """


class FanAccessor(BaseAccessor):

    @abstractmethod
    def save(self, fan: FanBean) -> Fan:
        pass

    @abstractmethod
    def retrieve(self, username: str) -> Optional[Fan]:
        pass

    @abstractmethod
    def retrieve_all(self) -> List[Fan]:
        pass

    @abstractmethod
    def update(self, fan: Fan, user: Optional[UserBean] = None) -> None:
        """Update the fan record and its base user fields.

        Args:
            fan: Domain object carrying the new values
            user: Optional carrier for base fields; a None ``password_hash``
                  keeps the stored credential
        """

    @abstractmethod
    def delete(self, fan: Fan) -> None:
        pass


class VenueManagerAccessor(BaseAccessor):

    @abstractmethod
    def save(self, manager: VenueManagerBean) -> VenueManager:
        pass

    @abstractmethod
    def retrieve(self, username: str) -> Optional[VenueManager]:
        pass

    @abstractmethod
    def retrieve_all(self) -> List[VenueManager]:
        pass

    @abstractmethod
    def update(self, manager: VenueManager, user: Optional[UserBean] = None) -> None:
        pass

    @abstractmethod
    def delete(self, manager: VenueManager) -> None:
        pass


class VenueAccessor(BaseAccessor):

    @abstractmethod
    def save(self, venue: VenueBean) -> Venue:
        """Insert a venue, honouring ``venue.id`` when set."""

    @abstractmethod
    def retrieve(self, venue_id: int) -> Optional[Venue]:
        pass

    @abstractmethod
    def retrieve_all(self) -> List[Venue]:
        pass

    def retrieve_by_manager(self, username: str) -> List[Venue]:
        return [v for v in self.retrieve_all() if v.venue_manager_username == username]

    @abstractmethod
    def update(self, venue: Venue) -> None:
        pass

    @abstractmethod
    def delete(self, venue: Venue) -> None:
        pass


class BookingAccessor(BaseAccessor):

    @abstractmethod
    def save(self, booking: BookingBean) -> Booking:
        """Insert a booking, or overwrite it when ``booking.id`` already exists."""

    @abstractmethod
    def retrieve(self, booking_id: int) -> Optional[Booking]:
        pass

    @abstractmethod
    def retrieve_all(self) -> List[Booking]:
        pass

    def retrieve_by_fan(self, username: str) -> List[Booking]:
        return [b for b in self.retrieve_all() if b.fan_username == username]

    def retrieve_by_venue(self, venue_id: int) -> List[Booking]:
        return [b for b in self.retrieve_all() if b.venue_id == venue_id]

    @abstractmethod
    def update(self, booking: Booking) -> None:
        pass

    @abstractmethod
    def delete(self, booking: Booking) -> None:
        pass


class NotificationAccessor(BaseAccessor):

    @abstractmethod
    def save(self, notification: Notification) -> Notification:
        """Insert a notification, honouring ``notification.id`` when set."""

    @abstractmethod
    def retrieve(self, notification_id: int) -> Optional[Notification]:
        pass

    @abstractmethod
    def retrieve_all(self) -> List[Notification]:
        pass

    def retrieve_for_user(self, username: str, user_type: UserType) -> List[Notification]:
        return [
            n for n in self.retrieve_all()
            if n.username == username and n.user_type is user_type
        ]

    def unread_count(self, username: str, user_type: UserType) -> int:
        return sum(1 for n in self.retrieve_for_user(username, user_type) if not n.is_read)

    @abstractmethod
    def update(self, notification: Notification) -> None:
        pass

    @abstractmethod
    def mark_all_as_read(self, username: str, user_type: UserType) -> int:
        """Flag every notification of one user as read.

        Returns:
            Number of notifications that changed
        """

    @abstractmethod
    def delete(self, notification: Notification) -> None:
        pass

    def delete_by_booking(self, booking_id: int) -> int:
        removed = 0
        for notification in self.retrieve_all():
            if notification.related_booking_id == booking_id:
                self.delete(notification)
                removed += 1
        return removed


class BackendFactory(ABC):
    """Builds the accessors of one backend.

    Each call returns a fresh accessor with no observers attached; the
    persistence facade caches accessors and attaches observers itself.
    """

    backend: PersistenceType

    def __init__(self):
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @abstractmethod
    def user_accessor(self) -> UserAccessor:
        pass

    @abstractmethod
    def fan_accessor(self) -> FanAccessor:
        pass

    @abstractmethod
    def venue_manager_accessor(self) -> VenueManagerAccessor:
        pass

    @abstractmethod
    def venue_accessor(self) -> VenueAccessor:
        pass

    @abstractmethod
    def booking_accessor(self) -> BookingAccessor:
        pass

    @abstractmethod
    def notification_accessor(self) -> NotificationAccessor:
        pass

    def ping(self) -> bool:
        """Check that the backend can currently serve requests."""
        return True

    def counts(self) -> Dict[str, int]:
        """Record count per family, for status reports."""
        return {
            "users": len(self.user_accessor().retrieve_all()),
            "fans": len(self.fan_accessor().retrieve_all()),
            "venue_managers": len(self.venue_manager_accessor().retrieve_all()),
            "venues": len(self.venue_accessor().retrieve_all()),
            "bookings": len(self.booking_accessor().retrieve_all()),
            "notifications": len(self.notification_accessor().retrieve_all()),
        }

    def reset(self) -> List[Path]:
        """Wipe every record held by this backend.

        Returns:
            Paths of the files that were wiped (empty for non-file backends)
        """
        raise NotImplementedError(f"{type(self).__name__} cannot be reset")

    def close(self) -> None:
        """Release any resources held by the backend."""
