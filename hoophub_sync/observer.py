"""Change notification contract shared by every backend accessor.

Accessors call ``notify`` after, and only after, a local mutation has
committed. Observers run synchronously on the caller's execution context;
an observer that raises is logged and skipped so the committed write is
never reported as failed.
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional, Union

logger = logging.getLogger(__name__)


class DaoOperation(Enum):
    """Kind of mutation a change event reports."""
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class EntityType(Enum):
    """Entity-type tags carried by change events.

    ``USER`` is the generic tag used when the caller does not know which
    role the account plays.
    """
    USER = "User"
    FAN = "Fan"
    VENUE_MANAGER = "VenueManager"
    VENUE = "Venue"
    BOOKING = "Booking"
    NOTIFICATION = "Notification"

    @classmethod
    def from_tag(cls, tag: Union["EntityType", str]) -> Optional["EntityType"]:
        """Resolve a tag, returning None for names outside the known set."""
        if isinstance(tag, cls):
            return tag
        try:
            return cls(tag)
        except ValueError:
            return None


@dataclass(frozen=True)
class ChangeEvent:
    """One committed mutation.

    Attributes:
        operation: INSERT, UPDATE or DELETE
        entity_type: Tag of the mutated family (unknown tags kept as str)
        entity_id: Identifier rendered as a string
        payload: Transfer object (INSERT), domain object (UPDATE), None (DELETE)
    """
    operation: DaoOperation
    entity_type: Union[EntityType, str]
    entity_id: str
    payload: Any = None

    def __post_init__(self):
        if self.operation is DaoOperation.DELETE:
            if self.payload is not None:
                raise ValueError("DELETE events carry no payload")
        elif self.payload is None:
            raise ValueError(f"{self.operation.name} events require a payload")

    @property
    def tag(self) -> str:
        if isinstance(self.entity_type, EntityType):
            return self.entity_type.value
        return str(self.entity_type)


class DaoObserver(ABC):
    """Receives change events from the accessors it is attached to."""

    @abstractmethod
    def on_after_insert(self, entity_type, entity_id: str, entity: Any) -> None:
        pass

    @abstractmethod
    def on_after_update(self, entity_type, entity_id: str, entity: Any) -> None:
        pass

    @abstractmethod
    def on_after_delete(self, entity_type, entity_id: str) -> None:
        pass


class ObservableDao:
    """Mixin giving an accessor its observer list.

    Example:
        accessor.add_observer(observer)
        accessor.notify(DaoOperation.INSERT, EntityType.VENUE, "7", bean)
    """

    def __init__(self):
        self._observers: List[DaoObserver] = []
        self._observers_lock = threading.Lock()

    @property
    def observers(self) -> List[DaoObserver]:
        """Snapshot of the attached observers."""
        with self._observers_lock:
            return list(self._observers)

    def add_observer(self, observer: DaoObserver) -> None:
        """Attach an observer; attaching the same instance twice is a no-op."""
        with self._observers_lock:
            if observer not in self._observers:
                self._observers.append(observer)

    def remove_observer(self, observer: DaoObserver) -> None:
        with self._observers_lock:
            if observer in self._observers:
                self._observers.remove(observer)

    def notify(
        self,
        operation: DaoOperation,
        entity_type: Union[EntityType, str],
        entity_id,
        payload: Any = None,
    ) -> None:
        """Dispatch a committed mutation to every attached observer.

        Args:
            operation: Kind of mutation
            entity_type: Tag of the mutated family
            entity_id: Identifier of the mutated record
            payload: Transfer object for INSERT, domain object for UPDATE

        Raises:
            ValueError: If the payload does not match the operation
        """
        event = ChangeEvent(operation, entity_type, str(entity_id), payload)

        for observer in self.observers:
            try:
                if operation is DaoOperation.INSERT:
                    observer.on_after_insert(event.entity_type, event.entity_id, event.payload)
                elif operation is DaoOperation.UPDATE:
                    observer.on_after_update(event.entity_type, event.entity_id, event.payload)
                else:
                    observer.on_after_delete(event.entity_type, event.entity_id)
            except Exception:
                logger.exception(
                    f"Observer {type(observer).__name__} failed on "
                    f"{operation.name} {event.tag} {event.entity_id}"
                )
