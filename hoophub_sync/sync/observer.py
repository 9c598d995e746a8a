"""Real-time replication of committed mutations to the complementary backend.

One observer instance is bound to a source backend; its target is always
``source.complement``. Each handler:

1. returns immediately if the current execution context is already
   propagating (the replay of a replay is suppressed here);
2. marks the context, replays the mutation on the target through the
   facade, and clears the context on every exit path.

Replication is best effort. A failed replay is logged with its full context
and swallowed: the source write has already committed and stays committed.
The next bootstrap reconciliation repairs the replica.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional, Union

from ..beans import UserBean
from ..config import PersistenceType
from ..exceptions import MalformedIdentifierError, PersistenceError
from ..models import Booking, Fan, Notification, User, UserType, Venue, VenueManager
from ..observer import DaoObserver, DaoOperation, EntityType
from ..utils.logging import replication_fields
from .context import SyncContext

if TYPE_CHECKING:
    from ..facade import PersistenceFacade

logger = logging.getLogger(__name__)

Handler = Callable[[str, Any], Optional[bool]]


def parse_numeric_id(entity_type: EntityType, entity_id: str) -> int:
    """Parse a Venue, Booking or Notification id carried as a string.

    Raises:
        MalformedIdentifierError: If ``entity_id`` is not an integer
    """
    try:
        return int(entity_id)
    except (TypeError, ValueError) as e:
        raise MalformedIdentifierError(entity_type.value, entity_id) from e


def identity_carrier(username: str, full_name: str, gender: str, user_type: UserType) -> UserBean:
    """Minimal user carrier for a role update, without the credential."""
    return UserBean(
        username=username,
        full_name=full_name,
        gender=gender,
        user_type=user_type,
        password_hash=None,
    )


class CrossPersistenceSyncObserver(DaoObserver):
    """Replays mutations from ``source`` onto ``source.complement``.

    Attributes:
        source: Backend whose accessors this observer is attached to
        target: Backend receiving the replays
    """

    def __init__(self, facade: "PersistenceFacade", source: PersistenceType):
        """Bind the observer to a source backend.

        Args:
            facade: Facade used to resolve target accessors
            source: RELATIONAL or FILE

        Raises:
            ValueError: If ``source`` takes part in no sync direction
        """
        target = source.complement
        if target is None:
            raise ValueError(f"{source.value} backend has no sync target")

        self.facade = facade
        self.source = source
        self.target = target

        self._routes: Dict[DaoOperation, Dict[EntityType, Handler]] = {
            DaoOperation.INSERT: {
                EntityType.USER: self._insert_user,
                EntityType.FAN: self._insert_fan,
                EntityType.VENUE_MANAGER: self._insert_venue_manager,
                EntityType.VENUE: self._insert_venue,
                EntityType.BOOKING: self._insert_booking,
                EntityType.NOTIFICATION: self._insert_notification,
            },
            DaoOperation.UPDATE: {
                EntityType.USER: self._update_user,
                EntityType.FAN: self._update_fan,
                EntityType.VENUE_MANAGER: self._update_venue_manager,
                EntityType.VENUE: self._update_venue,
                EntityType.BOOKING: self._update_booking,
                EntityType.NOTIFICATION: self._update_notification,
            },
            DaoOperation.DELETE: {
                EntityType.USER: self._delete_user,
                EntityType.FAN: self._delete_fan,
                EntityType.VENUE_MANAGER: self._delete_venue_manager,
                EntityType.VENUE: self._delete_venue,
                EntityType.BOOKING: self._delete_booking,
                EntityType.NOTIFICATION: self._delete_notification,
            },
        }

    def __repr__(self) -> str:
        return f"CrossPersistenceSyncObserver({self.source.value} -> {self.target.value})"

    def routes(self, operation: DaoOperation) -> Dict[EntityType, Handler]:
        """Routing table for one operation (read-only view for inspection)."""
        return dict(self._routes[operation])

    # -- DaoObserver -------------------------------------------------------

    def on_after_insert(self, entity_type, entity_id: str, entity: Any) -> None:
        self._propagate(DaoOperation.INSERT, entity_type, entity_id, entity)

    def on_after_update(self, entity_type, entity_id: str, entity: Any) -> None:
        self._propagate(DaoOperation.UPDATE, entity_type, entity_id, entity)

    def on_after_delete(self, entity_type, entity_id: str) -> None:
        self._propagate(DaoOperation.DELETE, entity_type, entity_id, None)

    # -- propagation -------------------------------------------------------

    def _propagate(
        self,
        operation: DaoOperation,
        entity_type: Union[EntityType, str],
        entity_id: str,
        payload: Any,
    ) -> None:
        if SyncContext.is_syncing():
            return

        tag = entity_type.value if isinstance(entity_type, EntityType) else str(entity_type)
        context = replication_fields(operation, tag, entity_id, self.source, self.target)
        described = f"{operation.name} {tag} {entity_id} ({self.source.value} -> {self.target.value})"

        SyncContext.start_sync()
        try:
            kind = EntityType.from_tag(entity_type)
            if kind is None:
                logger.warning(f"Skipping {described}: unknown entity type", extra=context)
                return

            handler = self._routes[operation].get(kind)
            if handler is None:
                logger.warning(f"Skipping {described}: no route", extra=context)
                return

            applied = handler(str(entity_id), payload)
            if applied is False:
                logger.debug(f"Nothing to replay for {described}", extra=context)
            else:
                logger.info(f"Replicated {described}", extra=context)

        except MalformedIdentifierError as e:
            logger.error(f"Replication failed for {described}: {e}", extra=context)
        except PersistenceError as e:
            logger.error(f"Replication failed for {described}: {e}", extra=context)
        except Exception:
            # The source write is committed; a replica failure must not reach its caller.
            logger.exception(f"Unexpected error replicating {described}", extra=context)
        finally:
            SyncContext.end_sync()

    # -- INSERT: payload is a transfer object --------------------------------

    def _insert_user(self, entity_id: str, bean) -> None:
        self.facade.get_user_accessor(self.target).save(bean)

    def _insert_fan(self, entity_id: str, bean) -> None:
        self.facade.get_fan_accessor(self.target).save(bean)

    def _insert_venue_manager(self, entity_id: str, bean) -> None:
        self.facade.get_venue_manager_accessor(self.target).save(bean)

    def _insert_venue(self, entity_id: str, bean) -> None:
        self.facade.get_venue_accessor(self.target).save(bean)

    def _insert_booking(self, entity_id: str, bean) -> None:
        self.facade.get_booking_accessor(self.target).save(bean)

    def _insert_notification(self, entity_id: str, notification: Notification) -> None:
        # Notifications have no carrier; replay a copy that keeps the source id.
        self.facade.get_notification_accessor(self.target).save(dataclasses.replace(notification))

    # -- UPDATE: payload is a domain object -----------------------------------

    def _update_user(self, entity_id: str, user: User) -> None:
        carrier = identity_carrier(user.username, user.full_name, user.gender, user.user_type)
        self.facade.get_user_accessor(self.target).update(carrier)

    def _update_fan(self, entity_id: str, fan: Fan) -> None:
        carrier = identity_carrier(fan.username, fan.full_name, fan.gender, UserType.FAN)
        self.facade.get_fan_accessor(self.target).update(fan, carrier)

    def _update_venue_manager(self, entity_id: str, manager: VenueManager) -> None:
        carrier = identity_carrier(
            manager.username, manager.full_name, manager.gender, UserType.VENUE_MANAGER
        )
        self.facade.get_venue_manager_accessor(self.target).update(manager, carrier)

    def _update_venue(self, entity_id: str, venue: Venue) -> None:
        self.facade.get_venue_accessor(self.target).update(venue)

    def _update_booking(self, entity_id: str, booking: Booking) -> None:
        self.facade.get_booking_accessor(self.target).update(booking)

    def _update_notification(self, entity_id: str, notification: Notification) -> None:
        self.facade.get_notification_accessor(self.target).update(notification)

    # -- DELETE: only the id is known; look it up on the target first --------

    def _delete_user(self, entity_id: str, _payload=None) -> bool:
        fans = self.facade.get_fan_accessor(self.target)
        fan = fans.retrieve(entity_id)
        if fan is not None:
            fans.delete(fan)
            return True

        managers = self.facade.get_venue_manager_accessor(self.target)
        manager = managers.retrieve(entity_id)
        if manager is not None:
            managers.delete(manager)
            return True

        return False

    def _delete_fan(self, entity_id: str, _payload=None) -> bool:
        fans = self.facade.get_fan_accessor(self.target)
        fan = fans.retrieve(entity_id)
        if fan is None:
            return False
        fans.delete(fan)
        return True

    def _delete_venue_manager(self, entity_id: str, _payload=None) -> bool:
        managers = self.facade.get_venue_manager_accessor(self.target)
        manager = managers.retrieve(entity_id)
        if manager is None:
            return False
        managers.delete(manager)
        return True

    def _delete_venue(self, entity_id: str, _payload=None) -> bool:
        venue_id = parse_numeric_id(EntityType.VENUE, entity_id)
        venues = self.facade.get_venue_accessor(self.target)
        venue = venues.retrieve(venue_id)
        if venue is None:
            return False
        venues.delete(venue)
        return True

    def _delete_booking(self, entity_id: str, _payload=None) -> bool:
        booking_id = parse_numeric_id(EntityType.BOOKING, entity_id)
        bookings = self.facade.get_booking_accessor(self.target)
        booking = bookings.retrieve(booking_id)
        if booking is None:
            return False
        bookings.delete(booking)
        return True

    def _delete_notification(self, entity_id: str, _payload=None) -> bool:
        notification_id = parse_numeric_id(EntityType.NOTIFICATION, entity_id)
        notifications = self.facade.get_notification_accessor(self.target)
        notification = notifications.retrieve(notification_id)
        if notification is None:
            return False
        notifications.delete(notification)
        return True
