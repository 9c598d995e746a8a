"""Lazily built, cached observers for each backend's accessors."""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Dict, List, Optional

from ..config import PersistenceType
from ..notifications import NotificationBookingObserver
from ..observer import DaoObserver
from .observer import CrossPersistenceSyncObserver

if TYPE_CHECKING:
    from ..facade import PersistenceFacade

logger = logging.getLogger(__name__)


class ObserverRegistry:
    """Builds and caches the observers the facade attaches to accessors.

    Holds at most one sync observer per source direction (RELATIONAL -> FILE
    and FILE -> RELATIONAL; none for IN_MEMORY) and one notification
    observer shared by every backend.
    """

    def __init__(self, facade: "PersistenceFacade"):
        self._facade = facade
        self._lock = threading.Lock()
        self._sync_observers: Dict[PersistenceType, CrossPersistenceSyncObserver] = {}
        self._notification_observer: Optional[NotificationBookingObserver] = None

    def get_sync_observer(self, source: PersistenceType) -> Optional[CrossPersistenceSyncObserver]:
        """Sync observer for mutations made on ``source``, None if volatile."""
        if source.complement is None:
            return None
        with self._lock:
            observer = self._sync_observers.get(source)
            if observer is None:
                observer = CrossPersistenceSyncObserver(self._facade, source)
                self._sync_observers[source] = observer
                logger.debug(f"Created {observer!r}")
            return observer

    def get_notification_observer(self) -> NotificationBookingObserver:
        with self._lock:
            if self._notification_observer is None:
                self._notification_observer = NotificationBookingObserver(self._facade)
            return self._notification_observer

    def get_all_observers(self, backend: PersistenceType) -> List[DaoObserver]:
        """Observers every accessor of ``backend`` registers at construction.

        Returns:
            The sync observer for ``backend`` (unless volatile) followed by the
            notification observer
        """
        observers: List[DaoObserver] = []
        sync_observer = self.get_sync_observer(backend)
        if sync_observer is not None:
            observers.append(sync_observer)
        observers.append(self.get_notification_observer())
        return observers
