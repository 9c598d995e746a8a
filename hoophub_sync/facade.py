"""Persistence access facade.

Single entry point application code and the sync engine use to reach a
backend accessor. Accessors are cached per (backend, family) and get their
observers attached once, at creation, from the ``ObserverRegistry``.

Callers may pass an explicit backend to any ``get_*_accessor`` method; the
sync engine always does, so replication never depends on which backend is
currently selected. ``use_backend`` offers a scoped override of the
selector that is restored on every exit path.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, Optional, Tuple

from .backends import get_factory
from .backends.base import (
    BackendFactory,
    BaseAccessor,
    BookingAccessor,
    FanAccessor,
    NotificationAccessor,
    UserAccessor,
    VenueAccessor,
    VenueManagerAccessor,
)
from .config import PersistenceType, SyncConfig
from .exceptions import PersistenceError
from .models import UserType
from .sync.context import SyncContext
from .sync.registry import ObserverRegistry

logger = logging.getLogger(__name__)

FAMILIES = ("user", "fan", "venue_manager", "venue", "booking", "notification")


class PersistenceFacade:
    """Resolves accessors for the active (or an explicit) backend.

    Attributes:
        config: Paths and URLs used to build backend factories
        registry: Observer registry supplying each accessor's observers

    Example:
        facade = PersistenceFacade(SyncConfig(persistence="file"))
        venues = facade.get_venue_accessor().retrieve_all()
    """

    def __init__(
        self,
        config: Optional[SyncConfig] = None,
        factories: Optional[Dict[PersistenceType, BackendFactory]] = None,
    ):
        """Initialize the facade.

        Args:
            config: Backend configuration (defaults to ``SyncConfig()``)
            factories: Prebuilt factories keyed by backend; any backend not
                       listed is built lazily from ``config``
        """
        self.config = config or SyncConfig()
        self._active = self.config.persistence
        self._factories: Dict[PersistenceType, BackendFactory] = dict(factories or {})
        self._accessors: Dict[Tuple[PersistenceType, str], BaseAccessor] = {}
        self._lock = threading.RLock()
        self.registry = ObserverRegistry(self)

    # -- backend selector -------------------------------------------------

    def get_active_backend(self) -> PersistenceType:
        return self._active

    def set_active_backend(self, backend: PersistenceType) -> None:
        with self._lock:
            if backend is not self._active:
                logger.info(f"Active backend: {self._active.value} -> {backend.value}")
            self._active = backend

    @property
    def active_backend(self) -> PersistenceType:
        return self._active

    @property
    def secondary_backend(self) -> Optional[PersistenceType]:
        """Complement of the active backend, None when it is volatile."""
        return self._active.complement

    @contextmanager
    def use_backend(self, backend: PersistenceType) -> Iterator[PersistenceType]:
        """Temporarily select ``backend``.

        The selector lock is held for the whole block, so overrides from
        different threads are serialized, and the prior value is restored
        even when the block raises.
        """
        with self._lock:
            prior = self._active
            self._active = backend
            try:
                yield backend
            finally:
                self._active = prior

    # -- factories and accessors ------------------------------------------

    def get_factory(self, backend: Optional[PersistenceType] = None) -> BackendFactory:
        """Return the (cached) factory for ``backend``, default the active one."""
        backend = backend or self._active
        with self._lock:
            factory = self._factories.get(backend)
            if factory is None:
                factory = get_factory(backend, self.config)
                self._factories[backend] = factory
            return factory

    def _accessor(self, family: str, backend: Optional[PersistenceType]) -> BaseAccessor:
        backend = backend or self._active
        key = (backend, family)
        with self._lock:
            accessor = self._accessors.get(key)
            if accessor is None:
                factory = self.get_factory(backend)
                accessor = getattr(factory, f"{family}_accessor")()
                for observer in self.registry.get_all_observers(backend):
                    accessor.add_observer(observer)
                self._accessors[key] = accessor
                logger.debug(
                    f"Created {family} accessor for {backend.value} "
                    f"with {len(accessor.observers)} observer(s)"
                )
            return accessor

    def get_user_accessor(self, backend: Optional[PersistenceType] = None) -> UserAccessor:
        return self._accessor("user", backend)

    def get_fan_accessor(self, backend: Optional[PersistenceType] = None) -> FanAccessor:
        return self._accessor("fan", backend)

    def get_venue_manager_accessor(
        self, backend: Optional[PersistenceType] = None
    ) -> VenueManagerAccessor:
        return self._accessor("venue_manager", backend)

    def get_venue_accessor(self, backend: Optional[PersistenceType] = None) -> VenueAccessor:
        return self._accessor("venue", backend)

    def get_booking_accessor(self, backend: Optional[PersistenceType] = None) -> BookingAccessor:
        return self._accessor("booking", backend)

    def get_notification_accessor(
        self, backend: Optional[PersistenceType] = None
    ) -> NotificationAccessor:
        return self._accessor("notification", backend)

    # -- dual-layer operations --------------------------------------------

    def mark_all_notifications_as_read(self, username: str, user_type: UserType) -> int:
        """Mark one user's notifications as read on both layers.

        The active layer is written first and its errors propagate. The
        complementary layer is then written under the sync context as best
        effort; a failure there is logged and left for the next bootstrap.

        Returns:
            Number of notifications changed on the active layer
        """
        changed = self.get_notification_accessor().mark_all_as_read(username, user_type)

        secondary = self.secondary_backend
        if secondary is None:
            return changed

        with SyncContext.propagating():
            try:
                self.get_notification_accessor(secondary).mark_all_as_read(username, user_type)
            except PersistenceError as e:
                logger.warning(
                    f"Failed to mark notifications read for '{username}' on "
                    f"{secondary.value} (active {self._active.value} is up to date): {e}"
                )
        return changed

    def close(self) -> None:
        """Release every factory built so far."""
        with self._lock:
            for backend, factory in self._factories.items():
                try:
                    factory.close()
                except PersistenceError as e:
                    logger.warning(f"Error closing {backend.value} backend: {e}")
            self._accessors.clear()
