"""Application startup: choose a backend, reconcile, hand back the facade.

Runs before any user input is accepted:

1. Build the facade for the requested backend.
2. If the relational backend was requested but does not answer, fall back
   to the file backend (unless ``fallback_to_file`` is disabled).
3. Run the initial sync exactly once for the backend actually in use.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .config import PersistenceType, SyncConfig
from .exceptions import PersistenceError
from .facade import PersistenceFacade
from .sync.initial import InitialSyncManager, InitialSyncResult

logger = logging.getLogger(__name__)


@dataclass
class StartupResult:
    """Everything the application needs after startup.

    Attributes:
        facade: Persistence facade with the selected backend active
        sync_manager: Manager that ran the bootstrap (reuse it for force_resync)
        result: Outcome of the initial sync
        requested: Backend asked for in the configuration
        active: Backend actually selected
    """
    facade: PersistenceFacade
    sync_manager: InitialSyncManager
    result: InitialSyncResult
    requested: PersistenceType
    active: PersistenceType

    @property
    def fell_back(self) -> bool:
        return self.requested is not self.active

    def to_dict(self) -> dict:
        return {
            "requested": self.requested.value,
            "active": self.active.value,
            "fell_back": self.fell_back,
            "initial_sync": self.result.to_dict(),
        }


def _relational_available(facade: PersistenceFacade) -> bool:
    try:
        return facade.get_factory(PersistenceType.RELATIONAL).ping()
    except PersistenceError as e:
        logger.warning(f"Relational backend unavailable: {e}")
        return False


def start(
    config: Optional[SyncConfig] = None,
    facade: Optional[PersistenceFacade] = None,
) -> StartupResult:
    """Bring the persistence layer up.

    Args:
        config: Backend configuration (ignored when ``facade`` is given)
        facade: Prebuilt facade, mainly for tests

    Returns:
        StartupResult with the ready facade and the initial sync outcome

    Raises:
        PersistenceError: If the relational backend is unreachable and
                          falling back to the file backend is disabled
    """
    facade = facade or PersistenceFacade(config)
    config = facade.config
    requested = facade.get_active_backend()

    if requested is PersistenceType.RELATIONAL and not _relational_available(facade):
        if not config.fallback_to_file:
            raise PersistenceError("Relational backend unreachable and fallback disabled")
        logger.warning("Relational backend unreachable, falling back to file persistence")
        facade.set_active_backend(PersistenceType.FILE)

    active = facade.get_active_backend()
    manager = InitialSyncManager(facade)
    result = manager.perform_initial_sync(active)

    logger.info(f"Persistence ready: {active.value} (requested {requested.value})")
    return StartupResult(
        facade=facade,
        sync_manager=manager,
        result=result,
        requested=requested,
        active=active,
    )
