"""Storage backends for HoopHub.

Provides:
- BackendFactory and the per-family accessor contracts
- get_factory(): build the factory for a PersistenceType
"""

from ..config import PersistenceType, SyncConfig
from .base import (
    BackendFactory,
    BookingAccessor,
    FanAccessor,
    NotificationAccessor,
    UserAccessor,
    VenueAccessor,
    VenueManagerAccessor,
)


def get_factory(backend: PersistenceType, config: SyncConfig) -> BackendFactory:
    """Build the accessor factory for ``backend``.

    Backend modules are imported lazily so the CSV and in-memory backends
    work without touching the database driver stack.

    Args:
        backend: Which storage to build
        config: Paths and URLs for the backends

    Returns:
        A ready BackendFactory

    Raises:
        NotImplementedError: If the backend type is not supported
    """
    if backend is PersistenceType.RELATIONAL:
        from .relational import RelationalBackendFactory
        return RelationalBackendFactory(config.database_url, echo=config.echo_sql)
    elif backend is PersistenceType.FILE:
        from .csv_store import CsvBackendFactory
        return CsvBackendFactory(config.csv_dir)
    elif backend is PersistenceType.IN_MEMORY:
        from .memory import InMemoryBackendFactory
        return InMemoryBackendFactory()
    else:
        raise NotImplementedError(f"Backend {backend} is not supported")


__all__ = [
    "BackendFactory",
    "BookingAccessor",
    "FanAccessor",
    "NotificationAccessor",
    "UserAccessor",
    "VenueAccessor",
    "VenueManagerAccessor",
    "get_factory",
]
