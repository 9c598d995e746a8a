"""HoopHub Sync - Cross-persistence synchronization for HoopHub.

Keeps a relational database (the master) and a set of CSV files (the
replica) in step for the HoopHub venue booking application. Every write made
through one backend is replayed onto the other in real time, and at startup
the CSV files are rebuilt from the database.

Key Features:
    - Observer-driven real-time replication with a re-entrancy guard
    - Persistence facade with per-family accessors for every backend
    - Startup bootstrap: database wins, CSV files wiped and repopulated
    - Offline fallback to the CSV files when the database is unreachable
    - Booking notifications generated once per user event
    - Consistency verification between both backends

Quick Start:
    from hoophub_sync import SyncConfig, start

    ready = start(SyncConfig(persistence="relational", csv_dir="./data/csv"))
    facade = ready.facade

    # Writes go to the active backend and are replayed onto the other one
    venues = facade.get_venue_accessor().retrieve_all()

    print(ready.result.to_dict())

Classes:
    PersistenceFacade: Entry point to every backend accessor
    SyncConfig: Backend configuration
    PersistenceType: Enum for backends (RELATIONAL, FILE, IN_MEMORY)
    InitialSyncManager: Startup wipe-and-rebuild of the CSV files
    CrossPersistenceSyncObserver: Real-time replay onto the other backend
    SyncContext: Re-entrancy guard for replays
"""

__version__ = "1.0.0"
__author__ = "HoopHub Team"
__license__ = "MIT"

# Configuration
from .config import PersistenceType, SyncConfig

# Errors
from .exceptions import (
    DuplicateEntityError,
    EntityNotFoundError,
    HoopHubSyncError,
    MalformedIdentifierError,
    PersistenceError,
)

# Domain model and transfer objects
from .models import (
    Booking,
    BookingStatus,
    Fan,
    Notification,
    NotificationType,
    TeamNBA,
    User,
    UserType,
    Venue,
    VenueManager,
    VenueType,
)
from .beans import BookingBean, FanBean, UserBean, VenueBean, VenueManagerBean

# Change notification
from .observer import ChangeEvent, DaoObserver, DaoOperation, EntityType, ObservableDao

# Facade and sync engine
from .facade import PersistenceFacade
from .sync import (
    ConsistencyResult,
    CrossPersistenceSyncObserver,
    InitialSyncManager,
    InitialSyncResult,
    ObserverRegistry,
    SyncContext,
    verify_consistency,
)
from .notifications import NotificationBookingObserver
from .startup import StartupResult, start

# Public API
__all__ = [
    # Version info
    "__version__",
    "__author__",
    "__license__",
    # Configuration
    "PersistenceType",
    "SyncConfig",
    # Errors
    "HoopHubSyncError",
    "PersistenceError",
    "DuplicateEntityError",
    "EntityNotFoundError",
    "MalformedIdentifierError",
    # Domain
    "User",
    "Fan",
    "VenueManager",
    "Venue",
    "Booking",
    "Notification",
    "UserType",
    "VenueType",
    "TeamNBA",
    "BookingStatus",
    "NotificationType",
    # Beans
    "UserBean",
    "FanBean",
    "VenueManagerBean",
    "VenueBean",
    "BookingBean",
    # Change notification
    "ChangeEvent",
    "DaoObserver",
    "DaoOperation",
    "EntityType",
    "ObservableDao",
    # Facade and sync
    "PersistenceFacade",
    "SyncContext",
    "CrossPersistenceSyncObserver",
    "ObserverRegistry",
    "InitialSyncManager",
    "InitialSyncResult",
    "ConsistencyResult",
    "verify_consistency",
    "NotificationBookingObserver",
    "StartupResult",
    "start",
    "create_facade",
]


def create_facade(
    persistence: str = "relational",
    csv_dir: str = None,
    database_url: str = None,
) -> PersistenceFacade:
    """Convenience function to create a configured PersistenceFacade.

    Args:
        persistence: Active backend ("relational", "file" or "in_memory")
        csv_dir: Directory of the CSV files (default ./data/csv)
        database_url: SQLAlchemy URL (default SQLite file beside csv_dir)

    Returns:
        PersistenceFacade with observers wired on first accessor use

    Example:
        facade = create_facade("file", csv_dir="/tmp/hoophub/csv")
    """
    kwargs = {"persistence": persistence, "database_url": database_url}
    if csv_dir:
        kwargs["csv_dir"] = csv_dir
    return PersistenceFacade(SyncConfig(**kwargs))
