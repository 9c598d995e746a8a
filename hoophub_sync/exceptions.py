"""Exception hierarchy for HoopHub persistence and synchronization."""


class HoopHubSyncError(Exception):
    """Base class for every error raised by this package."""


class PersistenceError(HoopHubSyncError):
    """A backend could not complete an operation.

    Raised for I/O failures, lost connectivity and constraint violations.
    Backends wrap their native errors (OSError, csv.Error, SQLAlchemyError)
    in this type so callers only need to handle one kind.
    """


class DuplicateEntityError(PersistenceError):
    """An insert collided with an existing identifier."""


class EntityNotFoundError(PersistenceError):
    """An update or delete addressed a record the backend does not hold."""


class MalformedIdentifierError(HoopHubSyncError, ValueError):
    """A numeric identifier arrived in a form that cannot be parsed."""

    def __init__(self, entity_type: str, entity_id):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"Malformed {entity_type} id: {entity_id!r}")
