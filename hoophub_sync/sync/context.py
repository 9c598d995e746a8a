"""Per-execution-context re-entrancy guard for replication.

The flag lives in a ``contextvars.ContextVar``: every thread starts with its
own empty context and every asyncio task runs in a copy of its parent's, so
unrelated work never observes another context's flag.
"""

import contextvars
from contextlib import contextmanager
from typing import Iterator

_syncing: contextvars.ContextVar = contextvars.ContextVar("hoophub_syncing", default=False)


class SyncContext:
    """Marks the current execution context as propagating a replica write.

    Usage:
        if not SyncContext.is_syncing():
            SyncContext.start_sync()
            try:
                replay()
            finally:
                SyncContext.end_sync()
    """

    @staticmethod
    def start_sync() -> None:
        _syncing.set(True)

    @staticmethod
    def is_syncing() -> bool:
        return _syncing.get()

    @staticmethod
    def end_sync() -> None:
        """Clear the flag unconditionally, whatever state it was in."""
        _syncing.set(False)

    @staticmethod
    @contextmanager
    def propagating() -> Iterator[None]:
        """Hold the flag for the duration of a ``with`` block.

        The flag is cleared on every exit path, including exceptions.
        """
        SyncContext.start_sync()
        try:
            yield
        finally:
            SyncContext.end_sync()
