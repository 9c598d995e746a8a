"""Synchronization engine for HoopHub.

Philosophy: THE DATABASE IS TRUTH, THE CSV FILES ARE A REPLICA.

This package provides:
- SyncContext: per-execution-context re-entrancy guard
- CrossPersistenceSyncObserver: real-time replay onto the complementary backend
- ObserverRegistry: cached observers attached to every accessor
- InitialSyncManager: startup rebuild of the CSV files from the database
- verify_consistency: record-by-record comparison of both backends

Write order: active backend first (must succeed), complement second (best effort).
"""

from hoophub_sync.sync.context import SyncContext
from hoophub_sync.sync.observer import CrossPersistenceSyncObserver
from hoophub_sync.sync.registry import ObserverRegistry
from hoophub_sync.sync.initial import InitialSyncManager, InitialSyncResult
from hoophub_sync.sync.integrity import ConsistencyResult, verify_consistency

__all__ = [
    "SyncContext",
    "CrossPersistenceSyncObserver",
    "ObserverRegistry",
    "InitialSyncManager",
    "InitialSyncResult",
    "ConsistencyResult",
    "verify_consistency",
]
