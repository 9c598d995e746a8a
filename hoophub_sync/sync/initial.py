"""Startup bootstrap: rebuild the file backend from the relational master.

Philosophy: THE DATABASE IS TRUTH, THE CSV FILES ARE A REPLICA.

``InitialSyncManager.perform_initial_sync`` runs once, before any user input
is accepted:

- volatile backend active: nothing to do;
- relational backend unreachable: log a warning and keep the CSV files as
  they are, so the application stays usable offline;
- otherwise wipe every CSV file and repopulate it family by family in
  dependency order: roles, venues, bookings, notifications.

The whole rebuild runs with the sync context marked, so the writes into the
file backend are not replayed back onto the master and generate no
notifications. Per-record failures are logged and skipped.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Dict, List, Optional

from ..beans import BookingBean, FanBean, VenueBean, VenueManagerBean
from ..config import PersistenceType
from ..exceptions import PersistenceError
from .context import SyncContext

if TYPE_CHECKING:
    from ..facade import PersistenceFacade

logger = logging.getLogger(__name__)

# Parents before children: bookings reference fans and venues, venues
# reference managers, notifications reference users and bookings.
FAMILY_ORDER = ("fans", "venue_managers", "venues", "bookings", "notifications")


@dataclass
class InitialSyncResult:
    """Result of a bootstrap reconciliation.

    Attributes:
        performed: Whether the file backend was rebuilt
        master_reachable: Whether the relational backend answered the probe
        skipped_reason: Why the rebuild did not run (None if it did)
        files_wiped: CSV files reset before repopulation
        written: Records written per family
        failed: Ids of records that could not be written, per family
        errors: Family-level or run-level failures
        duration_ms: Wall-clock duration in milliseconds
    """
    performed: bool = False
    master_reachable: bool = False
    skipped_reason: Optional[str] = None
    files_wiped: List[str] = field(default_factory=list)
    written: Dict[str, int] = field(default_factory=lambda: {f: 0 for f in FAMILY_ORDER})
    failed: Dict[str, List[str]] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    duration_ms: float = 0.0

    @property
    def success(self) -> bool:
        """True unless a record, a family or the run failed."""
        return not self.errors and not any(self.failed.values())

    @property
    def total_written(self) -> int:
        return sum(self.written.values())

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "performed": self.performed,
            "master_reachable": self.master_reachable,
            "skipped_reason": self.skipped_reason,
            "success": self.success,
            "files_wiped": self.files_wiped,
            "written": dict(self.written),
            "total_written": self.total_written,
            "failed": {k: list(v) for k, v in self.failed.items()},
            "errors": list(self.errors),
            "duration_ms": self.duration_ms,
        }


class InitialSyncManager:
    """Runs the one-shot bootstrap, and on request a forced rebuild.

    Usage:
        manager = InitialSyncManager(facade)
        result = manager.perform_initial_sync(facade.get_active_backend())
        if not result.performed:
            print(result.skipped_reason)
    """

    def __init__(self, facade: "PersistenceFacade"):
        self.facade = facade
        self._lock = threading.Lock()
        self._completed = False
        self.last_result: Optional[InitialSyncResult] = None

    @property
    def completed(self) -> bool:
        return self._completed

    def perform_initial_sync(self, active_backend: PersistenceType) -> InitialSyncResult:
        """Run the startup bootstrap once.

        Later calls on the same manager are no-ops; use ``force_resync`` to
        rebuild again during a long-running session.

        Args:
            active_backend: Backend the application is about to use

        Returns:
            InitialSyncResult with per-family statistics
        """
        with self._lock:
            if self._completed:
                logger.warning("Initial sync already performed; use force_resync() to rebuild")
                return InitialSyncResult(skipped_reason="already performed")
            result = self._run(active_backend)
            self._completed = True
            self.last_result = result
            return result

    def force_resync(self) -> InitialSyncResult:
        """Rebuild the file backend from the master now.

        Closes the consistency window left by failed real-time replays
        without a process restart.
        """
        with self._lock:
            logger.info("Forced resync requested")
            result = self._run(self.facade.get_active_backend())
            self._completed = True
            self.last_result = result
            return result

    # -- internals ----------------------------------------------------------

    def _run(self, active_backend: PersistenceType) -> InitialSyncResult:
        start_time = time.perf_counter()
        result = InitialSyncResult()

        if active_backend.is_volatile:
            result.skipped_reason = "volatile backend active"
            logger.info("In-memory backend active, skipping initial sync")
            return result

        if not self._master_reachable():
            result.skipped_reason = "relational backend unreachable"
            logger.warning(
                "Relational backend unreachable; keeping existing CSV data. "
                "Changes made offline will be overwritten at the next successful sync."
            )
            return result

        result.master_reachable = True
        result.performed = True
        logger.info("Initial sync started: relational -> file")

        with self.facade.use_backend(PersistenceType.RELATIONAL), SyncContext.propagating():
            try:
                wiped = self.facade.get_factory(PersistenceType.FILE).reset()
                result.files_wiped = [str(p) for p in wiped]
                self._sync_roles(result)
                self._sync_venues(result)
                self._sync_bookings(result)
                self._sync_notifications(result)
            except PersistenceError as e:
                result.errors.append(f"Initial sync aborted: {e}")
                logger.error(f"Initial sync aborted: {e}")
            except Exception as e:
                # Nothing escapes the bootstrap.
                result.errors.append(f"Initial sync aborted: {e!r}")
                logger.exception("Unexpected error during initial sync")

        result.duration_ms = (time.perf_counter() - start_time) * 1000
        self._log_summary(result)
        return result

    def _master_reachable(self) -> bool:
        try:
            factory = self.facade.get_factory(PersistenceType.RELATIONAL)
        except PersistenceError as e:
            logger.warning(f"Relational backend not configured: {e}")
            return False
        return factory.ping()

    def _read(self, result: InitialSyncResult, family: str, reader: Callable[[], list]) -> list:
        try:
            return reader()
        except PersistenceError as e:
            result.errors.append(f"Cannot read {family} from master: {e}")
            logger.error(f"Cannot read {family} from master: {e}")
            return []
        except Exception as e:
            result.errors.append(f"Cannot read {family} from master: {e!r}")
            logger.exception(f"Unexpected error reading {family} from master")
            return []

    def _write(
        self,
        result: InitialSyncResult,
        family: str,
        record_id,
        writer: Callable[[], object],
    ) -> None:
        try:
            writer()
            result.written[family] += 1
        except PersistenceError as e:
            result.failed.setdefault(family, []).append(str(record_id))
            logger.warning(f"Skipping {family} record {record_id}: {e}")
        except Exception:
            result.failed.setdefault(family, []).append(str(record_id))
            logger.exception(f"Unexpected error writing {family} record {record_id}; skipped")

    def _credential(self, username: str) -> Optional[str]:
        """Password hash from the master's raw user record; role reads omit it."""
        user = self.facade.get_user_accessor(PersistenceType.RELATIONAL).retrieve(username)
        return user.password_hash if user else None

    def _sync_roles(self, result: InitialSyncResult) -> None:
        master_fans = self.facade.get_fan_accessor(PersistenceType.RELATIONAL)
        file_fans = self.facade.get_fan_accessor(PersistenceType.FILE)
        for fan in self._read(result, "fans", master_fans.retrieve_all):
            self._write(result, "fans", fan.username, lambda: file_fans.save(
                FanBean.from_fan(fan, password_hash=self._credential(fan.username))
            ))

        master_managers = self.facade.get_venue_manager_accessor(PersistenceType.RELATIONAL)
        file_managers = self.facade.get_venue_manager_accessor(PersistenceType.FILE)
        for manager in self._read(result, "venue_managers", master_managers.retrieve_all):
            self._write(result, "venue_managers", manager.username, lambda: file_managers.save(
                VenueManagerBean.from_venue_manager(
                    manager, password_hash=self._credential(manager.username)
                )
            ))

    def _sync_venues(self, result: InitialSyncResult) -> None:
        master = self.facade.get_venue_accessor(PersistenceType.RELATIONAL)
        replica = self.facade.get_venue_accessor(PersistenceType.FILE)
        for venue in self._read(result, "venues", master.retrieve_all):
            self._write(result, "venues", venue.id,
                        lambda: replica.save(VenueBean.from_venue(venue)))

    def _sync_bookings(self, result: InitialSyncResult) -> None:
        master = self.facade.get_booking_accessor(PersistenceType.RELATIONAL)
        replica = self.facade.get_booking_accessor(PersistenceType.FILE)
        for booking in self._read(result, "bookings", master.retrieve_all):
            self._write(result, "bookings", booking.id,
                        lambda: replica.save(BookingBean.from_booking(booking)))

    def _sync_notifications(self, result: InitialSyncResult) -> None:
        master = self.facade.get_notification_accessor(PersistenceType.RELATIONAL)
        replica = self.facade.get_notification_accessor(PersistenceType.FILE)
        for notification in self._read(result, "notifications", master.retrieve_all):
            self._write(result, "notifications", notification.id,
                        lambda: replica.save(dataclasses.replace(notification)))

    def _log_summary(self, result: InitialSyncResult) -> None:
        counts = ", ".join(f"{family}={result.written[family]}" for family in FAMILY_ORDER)
        failed = sum(len(ids) for ids in result.failed.values())
        logger.info(
            f"Initial sync complete: {counts}, {failed} failed, "
            f"{len(result.errors)} errors, {result.duration_ms:.1f} ms"
        )
