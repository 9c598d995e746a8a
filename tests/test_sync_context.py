"""Tests for hoophub_sync.sync.context module.

The re-entrancy flag must be isolated per execution context and cleared
on every exit path.
"""

import asyncio
import threading

import pytest

from hoophub_sync.sync.context import SyncContext


class TestSyncContext:
    """Test the flag lifecycle on a single thread."""

    def test_default_is_not_syncing(self):
        assert SyncContext.is_syncing() is False

    def test_start_and_end(self):
        SyncContext.start_sync()
        assert SyncContext.is_syncing() is True
        SyncContext.end_sync()
        assert SyncContext.is_syncing() is False

    def test_end_without_start_is_harmless(self):
        SyncContext.end_sync()
        SyncContext.end_sync()
        assert SyncContext.is_syncing() is False

    def test_propagating_sets_and_clears(self):
        with SyncContext.propagating():
            assert SyncContext.is_syncing() is True
        assert SyncContext.is_syncing() is False

    def test_propagating_clears_on_exception(self):
        with pytest.raises(RuntimeError):
            with SyncContext.propagating():
                raise RuntimeError("replay blew up")
        assert SyncContext.is_syncing() is False


class TestSyncContextIsolation:
    """Unrelated execution contexts never see each other's flag."""

    def test_thread_flag_does_not_leak(self):
        flagged = threading.Event()
        release = threading.Event()
        observed = {}

        def syncing_worker():
            SyncContext.start_sync()
            observed["worker"] = SyncContext.is_syncing()
            flagged.set()
            release.wait(timeout=5)
            SyncContext.end_sync()

        def observing_worker():
            flagged.wait(timeout=5)
            observed["other"] = SyncContext.is_syncing()
            release.set()

        threads = [threading.Thread(target=syncing_worker), threading.Thread(target=observing_worker)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        assert observed == {"worker": True, "other": False}
        assert SyncContext.is_syncing() is False

    def test_asyncio_tasks_are_isolated(self):
        async def flagged():
            SyncContext.start_sync()
            await asyncio.sleep(0)
            return SyncContext.is_syncing()

        async def unflagged():
            await asyncio.sleep(0)
            return SyncContext.is_syncing()

        async def run_both():
            return await asyncio.gather(flagged(), unflagged())

        assert asyncio.run(run_both()) == [True, False]
        assert SyncContext.is_syncing() is False
