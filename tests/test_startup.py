"""Tests for hoophub_sync.startup module."""

from unittest.mock import patch

import pytest

from hoophub_sync.backends.relational import RelationalBackendFactory
from hoophub_sync.config import PersistenceType
from hoophub_sync.exceptions import PersistenceError
from hoophub_sync.startup import start


class TestStart:
    """Test backend selection and the single bootstrap run."""

    def test_relational_reachable(self, facade, seed_backend):
        seed_backend(facade.get_factory(PersistenceType.RELATIONAL))
        ready = start(facade=facade)

        assert ready.active is PersistenceType.RELATIONAL
        assert ready.fell_back is False
        assert ready.result.performed is True
        assert ready.sync_manager.completed is True
        assert facade.get_venue_accessor(PersistenceType.FILE).retrieve(7) is not None

    def test_falls_back_to_file(self, facade):
        with patch.object(RelationalBackendFactory, "ping", return_value=False):
            ready = start(facade=facade)

        assert ready.requested is PersistenceType.RELATIONAL
        assert ready.active is PersistenceType.FILE
        assert ready.fell_back is True
        assert facade.get_active_backend() is PersistenceType.FILE
        assert ready.result.skipped_reason == "relational backend unreachable"

    def test_fallback_disabled_raises(self, facade):
        facade.config.fallback_to_file = False
        with patch.object(RelationalBackendFactory, "ping", return_value=False):
            with pytest.raises(PersistenceError):
                start(facade=facade)

    def test_file_requested(self, file_facade, seed_backend):
        seed_backend(file_facade.get_factory(PersistenceType.RELATIONAL))
        ready = start(facade=file_facade)
        assert ready.active is PersistenceType.FILE
        assert ready.result.performed is True

    def test_in_memory_skips_sync(self, memory_facade):
        ready = start(facade=memory_facade)
        assert ready.active is PersistenceType.IN_MEMORY
        assert ready.result.skipped_reason == "volatile backend active"

    def test_to_dict(self, memory_facade):
        d = start(facade=memory_facade).to_dict()
        assert d["requested"] == "in_memory"
        assert d["fell_back"] is False
        assert d["initial_sync"]["performed"] is False

    def test_builds_facade_from_config(self, config):
        ready = start(config)
        assert ready.facade.config is config
        assert ready.active is PersistenceType.RELATIONAL
        ready.facade.close()
