"""Tests for hoophub_sync.config module.

Validates the persistence enum, its sync complements, path coercion and
defaults.
"""

from pathlib import Path

import pytest

from hoophub_sync.config import PersistenceType, SyncConfig


class TestPersistenceType:
    """Verify PersistenceType values and sync directions."""

    def test_values(self):
        assert PersistenceType.RELATIONAL.value == "relational"
        assert PersistenceType.FILE.value == "file"
        assert PersistenceType.IN_MEMORY.value == "in_memory"

    def test_from_string(self):
        assert PersistenceType("file") == PersistenceType.FILE

    def test_invalid_raises(self):
        with pytest.raises(ValueError):
            PersistenceType("mongodb")

    def test_complements_are_symmetric(self):
        assert PersistenceType.RELATIONAL.complement is PersistenceType.FILE
        assert PersistenceType.FILE.complement is PersistenceType.RELATIONAL

    def test_in_memory_has_no_complement(self):
        assert PersistenceType.IN_MEMORY.complement is None
        assert PersistenceType.IN_MEMORY.is_volatile is True
        assert PersistenceType.RELATIONAL.is_volatile is False


class TestSyncConfig:
    """Test SyncConfig dataclass behavior."""

    def test_defaults(self):
        config = SyncConfig()
        assert config.persistence == PersistenceType.RELATIONAL
        assert config.csv_dir == Path("data") / "csv"
        assert config.database_url == f"sqlite:///{Path('data') / 'hoophub.db'}"
        assert config.echo_sql is False
        assert config.fallback_to_file is True
        assert config.log_level == "INFO"
        assert config.json_logs is False
        assert config.log_file is None

    def test_string_coercion(self):
        """Strings for paths and the backend should be converted."""
        config = SyncConfig(persistence="FILE", csv_dir="/srv/hoophub/csv", log_file="/tmp/sync.log")
        assert config.persistence is PersistenceType.FILE
        assert isinstance(config.csv_dir, Path)
        assert config.csv_dir == Path("/srv/hoophub/csv")
        assert config.log_file == Path("/tmp/sync.log")

    def test_database_url_defaults_beside_csv_dir(self, tmp_path):
        config = SyncConfig(csv_dir=tmp_path / "csv")
        assert config.database_url == f"sqlite:///{tmp_path / 'hoophub.db'}"

    def test_explicit_database_url_kept(self):
        config = SyncConfig(database_url="postgresql://hoop:hub@db/hoophub")
        assert config.database_url == "postgresql://hoop:hub@db/hoophub"

    def test_invalid_persistence_raises(self):
        with pytest.raises(ValueError):
            SyncConfig(persistence="cloud")
