"""Tests for hoophub_sync.backends.relational module.

Validates engine setup, lazy schema creation, the connectivity probe and
the wrapping of database errors.
"""

from dataclasses import replace
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy import inspect, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.pool import StaticPool

from hoophub_sync.backends.relational import (
    RelationalBackendFactory,
    SqlAccessor,
    VenueRow,
    build_engine,
)
from hoophub_sync.beans import VenueBean
from hoophub_sync.exceptions import PersistenceError
from hoophub_sync.models import TeamNBA, VenueType


@pytest.fixture
def factory():
    factory = RelationalBackendFactory("sqlite://")
    yield factory
    factory.close()


class TestBuildEngine:
    """Test engine construction."""

    def test_in_memory_uses_static_pool(self):
        engine = build_engine("sqlite://")
        assert isinstance(engine.pool, StaticPool)
        engine.dispose()

    def test_foreign_keys_enabled(self):
        engine = build_engine("sqlite://")
        with engine.connect() as conn:
            assert conn.execute(text("PRAGMA foreign_keys")).scalar() == 1
        engine.dispose()

    def test_file_database(self, tmp_path):
        engine = build_engine(f"sqlite:///{tmp_path / 'hoophub.db'}")
        assert not isinstance(engine.pool, StaticPool)
        engine.dispose()


class TestRelationalBackendFactory:
    """Test the factory lifecycle."""

    def test_schema_created_lazily(self, factory):
        assert inspect(factory.engine).get_table_names() == []
        factory.venue_accessor()
        assert set(inspect(factory.engine).get_table_names()) == {
            "users", "fans", "venue_managers", "venues",
            "venue_teams", "bookings", "notifications",
        }

    def test_ping_reachable(self, factory):
        assert factory.ping() is True

    def test_ping_unreachable_path(self, tmp_path):
        factory = RelationalBackendFactory(f"sqlite:///{tmp_path / 'missing' / 'hoophub.db'}")
        assert factory.ping() is False
        factory.close()

    def test_ping_connection_error(self, factory):
        error = OperationalError("SELECT 1", {}, Exception("connection refused"))
        with patch.object(type(factory.engine), "connect", side_effect=error):
            assert factory.ping() is False

    def test_unknown_dialect_wrapped(self):
        with pytest.raises(PersistenceError):
            RelationalBackendFactory("nosuchdialect://db")

    def test_schema_failure_wrapped(self, tmp_path):
        factory = RelationalBackendFactory(f"sqlite:///{tmp_path / 'missing' / 'hoophub.db'}")
        with pytest.raises(PersistenceError):
            factory.user_accessor()
        factory.close()


class TestSqlAccessors:
    """Behavior specific to the relational accessors."""

    def test_foreign_key_violation_wrapped(self, factory):
        with pytest.raises(PersistenceError, match="Constraint violation"):
            factory.venue_accessor().save(VenueBean(
                name="Orphan Bar", type=VenueType.BAR, address="1 Nowhere", city="Gary",
                max_capacity=50, venue_manager_username="ghost",
            ))
        assert factory.venue_accessor().retrieve_all() == []

    def test_failed_save_does_not_notify(self, factory, recorder):
        venues = factory.venue_accessor()
        venues.add_observer(recorder)
        with pytest.raises(PersistenceError):
            venues.save(VenueBean(
                name="Orphan Bar", type=VenueType.BAR, address="1 Nowhere", city="Gary",
                max_capacity=50, venue_manager_username="ghost",
            ))
        assert recorder.events == []

    def test_returned_objects_usable_after_session(self, factory, seed_backend):
        seed_backend(factory)
        fan = factory.fan_accessor().retrieve("fan1")
        venue = factory.venue_accessor().retrieve(7)
        assert fan.full_name == "Alice Hoops"
        assert venue.venue_manager_username == "mj23"

    def test_venue_team_update_replaces_set(self, factory, seed_backend):
        seed_backend(factory)
        venues = factory.venue_accessor()
        venue = venues.retrieve(7)
        venues.update(replace(venue, associated_teams=[TeamNBA.CHICAGO_BULLS, TeamNBA.MIAMI_HEAT]))

        teams = set(venues.retrieve(7).associated_teams)
        assert teams == {TeamNBA.CHICAGO_BULLS, TeamNBA.MIAMI_HEAT}


class TestIdSequences:
    """Explicit ids from replayed rows never collide with native inserts."""

    def session_for(self, dialect):
        db = MagicMock()
        db.get_bind.return_value.dialect.name = dialect
        return db

    def test_postgresql_sequence_advanced(self, factory):
        db = self.session_for("postgresql")
        factory.venue_accessor()._advance_sequence(db, VenueRow)

        sql = str(db.execute.call_args[0][0])
        assert "setval(pg_get_serial_sequence('venues', 'id')" in sql
        assert "MAX(id) FROM venues" in sql

    def test_sqlite_left_alone(self, factory):
        db = self.session_for("sqlite")
        factory.venue_accessor()._advance_sequence(db, VenueRow)
        db.execute.assert_not_called()

    def test_explicit_id_save_advances(self, factory, seed_backend):
        with patch.object(SqlAccessor, "_advance_sequence") as advance:
            seed_backend(factory)
        assert VenueRow in [c.args[1] for c in advance.call_args_list]

    def test_native_insert_after_explicit_id(self, factory, seed_backend):
        seed_backend(factory)
        venue = factory.venue_accessor().save(VenueBean(
            name="Second Fan Club", type=VenueType.BAR, address="2 Court St", city="Chicago",
            max_capacity=80, venue_manager_username="mj23",
        ))
        assert venue.id == 8
