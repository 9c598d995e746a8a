"""Shared pytest fixtures for HoopHub sync tests.

Provides temp CSV directories, in-memory SQLite configs, sample beans and
a recording observer for testing the sync engine without touching real
databases.
"""

from datetime import date, time

import pytest

from hoophub_sync.beans import BookingBean, FanBean, VenueBean, VenueManagerBean
from hoophub_sync.config import PersistenceType, SyncConfig
from hoophub_sync.facade import PersistenceFacade
from hoophub_sync.models import Notification, NotificationType, TeamNBA, UserType, VenueType
from hoophub_sync.observer import DaoObserver
from hoophub_sync.sync.context import SyncContext


class RecordingObserver(DaoObserver):
    """Collects every event it receives as (operation, tag, id) tuples."""

    def __init__(self):
        self.events = []

    def on_after_insert(self, entity_type, entity_id, entity):
        self.events.append(("insert", getattr(entity_type, "value", entity_type), entity_id))

    def on_after_update(self, entity_type, entity_id, entity):
        self.events.append(("update", getattr(entity_type, "value", entity_type), entity_id))

    def on_after_delete(self, entity_type, entity_id):
        self.events.append(("delete", getattr(entity_type, "value", entity_type), entity_id))


@pytest.fixture(autouse=True)
def clear_sync_context():
    """Never let one test's sync flag leak into the next."""
    SyncContext.end_sync()
    yield
    SyncContext.end_sync()


@pytest.fixture
def recorder():
    return RecordingObserver()


@pytest.fixture
def csv_dir(tmp_path):
    """Empty CSV directory under a temp root."""
    path = tmp_path / "csv"
    path.mkdir()
    return path


@pytest.fixture
def config(csv_dir):
    """Relational-first config on a private in-memory SQLite database."""
    return SyncConfig(
        persistence=PersistenceType.RELATIONAL,
        csv_dir=csv_dir,
        database_url="sqlite://",
    )


@pytest.fixture
def facade(config):
    facade = PersistenceFacade(config)
    yield facade
    facade.close()


@pytest.fixture
def file_facade(config):
    """Facade with the file backend active."""
    config.persistence = PersistenceType.FILE
    facade = PersistenceFacade(config)
    yield facade
    facade.close()


@pytest.fixture
def memory_facade(config):
    config.persistence = PersistenceType.IN_MEMORY
    facade = PersistenceFacade(config)
    yield facade
    facade.close()


@pytest.fixture
def manager_bean():
    return VenueManagerBean(
        username="mj23",
        full_name="Michael Jordan",
        gender="Male",
        password_hash="hash-mj23",
        company_name="Bulls Hospitality",
        phone_number="3125550123",
    )


@pytest.fixture
def fan_bean():
    return FanBean(
        username="fan1",
        full_name="Alice Hoops",
        gender="Female",
        password_hash="hash-fan1",
        fav_team=TeamNBA.CHICAGO_BULLS,
        birthday=date(1995, 5, 17),
    )


@pytest.fixture
def venue_bean():
    return VenueBean(
        id=7,
        name="Sweet Home Fan Club",
        type=VenueType.FAN_CLUB,
        address="1901 W Madison St",
        city="Chicago",
        max_capacity=150,
        venue_manager_username="mj23",
        associated_teams=[TeamNBA.CHICAGO_BULLS, TeamNBA.BOSTON_CELTICS],
    )


@pytest.fixture
def booking_bean():
    return BookingBean(
        game_date=date(2026, 11, 3),
        game_time=time(19, 30),
        home_team=TeamNBA.CHICAGO_BULLS,
        away_team=TeamNBA.BOSTON_CELTICS,
        venue_id=7,
        fan_username="fan1",
    )


@pytest.fixture
def seed_backend(manager_bean, fan_bean, venue_bean, booking_bean):
    """Write the sample records straight into one backend factory.

    Raw factory accessors carry no observers, so nothing is replicated and
    no notification is generated.
    """
    def seed(factory, with_notification=True):
        factory.venue_manager_accessor().save(manager_bean)
        factory.fan_accessor().save(fan_bean)
        venue = factory.venue_accessor().save(venue_bean)
        booking = factory.booking_accessor().save(booking_bean)
        if with_notification:
            factory.notification_accessor().save(Notification(
                id=None,
                username="mj23",
                user_type=UserType.VENUE_MANAGER,
                type=NotificationType.BOOKING_REQUESTED,
                message="New booking request for Chicago Bulls vs Boston Celtics on 2026-11-03",
                related_booking_id=booking.id,
            ))
        return venue, booking
    return seed
