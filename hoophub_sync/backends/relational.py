"""Relational backend (the master store) on SQLAlchemy.

Tables follow the HoopHub schema: ``users`` is the base table for both
roles, ``fans`` and ``venue_managers`` extend it, ``venues`` belong to a
manager, ``venue_teams`` lists the teams a venue shows, ``bookings``
reference a fan and a venue, ``notifications`` reference a user and
optionally a booking. Deletes cascade along the foreign keys.

SQLite and PostgreSQL URLs are supported. SQLite connections get
``PRAGMA foreign_keys=ON`` so cascades behave as they do on a server
database; on PostgreSQL the id sequences are advanced after a replayed row
is inserted with an explicit id.
"""

from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, List, Optional

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
    create_engine,
    event,
    text,
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, relationship, sessionmaker
from sqlalchemy.pool import StaticPool

from ..beans import BookingBean, FanBean, UserBean, VenueBean, VenueManagerBean
from ..config import PersistenceType
from ..exceptions import DuplicateEntityError, EntityNotFoundError, PersistenceError
from ..models import (
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
from ..observer import DaoOperation, EntityType
from .base import (
    BackendFactory,
    BookingAccessor,
    FanAccessor,
    NotificationAccessor,
    UserAccessor,
    VenueAccessor,
    VenueManagerAccessor,
)

Base = declarative_base()


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------

class UserRow(Base):
    """Base table for fans and venue managers."""
    __tablename__ = "users"

    username = Column(String(50), primary_key=True)
    password_hash = Column(String(255), nullable=False)
    full_name = Column(String(100), nullable=False)
    gender = Column(String(20), nullable=False)
    user_type = Column(String(20), nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.now)


class FanRow(Base):
    __tablename__ = "fans"

    username = Column(String(50), ForeignKey("users.username", ondelete="CASCADE"), primary_key=True)
    fav_team = Column(String(100), nullable=False, index=True)
    birthday = Column(Date, nullable=False)

    user = relationship(UserRow, lazy="joined")


class VenueManagerRow(Base):
    __tablename__ = "venue_managers"

    username = Column(String(50), ForeignKey("users.username", ondelete="CASCADE"), primary_key=True)
    company_name = Column(String(100), nullable=False)
    phone_number = Column(String(20), nullable=False)

    user = relationship(UserRow, lazy="joined")


class VenueRow(Base):
    __tablename__ = "venues"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    type = Column(String(20), nullable=False)
    address = Column(String(200), nullable=False)
    city = Column(String(100), nullable=False, index=True)
    max_capacity = Column(Integer, nullable=False)
    venue_manager_username = Column(
        String(50),
        ForeignKey("venue_managers.username", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    teams = relationship(
        "VenueTeamRow", lazy="selectin", cascade="all, delete-orphan", passive_deletes=True
    )


class VenueTeamRow(Base):
    __tablename__ = "venue_teams"

    venue_id = Column(Integer, ForeignKey("venues.id", ondelete="CASCADE"), primary_key=True)
    team_name = Column(String(100), primary_key=True)


class BookingRow(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    game_date = Column(Date, nullable=False, index=True)
    game_time = Column(Time, nullable=False)
    home_team = Column(String(100), nullable=False)
    away_team = Column(String(100), nullable=False)
    venue_id = Column(Integer, ForeignKey("venues.id", ondelete="CASCADE"), nullable=False)
    fan_username = Column(
        String(50), ForeignKey("fans.username", ondelete="CASCADE"), nullable=False, index=True
    )
    status = Column(String(20), nullable=False, default=BookingStatus.PENDING.name, index=True)
    notified = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        Index("idx_venue_date", "venue_id", "game_date"),
    )


class NotificationRow(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(
        String(50), ForeignKey("users.username", ondelete="CASCADE"), nullable=False, index=True
    )
    user_type = Column(String(20), nullable=False)
    type = Column(String(30), nullable=False)
    message = Column(Text, nullable=False)
    related_booking_id = Column(
        Integer, ForeignKey("bookings.id", ondelete="SET NULL"), nullable=True
    )
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.now)


# ---------------------------------------------------------------------------
# Row <-> domain conversion
# ---------------------------------------------------------------------------

def _to_user(row: UserRow) -> User:
    return User(
        username=row.username,
        full_name=row.full_name,
        gender=row.gender,
        user_type=UserType[row.user_type],
        password_hash=row.password_hash,
    )


def _to_fan(row: FanRow) -> Fan:
    return Fan(
        username=row.username,
        full_name=row.user.full_name,
        gender=row.user.gender,
        fav_team=TeamNBA.parse(row.fav_team),
        birthday=row.birthday,
    )


def _to_manager(row: VenueManagerRow) -> VenueManager:
    return VenueManager(
        username=row.username,
        full_name=row.user.full_name,
        gender=row.user.gender,
        company_name=row.company_name,
        phone_number=row.phone_number,
    )


def _to_venue(row: VenueRow) -> Venue:
    return Venue(
        id=row.id,
        name=row.name,
        type=VenueType[row.type],
        address=row.address,
        city=row.city,
        max_capacity=row.max_capacity,
        venue_manager_username=row.venue_manager_username,
        associated_teams=[TeamNBA.parse(t.team_name) for t in row.teams],
    )


def _to_booking(row: BookingRow) -> Booking:
    return Booking(
        id=row.id,
        game_date=row.game_date,
        game_time=row.game_time,
        home_team=TeamNBA.parse(row.home_team),
        away_team=TeamNBA.parse(row.away_team),
        venue_id=row.venue_id,
        fan_username=row.fan_username,
        status=BookingStatus[row.status],
        notified=bool(row.notified),
    )


def _to_notification(row: NotificationRow) -> Notification:
    return Notification(
        id=row.id,
        username=row.user_id,
        user_type=UserType[row.user_type],
        type=NotificationType[row.type],
        message=row.message,
        related_booking_id=row.related_booking_id,
        is_read=bool(row.is_read),
        created_at=row.created_at,
    )


def _apply_booking(row: BookingRow, booking) -> None:
    row.game_date = booking.game_date
    row.game_time = booking.game_time
    row.home_team = booking.home_team.name
    row.away_team = booking.away_team.name
    row.venue_id = booking.venue_id
    row.fan_username = booking.fan_username
    row.status = booking.status.name
    row.notified = booking.notified


# ---------------------------------------------------------------------------
# Accessors
# ---------------------------------------------------------------------------

class SqlAccessor:
    """Session handling shared by relational accessors."""

    backend = PersistenceType.RELATIONAL

    def __init__(self, session_factory: sessionmaker):
        super().__init__()
        self._session_factory = session_factory

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Open a session, commit on success, roll back and wrap errors on failure."""
        db = self._session_factory()
        try:
            yield db
            db.commit()
        except IntegrityError as e:
            db.rollback()
            raise PersistenceError(f"Constraint violation: {e.orig}") from e
        except SQLAlchemyError as e:
            db.rollback()
            raise PersistenceError(f"Database error: {e}") from e
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def _advance_sequence(self, db: Session, model) -> None:
        """Move a server-side id sequence past ids inserted explicitly.

        SQLite allocates max(id) + 1 on its own; PostgreSQL SERIAL columns
        would otherwise hand out an id a replayed row already holds.
        """
        if db.get_bind().dialect.name != "postgresql":
            return
        table = model.__tablename__
        db.execute(text(
            f"SELECT setval(pg_get_serial_sequence('{table}', 'id'), "
            f"(SELECT MAX(id) FROM {table}))"
        ))

    def _parse(self, parser, row):
        try:
            return parser(row)
        except (KeyError, ValueError) as e:
            raise PersistenceError(f"Corrupt {type(row).__name__}: {e}") from e

    @staticmethod
    def _add_user(db: Session, user: UserBean) -> None:
        if not user.password_hash:
            raise PersistenceError(f"User '{user.username}' has no password hash")
        if db.get(UserRow, user.username) is not None:
            raise DuplicateEntityError(f"Username '{user.username}' is already taken")
        db.add(UserRow(
            username=user.username,
            password_hash=user.password_hash,
            full_name=user.full_name,
            gender=user.gender,
            user_type=user.user_type.name,
        ))
        db.flush()

    @staticmethod
    def _update_user(db: Session, user: UserBean) -> None:
        row = db.get(UserRow, user.username)
        if row is None:
            raise EntityNotFoundError(f"User '{user.username}' not found")
        row.full_name = user.full_name
        row.gender = user.gender
        if user.password_hash:
            row.password_hash = user.password_hash


class SqlUserAccessor(SqlAccessor, UserAccessor):

    def save(self, user: UserBean) -> User:
        with self.session() as db:
            self._add_user(db, user)
            stored = self._parse(_to_user, db.get(UserRow, user.username))
        self.notify(DaoOperation.INSERT, EntityType.USER, user.username, user)
        return stored

    def retrieve(self, username: str) -> Optional[User]:
        with self.session() as db:
            row = db.get(UserRow, username)
            return self._parse(_to_user, row) if row else None

    def retrieve_all(self) -> List[User]:
        with self.session() as db:
            return [self._parse(_to_user, r) for r in db.query(UserRow).order_by(UserRow.username)]

    def update(self, user: UserBean) -> None:
        with self.session() as db:
            self._update_user(db, user)
        updated = User(user.username, user.full_name, user.gender, user.user_type)
        self.notify(DaoOperation.UPDATE, EntityType.USER, user.username, updated)

    def delete(self, username: str) -> None:
        with self.session() as db:
            if db.query(UserRow).filter(UserRow.username == username).delete() == 0:
                raise EntityNotFoundError(f"User '{username}' not found")
        self.notify(DaoOperation.DELETE, EntityType.USER, username)


class SqlFanAccessor(SqlAccessor, FanAccessor):

    def save(self, fan: FanBean) -> Fan:
        with self.session() as db:
            self._add_user(db, fan)
            db.add(FanRow(
                username=fan.username, fav_team=fan.fav_team.name, birthday=fan.birthday
            ))
        self.notify(DaoOperation.INSERT, EntityType.FAN, fan.username, fan)
        return fan.to_fan()

    def retrieve(self, username: str) -> Optional[Fan]:
        with self.session() as db:
            row = db.get(FanRow, username)
            return self._parse(_to_fan, row) if row else None

    def retrieve_all(self) -> List[Fan]:
        with self.session() as db:
            return [self._parse(_to_fan, r) for r in db.query(FanRow).order_by(FanRow.username)]

    def update(self, fan: Fan, user: Optional[UserBean] = None) -> None:
        user = user or UserBean(fan.username, fan.full_name, fan.gender, UserType.FAN)
        with self.session() as db:
            row = db.get(FanRow, fan.username)
            if row is None:
                raise EntityNotFoundError(f"Fan '{fan.username}' not found")
            row.fav_team = fan.fav_team.name
            row.birthday = fan.birthday
            self._update_user(db, user)
        self.notify(DaoOperation.UPDATE, EntityType.FAN, fan.username, fan)

    def delete(self, fan: Fan) -> None:
        with self.session() as db:
            if db.get(FanRow, fan.username) is None:
                raise EntityNotFoundError(f"Fan '{fan.username}' not found")
            db.query(UserRow).filter(UserRow.username == fan.username).delete()
        self.notify(DaoOperation.DELETE, EntityType.FAN, fan.username)


class SqlVenueManagerAccessor(SqlAccessor, VenueManagerAccessor):

    def save(self, manager: VenueManagerBean) -> VenueManager:
        with self.session() as db:
            self._add_user(db, manager)
            db.add(VenueManagerRow(
                username=manager.username,
                company_name=manager.company_name,
                phone_number=manager.phone_number,
            ))
        self.notify(DaoOperation.INSERT, EntityType.VENUE_MANAGER, manager.username, manager)
        return manager.to_venue_manager()

    def retrieve(self, username: str) -> Optional[VenueManager]:
        with self.session() as db:
            row = db.get(VenueManagerRow, username)
            return self._parse(_to_manager, row) if row else None

    def retrieve_all(self) -> List[VenueManager]:
        with self.session() as db:
            rows = db.query(VenueManagerRow).order_by(VenueManagerRow.username)
            return [self._parse(_to_manager, r) for r in rows]

    def update(self, manager: VenueManager, user: Optional[UserBean] = None) -> None:
        user = user or UserBean(
            manager.username, manager.full_name, manager.gender, UserType.VENUE_MANAGER
        )
        with self.session() as db:
            row = db.get(VenueManagerRow, manager.username)
            if row is None:
                raise EntityNotFoundError(f"Venue manager '{manager.username}' not found")
            row.company_name = manager.company_name
            row.phone_number = manager.phone_number
            self._update_user(db, user)
        self.notify(DaoOperation.UPDATE, EntityType.VENUE_MANAGER, manager.username, manager)

    def delete(self, manager: VenueManager) -> None:
        with self.session() as db:
            if db.get(VenueManagerRow, manager.username) is None:
                raise EntityNotFoundError(f"Venue manager '{manager.username}' not found")
            db.query(UserRow).filter(UserRow.username == manager.username).delete()
        self.notify(DaoOperation.DELETE, EntityType.VENUE_MANAGER, manager.username)


class SqlVenueAccessor(SqlAccessor, VenueAccessor):

    def save(self, venue: VenueBean) -> Venue:
        with self.session() as db:
            if venue.id is not None and db.get(VenueRow, venue.id) is not None:
                raise DuplicateEntityError(f"Venue {venue.id} already exists")
            row = VenueRow(
                id=venue.id,
                name=venue.name,
                type=venue.type.name,
                address=venue.address,
                city=venue.city,
                max_capacity=venue.max_capacity,
                venue_manager_username=venue.venue_manager_username,
                teams=[VenueTeamRow(team_name=t.name) for t in venue.associated_teams],
            )
            db.add(row)
            db.flush()
            if venue.id is not None:
                self._advance_sequence(db, VenueRow)
            venue.id = row.id
        self.notify(DaoOperation.INSERT, EntityType.VENUE, venue.id, venue)
        return venue.to_venue(venue.id)

    def retrieve(self, venue_id: int) -> Optional[Venue]:
        with self.session() as db:
            row = db.get(VenueRow, venue_id)
            return self._parse(_to_venue, row) if row else None

    def retrieve_all(self) -> List[Venue]:
        with self.session() as db:
            return [self._parse(_to_venue, r) for r in db.query(VenueRow).order_by(VenueRow.id)]

    def retrieve_by_manager(self, username: str) -> List[Venue]:
        with self.session() as db:
            rows = (
                db.query(VenueRow)
                .filter(VenueRow.venue_manager_username == username)
                .order_by(VenueRow.id)
            )
            return [self._parse(_to_venue, r) for r in rows]

    def update(self, venue: Venue) -> None:
        with self.session() as db:
            row = db.get(VenueRow, venue.id)
            if row is None:
                raise EntityNotFoundError(f"Venue {venue.id} not found")
            row.name = venue.name
            row.type = venue.type.name
            row.address = venue.address
            row.city = venue.city
            row.max_capacity = venue.max_capacity
            row.venue_manager_username = venue.venue_manager_username
            row.teams = [VenueTeamRow(team_name=t.name) for t in venue.associated_teams]
        self.notify(DaoOperation.UPDATE, EntityType.VENUE, venue.id, venue)

    def delete(self, venue: Venue) -> None:
        with self.session() as db:
            if db.query(VenueRow).filter(VenueRow.id == venue.id).delete() == 0:
                raise EntityNotFoundError(f"Venue {venue.id} not found")
        self.notify(DaoOperation.DELETE, EntityType.VENUE, venue.id)


class SqlBookingAccessor(SqlAccessor, BookingAccessor):

    def save(self, booking: BookingBean) -> Booking:
        with self.session() as db:
            row = db.get(BookingRow, booking.id) if booking.id is not None else None
            if row is None:
                row = BookingRow(id=booking.id)
                db.add(row)
            _apply_booking(row, booking)
            db.flush()
            if booking.id is not None:
                self._advance_sequence(db, BookingRow)
            booking.id = row.id
        self.notify(DaoOperation.INSERT, EntityType.BOOKING, booking.id, booking)
        return booking.to_booking(booking.id)

    def retrieve(self, booking_id: int) -> Optional[Booking]:
        with self.session() as db:
            row = db.get(BookingRow, booking_id)
            return self._parse(_to_booking, row) if row else None

    def retrieve_all(self) -> List[Booking]:
        with self.session() as db:
            return [self._parse(_to_booking, r) for r in db.query(BookingRow).order_by(BookingRow.id)]

    def retrieve_by_fan(self, username: str) -> List[Booking]:
        with self.session() as db:
            rows = (
                db.query(BookingRow)
                .filter(BookingRow.fan_username == username)
                .order_by(BookingRow.game_date, BookingRow.game_time)
            )
            return [self._parse(_to_booking, r) for r in rows]

    def update(self, booking: Booking) -> None:
        with self.session() as db:
            row = db.get(BookingRow, booking.id)
            if row is None:
                raise EntityNotFoundError(f"Booking {booking.id} not found")
            _apply_booking(row, booking)
        self.notify(DaoOperation.UPDATE, EntityType.BOOKING, booking.id, booking)

    def delete(self, booking: Booking) -> None:
        with self.session() as db:
            if db.query(BookingRow).filter(BookingRow.id == booking.id).delete() == 0:
                raise EntityNotFoundError(f"Booking {booking.id} not found")
        self.notify(DaoOperation.DELETE, EntityType.BOOKING, booking.id)


class SqlNotificationAccessor(SqlAccessor, NotificationAccessor):

    def save(self, notification: Notification) -> Notification:
        with self.session() as db:
            if notification.id is not None and db.get(NotificationRow, notification.id) is not None:
                raise DuplicateEntityError(f"Notification {notification.id} already exists")
            row = NotificationRow(
                id=notification.id,
                user_id=notification.username,
                user_type=notification.user_type.name,
                type=notification.type.name,
                message=notification.message,
                related_booking_id=notification.related_booking_id,
                is_read=notification.is_read,
                created_at=notification.created_at,
            )
            db.add(row)
            db.flush()
            if notification.id is not None:
                self._advance_sequence(db, NotificationRow)
            notification.id = row.id
        self.notify(DaoOperation.INSERT, EntityType.NOTIFICATION, notification.id, notification)
        return notification

    def retrieve(self, notification_id: int) -> Optional[Notification]:
        with self.session() as db:
            row = db.get(NotificationRow, notification_id)
            return self._parse(_to_notification, row) if row else None

    def retrieve_all(self) -> List[Notification]:
        with self.session() as db:
            rows = db.query(NotificationRow).order_by(NotificationRow.id)
            return [self._parse(_to_notification, r) for r in rows]

    def retrieve_for_user(self, username: str, user_type: UserType) -> List[Notification]:
        with self.session() as db:
            rows = (
                db.query(NotificationRow)
                .filter(NotificationRow.user_id == username,
                        NotificationRow.user_type == user_type.name)
                .order_by(NotificationRow.created_at.desc())
            )
            return [self._parse(_to_notification, r) for r in rows]

    def update(self, notification: Notification) -> None:
        with self.session() as db:
            row = db.get(NotificationRow, notification.id)
            if row is None:
                raise EntityNotFoundError(f"Notification {notification.id} not found")
            row.message = notification.message
            row.type = notification.type.name
            row.related_booking_id = notification.related_booking_id
            row.is_read = notification.is_read
        self.notify(DaoOperation.UPDATE, EntityType.NOTIFICATION, notification.id, notification)

    def mark_all_as_read(self, username: str, user_type: UserType) -> int:
        with self.session() as db:
            return (
                db.query(NotificationRow)
                .filter(NotificationRow.user_id == username,
                        NotificationRow.user_type == user_type.name,
                        NotificationRow.is_read.is_(False))
                .update({NotificationRow.is_read: True}, synchronize_session=False)
            )

    def delete(self, notification: Notification) -> None:
        with self.session() as db:
            deleted = db.query(NotificationRow).filter(NotificationRow.id == notification.id).delete()
            if deleted == 0:
                raise EntityNotFoundError(f"Notification {notification.id} not found")
        self.notify(DaoOperation.DELETE, EntityType.NOTIFICATION, notification.id)


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

def build_engine(database_url: str, echo: bool = False):
    """Create an engine for ``database_url``.

    In-memory SQLite URLs share one connection across threads through
    ``StaticPool`` so every session sees the same database.
    """
    kwargs = {"echo": echo}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool

    engine = create_engine(database_url, **kwargs)

    if engine.dialect.name == "sqlite":
        @event.listens_for(engine, "connect")
        def _set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.execute("PRAGMA busy_timeout=5000")
            cursor.close()

    return engine


class RelationalBackendFactory(BackendFactory):
    """Accessors over one SQLAlchemy engine.

    The schema is created lazily on the first accessor request, so building
    the factory never touches the database; ``ping()`` is the connectivity
    probe.
    """

    backend = PersistenceType.RELATIONAL

    def __init__(self, database_url: str, echo: bool = False):
        super().__init__()
        self.database_url = database_url
        try:
            self.engine = build_engine(database_url, echo=echo)
        except (SQLAlchemyError, ImportError) as e:
            raise PersistenceError(f"Cannot configure relational backend: {e}") from e
        self.SessionLocal = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)
        self._schema_ready = False

    def create_schema(self) -> None:
        """Create missing tables.

        Raises:
            PersistenceError: If the database cannot be reached
        """
        if self._schema_ready:
            return
        try:
            Base.metadata.create_all(bind=self.engine)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Cannot create schema at {self.engine.url}: {e}") from e
        self._schema_ready = True

    def _sessions(self) -> sessionmaker:
        self.create_schema()
        return self.SessionLocal

    def user_accessor(self) -> SqlUserAccessor:
        return SqlUserAccessor(self._sessions())

    def fan_accessor(self) -> SqlFanAccessor:
        return SqlFanAccessor(self._sessions())

    def venue_manager_accessor(self) -> SqlVenueManagerAccessor:
        return SqlVenueManagerAccessor(self._sessions())

    def venue_accessor(self) -> SqlVenueAccessor:
        return SqlVenueAccessor(self._sessions())

    def booking_accessor(self) -> SqlBookingAccessor:
        return SqlBookingAccessor(self._sessions())

    def notification_accessor(self) -> SqlNotificationAccessor:
        return SqlNotificationAccessor(self._sessions())

    def ping(self) -> bool:
        """Run ``SELECT 1``; any database error counts as unreachable."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            self.logger.warning(f"Relational backend unreachable at {self.engine.url}: {e}")
            return False

    def close(self) -> None:
        self.engine.dispose()
