"""File backend: one CSV file per table under a single directory.

Every file starts with a header row. Numeric ids are assigned as
``max(id) + 1`` unless the caller supplies one. Writes rewrite the whole
file through a temporary sibling and ``os.replace`` so a crash never leaves
a half-written table behind.

Layout::

    users.csv           username,password_hash,full_name,gender,user_type
    fans.csv            username,fav_team,birthday
    venue_managers.csv  username,company_name,phone_number
    venues.csv          id,name,type,address,city,max_capacity,venue_manager_username
    venue_teams.csv     venue_id,team_name
    bookings.csv        id,game_date,game_time,home_team,away_team,venue_id,fan_username,status,notified
    notifications.csv   id,user_id,user_type,type,message,related_booking_id,is_read,created_at
"""

import csv
import os
import threading
from datetime import date, datetime, time
from pathlib import Path
from typing import Callable, Dict, List, Optional

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

Row = Dict[str, str]

TABLES: Dict[str, List[str]] = {
    "users": ["username", "password_hash", "full_name", "gender", "user_type"],
    "fans": ["username", "fav_team", "birthday"],
    "venue_managers": ["username", "company_name", "phone_number"],
    "venues": ["id", "name", "type", "address", "city", "max_capacity", "venue_manager_username"],
    "venue_teams": ["venue_id", "team_name"],
    "bookings": [
        "id", "game_date", "game_time", "home_team", "away_team",
        "venue_id", "fan_username", "status", "notified",
    ],
    "notifications": [
        "id", "user_id", "user_type", "type", "message",
        "related_booking_id", "is_read", "created_at",
    ],
}


class CsvTable:
    """A single CSV file with a fixed header."""

    def __init__(self, path: Path, header: List[str]):
        self.path = Path(path)
        self.header = header

    @property
    def name(self) -> str:
        return self.path.stem

    def ensure(self) -> None:
        """Create the file with its header row if it does not exist."""
        if not self.path.exists():
            self.write([])

    def read(self) -> List[Row]:
        self.ensure()
        try:
            with open(self.path, newline="", encoding="utf-8") as f:
                return [dict(row) for row in csv.DictReader(f)]
        except (OSError, csv.Error) as e:
            raise PersistenceError(f"Cannot read {self.path}: {e}") from e

    def write(self, rows: List[Row]) -> None:
        tmp_path = self.path.with_suffix(".csv.tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", newline="", encoding="utf-8") as f:
                writer = csv.DictWriter(f, fieldnames=self.header)
                writer.writeheader()
                for row in rows:
                    writer.writerow({key: row.get(key, "") for key in self.header})
            os.replace(tmp_path, self.path)
        except (OSError, csv.Error) as e:
            raise PersistenceError(f"Cannot write {self.path}: {e}") from e

    def append(self, row: Row) -> None:
        rows = self.read()
        rows.append(row)
        self.write(rows)

    def remove_where(self, predicate: Callable[[Row], bool]) -> int:
        rows = self.read()
        kept = [row for row in rows if not predicate(row)]
        if len(kept) != len(rows):
            self.write(kept)
        return len(rows) - len(kept)

    def reset(self) -> None:
        """Truncate to the header row."""
        self.write([])

    def next_id(self) -> int:
        ids = [int(row["id"]) for row in self.read() if row.get("id")]
        return max(ids, default=0) + 1


class CsvStore:
    """The set of CSV tables backing one file backend.

    All accessors of a store share one re-entrant lock around
    read-modify-write cycles.
    """

    def __init__(self, csv_dir: Path):
        self.csv_dir = Path(csv_dir)
        self.lock = threading.RLock()
        self.tables: Dict[str, CsvTable] = {
            name: CsvTable(self.csv_dir / f"{name}.csv", header)
            for name, header in TABLES.items()
        }

    def __getitem__(self, name: str) -> CsvTable:
        return self.tables[name]

    def ensure(self) -> None:
        with self.lock:
            for table in self.tables.values():
                table.ensure()

    def reset(self) -> List[Path]:
        """Wipe every table back to its header row.

        Returns:
            Paths of the files that were wiped
        """
        with self.lock:
            for table in self.tables.values():
                table.reset()
            return [table.path for table in self.tables.values()]

    # Cascades mirror the foreign keys of the relational schema.

    def cascade_venue(self, venue_id: str) -> None:
        self["venue_teams"].remove_where(lambda r: r["venue_id"] == venue_id)
        booking_ids = [r["id"] for r in self["bookings"].read() if r["venue_id"] == venue_id]
        self["bookings"].remove_where(lambda r: r["venue_id"] == venue_id)
        self.orphan_notifications(booking_ids)

    def cascade_user(self, username: str) -> None:
        self["fans"].remove_where(lambda r: r["username"] == username)
        booking_ids = [r["id"] for r in self["bookings"].read() if r["fan_username"] == username]
        self["bookings"].remove_where(lambda r: r["fan_username"] == username)
        self.orphan_notifications(booking_ids)

        self["venue_managers"].remove_where(lambda r: r["username"] == username)
        for venue in self["venues"].read():
            if venue["venue_manager_username"] == username:
                self.cascade_venue(venue["id"])
        self["venues"].remove_where(lambda r: r["venue_manager_username"] == username)

        self["notifications"].remove_where(lambda r: r["user_id"] == username)
        self["users"].remove_where(lambda r: r["username"] == username)

    def orphan_notifications(self, booking_ids: List[str]) -> None:
        if not booking_ids:
            return
        rows = self["notifications"].read()
        for row in rows:
            if row["related_booking_id"] in booking_ids:
                row["related_booking_id"] = ""
        self["notifications"].write(rows)


def _bool(value: str) -> bool:
    return value.strip().lower() in ("true", "1", "yes")


def _user_from_row(row: Row) -> User:
    return User(
        username=row["username"],
        full_name=row["full_name"],
        gender=row["gender"],
        user_type=UserType[row["user_type"]],
        password_hash=row["password_hash"] or None,
    )


def _user_row(user: UserBean) -> Row:
    return {
        "username": user.username,
        "password_hash": user.password_hash or "",
        "full_name": user.full_name,
        "gender": user.gender,
        "user_type": user.user_type.name,
    }


def _venue_from_rows(row: Row, team_rows: List[Row]) -> Venue:
    return Venue(
        id=int(row["id"]),
        name=row["name"],
        type=VenueType[row["type"]],
        address=row["address"],
        city=row["city"],
        max_capacity=int(row["max_capacity"]),
        venue_manager_username=row["venue_manager_username"],
        associated_teams=[
            TeamNBA.parse(t["team_name"]) for t in team_rows if t["venue_id"] == row["id"]
        ],
    )


def _venue_row(venue) -> Row:
    return {
        "id": str(venue.id),
        "name": venue.name,
        "type": venue.type.name,
        "address": venue.address,
        "city": venue.city,
        "max_capacity": str(venue.max_capacity),
        "venue_manager_username": venue.venue_manager_username,
    }


def _booking_from_row(row: Row) -> Booking:
    return Booking(
        id=int(row["id"]),
        game_date=date.fromisoformat(row["game_date"]),
        game_time=time.fromisoformat(row["game_time"]),
        home_team=TeamNBA.parse(row["home_team"]),
        away_team=TeamNBA.parse(row["away_team"]),
        venue_id=int(row["venue_id"]),
        fan_username=row["fan_username"],
        status=BookingStatus[row["status"]],
        notified=_bool(row["notified"]),
    )


def _booking_row(booking) -> Row:
    return {
        "id": str(booking.id),
        "game_date": booking.game_date.isoformat(),
        "game_time": booking.game_time.isoformat(timespec="minutes"),
        "home_team": booking.home_team.name,
        "away_team": booking.away_team.name,
        "venue_id": str(booking.venue_id),
        "fan_username": booking.fan_username,
        "status": booking.status.name,
        "notified": str(booking.notified).lower(),
    }


def _notification_from_row(row: Row) -> Notification:
    return Notification(
        id=int(row["id"]),
        username=row["user_id"],
        user_type=UserType[row["user_type"]],
        type=NotificationType[row["type"]],
        message=row["message"],
        related_booking_id=int(row["related_booking_id"]) if row["related_booking_id"] else None,
        is_read=_bool(row["is_read"]),
        created_at=datetime.fromisoformat(row["created_at"]),
    )


def _notification_row(notification: Notification) -> Row:
    related = notification.related_booking_id
    return {
        "id": str(notification.id),
        "user_id": notification.username,
        "user_type": notification.user_type.name,
        "type": notification.type.name,
        "message": notification.message,
        "related_booking_id": "" if related is None else str(related),
        "is_read": str(notification.is_read).lower(),
        "created_at": notification.created_at.isoformat(timespec="seconds"),
    }


class CsvAccessor:
    """Shared plumbing for CSV accessors."""

    backend = PersistenceType.FILE

    def __init__(self, store: CsvStore):
        super().__init__()
        self.store = store

    def _parse(self, table: str, row: Row, parser):
        try:
            return parser(row)
        except (KeyError, ValueError) as e:
            raise PersistenceError(f"Corrupt row in {table}.csv: {row}") from e

    def _find(self, table: str, key: str, value: str) -> Optional[Row]:
        for row in self.store[table].read():
            if row.get(key) == value:
                return row
        return None

    def _insert_user(self, user: UserBean) -> None:
        if not user.password_hash:
            raise PersistenceError(f"User '{user.username}' has no password hash")
        if self._find("users", "username", user.username) is not None:
            raise DuplicateEntityError(f"Username '{user.username}' is already taken")
        self.store["users"].append(_user_row(user))

    def _insert_role(self, user: UserBean, table: str, row: Row) -> None:
        """Write the users row then the role row; drop the users row if the second write fails."""
        self._insert_user(user)
        try:
            self.store[table].append(row)
        except PersistenceError:
            self.store["users"].remove_where(lambda r: r["username"] == user.username)
            raise

    def _update_user(self, user: UserBean) -> None:
        rows = self.store["users"].read()
        for row in rows:
            if row["username"] == user.username:
                row["full_name"] = user.full_name
                row["gender"] = user.gender
                if user.password_hash:
                    row["password_hash"] = user.password_hash
                self.store["users"].write(rows)
                return
        raise EntityNotFoundError(f"User '{user.username}' not found")


class CsvUserAccessor(CsvAccessor, UserAccessor):

    def save(self, user: UserBean) -> User:
        with self.store.lock:
            self._insert_user(user)
        self.notify(DaoOperation.INSERT, EntityType.USER, user.username, user)
        return self.retrieve(user.username)

    def retrieve(self, username: str) -> Optional[User]:
        row = self._find("users", "username", username)
        return self._parse("users", row, _user_from_row) if row else None

    def retrieve_all(self) -> List[User]:
        return [self._parse("users", r, _user_from_row) for r in self.store["users"].read()]

    def update(self, user: UserBean) -> None:
        with self.store.lock:
            self._update_user(user)
        updated = User(user.username, user.full_name, user.gender, user.user_type)
        self.notify(DaoOperation.UPDATE, EntityType.USER, user.username, updated)

    def delete(self, username: str) -> None:
        with self.store.lock:
            if self._find("users", "username", username) is None:
                raise EntityNotFoundError(f"User '{username}' not found")
            self.store.cascade_user(username)
        self.notify(DaoOperation.DELETE, EntityType.USER, username)


class CsvFanAccessor(CsvAccessor, FanAccessor):

    def _to_fan(self, row: Row) -> Fan:
        user = self._find("users", "username", row["username"])
        if user is None:
            raise PersistenceError(f"Fan '{row['username']}' has no user record")
        return Fan(
            username=row["username"],
            full_name=user["full_name"],
            gender=user["gender"],
            fav_team=TeamNBA.parse(row["fav_team"]),
            birthday=date.fromisoformat(row["birthday"]),
        )

    def save(self, fan: FanBean) -> Fan:
        with self.store.lock:
            self._insert_role(fan, "fans", {
                "username": fan.username,
                "fav_team": fan.fav_team.name,
                "birthday": fan.birthday.isoformat(),
            })
        self.notify(DaoOperation.INSERT, EntityType.FAN, fan.username, fan)
        return fan.to_fan()

    def retrieve(self, username: str) -> Optional[Fan]:
        row = self._find("fans", "username", username)
        return self._parse("fans", row, self._to_fan) if row else None

    def retrieve_all(self) -> List[Fan]:
        return [self._parse("fans", r, self._to_fan) for r in self.store["fans"].read()]

    def update(self, fan: Fan, user: Optional[UserBean] = None) -> None:
        user = user or UserBean(fan.username, fan.full_name, fan.gender, UserType.FAN)
        with self.store.lock:
            rows = self.store["fans"].read()
            for row in rows:
                if row["username"] == fan.username:
                    row["fav_team"] = fan.fav_team.name
                    row["birthday"] = fan.birthday.isoformat()
                    break
            else:
                raise EntityNotFoundError(f"Fan '{fan.username}' not found")
            self._update_user(user)
            self.store["fans"].write(rows)
        self.notify(DaoOperation.UPDATE, EntityType.FAN, fan.username, fan)

    def delete(self, fan: Fan) -> None:
        with self.store.lock:
            if self._find("fans", "username", fan.username) is None:
                raise EntityNotFoundError(f"Fan '{fan.username}' not found")
            self.store.cascade_user(fan.username)
        self.notify(DaoOperation.DELETE, EntityType.FAN, fan.username)


class CsvVenueManagerAccessor(CsvAccessor, VenueManagerAccessor):

    def _to_manager(self, row: Row) -> VenueManager:
        user = self._find("users", "username", row["username"])
        if user is None:
            raise PersistenceError(f"Venue manager '{row['username']}' has no user record")
        return VenueManager(
            username=row["username"],
            full_name=user["full_name"],
            gender=user["gender"],
            company_name=row["company_name"],
            phone_number=row["phone_number"],
        )

    def save(self, manager: VenueManagerBean) -> VenueManager:
        with self.store.lock:
            self._insert_role(manager, "venue_managers", {
                "username": manager.username,
                "company_name": manager.company_name,
                "phone_number": manager.phone_number,
            })
        self.notify(DaoOperation.INSERT, EntityType.VENUE_MANAGER, manager.username, manager)
        return manager.to_venue_manager()

    def retrieve(self, username: str) -> Optional[VenueManager]:
        row = self._find("venue_managers", "username", username)
        return self._parse("venue_managers", row, self._to_manager) if row else None

    def retrieve_all(self) -> List[VenueManager]:
        return [
            self._parse("venue_managers", r, self._to_manager)
            for r in self.store["venue_managers"].read()
        ]

    def update(self, manager: VenueManager, user: Optional[UserBean] = None) -> None:
        user = user or UserBean(
            manager.username, manager.full_name, manager.gender, UserType.VENUE_MANAGER
        )
        with self.store.lock:
            rows = self.store["venue_managers"].read()
            for row in rows:
                if row["username"] == manager.username:
                    row["company_name"] = manager.company_name
                    row["phone_number"] = manager.phone_number
                    break
            else:
                raise EntityNotFoundError(f"Venue manager '{manager.username}' not found")
            self._update_user(user)
            self.store["venue_managers"].write(rows)
        self.notify(DaoOperation.UPDATE, EntityType.VENUE_MANAGER, manager.username, manager)

    def delete(self, manager: VenueManager) -> None:
        with self.store.lock:
            if self._find("venue_managers", "username", manager.username) is None:
                raise EntityNotFoundError(f"Venue manager '{manager.username}' not found")
            self.store.cascade_user(manager.username)
        self.notify(DaoOperation.DELETE, EntityType.VENUE_MANAGER, manager.username)


class CsvVenueAccessor(CsvAccessor, VenueAccessor):

    def _write_teams(self, venue_id: int, teams: List[TeamNBA]) -> None:
        key = str(venue_id)
        rows = [r for r in self.store["venue_teams"].read() if r["venue_id"] != key]
        rows.extend({"venue_id": key, "team_name": team.name} for team in teams)
        self.store["venue_teams"].write(rows)

    def save(self, venue: VenueBean) -> Venue:
        with self.store.lock:
            table = self.store["venues"]
            if venue.id is None:
                venue_id = table.next_id()
            elif self._find("venues", "id", str(venue.id)) is not None:
                raise DuplicateEntityError(f"Venue {venue.id} already exists")
            else:
                venue_id = venue.id
            stored = venue.to_venue(venue_id)
            table.append(_venue_row(stored))
            self._write_teams(venue_id, stored.associated_teams)
        venue.id = venue_id
        self.notify(DaoOperation.INSERT, EntityType.VENUE, venue_id, venue)
        return stored

    def retrieve(self, venue_id: int) -> Optional[Venue]:
        row = self._find("venues", "id", str(venue_id))
        if row is None:
            return None
        teams = self.store["venue_teams"].read()
        return self._parse("venues", row, lambda r: _venue_from_rows(r, teams))

    def retrieve_all(self) -> List[Venue]:
        teams = self.store["venue_teams"].read()
        return [
            self._parse("venues", r, lambda row: _venue_from_rows(row, teams))
            for r in self.store["venues"].read()
        ]

    def update(self, venue: Venue) -> None:
        with self.store.lock:
            rows = self.store["venues"].read()
            for i, row in enumerate(rows):
                if row["id"] == str(venue.id):
                    rows[i] = _venue_row(venue)
                    break
            else:
                raise EntityNotFoundError(f"Venue {venue.id} not found")
            self.store["venues"].write(rows)
            self._write_teams(venue.id, venue.associated_teams)
        self.notify(DaoOperation.UPDATE, EntityType.VENUE, venue.id, venue)

    def delete(self, venue: Venue) -> None:
        key = str(venue.id)
        with self.store.lock:
            if self.store["venues"].remove_where(lambda r: r["id"] == key) == 0:
                raise EntityNotFoundError(f"Venue {venue.id} not found")
            self.store.cascade_venue(key)
        self.notify(DaoOperation.DELETE, EntityType.VENUE, venue.id)


class CsvBookingAccessor(CsvAccessor, BookingAccessor):

    def save(self, booking: BookingBean) -> Booking:
        with self.store.lock:
            table = self.store["bookings"]
            booking_id = booking.id if booking.id is not None else table.next_id()
            stored = booking.to_booking(booking_id)
            rows = [r for r in table.read() if r["id"] != str(booking_id)]
            rows.append(_booking_row(stored))
            table.write(rows)
        booking.id = booking_id
        self.notify(DaoOperation.INSERT, EntityType.BOOKING, booking_id, booking)
        return stored

    def retrieve(self, booking_id: int) -> Optional[Booking]:
        row = self._find("bookings", "id", str(booking_id))
        return self._parse("bookings", row, _booking_from_row) if row else None

    def retrieve_all(self) -> List[Booking]:
        return [self._parse("bookings", r, _booking_from_row) for r in self.store["bookings"].read()]

    def update(self, booking: Booking) -> None:
        with self.store.lock:
            rows = self.store["bookings"].read()
            for i, row in enumerate(rows):
                if row["id"] == str(booking.id):
                    rows[i] = _booking_row(booking)
                    break
            else:
                raise EntityNotFoundError(f"Booking {booking.id} not found")
            self.store["bookings"].write(rows)
        self.notify(DaoOperation.UPDATE, EntityType.BOOKING, booking.id, booking)

    def delete(self, booking: Booking) -> None:
        key = str(booking.id)
        with self.store.lock:
            if self.store["bookings"].remove_where(lambda r: r["id"] == key) == 0:
                raise EntityNotFoundError(f"Booking {booking.id} not found")
            self.store.orphan_notifications([key])
        self.notify(DaoOperation.DELETE, EntityType.BOOKING, booking.id)


class CsvNotificationAccessor(CsvAccessor, NotificationAccessor):

    def save(self, notification: Notification) -> Notification:
        with self.store.lock:
            table = self.store["notifications"]
            if notification.id is None:
                notification.id = table.next_id()
            elif self._find("notifications", "id", str(notification.id)) is not None:
                raise DuplicateEntityError(f"Notification {notification.id} already exists")
            table.append(_notification_row(notification))
        self.notify(DaoOperation.INSERT, EntityType.NOTIFICATION, notification.id, notification)
        return notification

    def retrieve(self, notification_id: int) -> Optional[Notification]:
        row = self._find("notifications", "id", str(notification_id))
        return self._parse("notifications", row, _notification_from_row) if row else None

    def retrieve_all(self) -> List[Notification]:
        return [
            self._parse("notifications", r, _notification_from_row)
            for r in self.store["notifications"].read()
        ]

    def update(self, notification: Notification) -> None:
        with self.store.lock:
            rows = self.store["notifications"].read()
            for i, row in enumerate(rows):
                if row["id"] == str(notification.id):
                    rows[i] = _notification_row(notification)
                    break
            else:
                raise EntityNotFoundError(f"Notification {notification.id} not found")
            self.store["notifications"].write(rows)
        self.notify(DaoOperation.UPDATE, EntityType.NOTIFICATION, notification.id, notification)

    def mark_all_as_read(self, username: str, user_type: UserType) -> int:
        changed = 0
        with self.store.lock:
            rows = self.store["notifications"].read()
            for row in rows:
                if (row["user_id"] == username and row["user_type"] == user_type.name
                        and not _bool(row["is_read"])):
                    row["is_read"] = "true"
                    changed += 1
            if changed:
                self.store["notifications"].write(rows)
        return changed

    def delete(self, notification: Notification) -> None:
        key = str(notification.id)
        with self.store.lock:
            if self.store["notifications"].remove_where(lambda r: r["id"] == key) == 0:
                raise EntityNotFoundError(f"Notification {notification.id} not found")
        self.notify(DaoOperation.DELETE, EntityType.NOTIFICATION, notification.id)


class CsvBackendFactory(BackendFactory):
    """Accessors over a shared ``CsvStore``."""

    backend = PersistenceType.FILE

    def __init__(self, csv_dir: Path):
        super().__init__()
        self.store = CsvStore(csv_dir)
        self.store.ensure()
        self.logger.debug(f"CSV backend rooted at {self.store.csv_dir}")

    def user_accessor(self) -> CsvUserAccessor:
        return CsvUserAccessor(self.store)

    def fan_accessor(self) -> CsvFanAccessor:
        return CsvFanAccessor(self.store)

    def venue_manager_accessor(self) -> CsvVenueManagerAccessor:
        return CsvVenueManagerAccessor(self.store)

    def venue_accessor(self) -> CsvVenueAccessor:
        return CsvVenueAccessor(self.store)

    def booking_accessor(self) -> CsvBookingAccessor:
        return CsvBookingAccessor(self.store)

    def notification_accessor(self) -> CsvNotificationAccessor:
        return CsvNotificationAccessor(self.store)

    def ping(self) -> bool:
        return self.store.csv_dir.is_dir() and os.access(self.store.csv_dir, os.W_OK)

    def reset(self) -> List[Path]:
        """Wipe every CSV file back to its header row."""
        paths = self.store.reset()
        self.logger.info(f"Wiped {len(paths)} CSV files in {self.store.csv_dir}")
        return paths
