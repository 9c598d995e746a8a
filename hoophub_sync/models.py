"""Domain model for HoopHub: users, venues, bookings and notifications.

Enums are persisted by member name in every backend. Dates and times are
``datetime.date``/``datetime.time`` objects in memory and ISO strings on disk.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time
from enum import Enum
from typing import List, Optional


class UserType(Enum):
    """Role a user account plays."""
    FAN = "fan"
    VENUE_MANAGER = "venue_manager"


class BookingStatus(Enum):
    """Lifecycle state of a booking request."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class NotificationType(Enum):
    """Kind of event a notification reports."""
    BOOKING_REQUESTED = "booking_requested"
    BOOKING_APPROVED = "booking_approved"
    BOOKING_REJECTED = "booking_rejected"
    BOOKING_CANCELLED = "booking_cancelled"
    SYSTEM_NOTIFICATION = "system_notification"


class VenueType(Enum):
    """Venue category with its display name and capacity ceiling."""
    PUB = ("Pub", 200)
    BAR = ("Bar", 100)
    SPORTS_BAR = ("Sports Bar", 500)
    FAN_CLUB = ("Fan Club", 150)
    RESTAURANT = ("Restaurant", 300)
    LOUNGE = ("Lounge", 100)
    PRIVATE_CLUB = ("Private Club", 200)

    def __init__(self, display_name: str, max_capacity: int):
        self.display_name = display_name
        self.max_capacity = max_capacity


class TeamNBA(Enum):
    """The thirty NBA franchises."""
    ATLANTA_HAWKS = ("Atlanta Hawks", "ATL")
    BOSTON_CELTICS = ("Boston Celtics", "BOS")
    BROOKLYN_NETS = ("Brooklyn Nets", "BKN")
    CHARLOTTE_HORNETS = ("Charlotte Hornets", "CHA")
    CHICAGO_BULLS = ("Chicago Bulls", "CHI")
    CLEVELAND_CAVALIERS = ("Cleveland Cavaliers", "CLE")
    DALLAS_MAVERICKS = ("Dallas Mavericks", "DAL")
    DENVER_NUGGETS = ("Denver Nuggets", "DEN")
    DETROIT_PISTONS = ("Detroit Pistons", "DET")
    GOLDEN_STATE_WARRIORS = ("Golden State Warriors", "GSW")
    HOUSTON_ROCKETS = ("Houston Rockets", "HOU")
    INDIANA_PACERS = ("Indiana Pacers", "IND")
    LOS_ANGELES_CLIPPERS = ("Los Angeles Clippers", "LAC")
    LOS_ANGELES_LAKERS = ("Los Angeles Lakers", "LAL")
    MEMPHIS_GRIZZLIES = ("Memphis Grizzlies", "MEM")
    MIAMI_HEAT = ("Miami Heat", "MIA")
    MILWAUKEE_BUCKS = ("Milwaukee Bucks", "MIL")
    MINNESOTA_TIMBERWOLVES = ("Minnesota Timberwolves", "MIN")
    NEW_ORLEANS_PELICANS = ("New Orleans Pelicans", "NOP")
    NEW_YORK_KNICKS = ("New York Knicks", "NYK")
    OKLAHOMA_CITY_THUNDER = ("Oklahoma City Thunder", "OKC")
    ORLANDO_MAGIC = ("Orlando Magic", "ORL")
    PHILADELPHIA_76ERS = ("Philadelphia 76ers", "PHI")
    PHOENIX_SUNS = ("Phoenix Suns", "PHX")
    PORTLAND_TRAIL_BLAZERS = ("Portland Trail Blazers", "POR")
    SACRAMENTO_KINGS = ("Sacramento Kings", "SAC")
    SAN_ANTONIO_SPURS = ("San Antonio Spurs", "SAS")
    TORONTO_RAPTORS = ("Toronto Raptors", "TOR")
    UTAH_JAZZ = ("Utah Jazz", "UTA")
    WASHINGTON_WIZARDS = ("Washington Wizards", "WAS")

    def __init__(self, display_name: str, abbreviation: str):
        self.display_name = display_name
        self.abbreviation = abbreviation

    @classmethod
    def parse(cls, value: str) -> "TeamNBA":
        """Resolve a team from its member name, display name or abbreviation.

        Raises:
            ValueError: If no team matches
        """
        key = value.strip()
        if key in cls.__members__:
            return cls[key]
        for team in cls:
            if key.lower() in (team.display_name.lower(), team.abbreviation.lower()):
                return team
        raise ValueError(f"Unknown NBA team: {value!r}")


@dataclass
class User:
    """Raw user record as stored in the ``users`` table/file.

    This is the only read path that exposes ``password_hash``; role reads
    (``Fan``, ``VenueManager``) never carry it.
    """
    username: str
    full_name: str
    gender: str
    user_type: UserType
    password_hash: Optional[str] = None


@dataclass
class Fan:
    username: str
    full_name: str
    gender: str
    fav_team: TeamNBA
    birthday: date

    @property
    def user_type(self) -> UserType:
        return UserType.FAN


@dataclass
class VenueManager:
    username: str
    full_name: str
    gender: str
    company_name: str
    phone_number: str

    @property
    def user_type(self) -> UserType:
        return UserType.VENUE_MANAGER


@dataclass
class Venue:
    """A place hosting game screenings, owned by one venue manager."""
    id: int
    name: str
    type: VenueType
    address: str
    city: str
    max_capacity: int
    venue_manager_username: str
    associated_teams: List[TeamNBA] = field(default_factory=list)


@dataclass
class Booking:
    """A fan's request to watch one game at one venue."""
    id: int
    game_date: date
    game_time: time
    home_team: TeamNBA
    away_team: TeamNBA
    venue_id: int
    fan_username: str
    status: BookingStatus = BookingStatus.PENDING
    notified: bool = False


@dataclass
class Notification:
    """A message addressed to one user, optionally tied to a booking."""
    id: Optional[int]
    username: str
    user_type: UserType
    type: NotificationType
    message: str
    related_booking_id: Optional[int] = None
    is_read: bool = False
    created_at: datetime = field(default_factory=datetime.now)
