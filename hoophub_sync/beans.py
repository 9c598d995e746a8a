"""Transfer objects exchanged at write boundaries.

Beans are flat, backend-agnostic carriers. Accessors accept them on save,
and the change notifier ships them as INSERT payloads. Optional ids let a
replay or a bootstrap write reuse the identifier the source backend assigned.
"""

from dataclasses import dataclass, field
from datetime import date, time
from typing import List, Optional

from .models import (
    Booking,
    BookingStatus,
    Fan,
    TeamNBA,
    UserType,
    Venue,
    VenueManager,
    VenueType,
)


@dataclass
class UserBean:
    """Base user fields.

    Attributes:
        username: Unique login name
        full_name: Display name
        gender: Free-form gender label
        user_type: Role of the account
        password_hash: Credential secret; None on update means "leave unchanged"
    """
    username: str
    full_name: str
    gender: str
    user_type: UserType
    password_hash: Optional[str] = None


@dataclass
class FanBean(UserBean):
    user_type: UserType = UserType.FAN
    fav_team: Optional[TeamNBA] = None
    birthday: Optional[date] = None

    @classmethod
    def from_fan(cls, fan: Fan, password_hash: Optional[str] = None) -> "FanBean":
        return cls(
            username=fan.username,
            full_name=fan.full_name,
            gender=fan.gender,
            password_hash=password_hash,
            fav_team=fan.fav_team,
            birthday=fan.birthday,
        )

    def to_fan(self) -> Fan:
        return Fan(
            username=self.username,
            full_name=self.full_name,
            gender=self.gender,
            fav_team=self.fav_team,
            birthday=self.birthday,
        )


@dataclass
class VenueManagerBean(UserBean):
    user_type: UserType = UserType.VENUE_MANAGER
    company_name: str = ""
    phone_number: str = ""

    @classmethod
    def from_venue_manager(
        cls, manager: VenueManager, password_hash: Optional[str] = None
    ) -> "VenueManagerBean":
        return cls(
            username=manager.username,
            full_name=manager.full_name,
            gender=manager.gender,
            password_hash=password_hash,
            company_name=manager.company_name,
            phone_number=manager.phone_number,
        )

    def to_venue_manager(self) -> VenueManager:
        return VenueManager(
            username=self.username,
            full_name=self.full_name,
            gender=self.gender,
            company_name=self.company_name,
            phone_number=self.phone_number,
        )


@dataclass
class VenueBean:
    name: str
    type: VenueType
    address: str
    city: str
    max_capacity: int
    venue_manager_username: str
    associated_teams: List[TeamNBA] = field(default_factory=list)
    id: Optional[int] = None

    @classmethod
    def from_venue(cls, venue: Venue) -> "VenueBean":
        return cls(
            id=venue.id,
            name=venue.name,
            type=venue.type,
            address=venue.address,
            city=venue.city,
            max_capacity=venue.max_capacity,
            venue_manager_username=venue.venue_manager_username,
            associated_teams=list(venue.associated_teams),
        )

    def to_venue(self, venue_id: int) -> Venue:
        return Venue(
            id=venue_id,
            name=self.name,
            type=self.type,
            address=self.address,
            city=self.city,
            max_capacity=self.max_capacity,
            venue_manager_username=self.venue_manager_username,
            associated_teams=list(self.associated_teams),
        )


@dataclass
class BookingBean:
    game_date: date
    game_time: time
    home_team: TeamNBA
    away_team: TeamNBA
    venue_id: int
    fan_username: str
    status: BookingStatus = BookingStatus.PENDING
    notified: bool = False
    id: Optional[int] = None

    @classmethod
    def from_booking(cls, booking: Booking) -> "BookingBean":
        return cls(
            id=booking.id,
            game_date=booking.game_date,
            game_time=booking.game_time,
            home_team=booking.home_team,
            away_team=booking.away_team,
            venue_id=booking.venue_id,
            fan_username=booking.fan_username,
            status=booking.status,
            notified=booking.notified,
        )

    def to_booking(self, booking_id: int) -> Booking:
        return Booking(
            id=booking_id,
            game_date=self.game_date,
            game_time=self.game_time,
            home_team=self.home_team,
            away_team=self.away_team,
            venue_id=self.venue_id,
            fan_username=self.fan_username,
            status=self.status,
            notified=self.notified,
        )
