"""Consistency verification between the relational master and the CSV replica.

Compares every family record by record, keyed by primary key, to detect:
- records the replica is missing (a replay failed or never ran)
- records only the replica holds (written while the master was offline)
- records present on both sides whose content differs
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime, time
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Dict, List

from ..config import PersistenceType
from ..exceptions import PersistenceError

if TYPE_CHECKING:
    from ..facade import PersistenceFacade


@dataclass
class ConsistencyResult:
    """Result of a consistency check.

    Attributes:
        verified_count: Records identical on both backends
        missing_in_file: Keys on the master but not in the CSV files, per family
        extra_in_file: Keys in the CSV files but not on the master, per family
        mismatched: Keys on both sides with different content, per family
        errors: Families that could not be compared
    """
    verified_count: int = 0
    missing_in_file: Dict[str, List[str]] = field(default_factory=dict)
    extra_in_file: Dict[str, List[str]] = field(default_factory=dict)
    mismatched: Dict[str, List[str]] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)

    @property
    def is_consistent(self) -> bool:
        """Check if both backends hold the same data."""
        return not (
            any(self.missing_in_file.values())
            or any(self.extra_in_file.values())
            or any(self.mismatched.values())
            or self.errors
        )

    @property
    def needs_resync(self) -> bool:
        return not self.is_consistent

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "verified_count": self.verified_count,
            "is_consistent": self.is_consistent,
            "needs_resync": self.needs_resync,
            "missing_in_file": self.missing_in_file,
            "extra_in_file": self.extra_in_file,
            "mismatched": self.mismatched,
            "errors": self.errors,
        }


def _normalize(value: Any) -> Any:
    """Reduce a field to the precision every backend preserves."""
    if isinstance(value, datetime):
        return value.replace(microsecond=0)
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0)
    if isinstance(value, Enum):
        return value.name
    if isinstance(value, list):
        return sorted(_normalize(v) for v in value)
    return value


def fingerprint(record: Any) -> tuple:
    """Comparable form of a domain object."""
    return tuple(
        (f.name, _normalize(getattr(record, f.name))) for f in dataclasses.fields(record)
    )


# family -> (accessor getter name, key attribute)
FAMILIES: Dict[str, tuple] = {
    "users": ("get_user_accessor", "username"),
    "fans": ("get_fan_accessor", "username"),
    "venue_managers": ("get_venue_manager_accessor", "username"),
    "venues": ("get_venue_accessor", "id"),
    "bookings": ("get_booking_accessor", "id"),
    "notifications": ("get_notification_accessor", "id"),
}


def _index(records: List[Any], key: str) -> Dict[str, tuple]:
    return {str(getattr(r, key)): fingerprint(r) for r in records}


def verify_consistency(facade: "PersistenceFacade") -> ConsistencyResult:
    """Compare the relational and file backends family by family.

    Reads go through the facade with explicit backends; nothing is written.

    Args:
        facade: Facade able to reach both backends

    Returns:
        ConsistencyResult describing every difference found
    """
    result = ConsistencyResult()

    for family, (getter_name, key) in FAMILIES.items():
        getter: Callable = getattr(facade, getter_name)
        try:
            master = _index(getter(PersistenceType.RELATIONAL).retrieve_all(), key)
            replica = _index(getter(PersistenceType.FILE).retrieve_all(), key)
        except PersistenceError as e:
            result.errors.append(f"{family}: {e}")
            continue

        result.missing_in_file[family] = sorted(set(master) - set(replica))
        result.extra_in_file[family] = sorted(set(replica) - set(master))
        mismatched = []
        for record_key in set(master) & set(replica):
            if master[record_key] == replica[record_key]:
                result.verified_count += 1
            else:
                mismatched.append(record_key)
        result.mismatched[family] = sorted(mismatched)

    return result
