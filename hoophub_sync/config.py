"""Configuration dataclasses for the HoopHub sync engine."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
from enum import Enum


class PersistenceType(Enum):
    """Storage backend the application reads and writes through."""
    RELATIONAL = "relational"   # Master store (SQL database)
    FILE = "file"               # CSV files, rebuilt from the master at startup
    IN_MEMORY = "in_memory"     # Volatile, never synchronized

    @property
    def complement(self) -> Optional["PersistenceType"]:
        """The backend that receives replays of this backend's mutations.

        Returns:
            FILE for RELATIONAL, RELATIONAL for FILE, None for IN_MEMORY
        """
        if self is PersistenceType.RELATIONAL:
            return PersistenceType.FILE
        if self is PersistenceType.FILE:
            return PersistenceType.RELATIONAL
        return None

    @property
    def is_volatile(self) -> bool:
        """True for the backend that takes part in no sync direction."""
        return self is PersistenceType.IN_MEMORY


DEFAULT_DATA_DIR = Path("data")


@dataclass
class SyncConfig:
    """Configuration for a HoopHub persistence stack.

    Attributes:
        persistence: Backend requested at startup
        csv_dir: Directory holding the file backend's CSV files
        database_url: SQLAlchemy URL of the relational backend (master)
        echo_sql: Log every SQL statement issued by SQLAlchemy
        fallback_to_file: Start on FILE if the relational backend is unreachable
        log_level: Default logging level name
        json_logs: Emit JSON lines instead of text
        log_file: Optional path to a log file
    """
    persistence: PersistenceType = PersistenceType.RELATIONAL
    csv_dir: Path = field(default_factory=lambda: DEFAULT_DATA_DIR / "csv")
    database_url: Optional[str] = None
    echo_sql: bool = False
    fallback_to_file: bool = True
    log_level: str = "INFO"
    json_logs: bool = False
    log_file: Optional[Path] = None

    def __post_init__(self):
        """Coerce strings to Path objects and the persistence enum."""
        if isinstance(self.persistence, str):
            self.persistence = PersistenceType(self.persistence.lower())
        if isinstance(self.csv_dir, str):
            self.csv_dir = Path(self.csv_dir)
        if isinstance(self.log_file, str):
            self.log_file = Path(self.log_file)
        if self.database_url is None:
            db_path = self.csv_dir.parent / "hoophub.db"
            self.database_url = f"sqlite:///{db_path}"
