"""Logging setup for HoopHub sync.

Every module logs through ``logging.getLogger(__name__)``. This module only
decides where those records go and how they look:

- human-readable text lines on stderr, or JSON lines for log shippers
- an optional log file next to the console handler
- replication records carry ``operation``, ``entity_type``, ``entity_id``,
  ``source`` and ``target`` as structured fields, built by
  ``replication_fields`` and rendered as top-level keys by ``JsonFormatter``
"""

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Union

if TYPE_CHECKING:
    from ..config import SyncConfig


TEXT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Attributes every LogRecord carries; anything else came in through ``extra=``.
_RECORD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__
) | {"message", "asctime"}


def replication_fields(operation, entity_type, entity_id, source, target) -> Dict[str, str]:
    """Structured ``extra=`` fields for a replication log record.

    Enum members are logged by name (operations) or value (entity tags and
    backends), so records stay greppable across formats.
    """
    return {
        "operation": getattr(operation, "name", str(operation)),
        "entity_type": getattr(entity_type, "value", str(entity_type)),
        "entity_id": str(entity_id),
        "source": getattr(source, "value", str(source)),
        "target": getattr(target, "value", str(target)),
    }


def _jsonable(value: Any) -> Any:
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return str(value)
    return value


class JsonFormatter(logging.Formatter):
    """One JSON object per record, extras promoted to top-level keys."""

    def format(self, record: logging.LogRecord) -> str:
        data = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)

        data.update(
            (key, _jsonable(value))
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRS
        )
        return json.dumps(data)


def _level(level: Union[int, str]) -> int:
    if isinstance(level, str):
        return getattr(logging, level.upper(), logging.INFO)
    return level


def _handlers(
    level: int,
    json_output: bool,
    log_file: Optional[Path],
    console: bool,
) -> List[logging.Handler]:
    formatter = JsonFormatter() if json_output else logging.Formatter(TEXT_FORMAT, DATE_FORMAT)
    handlers: List[logging.Handler] = []

    if console:
        handlers.append(logging.StreamHandler(sys.stderr))
    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
    return handlers


def get_logger(
    name: str,
    level: Union[int, str] = logging.INFO,
    json_output: bool = False,
    log_file: Optional[Path] = None,
    console: bool = True
) -> logging.Logger:
    """Return ``name``'s logger with its own handlers attached.

    A logger that already has handlers is returned untouched, so repeated
    calls never duplicate output.

    Args:
        name: Dotted logger name
        level: Level name or number
        json_output: Emit JSON lines instead of text
        log_file: Also write to this file (parent directories are created)
        console: Also write to stderr

    Example:
        >>> logger = get_logger("hoophub_sync.sync", json_output=True)
        >>> logger.info("Replicated", extra=replication_fields("INSERT", "Venue", 7, "relational", "file"))
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    level = _level(level)
    logger.setLevel(level)
    for handler in _handlers(level, json_output, log_file, console):
        logger.addHandler(handler)
    return logger


def configure_root_logger(
    level: Union[int, str] = logging.INFO,
    json_output: bool = False,
    log_file: Optional[Path] = None
) -> None:
    """Route every ``hoophub_sync`` logger through the root logger.

    Replaces whatever handlers the root logger had. Meant for entry points,
    not for library code.
    """
    root = logging.getLogger()
    level = _level(level)
    root.setLevel(level)
    root.handlers.clear()
    for handler in _handlers(level, json_output, log_file, console=True):
        root.addHandler(handler)


def configure_logging(config: "SyncConfig") -> None:
    """Apply the logging settings of a ``SyncConfig`` to the root logger."""
    configure_root_logger(
        level=config.log_level,
        json_output=config.json_logs,
        log_file=config.log_file,
    )
