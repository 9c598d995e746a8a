"""Utility modules for HoopHub sync.

This package provides:
- logging: Configured logging with JSON/text output and replication fields
"""

from hoophub_sync.utils.logging import (
    JsonFormatter,
    configure_logging,
    configure_root_logger,
    get_logger,
    replication_fields,
)

__all__ = [
    "JsonFormatter",
    "configure_logging",
    "configure_root_logger",
    "get_logger",
    "replication_fields",
]
