"""Adapters - I/O implementations of ports."""

from .json_store import JsonEnergyStore, JsonEventStore, JsonTaskStore
from .ics_feed import FeedError, IcsFeedAdapter
from .backup import BackupError, RestoreResult, export_backup, import_backup

__all__ = [
    "JsonTaskStore",
    "JsonEventStore",
    "JsonEnergyStore",
    "IcsFeedAdapter",
    "FeedError",
    "BackupError",
    "RestoreResult",
    "export_backup",
    "import_backup",
]
