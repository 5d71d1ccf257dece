"""Services for the content sync engine."""

from .connection_service import ConnectionResult, ConnectionService
from .sync_service import ConfigPersister, PullSummary, SyncService

__all__ = [
    "ConfigPersister",
    "ConnectionResult",
    "ConnectionService",
    "PullSummary",
    "SyncService",
]
