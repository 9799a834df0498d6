"""Network module for Config-Sync."""

from .sync_client import send_snapshot
from .sync_server import ServerState, SyncServer

__all__ = ["ServerState", "SyncServer", "send_snapshot"]
