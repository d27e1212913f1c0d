"""
Session state machine (durable) and live status broadcast (best effort).
"""

from pipeline.status.broadcaster import LiveStatusBroadcaster
from pipeline.status.store import SyncStatusStore, resolve_session_status

__all__ = ["LiveStatusBroadcaster", "SyncStatusStore", "resolve_session_status"]
