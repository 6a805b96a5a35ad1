"""Online presence from heartbeats."""

from .tracker import ClientInfo, PresenceTracker, client_info_from_headers, generate_session_id

__all__ = [
    "ClientInfo",
    "PresenceTracker",
    "client_info_from_headers",
    "generate_session_id",
]
