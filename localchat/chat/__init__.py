"""Chat session and broadcast engine."""

from .broadcast import BroadcastEngine, Broadcaster
from .connection import Connection, ConnectionDropped, ConnectionState
from .history import MAX_MESSAGES, HistoryCache
from .lifecycle import SessionLifecycle
from .manager import ChatRoom, room
from .presence import PresenceSignaler
from .registry import ConnectionRegistry, DuplicateRegistration

__all__ = [
    "BroadcastEngine",
    "Broadcaster",
    "ChatRoom",
    "Connection",
    "ConnectionDropped",
    "ConnectionRegistry",
    "ConnectionState",
    "DuplicateRegistration",
    "HistoryCache",
    "MAX_MESSAGES",
    "PresenceSignaler",
    "SessionLifecycle",
    "room",
]
