"""Process-wide chat room state.

There is exactly one room per server process. ``ChatRoom`` wires the
registry, history cache, broadcaster, engine, presence relay and lifecycle
together; the module-level ``room`` instance is shared by every WebSocket
handler.

Thread Safety:
    This implementation is designed for async/await usage with a single event loop.
    It is NOT thread-safe for concurrent access from multiple threads.
"""
import logging
from typing import List

from .broadcast import BroadcastEngine, Broadcaster
from .history import MAX_MESSAGES, HistoryCache
from .lifecycle import SessionLifecycle
from .presence import PresenceSignaler
from .registry import ConnectionRegistry
from .schemas import Event

logger = logging.getLogger(__name__)


class ChatRoom:
    """Owns all shared chat state.

    Attributes:
        registry: Joined connections and identities.
        history: Bounded replay cache.
        broadcaster: Sinks of joined connections.
        engine: Content submission and the shared ordering lock.
        presence: Typing relay.
        lifecycle: Join/leave transitions.
    """

    def __init__(self, history_size: int = MAX_MESSAGES) -> None:
        self.reset(history_size)

    def reset(self, history_size: int = MAX_MESSAGES) -> None:
        """Drop all state and start with an empty room.

        Used at application startup and between tests. Live connections are
        not notified.
        """
        self.registry = ConnectionRegistry()
        self.history = HistoryCache(history_size)
        self.broadcaster = Broadcaster()
        self.engine = BroadcastEngine(self.registry, self.history, self.broadcaster)
        self.presence = PresenceSignaler(self.engine)
        self.lifecycle = SessionLifecycle(self.engine)
        logger.debug(f"[Room] Reset with history size {history_size}")

    def get_user_count(self) -> int:
        return self.registry.count()

    def get_identities(self) -> List[str]:
        return self.registry.snapshot_identities()

    def get_history(self) -> List[Event]:
        return self.history.snapshot()


# Global singleton instance used by all WebSocket handlers
room = ChatRoom()
