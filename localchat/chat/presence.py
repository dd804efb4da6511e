"""Typing indicators.

Typing state is relayed to everyone except the typist and is never stored,
so late joiners never see stale indicators.
"""
import logging
from typing import Any

from .broadcast import BroadcastEngine
from .schemas import ServerEvent, TypingNotice, envelope

logger = logging.getLogger(__name__)


class PresenceSignaler:
    """Relays ``typing`` notifications from joined connections."""

    def __init__(self, engine: BroadcastEngine) -> None:
        self.engine = engine

    async def set_typing(self, connection_id: str, is_typing: Any) -> bool:
        """Tell every other joined connection that this user is (not) typing.

        Returns:
            True if the notice was sent, False if the sender never joined.
        """
        async with self.engine.lock:
            username = self.engine.registry.lookup(connection_id)
            if username is None:
                return False
            notice = TypingNotice(username=username, isTyping=is_typing)
            self.engine.broadcaster.send_to_others(
                envelope(ServerEvent.USER_TYPING, notice),
                exclude=connection_id,
            )
            return True
