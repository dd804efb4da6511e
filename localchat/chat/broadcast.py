"""Fan-out broadcasting and the content-event engine.

Broadcaster:
    Holds the sinks of every joined connection and delivers one message to
    all of them (or all but one). Delivery is a non-blocking enqueue per
    sink; a sink that refuses the message is dropped from the set so it
    cannot affect anyone else.

BroadcastEngine:
    Turns client submissions into events. For each submission it checks the
    sender's identity, stamps the event, appends it to the history cache and
    fans it out. Append and fan-out happen under one ``asyncio.Lock``, so
    every connection sees events in the same order and the cache order is
    exactly the order clients observed live.

Thread Safety:
    Designed for a single event loop. Not safe to call from other threads.
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional, Protocol

from .history import HistoryCache
from .registry import ConnectionRegistry
from .schemas import (
    ChatEvent,
    Event,
    FileEvent,
    ImageEvent,
    ServerEvent,
    VoiceEvent,
    envelope,
    now_ms,
    payload_field,
)

logger = logging.getLogger(__name__)


class Sink(Protocol):
    """Anything that can receive broadcast messages."""
    connection_id: str

    def deliver(self, message: dict) -> bool:
        ...


class Broadcaster:
    """Live set of joined connection sinks, kept in join order."""

    def __init__(self) -> None:
        # connection_id -> sink
        self._sinks: Dict[str, Sink] = {}

    def add(self, sink: Sink) -> None:
        self._sinks[sink.connection_id] = sink

    def remove(self, connection_id: str) -> Optional[Sink]:
        return self._sinks.pop(connection_id, None)

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._sinks

    def __len__(self) -> int:
        return len(self._sinks)

    def send_to_all(self, message: dict) -> int:
        """Deliver a message to every sink.

        Returns:
            Number of sinks that accepted the message.
        """
        return self._fan_out(message, exclude=None)

    def send_to_others(self, message: dict, exclude: str) -> int:
        """Deliver a message to every sink except ``exclude``."""
        return self._fan_out(message, exclude=exclude)

    def _fan_out(self, message: dict, exclude: Optional[str]) -> int:
        sinks = [
            sink for cid, sink in self._sinks.items()
            if cid != exclude
        ]
        if not sinks:
            return 0

        failed: List[str] = []
        delivered = 0
        for sink in sinks:
            if sink.deliver(message):
                delivered += 1
            else:
                failed.append(sink.connection_id)

        self._cleanup_sinks(failed)
        return delivered

    def _cleanup_sinks(self, failed: List[str]) -> None:
        for connection_id in failed:
            if self._sinks.pop(connection_id, None) is not None:
                logger.debug(f"[Room] Removed dead sink {connection_id}")


class BroadcastEngine:
    """Serializes every history append together with its broadcast.

    Each ``submit_*`` method follows the same steps: look up the sender's
    identity (absent means the sender never joined, so the call is a no-op),
    build the event, append it to the history cache and fan it out to every
    joined connection including the sender.

    The session lifecycle shares ``lock`` so that join and leave
    announcements take part in the same ordering.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        history: HistoryCache,
        broadcaster: Broadcaster,
    ) -> None:
        self.registry = registry
        self.history = history
        self.broadcaster = broadcaster
        self.lock = asyncio.Lock()
        self._last_timestamp = 0

    def next_timestamp(self) -> int:
        """Wall-clock milliseconds, never earlier than the previous stamp."""
        self._last_timestamp = max(now_ms(), self._last_timestamp)
        return self._last_timestamp

    def publish_locked(self, event_name: ServerEvent, event: Event) -> None:
        """Append an event and fan it out. Caller must hold ``lock``."""
        self.history.append(event)
        self.broadcaster.send_to_all(envelope(event_name, event))

    async def submit_chat(self, connection_id: str, text: Any) -> Optional[ChatEvent]:
        """Broadcast a text message from a joined connection."""
        async with self.lock:
            username = self.registry.lookup(connection_id)
            if username is None:
                logger.debug(f"[Room] Dropping chat message from unjoined {connection_id}")
                return None
            event = ChatEvent(
                username=username,
                message=text,
                timestamp=self.next_timestamp(),
            )
            self.publish_locked(ServerEvent.CHAT_MESSAGE, event)
            return event

    async def submit_image(self, connection_id: str, image: Any) -> Optional[ImageEvent]:
        """Broadcast an image. ``image`` is the client payload ``{imageData}``."""
        async with self.lock:
            username = self.registry.lookup(connection_id)
            if username is None:
                logger.debug(f"[Room] Dropping image message from unjoined {connection_id}")
                return None
            event = ImageEvent(
                username=username,
                imageData=payload_field(image, "imageData"),
                timestamp=self.next_timestamp(),
            )
            self.publish_locked(ServerEvent.CHAT_MESSAGE, event)
            return event

    async def submit_file(self, connection_id: str, file_ref: Any) -> Optional[FileEvent]:
        """Broadcast a reference to an uploaded blob.

        ``file_ref`` is the client payload ``{filename, originalName, size,
        url}``, typically copied from the ``POST /upload`` response.
        """
        async with self.lock:
            username = self.registry.lookup(connection_id)
            if username is None:
                logger.debug(f"[Room] Dropping file message from unjoined {connection_id}")
                return None
            event = FileEvent(
                username=username,
                filename=payload_field(file_ref, "filename"),
                originalName=payload_field(file_ref, "originalName"),
                size=payload_field(file_ref, "size"),
                url=payload_field(file_ref, "url"),
                timestamp=self.next_timestamp(),
            )
            self.publish_locked(ServerEvent.CHAT_MESSAGE, event)
            return event

    async def submit_voice(
        self, connection_id: str, audio: Any, duration_ms: Any = None
    ) -> Optional[VoiceEvent]:
        """Broadcast a voice clip.

        Args:
            connection_id: Sender connection.
            audio: Client payload ``{audioData, duration}``.
            duration_ms: Overrides ``audio["duration"]`` when given.
        """
        async with self.lock:
            username = self.registry.lookup(connection_id)
            if username is None:
                logger.debug(f"[Room] Dropping voice message from unjoined {connection_id}")
                return None
            if duration_ms is None:
                duration_ms = payload_field(audio, "duration")
            event = VoiceEvent(
                username=username,
                audioData=payload_field(audio, "audioData"),
                duration=duration_ms,
                timestamp=self.next_timestamp(),
            )
            self.publish_locked(ServerEvent.CHAT_MESSAGE, event)
            return event
