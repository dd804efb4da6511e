"""Per-connection handle with a bounded outbound queue.

Every message sent to a client, unicast or broadcast, goes through that
client's queue and is written to the socket by a dedicated writer task. This
keeps fan-out non-blocking: putting a message on a queue never waits for the
network, so a slow client cannot hold up delivery to everybody else.

A client whose queue fills up is treated as stalled. It stops accepting
messages, its socket is closed with a policy-violation code and its
``dropped`` event is set. The endpoint waits on that event alongside the
next inbound frame, so the leave announcement does not depend on the peer
ever reading the close frame.
"""
import asyncio
import logging
import uuid
from enum import Enum
from typing import Any, Optional, Set

from fastapi import WebSocket

logger = logging.getLogger(__name__)

# Default number of pending outbound messages per connection
DEFAULT_QUEUE_SIZE = 256

# Close code used when dropping a stalled client (1008 = Policy Violation)
STALLED_CLOSE_CODE = 1008

# Seconds to wait for a close handshake the peer may never complete
CLOSE_TIMEOUT_SECONDS = 5.0


class ConnectionDropped(Exception):
    """The server gave up on a connection (stalled or failed writes)."""


class ConnectionState(str, Enum):
    """Lifecycle state of a connection.

    Attributes:
        CONNECTED: Transport accepted, no identity yet.
        JOINED: Identity bound, receiving broadcasts.
        TERMINATED: Disconnected. Final.
    """
    CONNECTED = "connected"
    JOINED = "joined"
    TERMINATED = "terminated"


class Connection:
    """A live client connection.

    Attributes:
        connection_id: Unique id, never reused.
        remote_address: Normalized peer address.
        state: Current lifecycle state.
        dropped: Set once the server gives up on this connection.
    """

    def __init__(
        self,
        websocket: WebSocket,
        remote_address: str,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        connection_id: Optional[str] = None,
    ) -> None:
        self.websocket = websocket
        self.remote_address = remote_address
        self.connection_id = connection_id or uuid.uuid4().hex
        self.state = ConnectionState.CONNECTED

        self._queue: "asyncio.Queue[Any]" = asyncio.Queue(maxsize=queue_size)
        self._writer: Optional[asyncio.Task] = None
        self._background: Set[asyncio.Task] = set()
        self._closed = False
        self.dropped = asyncio.Event()

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> None:
        """Start the writer task. Must be called from the event loop."""
        if self._writer is None:
            self._writer = asyncio.create_task(self._drain())

    def deliver(self, message: dict) -> bool:
        """Queue a message for this client without waiting.

        Returns:
            True if queued, False if the connection is closed or stalled.
            A stalled connection is aborted as a side effect.
        """
        if self._closed:
            return False
        try:
            self._queue.put_nowait(message)
            return True
        except asyncio.QueueFull:
            logger.warning(
                f"[WS] Outbound queue full for {self.connection_id} "
                f"({self.remote_address}); dropping connection"
            )
            self.abort()
            return False

    def abort(self, code: int = STALLED_CLOSE_CODE) -> None:
        """Stop writing and close the socket in the background."""
        if self._closed:
            return
        self._closed = True
        self.dropped.set()
        if self._writer is not None:
            self._writer.cancel()
        task = asyncio.create_task(self._close_socket(code))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def close(self) -> None:
        """Stop the writer task. Pending messages are discarded."""
        self._closed = True
        if self._writer is not None:
            self._writer.cancel()
            try:
                await self._writer
            except asyncio.CancelledError:
                pass
            self._writer = None

    async def _drain(self) -> None:
        while True:
            message = await self._queue.get()
            if not await self._safe_send(message):
                self._closed = True
                self.dropped.set()
                return

    async def _safe_send(self, message: dict) -> bool:
        """Send a message to the socket with error handling.

        Returns:
            True if successful, False if the connection failed.
        """
        try:
            await self.websocket.send_json(message)
            return True
        except Exception as e:
            logger.debug(f"[WS] Failed to send to {self.connection_id}: {e}")
            return False

    async def _close_socket(self, code: int) -> None:
        try:
            await asyncio.wait_for(
                self.websocket.close(code=code), timeout=CLOSE_TIMEOUT_SECONDS
            )
        except Exception as e:
            logger.debug(f"[WS] Close of {self.connection_id} failed: {e}")

    def __repr__(self) -> str:
        return (
            f"Connection(id={self.connection_id!r}, address={self.remote_address!r}, "
            f"state={self.state.value})"
        )
