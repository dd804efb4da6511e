"""Join/leave lifecycle of a chat connection.

State machine per connection::

    CONNECTED --join--> JOINED --disconnect--> TERMINATED
        |                                          ^
        +----------------disconnect----------------+

A connection in CONNECTED state has no identity; anything it sends besides
``join`` is silently dropped by the identity checks in the engine. There is
no way back from TERMINATED and connection ids are never reused.
"""
import logging
from typing import Any

from .broadcast import BroadcastEngine
from .connection import Connection, ConnectionState
from .schemas import ServerEvent, SystemEvent, envelope

logger = logging.getLogger(__name__)


class SessionLifecycle:
    """Drives connections through their states and announces membership."""

    def __init__(self, engine: BroadcastEngine) -> None:
        self.engine = engine

    def connect(self, connection: Connection) -> None:
        """Record a freshly accepted connection as anonymous."""
        connection.state = ConnectionState.CONNECTED
        logger.info(
            f"[Room] New connection {connection.connection_id} from {connection.remote_address}"
        )

    async def join(self, connection: Connection, username: Any) -> bool:
        """Bind an identity to a connection and announce it.

        The joining client receives, in this order: the history replay, its
        own join announcement (as part of the broadcast) and the user list.

        Args:
            connection: The connection sending the join request.
            username: Requested display name. Non-string values are
                converted with ``str()``.

        Returns:
            True if the connection joined, False if it was not in
            CONNECTED state.
        """
        if connection.state != ConnectionState.CONNECTED:
            logger.warning(
                f"[Room] Ignoring join from {connection.connection_id} "
                f"in state {connection.state.value}"
            )
            return False

        if not isinstance(username, str):
            username = str(username)

        engine = self.engine
        async with engine.lock:
            identity = engine.registry.register(
                connection.connection_id, username, connection.remote_address
            )
            connection.state = ConnectionState.JOINED

            history = [event.model_dump() for event in engine.history.snapshot()]
            connection.deliver(envelope(ServerEvent.MESSAGE_HISTORY, history))

            engine.broadcaster.add(connection)
            user_count = engine.registry.count()
            engine.publish_locked(
                ServerEvent.USER_JOINED,
                SystemEvent(
                    text=f"{identity} join chat",
                    userCount=user_count,
                    timestamp=engine.next_timestamp(),
                ),
            )

            connection.deliver(
                envelope(ServerEvent.USER_LIST, engine.registry.snapshot_identities())
            )

        logger.info(f"[Room] {identity} joined. Total users: {user_count}")
        return True

    async def disconnect(self, connection: Connection) -> None:
        """Terminate a connection and announce the departure if it had joined.

        Safe to call more than once; only the first call has an effect.
        """
        if connection.state == ConnectionState.TERMINATED:
            return
        connection.state = ConnectionState.TERMINATED

        engine = self.engine
        async with engine.lock:
            engine.broadcaster.remove(connection.connection_id)
            identity = engine.registry.unregister(connection.connection_id)
            if identity is None:
                logger.info(
                    f"[Room] Connection {connection.connection_id} closed before joining"
                )
                return

            user_count = engine.registry.count()
            engine.publish_locked(
                ServerEvent.USER_LEFT,
                SystemEvent(
                    text=f"{identity} leave chat",
                    userCount=user_count,
                    timestamp=engine.next_timestamp(),
                ),
            )

        logger.info(f"[Room] {identity} left. Total users: {user_count}")
