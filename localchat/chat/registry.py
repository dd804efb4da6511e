"""Registry of joined connections and their identities.

A connection only appears here after its join request has been processed.
Everything a client does after that (chatting, typing) is authorized by
looking its connection id up in this registry; a miss means the client never
joined and the action is dropped.
"""
import logging
from typing import Dict, List, Optional

from .schemas import Participant

logger = logging.getLogger(__name__)


class DuplicateRegistration(RuntimeError):
    """Raised when a connection id is registered twice.

    The session lifecycle never does this, so hitting it means a logic error
    upstream rather than bad client input.
    """


def build_identity(username: str, remote_address: str) -> str:
    """Compose the display identity shown to every participant."""
    return f"{username} ({remote_address})"


class ConnectionRegistry:
    """Maps connection ids to the participant bound at join time.

    Iteration order is join order (dicts keep insertion order), which is what
    the ``user list`` sent to a new member relies on.
    """

    def __init__(self) -> None:
        # connection_id -> Participant
        self._participants: Dict[str, Participant] = {}

    def register(self, connection_id: str, username: str, remote_address: str) -> str:
        """Bind an identity to a connection.

        Args:
            connection_id: Id of the joining connection.
            username: Name from the join request.
            remote_address: Normalized peer address.

        Returns:
            The identity string, ``"<username> (<remote_address>)"``.

        Raises:
            DuplicateRegistration: If the connection is already registered.
        """
        if connection_id in self._participants:
            raise DuplicateRegistration(
                f"Connection {connection_id} is already registered as "
                f"{self._participants[connection_id].identity}"
            )

        identity = build_identity(username, remote_address)
        self._participants[connection_id] = Participant(
            connectionId=connection_id,
            username=username,
            remoteAddress=remote_address,
            identity=identity,
        )
        return identity

    def lookup(self, connection_id: str) -> Optional[str]:
        """Return the identity bound to a connection, or None if it never joined."""
        participant = self._participants.get(connection_id)
        return participant.identity if participant else None

    def get(self, connection_id: str) -> Optional[Participant]:
        return self._participants.get(connection_id)

    def unregister(self, connection_id: str) -> Optional[str]:
        """Remove a connection and return the identity it had, if any."""
        participant = self._participants.pop(connection_id, None)
        return participant.identity if participant else None

    def count(self) -> int:
        return len(self._participants)

    def snapshot_identities(self) -> List[str]:
        """Identities of all joined connections, in join order."""
        return [p.identity for p in self._participants.values()]

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._participants
