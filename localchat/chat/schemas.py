"""Pydantic models for chat events and the WebSocket wire format.

Every event that enters the history cache is one of the models below. They
are frozen: once the server has stamped and broadcast an event, nobody can
change it. Field names match what browser clients read off the wire
(``userCount``, ``imageData``, ``originalName``...).

Wire format:
    Both directions use a small envelope::

        {"type": "chat message", "data": {...}}

    ``type`` is the event name and ``data`` its payload.
"""
import time
from enum import Enum
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class ClientEvent(str, Enum):
    """Event names a client may send."""
    JOIN = "join"
    CHAT_MESSAGE = "chat message"
    IMAGE_MESSAGE = "image message"
    FILE_MESSAGE = "file message"
    VOICE_MESSAGE = "voice message"
    TYPING = "typing"


class ServerEvent(str, Enum):
    """Event names the server pushes to clients."""
    MESSAGE_HISTORY = "message history"
    USER_JOINED = "user joined"
    USER_LIST = "user list"
    CHAT_MESSAGE = "chat message"
    USER_TYPING = "user typing"
    USER_LEFT = "user left"


def now_ms() -> int:
    """Current wall-clock time in milliseconds."""
    return int(time.time() * 1000)


class _Event(BaseModel):
    model_config = ConfigDict(frozen=True)

    timestamp: int = Field(default_factory=now_ms, description="Server time in ms")


class SystemEvent(_Event):
    """Join/leave announcement carrying the current member count."""
    type: Literal["system"] = "system"
    text: str
    userCount: int


class ChatEvent(_Event):
    """Plain text message."""
    type: Literal["message"] = "message"
    username: str
    message: Any = None


class ImageEvent(_Event):
    """Inline image, usually a data URL."""
    type: Literal["image"] = "image"
    username: str
    imageData: Any = None


class FileEvent(_Event):
    """Reference to a blob previously stored through ``POST /upload``."""
    type: Literal["file"] = "file"
    username: str
    filename: Any = None
    originalName: Any = None
    size: Any = None
    url: Any = None


class VoiceEvent(_Event):
    """Recorded audio clip; ``duration`` is in milliseconds."""
    type: Literal["voice"] = "voice"
    username: str
    audioData: Any = None
    duration: Any = None


Event = Annotated[
    Union[SystemEvent, ChatEvent, ImageEvent, FileEvent, VoiceEvent],
    Field(discriminator="type"),
]


class Participant(BaseModel):
    """A joined connection as stored in the registry.

    Attributes:
        connectionId: Server-generated connection identifier.
        username: Name the client asked for in its join request.
        remoteAddress: Normalized peer address.
        identity: ``"<username> (<remoteAddress>)"``, fixed at join time.
        joinedAt: Join time in milliseconds.
    """
    model_config = ConfigDict(frozen=True)

    connectionId: str
    username: str
    remoteAddress: str
    identity: str
    joinedAt: int = Field(default_factory=now_ms)


class TypingNotice(BaseModel):
    """Transient typing indicator. Never cached."""
    username: str
    isTyping: Any = None


class UserListResponse(BaseModel):
    """Response body for ``GET /chat/users``."""
    userCount: int
    users: List[str]


def envelope(event_name: Union[ServerEvent, str], data: Any) -> dict:
    """Wrap a payload into the wire envelope."""
    name = event_name.value if isinstance(event_name, ServerEvent) else event_name
    if isinstance(data, BaseModel):
        data = data.model_dump()
    return {"type": name, "data": data}


def payload_field(data: Any, key: str) -> Optional[Any]:
    """Read ``key`` from a client payload, tolerating non-object payloads."""
    if isinstance(data, dict):
        return data.get(key)
    return None
