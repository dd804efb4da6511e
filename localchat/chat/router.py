"""Chat router providing the WebSocket endpoint and read-only HTTP views.

This module provides:
    - WebSocket /ws: Real-time chat
    - GET /chat/history: Current history cache contents
    - GET /chat/users: Joined users in join order

Protocol:
    Every frame is a JSON object ``{"type": <event>, "data": <payload>}``.

    Client -> server:
        - join: ``data`` is the username
        - chat message: ``data`` is the text
        - image message: ``{imageData}``
        - file message: ``{filename, originalName, size, url}``
        - voice message: ``{audioData, duration}``
        - typing: ``data`` is a boolean

    Server -> client:
        - message history: cached events (to the joining client only)
        - user joined: system event (everyone)
        - user list: identities in join order (to the joining client only)
        - chat message: content event (everyone, sender included)
        - user typing: ``{username, isTyping}`` (everyone but the typist)
        - user left: system event (everyone)

Anything sent before ``join`` other than ``join`` itself is ignored.
"""
import asyncio
import json
import logging
from typing import Any, List, Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from localchat.config import get_config
from localchat.network import normalize_address

from .connection import Connection, ConnectionDropped
from .manager import room
from .schemas import ClientEvent, UserListResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/chat/history")
async def get_message_history() -> List[dict]:
    """Return the events a newly joined client would be replayed."""
    return [event.model_dump() for event in room.get_history()]


@router.get("/chat/users", response_model=UserListResponse)
async def get_users() -> UserListResponse:
    """Return joined identities in join order."""
    return UserListResponse(
        userCount=room.get_user_count(),
        users=room.get_identities(),
    )


async def _receive_frame(websocket: WebSocket) -> Optional[str]:
    """Wait for the next text frame. Binary frames come back as None.

    Raises:
        WebSocketDisconnect: When the client goes away.
    """
    message = await websocket.receive()
    if message["type"] == "websocket.disconnect":
        raise WebSocketDisconnect(message.get("code", 1000))
    text = message.get("text")
    if text is None:
        logger.debug("[WS] Dropping binary frame")
    return text


async def _next_frame(connection: Connection) -> Optional[str]:
    """Wait for the next inbound frame or for the server to drop the connection.

    A stalled peer may never complete the close handshake, so its receive
    would otherwise hang until the transport times out.

    Raises:
        WebSocketDisconnect: When the client goes away.
        ConnectionDropped: When the connection was aborted server-side.
    """
    receive = asyncio.ensure_future(_receive_frame(connection.websocket))
    dropped = asyncio.ensure_future(connection.dropped.wait())
    try:
        await asyncio.wait({receive, dropped}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in (receive, dropped):
            if not task.done():
                task.cancel()

    if receive.done() and not receive.cancelled():
        return receive.result()
    raise ConnectionDropped(connection.connection_id)


def _parse_frame(text: str, max_bytes: int) -> Any:
    """Decode an inbound frame, returning None for anything unusable."""
    if len(text.encode("utf-8")) > max_bytes:
        logger.warning(f"[WS] Dropping oversized frame ({len(text)} chars)")
        return None
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        logger.debug("[WS] Dropping frame that is not valid JSON")
        return None
    if not isinstance(data, dict):
        logger.debug("[WS] Dropping frame that is not a JSON object")
        return None
    return data


async def handle_client_event(connection: Connection, event_type: Any, payload: Any) -> None:
    """Route one client event to the room."""
    cid = connection.connection_id

    if event_type == ClientEvent.JOIN:
        await room.lifecycle.join(connection, payload)
        return

    if event_type == ClientEvent.CHAT_MESSAGE:
        await room.engine.submit_chat(cid, payload)
        return

    if event_type == ClientEvent.IMAGE_MESSAGE:
        await room.engine.submit_image(cid, payload)
        return

    if event_type == ClientEvent.FILE_MESSAGE:
        await room.engine.submit_file(cid, payload)
        return

    if event_type == ClientEvent.VOICE_MESSAGE:
        await room.engine.submit_voice(cid, payload)
        return

    if event_type == ClientEvent.TYPING:
        await room.presence.set_typing(cid, payload)
        return

    logger.debug(f"[WS] Ignoring unknown event {event_type!r} from {cid}")


@router.websocket("/ws")
async def websocket_chat_endpoint(websocket: WebSocket) -> None:
    """WebSocket endpoint for the chat room.

    Protocol Flow:
        1. Client connects -> anonymous connection, nothing is sent
        2. Client sends {type: "join", data: "alice"}
           -> client gets "message history"
           -> everyone gets "user joined"
           -> client gets "user list"
        3. Client sends content events -> everyone gets "chat message"
        4. On disconnect, or when the server drops a stalled client,
           everyone else gets "user left"
    """
    config = get_config().chat
    await websocket.accept()

    client_host = websocket.client.host if websocket.client else None
    connection = Connection(
        websocket,
        remote_address=normalize_address(client_host),
        queue_size=config.outbound_queue_size,
    )
    connection.start()
    room.lifecycle.connect(connection)

    try:
        while True:
            text = await _next_frame(connection)
            if text is None:
                continue
            data = _parse_frame(text, config.max_payload_bytes)
            if data is None:
                continue
            await handle_client_event(connection, data.get("type"), data.get("data"))
    except WebSocketDisconnect:
        logger.debug(f"[WS] {connection.connection_id} disconnected")
    except ConnectionDropped:
        logger.info(f"[WS] {connection.connection_id} dropped by server")
    finally:
        await room.lifecycle.disconnect(connection)
        await connection.close()
