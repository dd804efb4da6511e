"""Tests for Connection outbound queues and address handling."""
import asyncio
import socket
from collections import namedtuple

import pytest

from localchat import network
from localchat.chat import connection as connection_module
from localchat.chat.connection import STALLED_CLOSE_CODE, Connection, ConnectionState
from localchat.network import get_local_ip, normalize_address


class RecordingWebSocket:
    """WebSocket double that records sent messages."""

    def __init__(self):
        self.sent = []
        self.closed_with = None

    async def send_json(self, message):
        self.sent.append(message)

    async def close(self, code=1000):
        self.closed_with = code


class StuckWebSocket(RecordingWebSocket):
    """WebSocket double whose sends never complete."""

    async def send_json(self, message):
        await asyncio.Event().wait()


class BrokenWebSocket(RecordingWebSocket):
    async def send_json(self, message):
        raise RuntimeError("connection reset")


class HangingCloseWebSocket(RecordingWebSocket):
    """WebSocket double whose close handshake never completes."""

    async def close(self, code=1000):
        self.closed_with = code
        await asyncio.Event().wait()


async def wait_for(predicate, attempts=50):
    for _ in range(attempts):
        if predicate():
            return True
        await asyncio.sleep(0)
    return predicate()


class TestConnection:
    """Tests for the per-connection writer."""

    @pytest.mark.asyncio
    async def test_messages_are_written_in_order(self):
        websocket = RecordingWebSocket()
        connection = Connection(websocket, "10.0.0.5")
        connection.start()

        for n in range(5):
            assert connection.deliver({"n": n})

        assert await wait_for(lambda: len(websocket.sent) == 5)
        assert websocket.sent == [{"n": n} for n in range(5)]
        await connection.close()

    @pytest.mark.asyncio
    async def test_new_connection_state(self):
        connection = Connection(RecordingWebSocket(), "10.0.0.5")
        assert connection.state == ConnectionState.CONNECTED
        assert connection.connection_id
        assert connection.connection_id != Connection(RecordingWebSocket(), "10.0.0.5").connection_id

    @pytest.mark.asyncio
    async def test_stalled_connection_is_dropped(self):
        """A full queue aborts the connection instead of blocking the sender."""
        websocket = StuckWebSocket()
        connection = Connection(websocket, "10.0.0.5", queue_size=2)
        connection.start()

        results = [connection.deliver({"n": n}) for n in range(5)]

        assert results[:2] == [True, True]
        assert False in results
        assert connection.closed
        assert not connection.deliver({"n": "late"})
        assert connection.dropped.is_set()
        assert await wait_for(lambda: websocket.closed_with == STALLED_CLOSE_CODE)
        await connection.close()

    @pytest.mark.asyncio
    async def test_send_failure_marks_connection_closed(self):
        connection = Connection(BrokenWebSocket(), "10.0.0.5")
        connection.start()

        connection.deliver({"n": 1})

        assert await wait_for(lambda: connection.closed)
        assert not connection.deliver({"n": 2})
        assert connection.dropped.is_set()
        await connection.close()

    @pytest.mark.asyncio
    async def test_abort_does_not_wait_forever_on_close(self, monkeypatch):
        monkeypatch.setattr(connection_module, "CLOSE_TIMEOUT_SECONDS", 0.01)
        websocket = HangingCloseWebSocket()
        connection = Connection(websocket, "10.0.0.5")
        connection.start()

        connection.abort()
        await asyncio.sleep(0.1)

        assert websocket.closed_with == STALLED_CLOSE_CODE
        assert connection._background == set()
        await connection.close()

    @pytest.mark.asyncio
    async def test_close_does_not_mark_dropped(self):
        connection = Connection(RecordingWebSocket(), "10.0.0.5")
        connection.start()
        await connection.close()
        assert not connection.dropped.is_set()

    @pytest.mark.asyncio
    async def test_close_discards_pending(self):
        websocket = StuckWebSocket()
        connection = Connection(websocket, "10.0.0.5")
        connection.start()
        connection.deliver({"n": 1})

        await connection.close()

        assert connection.closed
        assert not connection.deliver({"n": 2})


class TestNetwork:
    """Tests for address helpers."""

    @pytest.mark.parametrize("raw,expected", [
        ("::ffff:10.0.0.5", "10.0.0.5"),
        ("::FFFF:192.168.1.4", "192.168.1.4"),
        ("10.0.0.5", "10.0.0.5"),
        ("::1", "::1"),
        ("fe80::1", "fe80::1"),
        (None, "unknown"),
        ("", "unknown"),
    ])
    def test_normalize_address(self, raw, expected):
        assert normalize_address(raw) == expected

    def test_get_local_ip_skips_loopback(self, monkeypatch):
        Addr = namedtuple("Addr", "family address")
        interfaces = {
            "lo": [Addr(socket.AF_INET, "127.0.0.1")],
            "eth0": [Addr(socket.AF_INET6, "fe80::1"), Addr(socket.AF_INET, "192.168.1.20")],
        }
        monkeypatch.setattr(network.psutil, "net_if_addrs", lambda: interfaces)
        assert get_local_ip() == "192.168.1.20"

    def test_get_local_ip_fallback(self, monkeypatch):
        Addr = namedtuple("Addr", "family address")
        monkeypatch.setattr(
            network.psutil, "net_if_addrs",
            lambda: {"lo": [Addr(socket.AF_INET, "127.0.0.1")]},
        )
        assert get_local_ip() == "localhost"
