"""Pytest fixtures for multiplayer client testing."""
import asyncio
import json
import socket
import struct
from typing import Any, Dict, List, Optional

import pytest

from multiplayer_client.constants import DELIMITER
from multiplayer_client.network.dispatcher import Dispatcher
from multiplayer_client.network.session import SessionConfig
from multiplayer_client.player_state import Vector3


def encode_frame(obj: Any) -> bytes:
    """Raw JSON object plus delimiter, bypassing the codec."""
    return json.dumps(obj).encode('utf-8') + DELIMITER


class LoopbackServer:
    """Minimal game server on 127.0.0.1 for session tests.

    Sends the scripted chunks on connect, optionally half-closes or resets,
    then records everything the client writes until the client closes its side.
    """

    def __init__(
        self,
        outgoing: Optional[List[bytes]] = None,
        close_after_send: bool = False,
        reset_after_send: bool = False,
    ):
        self.outgoing = list(outgoing or [])
        self.close_after_send = close_after_send
        self.reset_after_send = reset_after_send
        self.received = bytearray()
        self.port = 0
        self.connections = 0
        self._server: Optional[asyncio.AbstractServer] = None
        self.client_closed: Optional[asyncio.Event] = None

    async def start(self) -> 'LoopbackServer':
        self.client_closed = asyncio.Event()
        self._server = await asyncio.start_server(self._handle, '127.0.0.1', 0)
        self.port = self._server.sockets[0].getsockname()[1]
        return self

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        self.connections += 1
        for chunk in self.outgoing:
            writer.write(chunk)
            await writer.drain()
        if self.reset_after_send:
            # zero linger turns the close into a RST
            sock = writer.get_extra_info('socket')
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_LINGER, struct.pack('ii', 1, 0))
            writer.transport.abort()
            self.client_closed.set()
            return
        if self.close_after_send:
            writer.write_eof()

        while True:
            data = await reader.read(4096)
            if not data:
                break
            self.received.extend(data)

        self.client_closed.set()
        writer.close()

    async def wait_client_closed(self, timeout: float = 5.0):
        await asyncio.wait_for(self.client_closed.wait(), timeout)

    async def stop(self):
        self._server.close()
        await self._server.wait_closed()

    def envelopes(self) -> List[Dict[str, Any]]:
        """Decoded JSON envelopes received so far, in order."""
        return [json.loads(part) for part in bytes(self.received).split(DELIMITER) if part]

    def of_type(self, tag: str) -> List[Dict[str, Any]]:
        return [env for env in self.envelopes() if env['type'] == tag]


@pytest.fixture
def raw_frame():
    """Encode a plain dict as a delimited frame without going through the codec."""
    return encode_frame


@pytest.fixture
def dispatcher() -> Dispatcher:
    return Dispatcher()


@pytest.fixture
def recorder():
    """Factory fixture for handlers that record what they receive.

    Usage:
        seen, handler = recorder()
        dispatcher.on_chat(handler)
    """
    def _make():
        seen: List[Any] = []
        return seen, seen.append
    return _make


@pytest.fixture
def loopback_server():
    """Factory for LoopbackServer. Start it inside the test's event loop.

    Usage:
        server = await loopback_server(outgoing=[frame]).start()
    """
    return LoopbackServer


@pytest.fixture
def session_config():
    """Factory for fast session configs pointed at a local port.

    Usage:
        config = session_config(server.port, session_duration=0.3)
    """
    def _make(port: int, **overrides) -> SessionConfig:
        values = dict(
            host='127.0.0.1',
            port=port,
            player_id=7,
            start_position=Vector3(10.0, 20.0, 30.0),
            session_duration=0.5,
            input_poll_interval=0.01,
            position_send_interval=0.05,
            connect_timeout=2.0,
            exit_send_timeout=1.0,
        )
        values.update(overrides)
        return SessionConfig(**values)
    return _make


@pytest.fixture
def unused_port() -> int:
    """A local port with nothing listening on it."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]
