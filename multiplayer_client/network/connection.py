"""Transport owner: one TCP stream to the game server.

Usage:
    connection = await MultiplayerConnection.open('127.0.0.1', 8080)
    await connection.send(msg_position(Vector3(1, 2, 3)))
    data = await connection.read(4096)
    await connection.close()

All writes go through send(), which holds a lock for the write and drain,
so the periodic sender and the exit handshake never interleave bytes.
Reads and writes use independent directions and are not serialized.
"""

import asyncio
import logging

from ..constants import CONNECT_TIMEOUT, READ_CHUNK_SIZE
from .errors import ConnectFailed, TransportError
from .framing import FrameWriter
from .protocol import Envelope

logger = logging.getLogger(__name__)


class MultiplayerConnection:
    """Bidirectional byte stream with a single writer owner."""

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        self._reader = reader
        self._writer = writer
        self._write_lock = asyncio.Lock()
        self._closed = False
        self.messages_sent = 0

        peername = writer.get_extra_info('peername')
        self.address = f"{peername[0]}:{peername[1]}" if peername else ""

    @classmethod
    async def open(
        cls,
        host: str,
        port: int,
        timeout: float = CONNECT_TIMEOUT,
    ) -> 'MultiplayerConnection':
        """Establish the connection once. No retry on failure."""
        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(host, port),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            raise ConnectFailed(host, port, f"timed out after {timeout:.1f}s") from None
        except OSError as e:
            raise ConnectFailed(host, port, str(e)) from e

        logger.info(f"Connected to {host}:{port}")
        return cls(reader, writer)

    @property
    def is_closed(self) -> bool:
        return self._closed

    async def send(self, envelope: Envelope):
        """Send one delimited envelope."""
        data = FrameWriter.pack(envelope)
        async with self._write_lock:
            if self._closed:
                raise TransportError("Connection is closed")
            try:
                self._writer.write(data)
                await self._writer.drain()
            except (ConnectionError, OSError) as e:
                raise TransportError(f"Send failed: {e}") from e
        self.messages_sent += 1
        logger.debug(f"Sent {envelope.type.value} ({len(data)} bytes)")

    async def read(self, n: int = READ_CHUNK_SIZE) -> bytes:
        """Read up to n bytes. Returns b'' at end of stream."""
        if self._closed:
            return b''
        try:
            return await self._reader.read(n)
        except (ConnectionError, OSError) as e:
            raise TransportError(f"Receive failed: {e}") from e

    async def close(self):
        """Release the transport. Safe to call more than once."""
        async with self._write_lock:
            if self._closed:
                return
            self._closed = True
        try:
            self._writer.close()
            await self._writer.wait_closed()
        except (ConnectionError, OSError) as e:
            logger.debug(f"Error while closing connection: {e}")
        logger.info(f"Connection to {self.address or 'server'} closed")
