"""Delimiter framing over a byte stream.

Wire format:
    [envelope bytes][0x00][envelope bytes][0x00]...

Chunks read from the transport are not aligned with frame boundaries. The
FrameReader keeps one carry-over buffer with the bytes received since the
last delimiter and emits every frame a chunk completes.

Policy:
  - consecutive delimiters are a no-op (no empty frames)
  - bytes left in the buffer at end of stream are dropped, never flushed
    as a final frame; session exit is signaled by an exit envelope
"""

import logging
from typing import AsyncIterator, Iterable, Iterator, List

from ..constants import DELIMITER, MAX_FRAME_SIZE, READ_CHUNK_SIZE
from .errors import FramingError
from .protocol import Envelope

logger = logging.getLogger(__name__)


# =============================================================================
# FRAME READER/WRITER - handles delimiter framing over TCP
# =============================================================================

class FrameReader:
    """Reassembles delimiter-terminated frames from arbitrary chunks.

    Usage:
        reader = FrameReader()
        for frame in reader.feed(data_from_socket):
            envelope = decode(frame)
        ...
        reader.close()  # end of stream
    """

    def __init__(self, max_frame_size: int = MAX_FRAME_SIZE):
        self.max_frame_size = max_frame_size
        self._buffer = bytearray()
        self.frames_emitted = 0

    @property
    def pending(self) -> int:
        """Number of buffered bytes not yet terminated by a delimiter."""
        return len(self._buffer)

    def feed(self, data: bytes) -> List[bytes]:
        """Add received data and return every frame it completes, in order."""
        frames = []
        start = 0
        while True:
            end = data.find(DELIMITER, start)
            if end == -1:
                break
            self._buffer.extend(data[start:end])
            if self._buffer:
                frames.append(bytes(self._buffer))
                self._buffer.clear()
            start = end + 1

        self._buffer.extend(data[start:])
        if len(self._buffer) > self.max_frame_size:
            size = len(self._buffer)
            self._buffer.clear()
            raise FramingError(f"Frame too large: {size} bytes without a delimiter")

        self.frames_emitted += len(frames)
        return frames

    def close(self) -> int:
        """End of stream. Drops any undelimited tail and returns its size."""
        dropped = len(self._buffer)
        if dropped:
            logger.warning(f"Discarding {dropped} undelimited bytes at end of stream")
        self._buffer.clear()
        return dropped


class FrameWriter:
    """Writes delimiter-terminated frames.

    Usage:
        data = FrameWriter.pack(envelope)
        writer.write(data)
    """

    @staticmethod
    def pack_frame(payload: bytes) -> bytes:
        """Terminate a raw payload with the delimiter."""
        if DELIMITER in payload:
            raise FramingError("Payload contains the frame delimiter")
        return payload + DELIMITER

    @staticmethod
    def pack(envelope: Envelope) -> bytes:
        """Pack an envelope into a delimited frame."""
        return FrameWriter.pack_frame(envelope.to_bytes())


# =============================================================================
# FRAME SEQUENCES
# =============================================================================

def iter_frames(chunks: Iterable[bytes]) -> Iterator[bytes]:
    """Lazily split a sequence of chunks into frames.

    A zero-length chunk marks end of stream. Each call starts from an empty
    buffer.
    """
    reader = FrameReader()
    for chunk in chunks:
        if not chunk:
            break
        yield from reader.feed(chunk)
    reader.close()


async def read_frames(source, chunk_size: int = READ_CHUNK_SIZE) -> AsyncIterator[bytes]:
    """Read frames from a stream until a zero-length read.

    `source` is anything with an awaitable read(n): an asyncio.StreamReader
    or a MultiplayerConnection.

    A whole chunk is framed before any of its frames is yielded, so work done
    by the consumer between frames cannot observe a half-updated buffer.
    """
    reader = FrameReader()
    try:
        while True:
            data = await source.read(chunk_size)
            if not data:
                break
            for frame in reader.feed(data):
                yield frame
    finally:
        reader.close()
