"""Network module: framing, codec, dispatch and session loops."""

from .protocol import (
    MessageType, Envelope, PositionUpdate, ChatMessage, PlayerEvent, Weather,
    WorldSnapshot, ExitNotice, encode, decode, decode_payload, decode_message,
)
from .framing import FrameReader, FrameWriter, iter_frames, read_frames
from .dispatcher import Dispatcher
from .connection import MultiplayerConnection
from .session import GameSession, SessionConfig, SessionState
from .errors import (
    ClientError, ConnectFailed, MalformedEnvelope, UnknownTag,
    PayloadTypeMismatch, TransportError, FramingError,
)
