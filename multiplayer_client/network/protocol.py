"""Network protocol: message types, envelope codec, payload types.

Wire format:
    [UTF-8 JSON envelope][0x00]

Message envelope:
    {
        "type": "position" | "chat" | "exit" | "world_state" | "player_event",
        "payload": { ... }     (type-specific data)
    }

The delimiter is appended by the framer (see framing.py). JSON escapes every
control character, so an encoded envelope never contains a 0x00 byte.
"""

import json
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Type, TypeVar, Union

from ..player_state import Player, PlayerId, Vector3
from .errors import MalformedEnvelope, PayloadTypeMismatch, UnknownTag

T = TypeVar('T')


class MessageType(Enum):
    """Network message types. The value is the wire tag."""
    # Client → Server
    POSITION = 'position'         # periodic local position
    EXIT = 'exit'                 # final player state on session close

    # Both directions
    CHAT = 'chat'                 # chat line

    # Server → Client
    WORLD_STATE = 'world_state'   # authoritative snapshot of all players
    PLAYER_EVENT = 'player_event' # join/leave/etc notification


@dataclass(frozen=True)
class Envelope:
    """Network message envelope. The type tag is the sole dispatch key."""
    type: MessageType
    payload: Dict[str, Any] = field(default_factory=dict)

    def to_bytes(self) -> bytes:
        """Serialize envelope to JSON bytes (without delimiter)."""
        data = {
            'type': self.type.value,
            'payload': self.payload,
        }
        return json.dumps(data, ensure_ascii=False, allow_nan=False).encode('utf-8')

    @classmethod
    def from_bytes(cls, data: bytes) -> 'Envelope':
        """Deserialize envelope from JSON bytes (without delimiter)."""
        try:
            obj = json.loads(data.decode('utf-8'))
        except UnicodeDecodeError as e:
            raise MalformedEnvelope(f"Envelope is not UTF-8: {e}") from e
        except ValueError as e:
            raise MalformedEnvelope(f"Envelope is not valid JSON: {e}") from e
        except RecursionError as e:
            raise MalformedEnvelope("Envelope is nested too deeply") from e

        if not isinstance(obj, dict):
            raise MalformedEnvelope(f"Envelope must be an object, got {type(obj).__name__}")

        tag = obj.get('type')
        if not isinstance(tag, str):
            raise MalformedEnvelope("Envelope has no string 'type'")

        payload = obj.get('payload')
        if payload is None:
            payload = {}
        if not isinstance(payload, dict):
            raise MalformedEnvelope(f"Payload of {tag!r} must be an object")

        try:
            msg_type = MessageType(tag)
        except ValueError:
            raise UnknownTag(tag) from None

        return cls(type=msg_type, payload=payload)


# =============================================================================
# FIELD COERCION - payload dicts to typed values
# =============================================================================

def _mapping(value: Any, what: str) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise PayloadTypeMismatch(f"{what} must be an object, got {type(value).__name__}")
    return value


def _require(data: Dict[str, Any], key: str, what: str) -> Any:
    if key not in data:
        raise PayloadTypeMismatch(f"{what} is missing '{key}'")
    return data[key]


def _number(value: Any, what: str) -> float:
    # bool is an int subclass but never a coordinate
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise PayloadTypeMismatch(f"{what} must be a number, got {value!r}")
    try:
        result = float(value)
    except OverflowError:
        raise PayloadTypeMismatch(f"{what} is out of range") from None
    if not math.isfinite(result):
        raise PayloadTypeMismatch(f"{what} must be finite, got {value!r}")
    return result


def _player_id(value: Any, what: str) -> PlayerId:
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise PayloadTypeMismatch(f"{what} must be an integer or string id, got {value!r}")
    return value


def _text(value: Any, what: str) -> str:
    if not isinstance(value, str):
        raise PayloadTypeMismatch(f"{what} must be a string, got {value!r}")
    return value


def vector_from_dict(data: Any, what: str = 'position') -> Vector3:
    data = _mapping(data, what)
    return Vector3(
        x=_number(_require(data, 'x', what), f"{what}.x"),
        y=_number(_require(data, 'y', what), f"{what}.y"),
        z=_number(_require(data, 'z', what), f"{what}.z"),
    )


# =============================================================================
# PAYLOAD TYPES
# =============================================================================

@dataclass(frozen=True)
class PositionUpdate:
    """Local player position, sent 10 times per second."""
    position: Vector3

    def to_dict(self) -> Dict[str, Any]:
        return self.position.to_dict()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PositionUpdate':
        return cls(position=vector_from_dict(data, 'position payload'))


@dataclass(frozen=True)
class ChatMessage:
    """A chat line. Fire-and-forget, no acknowledgment."""
    sender_id: PlayerId
    text: str

    def to_dict(self) -> Dict[str, Any]:
        return {'id': self.sender_id, 'message': self.text}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ChatMessage':
        data = _mapping(data, 'chat payload')
        return cls(
            sender_id=_player_id(_require(data, 'id', 'chat payload'), 'chat.id'),
            text=_text(_require(data, 'message', 'chat payload'), 'chat.message'),
        )


@dataclass(frozen=True)
class PlayerEvent:
    """Notification about another player (joined, left, ...)."""
    player_id: PlayerId
    event: str

    def to_dict(self) -> Dict[str, Any]:
        return {'id': self.player_id, 'event': self.event}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PlayerEvent':
        data = _mapping(data, 'player_event payload')
        return cls(
            player_id=_player_id(_require(data, 'id', 'player_event payload'), 'player_event.id'),
            event=_text(_require(data, 'event', 'player_event payload'), 'player_event.event'),
        )


@dataclass(frozen=True)
class Weather:
    """Environment data carried by world snapshots. Both fields optional."""
    condition: Optional[str] = None
    temperature: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {'condition': self.condition, 'temperature': self.temperature}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Weather':
        data = _mapping(data, 'weather')
        condition = data.get('condition')
        temperature = data.get('temperature')
        return cls(
            condition=None if condition is None else _text(condition, 'weather.condition'),
            temperature=None if temperature is None else _number(temperature, 'weather.temperature'),
        )


@dataclass(frozen=True)
class WorldSnapshot:
    """Authoritative view of all players. Replaces the previous one on receipt."""
    players: Tuple[Player, ...] = ()
    weather: Optional[Weather] = None
    timestamp: Union[str, float, None] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            'players': [
                {'id': p.id, 'position': p.position.to_dict()}
                for p in self.players
            ],
        }
        if self.weather is not None:
            data['weather'] = self.weather.to_dict()
        if self.timestamp is not None:
            data['timestamp'] = self.timestamp
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'WorldSnapshot':
        data = _mapping(data, 'world_state payload')

        raw_players = data.get('players', [])
        if not isinstance(raw_players, list):
            raise PayloadTypeMismatch("world_state.players must be a list")
        players = []
        for i, entry in enumerate(raw_players):
            what = f"world_state.players[{i}]"
            entry = _mapping(entry, what)
            players.append(Player(
                id=_player_id(_require(entry, 'id', what), f"{what}.id"),
                position=vector_from_dict(_require(entry, 'position', what), f"{what}.position"),
            ))

        weather = data.get('weather')
        timestamp = data.get('timestamp')
        if timestamp is not None and (isinstance(timestamp, bool)
                                      or not isinstance(timestamp, (str, int, float))):
            raise PayloadTypeMismatch(f"world_state.timestamp must be a string or number, got {timestamp!r}")

        return cls(
            players=tuple(players),
            weather=None if weather is None else Weather.from_dict(weather),
            timestamp=timestamp,
        )


@dataclass(frozen=True)
class ExitNotice:
    """Final local player state, sent once when the session closes."""
    player: Player

    def to_dict(self) -> Dict[str, Any]:
        return self.player.to_dict()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ExitNotice':
        data = _mapping(data, 'exit payload')
        return cls(player=Player(
            id=_player_id(_require(data, 'id', 'exit payload'), 'exit.id'),
            position=vector_from_dict(data, 'exit payload'),
        ))


# Tag -> concrete payload class. One decode step picks the shape up front.
PAYLOAD_TYPES: Dict[MessageType, Type[Any]] = {
    MessageType.POSITION: PositionUpdate,
    MessageType.CHAT: ChatMessage,
    MessageType.EXIT: ExitNotice,
    MessageType.WORLD_STATE: WorldSnapshot,
    MessageType.PLAYER_EVENT: PlayerEvent,
}

Payload = Union[PositionUpdate, ChatMessage, ExitNotice, WorldSnapshot, PlayerEvent]


# =============================================================================
# CODEC
# =============================================================================

def encode(envelope: Envelope) -> bytes:
    """Encode an envelope to its textual wire form (delimiter not included)."""
    return envelope.to_bytes()


def decode(data: bytes) -> Envelope:
    """Decode one frame. Raises MalformedEnvelope or UnknownTag."""
    return Envelope.from_bytes(data)


def decode_payload(envelope: Envelope, expected_type: Type[T]) -> T:
    """Coerce an envelope's payload to the type registered for its tag."""
    registered = PAYLOAD_TYPES[envelope.type]
    if expected_type is not registered:
        raise PayloadTypeMismatch(
            f"'{envelope.type.value}' carries {registered.__name__}, not {expected_type.__name__}"
        )
    return expected_type.from_dict(envelope.payload)


def decode_message(data: bytes) -> Tuple[Envelope, Payload]:
    """Decode a frame and its payload in one pass, using the tag to pick the shape."""
    envelope = decode(data)
    return envelope, decode_payload(envelope, PAYLOAD_TYPES[envelope.type])


# =============================================================================
# MESSAGE BUILDERS - convenience functions for creating messages
# =============================================================================

def msg_position(position: Vector3) -> Envelope:
    """Periodic position update."""
    return Envelope(
        type=MessageType.POSITION,
        payload=PositionUpdate(position).to_dict(),
    )


def msg_chat(sender_id: PlayerId, text: str) -> Envelope:
    """Chat line."""
    return Envelope(
        type=MessageType.CHAT,
        payload=ChatMessage(sender_id, text).to_dict(),
    )


def msg_exit(player: Player) -> Envelope:
    """Exit notice with the final player state."""
    return Envelope(
        type=MessageType.EXIT,
        payload=ExitNotice(player).to_dict(),
    )


def msg_world_state(snapshot: WorldSnapshot) -> Envelope:
    """World snapshot (server side)."""
    return Envelope(
        type=MessageType.WORLD_STATE,
        payload=snapshot.to_dict(),
    )


def msg_player_event(player_id: PlayerId, event: str) -> Envelope:
    """Player event notification (server side)."""
    return Envelope(
        type=MessageType.PLAYER_EVENT,
        payload=PlayerEvent(player_id, event).to_dict(),
    )
