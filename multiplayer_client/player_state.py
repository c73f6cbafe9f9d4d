"""Player state for the multiplayer client.

The local player is owned by the session and shared between the input loop
(writer) and the position-send loop (reader). LocalPlayer guards it with a
lock so a reader never sees half of an applied move.
"""
import threading
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Tuple, Union

PlayerId = Union[int, str]


class Direction(Enum):
    """Movement commands and their (dx, dy) unit deltas."""
    UP = (0, 1)       # W
    LEFT = (-1, 0)    # A
    DOWN = (0, -1)    # S
    RIGHT = (1, 0)    # D

    @property
    def dx(self) -> int:
        return self.value[0]

    @property
    def dy(self) -> int:
        return self.value[1]


@dataclass(frozen=True)
class Vector3:
    """Position in world space."""
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return {'x': self.x, 'y': self.y, 'z': self.z}

    def as_tuple(self) -> Tuple[float, float, float]:
        return (self.x, self.y, self.z)

    def moved(self, dx: float = 0.0, dy: float = 0.0, dz: float = 0.0) -> 'Vector3':
        return Vector3(self.x + dx, self.y + dy, self.z + dz)


@dataclass(frozen=True)
class Player:
    """A player's identity and position.

    Instances are immutable; remote players from a world snapshot and
    snapshots of the local player are both plain Player values.
    """
    id: PlayerId
    position: Vector3 = field(default_factory=Vector3)

    def to_dict(self) -> Dict[str, Any]:
        """Flat player state, as sent in the exit notice."""
        return {'id': self.id, **self.position.to_dict()}


class LocalPlayer:
    """Mutable holder for the local player.

    All reads return an immutable Player copy taken under the lock, and all
    writes replace the position under the same lock.
    """

    def __init__(self, player_id: PlayerId, position: Vector3 = Vector3()):
        self._lock = threading.Lock()
        self._player = Player(id=player_id, position=position)

    @property
    def id(self) -> PlayerId:
        return self._player.id

    def snapshot(self) -> Player:
        """Atomic copy of the current player state."""
        with self._lock:
            return self._player

    def move(self, dx: float = 0.0, dy: float = 0.0, dz: float = 0.0) -> Vector3:
        """Apply a positional delta and return the new position."""
        with self._lock:
            position = self._player.position.moved(dx, dy, dz)
            self._player = replace(self._player, position=position)
            return position

    def apply(self, direction: Direction, step: float) -> Vector3:
        """Apply one directional command. Moves are unbounded and never normalized."""
        return self.move(dx=direction.dx * step, dy=direction.dy * step)

    def __repr__(self) -> str:
        return f"LocalPlayer({self.snapshot()!r})"
