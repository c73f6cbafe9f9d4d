"""Keyboard input sources for the session's input loop.

The input loop calls poll() once per tick and applies at most one
directional command. Sources set quit_requested to end the session.
"""
from collections import deque
from typing import Iterable, List, Optional

import pygame

from .player_state import Direction


KEY_DIRECTIONS = {
    pygame.K_w: Direction.UP,
    pygame.K_a: Direction.LEFT,
    pygame.K_s: Direction.DOWN,
    pygame.K_d: Direction.RIGHT,
    pygame.K_UP: Direction.UP,
    pygame.K_LEFT: Direction.LEFT,
    pygame.K_DOWN: Direction.DOWN,
    pygame.K_RIGHT: Direction.RIGHT,
}

LETTER_DIRECTIONS = {
    'W': Direction.UP,
    'A': Direction.LEFT,
    'S': Direction.DOWN,
    'D': Direction.RIGHT,
}

IDLE = '.'  # script character for a tick with no key pressed


def direction_for_key(key: int) -> Optional[Direction]:
    """Map a pygame key code to a movement direction."""
    return KEY_DIRECTIONS.get(key)


def parse_script(script: str) -> List[Optional[Direction]]:
    """Parse a key script like "DDW.A" into per-tick commands.

    Letters are case-insensitive, '.' is an idle tick, whitespace is ignored.
    """
    commands: List[Optional[Direction]] = []
    for ch in script:
        if ch.isspace():
            continue
        if ch == IDLE:
            commands.append(None)
            continue
        direction = LETTER_DIRECTIONS.get(ch.upper())
        if direction is None:
            raise ValueError(f"Unknown key in script: {ch!r}")
        commands.append(direction)
    return commands


class KeySource:
    """Source with no input. Subclasses override poll()."""

    def __init__(self):
        self.quit_requested = False

    def poll(self) -> Optional[Direction]:
        """Return the next pending direction, or None."""
        return None


class ScriptedKeySource(KeySource):
    """Replays a fixed command sequence, one command per poll."""

    def __init__(self, commands: Iterable[Optional[Direction]], quit_when_done: bool = False):
        super().__init__()
        self._commands = deque(commands)
        self.quit_when_done = quit_when_done

    @classmethod
    def from_script(cls, script: str, quit_when_done: bool = False) -> 'ScriptedKeySource':
        return cls(parse_script(script), quit_when_done=quit_when_done)

    @property
    def remaining(self) -> int:
        return len(self._commands)

    def poll(self) -> Optional[Direction]:
        if self._commands:
            return self._commands.popleft()
        if self.quit_when_done:
            self.quit_requested = True
        return None


class PygameKeySource(KeySource):
    """Reads key presses from the pygame event queue.

    Requires an initialized pygame display with focus. Key presses that
    arrive together are queued and handed out one per poll. Closing the
    window or pressing Escape requests quit.
    """

    def __init__(self):
        super().__init__()
        self._pending: deque = deque()

    def poll(self) -> Optional[Direction]:
        for event in pygame.event.get():
            if event.type == pygame.QUIT:
                self.quit_requested = True
            elif event.type == pygame.KEYDOWN:
                if event.key == pygame.K_ESCAPE:
                    self.quit_requested = True
                    continue
                direction = direction_for_key(event.key)
                if direction is not None:
                    self._pending.append(direction)

        if self._pending:
            return self._pending.popleft()
        return None
