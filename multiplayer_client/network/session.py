"""Game session: local player state, the three client loops, orderly exit.

Usage:
    session = GameSession(SessionConfig(host='127.0.0.1', port=8080), key_source)
    session.dispatcher.on_chat(show_chat)
    await session.run()

Lifecycle:
    CONNECTING -> ACTIVE -> CLOSING -> CLOSED

While ACTIVE three tasks run concurrently with a session timer:
    input     polls the key source and moves the local player
    position  sends the local position 10 times per second
    receive   frames incoming bytes and dispatches them
The first of them to finish (timer elapsed, server closed the stream, a
transport error, quit, stop()) starts CLOSING: the other tasks are cancelled,
one exit envelope with the final player state is sent, then the transport is
released.
"""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Deque, Dict, List, Optional

from ..constants import (
    CONNECT_TIMEOUT, DEFAULT_HOST, DEFAULT_PORT, EXIT_SEND_TIMEOUT,
    INPUT_POLL_INTERVAL, MAX_CHAT_LOG, POSITION_SEND_INTERVAL, READ_CHUNK_SIZE,
    SESSION_DURATION, START_POSITION, STEP_SIZE,
)
from ..key_input import KeySource
from ..player_state import LocalPlayer, PlayerId, Vector3
from .connection import MultiplayerConnection
from .dispatcher import Dispatcher
from .errors import TransportError
from .framing import read_frames
from .protocol import ChatMessage, WorldSnapshot, msg_chat, msg_exit, msg_position

logger = logging.getLogger(__name__)


class SessionState(Enum):
    """Client session states."""
    CONNECTING = auto()  # Waiting for the transport
    ACTIVE = auto()      # Loops running
    CLOSING = auto()     # Loops stopping, exit handshake in progress
    CLOSED = auto()      # Transport released


@dataclass
class SessionConfig:
    """Connection target, identity and timing for one session."""
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    player_id: PlayerId = 0
    start_position: Vector3 = field(default_factory=lambda: Vector3(*START_POSITION))
    step_size: float = STEP_SIZE
    session_duration: float = SESSION_DURATION
    input_poll_interval: float = INPUT_POLL_INTERVAL
    position_send_interval: float = POSITION_SEND_INTERVAL
    connect_timeout: float = CONNECT_TIMEOUT
    exit_send_timeout: float = EXIT_SEND_TIMEOUT


class GameSession:
    """Owns the local player and drives one connection from start to exit."""

    def __init__(
        self,
        config: SessionConfig,
        key_source: Optional[KeySource] = None,
        dispatcher: Optional[Dispatcher] = None,
    ):
        self.config = config
        self.key_source = key_source
        self.dispatcher = dispatcher or Dispatcher()
        self.player = LocalPlayer(config.player_id, config.start_position)

        self.state = SessionState.CONNECTING
        self.connection: Optional[MultiplayerConnection] = None
        self.close_reason = ""

        # Remote view, replaced by every world snapshot
        self.world: Optional[WorldSnapshot] = None
        self.remote_players: Dict[PlayerId, Vector3] = {}
        self.chat_log: Deque[ChatMessage] = deque(maxlen=MAX_CHAT_LOG)

        self.positions_sent = 0
        self._exit_sent = False
        self._stop_requested = asyncio.Event()

        # Runs after handlers already on the dispatcher, before ones added later
        self.dispatcher.on_world_state(self._apply_world_state)
        self.dispatcher.on_chat(self._record_chat)

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    async def run(self, connection: Optional[MultiplayerConnection] = None):
        """Connect, run the loops until the session ends, then exit cleanly.

        Raises ConnectFailed if the transport cannot be opened; nothing else
        is attempted in that case.
        """
        if connection is None:
            try:
                connection = await MultiplayerConnection.open(
                    self.config.host, self.config.port, self.config.connect_timeout,
                )
            except Exception:
                self.state = SessionState.CLOSED
                raise
        self.connection = connection
        self.state = SessionState.ACTIVE
        logger.info(
            f"Session started as player {self.player.id} at "
            f"{self.player.snapshot().position.as_tuple()}, "
            f"ending in {self.config.session_duration:.0f}s"
        )

        labels = {
            asyncio.create_task(self._input_loop()): 'input',
            asyncio.create_task(self._position_loop()): 'position',
            asyncio.create_task(self._receive_loop()): 'receive',
            asyncio.create_task(asyncio.sleep(self.config.session_duration)): 'timer',
            asyncio.create_task(self._stop_requested.wait()): 'stop',
        }
        tasks = list(labels)

        try:
            done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
            self.close_reason = self._describe_finish(done, labels)
        finally:
            if not self.close_reason:
                self.close_reason = 'cancelled'
            await self._shutdown(tasks, labels)

    def stop(self):
        """Ask the session to close.

        Takes effect at once while running. Called before run(), the session
        connects and then closes straight away with the usual exit notice.
        """
        self._stop_requested.set()

    async def send_chat(self, text: str) -> bool:
        """Send a chat line. Returns False if the session is not active."""
        if self.state != SessionState.ACTIVE or self.connection is None:
            logger.warning("Cannot send chat: session is not active")
            return False
        await self.connection.send(msg_chat(self.player.id, text))
        return True

    # =========================================================================
    # LOOPS
    # =========================================================================

    async def _input_loop(self):
        """Apply pending directional commands to the local player."""
        while self.state == SessionState.ACTIVE:
            if self.key_source is not None:
                direction = self.key_source.poll()
                if direction is not None:
                    position = self.player.apply(direction, self.config.step_size)
                    logger.debug(f"Moved {direction.name} to {position.as_tuple()}")
                if self.key_source.quit_requested:
                    return
            await asyncio.sleep(self.config.input_poll_interval)

    async def _position_loop(self):
        """Send the local position at a fixed rate."""
        while self.state == SessionState.ACTIVE:
            player = self.player.snapshot()
            await self.connection.send(msg_position(player.position))
            self.positions_sent += 1
            await asyncio.sleep(self.config.position_send_interval)

    async def _receive_loop(self):
        """Frame and dispatch incoming data until the server closes the stream."""
        async for frame in read_frames(self.connection, READ_CHUNK_SIZE):
            self.dispatcher.dispatch_frame(frame)

    # =========================================================================
    # HANDLERS
    # =========================================================================

    def _apply_world_state(self, snapshot: WorldSnapshot):
        self.world = snapshot
        self.remote_players = {
            p.id: p.position for p in snapshot.players if p.id != self.player.id
        }

    def _record_chat(self, message: ChatMessage):
        self.chat_log.append(message)

    # =========================================================================
    # SHUTDOWN
    # =========================================================================

    @staticmethod
    def _describe_finish(done, labels: Dict[asyncio.Task, str]) -> str:
        reasons = []
        for task in done:
            label = labels[task]
            if task.cancelled():
                reasons.append(f"{label} cancelled")
            elif task.exception() is not None:
                reasons.append(f"{label} failed: {task.exception()}")
            elif label == 'timer':
                reasons.append("session time elapsed")
            elif label == 'receive':
                reasons.append("server closed the connection")
            elif label == 'input':
                reasons.append("quit requested")
            else:
                reasons.append("stopped")
        return ", ".join(sorted(reasons))

    async def _shutdown(self, tasks: List[asyncio.Task], labels: Dict[asyncio.Task, str]):
        """Stop all loops, send the exit notice, release the transport."""
        self.state = SessionState.CLOSING
        logger.info(f"Closing session: {self.close_reason}")

        for task in tasks:
            if not task.done():
                task.cancel()
        results = await asyncio.gather(*tasks, return_exceptions=True)
        for task, result in zip(tasks, results):
            if isinstance(result, Exception):
                logger.error(f"{labels[task]} loop ended with error: {result}")

        await self._send_exit()
        await self.connection.close()
        self.state = SessionState.CLOSED

    async def _send_exit(self):
        """Best-effort exit handshake. Sent at most once."""
        if self._exit_sent:
            return
        self._exit_sent = True

        player = self.player.snapshot()
        try:
            await asyncio.wait_for(
                self.connection.send(msg_exit(player)),
                timeout=self.config.exit_send_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Exit handshake timed out after {self.config.exit_send_timeout:.1f}s")
        except TransportError as e:
            logger.warning(f"Exit handshake failed: {e}")
        else:
            logger.info(f"Exit sent with final position {player.position.as_tuple()}")
