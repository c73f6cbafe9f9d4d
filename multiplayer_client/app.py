"""Command-line entry point for the multiplayer console client.

Usage:
    python main.py --host 127.0.0.1 --port 8080
    python main.py --headless --script "DDDW" --duration 5

Exit code 0 on a clean session, 1 if the server could not be reached,
2 for an invalid --script.
"""
import argparse
import asyncio
import logging
import sys
from typing import List, Optional, Tuple

import pygame

from .constants import WINDOW_HEIGHT, WINDOW_WIDTH
from .key_input import KeySource, PygameKeySource, ScriptedKeySource
from .network.connection import MultiplayerConnection
from .network.dispatcher import Dispatcher
from .network.errors import ConnectFailed
from .network.protocol import ChatMessage, PlayerEvent, WorldSnapshot
from .network.session import GameSession, SessionConfig
from .player_state import Vector3
from .settings import (
    get_player_id, get_server_address, get_session_duration, get_start_position,
    get_step_size, load_settings, save_settings,
)
from .version import __version__

logger = logging.getLogger(__name__)


def configure_logging(verbose: bool = False):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s [%(levelname)s] %(message)s',
    )


# =============================================================================
# DEFAULT HANDLERS - report incoming messages
# =============================================================================

def log_world_state(snapshot: WorldSnapshot):
    logger.info(f"World update at {snapshot.timestamp}:")
    for player in snapshot.players:
        x, y, z = player.position.as_tuple()
        logger.info(f"Player {player.id}: position ({x}, {y}, {z})")
    if snapshot.weather is not None:
        logger.info(f"Weather: {snapshot.weather.condition}, {snapshot.weather.temperature}")


def log_chat(message: ChatMessage):
    logger.info(f"Chat message from {message.sender_id}: {message.text}")


def log_player_event(event: PlayerEvent):
    logger.info(f"Player {event.player_id} has {event.event}")


def install_default_handlers(dispatcher: Dispatcher):
    dispatcher.on_world_state(log_world_state)
    dispatcher.on_chat(log_chat)
    dispatcher.on_player_event(log_player_event)


# =============================================================================
# SETUP
# =============================================================================

def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description='Multiplayer console client')
    parser.add_argument('--host', help='Server host (default from settings)')
    parser.add_argument('--port', type=int, help='Server port (default from settings)')
    parser.add_argument('--duration', type=float, help='Session length in seconds')
    parser.add_argument('--player-id', help='Player id sent to the server')
    parser.add_argument('--script', help='Replay keys instead of reading the keyboard, e.g. "DDW.A"')
    parser.add_argument('--headless', action='store_true', help='Do not open the input window')
    parser.add_argument('--save-settings', action='store_true',
                        help='Write host, port and player id to the settings file')
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace, settings: dict) -> SessionConfig:
    """Combine settings file values with command-line overrides."""
    host, port = get_server_address(settings)
    player_id = args.player_id if args.player_id else get_player_id(settings)
    if isinstance(player_id, str) and player_id.isdigit():
        player_id = int(player_id)

    return SessionConfig(
        host=args.host or host,
        port=args.port if args.port is not None else port,
        player_id=player_id,
        start_position=Vector3(*get_start_position(settings)),
        step_size=get_step_size(settings),
        session_duration=args.duration if args.duration is not None else get_session_duration(settings),
    )


def create_key_source(args: argparse.Namespace) -> Tuple[Optional[KeySource], bool]:
    """Pick the input source. Returns (source, whether to open the input window).

    The keyboard source is not created here: the window only opens once the
    server has accepted the connection, see run_session().
    """
    if args.script is not None:
        return ScriptedKeySource.from_script(args.script), False
    if args.headless:
        return KeySource(), False
    return None, True


def open_input_window() -> PygameKeySource:
    pygame.init()
    pygame.display.set_mode((WINDOW_WIDTH, WINDOW_HEIGHT))
    pygame.display.set_caption("Multiplayer console - WASD to move, Esc to quit")
    return PygameKeySource()


async def run_session(session: GameSession, use_window: bool):
    """Connect, then open the input window if wanted, then run the session.

    Raises ConnectFailed before anything is shown.
    """
    config = session.config
    connection = await MultiplayerConnection.open(config.host, config.port, config.connect_timeout)
    if use_window:
        try:
            session.key_source = open_input_window()
        except pygame.error:
            await connection.close()
            raise
    await session.run(connection)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.verbose)

    settings = load_settings()
    try:
        key_source, use_window = create_key_source(args)
    except ValueError as e:
        print(f"Invalid --script: {e}", file=sys.stderr)
        return 2
    config = build_config(args, settings)

    if args.save_settings:
        settings.update(host=config.host, port=config.port, player_id=config.player_id)
        save_settings(settings)

    session = GameSession(config, key_source)
    install_default_handlers(session.dispatcher)

    try:
        asyncio.run(run_session(session, use_window))
    except ConnectFailed as e:
        print(f"{e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted")
    finally:
        if use_window and pygame.get_init():
            pygame.quit()

    logger.info(f"Session ended: {session.close_reason} ({session.positions_sent} positions sent)")
    return 0
