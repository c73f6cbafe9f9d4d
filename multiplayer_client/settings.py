"""Settings management - saves and loads client preferences."""
import json
import logging
import os
import secrets
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

from .constants import DEFAULT_HOST, DEFAULT_PORT, SESSION_DURATION, START_POSITION, STEP_SIZE

logger = logging.getLogger(__name__)

# Settings file location (in user's home directory)
SETTINGS_DIR = Path.home() / ".multiplayer_console"
SETTINGS_FILE = SETTINGS_DIR / "settings.json"
SETTINGS_PATH_ENV = "MULTIPLAYER_CONSOLE_SETTINGS"

# Default settings
DEFAULT_SETTINGS = {
    "host": DEFAULT_HOST,
    "port": DEFAULT_PORT,
    "session_duration": SESSION_DURATION,
    "step_size": STEP_SIZE,
    "player_id": None,  # generated when unset
    "start_position": list(START_POSITION),
}


def settings_path() -> Path:
    """Settings file, overridable through the environment."""
    p = (os.environ.get(SETTINGS_PATH_ENV) or "").strip()
    if p:
        return Path(p)
    return SETTINGS_FILE


def load_settings() -> Dict[str, Any]:
    """Load settings from file, or return defaults if file doesn't exist."""
    path = settings_path()
    settings = DEFAULT_SETTINGS.copy()
    try:
        if path.exists():
            with open(path, 'r', encoding='utf-8') as f:
                saved = json.load(f)
            if isinstance(saved, dict):
                # Merge with defaults (in case new settings were added)
                settings.update(saved)
                logger.debug(f"Settings loaded from {path}")
            else:
                logger.warning(f"Ignoring settings file {path}: expected a JSON object")
        else:
            logger.debug(f"Settings file not found at {path}, using defaults")
    except (json.JSONDecodeError, OSError) as e:
        logger.warning(f"Failed to load settings: {e}")
    return settings


def save_settings(settings: Dict[str, Any]):
    """Save settings to file."""
    path = settings_path()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(settings, f, indent=2)
        logger.info(f"Settings saved to {path}")
    except OSError as e:
        logger.warning(f"Failed to save settings: {e}")


def get_server_address(settings: Optional[Dict[str, Any]] = None) -> Tuple[str, int]:
    """Get (host, port) of the game server."""
    settings = settings if settings is not None else load_settings()
    host = settings.get("host") or DEFAULT_HOST
    try:
        port = int(settings.get("port", DEFAULT_PORT))
    except (TypeError, ValueError):
        logger.warning(f"Invalid port {settings.get('port')!r}, using {DEFAULT_PORT}")
        port = DEFAULT_PORT
    return (str(host), port)


def _get_float(settings: Dict[str, Any], key: str) -> float:
    value = settings.get(key, DEFAULT_SETTINGS[key])
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning(f"Invalid {key} {value!r}, using {DEFAULT_SETTINGS[key]}")
        return float(DEFAULT_SETTINGS[key])


def get_session_duration(settings: Optional[Dict[str, Any]] = None) -> float:
    """Get session length in seconds."""
    return _get_float(settings if settings is not None else load_settings(), "session_duration")


def get_step_size(settings: Optional[Dict[str, Any]] = None) -> float:
    """Get distance moved per key press."""
    return _get_float(settings if settings is not None else load_settings(), "step_size")


def get_start_position(settings: Optional[Dict[str, Any]] = None) -> Tuple[float, float, float]:
    """Get the local player's starting coordinates."""
    settings = settings if settings is not None else load_settings()
    value = settings.get("start_position", DEFAULT_SETTINGS["start_position"])
    try:
        x, y, z = (float(v) for v in value)
    except (TypeError, ValueError):
        logger.warning(f"Invalid start_position {value!r}, using {START_POSITION}")
        return START_POSITION
    return (x, y, z)


def get_player_id(settings: Optional[Dict[str, Any]] = None) -> Union[int, str]:
    """Get the configured player id, or generate one."""
    settings = settings if settings is not None else load_settings()
    player_id = settings.get("player_id")
    if isinstance(player_id, (int, str)) and not isinstance(player_id, bool) and player_id != "":
        return player_id
    return secrets.token_hex(4)
