"""Real-time multiplayer console client."""

from .version import __version__
