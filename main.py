"""
Multiplayer console client.
Streams the local position to a game server and reports world updates.
"""
import sys

from multiplayer_client.app import main


if __name__ == "__main__":
    sys.exit(main())
