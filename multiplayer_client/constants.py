"""Client constants: wire protocol, timing and movement."""


# Network
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8080
CONNECT_TIMEOUT = 10.0       # seconds to wait for the TCP handshake
READ_CHUNK_SIZE = 4096       # bytes per transport read

# Framing
DELIMITER = b"\x00"          # reserved frame terminator, never inside a JSON envelope
MAX_FRAME_SIZE = 1024 * 1024  # 1MB max undelimited buffer

# Session timing (seconds)
SESSION_DURATION = 120.0
INPUT_POLL_INTERVAL = 0.05
POSITION_SEND_RATE = 10      # position updates per second
POSITION_SEND_INTERVAL = 1.0 / POSITION_SEND_RATE
EXIT_SEND_TIMEOUT = 2.0      # upper bound for the exit handshake write

# Movement
STEP_SIZE = 1.0
START_POSITION = (10.0, 20.0, 30.0)

# Chat history kept by the session
MAX_CHAT_LOG = 100

# Input window (pygame needs a focused window to receive key presses)
WINDOW_WIDTH = 480
WINDOW_HEIGHT = 120
