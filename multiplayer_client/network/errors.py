"""Client error taxonomy.

Decode-time errors (MalformedEnvelope, UnknownTag, PayloadTypeMismatch) are
contained to a single frame: they are logged and the frame is dropped.
Transport-time errors (TransportError, FramingError) end the session.
ConnectFailed aborts startup before the session becomes active.
"""


class ClientError(Exception):
    """Base class for all multiplayer client errors."""


class ConnectFailed(ClientError):
    """Transport could not be established at startup."""

    def __init__(self, host: str, port: int, reason: str = ""):
        self.host = host
        self.port = port
        self.reason = reason
        message = f"Could not connect to {host}:{port}"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class MalformedEnvelope(ClientError):
    """Bytes are not a well-formed {type, payload} envelope."""


class UnknownTag(MalformedEnvelope):
    """Envelope type tag is not in the message registry."""

    def __init__(self, tag: str):
        self.tag = tag
        super().__init__(f"Unknown message type: {tag!r}")


class PayloadTypeMismatch(ClientError):
    """Payload cannot be coerced to the type registered for its tag."""


class TransportError(ClientError):
    """Mid-session read or write failure."""


class FramingError(TransportError):
    """Byte stream cannot be split into frames."""
