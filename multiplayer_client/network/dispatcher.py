"""Inbound message dispatch: type tag -> payload decode -> handlers.

The routing table is fixed; only the handler lists change at session setup.
Handlers run synchronously in subscription order, frames in decode order.
A failing frame or a failing handler is logged and skipped, never fatal.
"""

import logging
from typing import Any, Callable, Dict, List, Tuple, Type

from .errors import MalformedEnvelope, PayloadTypeMismatch, UnknownTag
from .protocol import (
    ChatMessage, Envelope, MessageType, Payload, PlayerEvent, WorldSnapshot,
    decode, decode_payload,
)

logger = logging.getLogger(__name__)

Handler = Callable[[Any], None]

# Tags this client accepts. position/exit are outbound-only.
INBOUND_ROUTES: Dict[MessageType, Type[Any]] = {
    MessageType.WORLD_STATE: WorldSnapshot,
    MessageType.CHAT: ChatMessage,
    MessageType.PLAYER_EVENT: PlayerEvent,
}


class Dispatcher:
    """Routes decoded envelopes to registered handlers.

    Usage:
        dispatcher = Dispatcher()
        dispatcher.on_world_state(session.apply_world_state)
        dispatcher.on_chat(print_chat)
        for frame in frame_reader.feed(data):
            dispatcher.dispatch_frame(frame)
    """

    def __init__(self):
        self._routes: Dict[MessageType, Tuple[Type[Any], List[Handler]]] = {
            tag: (payload_type, []) for tag, payload_type in INBOUND_ROUTES.items()
        }
        # Counters for diagnostics and tests
        self.dispatched = 0
        self.dropped = 0

    # =========================================================================
    # SUBSCRIPTION
    # =========================================================================

    def subscribe(self, tag: MessageType, handler: Handler):
        """Register a handler for an inbound tag. Order of registration is call order."""
        if tag not in self._routes:
            raise ValueError(f"'{tag.value}' is not an inbound message type")
        self._routes[tag][1].append(handler)

    def unsubscribe(self, tag: MessageType, handler: Handler):
        handlers = self._routes[tag][1]
        if handler in handlers:
            handlers.remove(handler)

    def handlers(self, tag: MessageType) -> List[Handler]:
        route = self._routes.get(tag)
        return list(route[1]) if route else []

    def on_world_state(self, handler: Callable[[WorldSnapshot], None]):
        self.subscribe(MessageType.WORLD_STATE, handler)

    def on_chat(self, handler: Callable[[ChatMessage], None]):
        self.subscribe(MessageType.CHAT, handler)

    def on_player_event(self, handler: Callable[[PlayerEvent], None]):
        self.subscribe(MessageType.PLAYER_EVENT, handler)

    # =========================================================================
    # DISPATCH
    # =========================================================================

    def dispatch_frame(self, frame: bytes) -> int:
        """Decode one frame and fan it out. Returns the number of handlers called."""
        try:
            envelope = decode(frame)
        except UnknownTag as e:
            self.dropped += 1
            logger.warning(f"Dropping frame with unknown tag {e.tag!r}")
            return 0
        except MalformedEnvelope as e:
            self.dropped += 1
            logger.warning(f"Dropping malformed frame ({len(frame)} bytes): {e}")
            return 0

        route = self._routes.get(envelope.type)
        if route is None:
            self.dropped += 1
            logger.warning(f"Dropping outbound-only message type '{envelope.type.value}'")
            return 0

        payload_type, _ = route
        try:
            payload = decode_payload(envelope, payload_type)
        except PayloadTypeMismatch as e:
            self.dropped += 1
            logger.warning(f"Dropping '{envelope.type.value}' frame: {e}")
            return 0

        return self.dispatch(envelope, payload)

    def dispatch(self, envelope: Envelope, payload: Payload) -> int:
        """Fan a decoded message out to its handlers."""
        route = self._routes.get(envelope.type)
        if route is None:
            self.dropped += 1
            logger.warning(f"No route for message type '{envelope.type.value}'")
            return 0

        self.dispatched += 1
        handlers = list(route[1])
        for handler in handlers:
            try:
                handler(payload)
            except Exception:
                logger.exception(f"Handler {handler!r} failed on '{envelope.type.value}'")
        return len(handlers)
