"""Tests for tag-based dispatch of inbound frames."""
import logging

import pytest

from multiplayer_client.network.framing import FrameReader
from multiplayer_client.network.protocol import (
    ChatMessage, MessageType, PlayerEvent, WorldSnapshot, encode, msg_chat,
    msg_exit, msg_player_event, msg_position,
)
from multiplayer_client.player_state import Player, Vector3


class TestRouting:
    """Each inbound tag reaches its own handlers only."""

    def test_world_state_frame_dispatches_one_snapshot(self, dispatcher, recorder):
        worlds, on_world = recorder()
        chats, on_chat = recorder()
        dispatcher.on_world_state(on_world)
        dispatcher.on_chat(on_chat)

        data = (b'{"type":"world_state","payload":{"players":[{"id":1,"position":'
                b'{"x":5,"y":6,"z":7}}],"timestamp":"2024-05-01T10:00:00"}}\x00')
        for frame in FrameReader().feed(data):
            dispatcher.dispatch_frame(frame)

        assert len(worlds) == 1
        snapshot = worlds[0]
        assert isinstance(snapshot, WorldSnapshot)
        assert snapshot.players == (Player(1, Vector3(5.0, 6.0, 7.0)),)
        assert snapshot.timestamp == "2024-05-01T10:00:00"
        assert chats == []

    def test_chat_and_player_event(self, dispatcher, recorder):
        chats, on_chat = recorder()
        events, on_event = recorder()
        dispatcher.on_chat(on_chat)
        dispatcher.on_player_event(on_event)

        dispatcher.dispatch_frame(encode(msg_chat(2, "gg")))
        dispatcher.dispatch_frame(encode(msg_player_event(3, "left")))

        assert chats == [ChatMessage(2, "gg")]
        assert events == [PlayerEvent(3, "left")]

    def test_unknown_tag_is_dropped_and_processing_continues(self, dispatcher, recorder, caplog):
        seen, handler = recorder()
        for tag in (MessageType.WORLD_STATE, MessageType.CHAT, MessageType.PLAYER_EVENT):
            dispatcher.subscribe(tag, handler)

        with caplog.at_level(logging.WARNING):
            called = dispatcher.dispatch_frame(b'{"type":"ping","payload":{}}')
        assert called == 0
        assert seen == []
        assert "ping" in caplog.text

        dispatcher.dispatch_frame(encode(msg_chat(1, "still here")))
        assert seen == [ChatMessage(1, "still here")]
        assert dispatcher.dropped == 1
        assert dispatcher.dispatched == 1

    @pytest.mark.parametrize("envelope", [
        msg_position(Vector3(1, 2, 3)),
        msg_exit(Player(1, Vector3(1, 2, 3))),
    ])
    def test_outbound_only_tags_are_not_dispatched(self, dispatcher, recorder, envelope):
        seen, handler = recorder()
        dispatcher.on_chat(handler)
        assert dispatcher.dispatch_frame(encode(envelope)) == 0
        assert seen == []
        assert dispatcher.dropped == 1

    def test_cannot_subscribe_to_outbound_tag(self, dispatcher):
        with pytest.raises(ValueError):
            dispatcher.subscribe(MessageType.POSITION, print)

    @pytest.mark.parametrize("frame", [
        b'{"type":"chat"',
        b'{"type":"chat","payload":{"id":1}}',
        b'{"type":"world_state","payload":{"players":[{"id":1,"position":{"x":"a","y":0,"z":0}}]}}',
        b'{"type":"world_state","payload":{"players":[{"id":1,"position":{"x":1' + b'0' * 400 + b',"y":0,"z":0}}]}}',
        b'{"type":"chat","payload":{"id":1,"message":' + b'[' * 100000 + b'}}',
    ], ids=["truncated", "missing-field", "bad-coordinate", "huge-integer", "deep-nesting"])
    def test_bad_frame_is_dropped(self, dispatcher, recorder, frame):
        seen, handler = recorder()
        dispatcher.on_chat(handler)
        dispatcher.on_world_state(handler)
        assert dispatcher.dispatch_frame(frame) == 0
        assert seen == []
        assert dispatcher.dropped == 1


class TestFanOut:
    """Handler ordering and isolation."""

    def test_handlers_called_in_subscription_order(self, dispatcher):
        calls = []
        dispatcher.on_chat(lambda m: calls.append(("first", m.text)))
        dispatcher.on_chat(lambda m: calls.append(("second", m.text)))

        for text in ("a", "b"):
            dispatcher.dispatch_frame(encode(msg_chat(1, text)))

        assert calls == [("first", "a"), ("second", "a"), ("first", "b"), ("second", "b")]

    def test_failing_handler_does_not_stop_dispatch(self, dispatcher, recorder, caplog):
        seen, handler = recorder()

        def broken(message):
            raise RuntimeError("handler bug")

        dispatcher.on_chat(broken)
        dispatcher.on_chat(handler)

        reader = FrameReader()
        frames = reader.feed(encode(msg_chat(1, "one")) + b"\x00" + encode(msg_chat(1, "two")) + b"\x00")
        with caplog.at_level(logging.ERROR):
            for frame in frames:
                assert dispatcher.dispatch_frame(frame) == 2

        assert [m.text for m in seen] == ["one", "two"]
        assert "handler bug" in caplog.text
        assert reader.pending == 0

    def test_unsubscribe(self, dispatcher, recorder):
        seen, handler = recorder()
        dispatcher.on_player_event(handler)
        dispatcher.unsubscribe(MessageType.PLAYER_EVENT, handler)
        assert dispatcher.handlers(MessageType.PLAYER_EVENT) == []
        dispatcher.dispatch_frame(encode(msg_player_event(1, "joined")))
        assert seen == []

    def test_no_handlers_is_not_an_error(self, dispatcher):
        assert dispatcher.dispatch_frame(encode(msg_chat(1, "nobody listens"))) == 0
        assert dispatcher.dispatched == 1
