"""Tests for settings loading and command-line configuration."""

import asyncio

import pytest

from multiplayer_client import app, settings
from multiplayer_client.app import build_config, install_default_handlers, main, parse_args
from multiplayer_client.constants import DEFAULT_HOST, DEFAULT_PORT, SESSION_DURATION
from multiplayer_client.key_input import ScriptedKeySource
from multiplayer_client.network.protocol import encode, msg_chat, msg_player_event
from multiplayer_client.network.session import GameSession, SessionState
from multiplayer_client.player_state import Direction, Vector3


@pytest.fixture
def settings_file(tmp_path, monkeypatch):
    """Point the settings module at a temporary file."""
    path = tmp_path / "config" / "settings.json"
    monkeypatch.setenv(settings.SETTINGS_PATH_ENV, str(path))
    return path


class TestSettingsFile:

    def test_defaults_when_missing(self, settings_file):
        loaded = settings.load_settings()
        assert loaded == settings.DEFAULT_SETTINGS
        assert settings.get_server_address(loaded) == (DEFAULT_HOST, DEFAULT_PORT)
        assert settings.get_session_duration(loaded) == SESSION_DURATION

    def test_saved_values_merge_over_defaults(self, settings_file):
        settings.save_settings({"host": "game.example", "port": 9000})
        assert settings_file.exists()

        loaded = settings.load_settings()
        assert settings.get_server_address(loaded) == ("game.example", 9000)
        assert settings.get_step_size(loaded) == 1.0

    def test_invalid_json_falls_back_to_defaults(self, settings_file, caplog):
        settings_file.parent.mkdir(parents=True)
        settings_file.write_text("{not json", encoding="utf-8")
        assert settings.load_settings() == settings.DEFAULT_SETTINGS
        assert "Failed to load settings" in caplog.text

    def test_non_object_is_ignored(self, settings_file):
        settings_file.parent.mkdir(parents=True)
        settings_file.write_text("[1, 2]", encoding="utf-8")
        assert settings.load_settings() == settings.DEFAULT_SETTINGS

    def test_bad_values_use_defaults(self):
        bad = {"port": "eighty", "step_size": "big", "start_position": [1, 2]}
        assert settings.get_server_address(bad)[1] == DEFAULT_PORT
        assert settings.get_step_size(bad) == 1.0
        assert settings.get_start_position(bad) == (10.0, 20.0, 30.0)

    def test_player_id(self):
        assert settings.get_player_id({"player_id": 42}) == 42
        assert settings.get_player_id({"player_id": "neo"}) == "neo"
        generated = settings.get_player_id({"player_id": None})
        assert isinstance(generated, str) and len(generated) == 8
        assert isinstance(settings.get_player_id({"player_id": True}), str)


class TestCommandLine:

    def test_args_override_settings(self):
        args = parse_args(["--host", "10.0.0.5", "--port", "7000", "--duration", "3", "--player-id", "12"])
        config = build_config(args, {**settings.DEFAULT_SETTINGS, "port": 9999, "start_position": [0, 0, 5]})
        assert (config.host, config.port) == ("10.0.0.5", 7000)
        assert config.session_duration == 3.0
        assert config.player_id == 12
        assert config.start_position == Vector3(0.0, 0.0, 5.0)

    def test_settings_used_without_args(self):
        config = build_config(parse_args([]), {**settings.DEFAULT_SETTINGS, "host": "h", "player_id": "me"})
        assert (config.host, config.port) == ("h", DEFAULT_PORT)
        assert config.player_id == "me"
        assert config.session_duration == SESSION_DURATION

    def test_unreachable_server_exits_nonzero(self, settings_file, unused_port, capsys):
        code = main(["--headless", "--port", str(unused_port), "--duration", "1"])
        assert code == 1
        assert f"Could not connect to 127.0.0.1:{unused_port}" in capsys.readouterr().err

    def test_no_window_when_server_unreachable(self, settings_file, unused_port, monkeypatch):
        opened = []
        monkeypatch.setattr(app, "open_input_window", lambda: opened.append(True))
        assert main(["--port", str(unused_port), "--duration", "1"]) == 1
        assert opened == []

    def test_window_opens_after_connecting(self, loopback_server, session_config, monkeypatch):
        seen_state = []

        async def scenario():
            server = await loopback_server().start()
            session = GameSession(session_config(server.port, session_duration=10.0))

            def fake_window():
                seen_state.append(session.state)
                return ScriptedKeySource([Direction.UP], quit_when_done=True)

            monkeypatch.setattr(app, "open_input_window", fake_window)
            await asyncio.wait_for(app.run_session(session, use_window=True), timeout=5.0)
            await server.wait_client_closed()
            await server.stop()
            return session, server

        session, server = asyncio.run(scenario())
        # window opened before the loops started
        assert seen_state == [SessionState.CONNECTING]
        assert server.connections == 1
        assert session.close_reason == "quit requested"
        assert server.of_type('exit')[0]['payload']['y'] == 21.0

    def test_bad_script_is_rejected(self, settings_file):
        assert main(["--script", "WXYZ", "--port", "1"]) == 2

    def test_default_handlers_log_messages(self, dispatcher, caplog):
        install_default_handlers(dispatcher)
        with caplog.at_level("INFO"):
            dispatcher.dispatch_frame(encode(msg_chat(4, "hi all")))
            dispatcher.dispatch_frame(encode(msg_player_event(4, "joined")))
        assert "Chat message from 4: hi all" in caplog.text
        assert "Player 4 has joined" in caplog.text
