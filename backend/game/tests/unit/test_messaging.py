import pytest
from pydantic import ValidationError

from game.logic.enums import ToastStyle, VoiceMode
from game.messaging.types import (
    MAX_SHEETS_PER_PLAYER,
    CloseCode,
    EmoteMessage,
    GameStateSnapshot,
    HelloMessage,
    MessageType,
    NumberDrawnMessage,
    ShoutMessage,
    ToastMessage,
    WaitSignalMessage,
    WelcomeMessage,
    WinClaimMessage,
    parse_hello,
    parse_host_message,
    parse_player_message,
)


class TestWireShape:
    def test_welcome_uses_camel_case_keys(self, sheet):
        welcome = WelcomeMessage(
            name="An",
            sheets=[sheet],
            game_state=GameStateSnapshot(called_numbers=[3, 9], game_started=True, current_number=9),
            voice_mode=VoiceMode.GOOGLE,
        )
        wire = welcome.to_wire()
        assert wire["type"] == "welcome"
        assert wire["gameState"] == {"calledNumbers": [3, 9], "gameStarted": True, "currentNumber": 9}
        assert wire["voiceMode"] == "google"

    def test_hello_last_session_id_key(self):
        wire = HelloMessage(name="An", last_session_id="abc123").to_wire()
        assert wire["lastSessionId"] == "abc123"

    def test_number_drawn(self):
        assert NumberDrawnMessage(number=21, text="hai mươi mốt").to_wire() == {
            "type": "numberDrawn",
            "number": 21,
            "text": "hai mươi mốt",
        }

    def test_toast_defaults_to_info(self):
        assert ToastMessage(message="hi").style == ToastStyle.INFO

    def test_close_codes(self):
        assert CloseCode.PEER_UNAVAILABLE == 4004
        assert CloseCode.IDENTITY_TAKEN == 4009


class TestParsePlayerMessage:
    def test_claim(self):
        assert isinstance(parse_player_message({"type": "winClaim"}), WinClaimMessage)

    def test_wait_signal_with_player_id(self):
        message = parse_player_message({"type": "waitSignal", "playerId": "p1"})
        assert isinstance(message, WaitSignalMessage)
        assert message.player_id == "p1"

    def test_emote_sender_id(self):
        message = parse_player_message({"type": "emote", "emoji": "🎉", "senderId": "p1"})
        assert isinstance(message, EmoteMessage)
        assert message.sender_id == "p1"

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            parse_player_message({"type": "drawNumber"})

    def test_host_only_message_rejected(self):
        with pytest.raises(ValidationError):
            parse_player_message({"type": "numberDrawn", "number": 5, "text": "năm"})

    def test_hello_is_not_a_regular_message(self):
        with pytest.raises(ValidationError):
            parse_player_message({"type": "hello", "name": "An"})

    def test_shout_rejects_control_characters(self):
        with pytest.raises(ValidationError):
            ShoutMessage(text="hi\x07")

    def test_shout_length_limit(self):
        with pytest.raises(ValidationError):
            parse_player_message({"type": "shout", "text": "x" * 201})

    def test_ticket_update_rejects_out_of_range_cells(self, sheet):
        bad = [[[list(row) for row in ticket] for ticket in sheet]]
        bad[0][0][0][0] = 95
        with pytest.raises(ValidationError):
            parse_player_message({"type": "ticketUpdate", "sheets": bad})


class TestParseHello:
    def test_defaults(self):
        hello = parse_hello({"type": "hello"})
        assert hello.name == ""
        assert hello.sheets == []
        assert hello.last_session_id is None

    def test_name_is_stripped(self):
        assert parse_hello({"type": "hello", "name": "  An  "}).name == "An"

    def test_too_many_sheets(self, sheet):
        with pytest.raises(ValidationError):
            parse_hello({"type": "hello", "sheets": [sheet] * (MAX_SHEETS_PER_PLAYER + 1)})

    def test_bad_last_session_id(self):
        with pytest.raises(ValidationError):
            parse_hello({"type": "hello", "lastSessionId": "../etc"})

    def test_name_too_long(self):
        with pytest.raises(ValidationError):
            parse_hello({"type": "hello", "name": "x" * 51})


class TestParseHostMessage:
    def test_number_drawn(self):
        message = parse_host_message({"type": MessageType.NUMBER_DRAWN, "number": 90, "text": "chín mươi"})
        assert isinstance(message, NumberDrawnMessage)

    def test_number_out_of_range(self):
        with pytest.raises(ValidationError):
            parse_host_message({"type": "numberDrawn", "number": 91, "text": ""})

    def test_player_only_message_rejected(self):
        with pytest.raises(ValidationError):
            parse_host_message({"type": "winClaim"})
